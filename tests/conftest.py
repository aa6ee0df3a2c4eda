"""
pytest configuration and fixtures.

Loads environment variables from .env file for all tests and resets
process-wide state between tests.
"""

from pathlib import Path

import pytest
from dotenv import load_dotenv

from mailrelay.config import get_settings
from mailrelay.store import StoreConnection


def pytest_configure(config):
    """Load .env file before running tests"""
    # Find the project root (where .env is located)
    project_root = Path(__file__).parent.parent
    env_file = project_root / ".env"

    if env_file.exists():
        print(f"Loading environment from {env_file}")
        load_dotenv(env_file)


@pytest.fixture(autouse=True)
def reset_process_state():
    """Drop cached settings and the process-wide store after each test."""
    yield
    get_settings.cache_clear()
    StoreConnection._store = None
