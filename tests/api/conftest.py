"""
Shared fixtures for API tests.

The app's store and settings dependencies are overridden so tests never
touch the environment or a real Redis.
"""

import asyncio

import pytest
from fastapi.testclient import TestClient

from mailrelay.api.main import app
from mailrelay.config import Settings, get_settings
from mailrelay.models.event import NotificationEvent
from mailrelay.store import MemoryEventStore, get_event_store


@pytest.fixture
def store() -> MemoryEventStore:
    return MemoryEventStore()


@pytest.fixture
def settings() -> Settings:
    """Settings without verification and with fast SSE timers."""
    return Settings(
        verification_token="",
        store_backend="memory",
        poll_interval_ms=20,
        keep_alive_interval_ms=50,
        max_stream_seconds=0.3,
    )


@pytest.fixture
def client(store: MemoryEventStore, settings: Settings):
    """Test client wired to the fixture store and settings."""
    app.dependency_overrides[get_event_store] = lambda: store
    app.dependency_overrides[get_settings] = lambda: settings
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def seed(store: MemoryEventStore):
    """Append one event per timestamp to the fixture store, in order."""

    def _seed(*timestamps: int) -> list[NotificationEvent]:
        events = [
            NotificationEvent(id=f"evt-{ts}", timestamp=ts, messageId=f"msg-{ts}")
            for ts in timestamps
        ]

        async def _append():
            for event in events:
                await store.append(event)

        asyncio.run(_append())
        return events

    return _seed
