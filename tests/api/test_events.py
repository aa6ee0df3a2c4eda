"""
Tests for the pull-based event feed.
"""

from unittest.mock import AsyncMock, MagicMock

from fastapi.testclient import TestClient

from mailrelay.api.main import app
from mailrelay.store import EventStore, EventStoreError, get_event_store


class TestEventFeed:
    """Tests for GET /api/events."""

    def test_returns_events_after_cursor_oldest_first(self, client: TestClient, seed):
        seed(10, 20, 30)

        response = client.get("/api/events", params={"since": 15})

        assert response.status_code == 200
        payload = response.json()
        assert [e["timestamp"] for e in payload["events"]] == [20, 30]
        assert payload["count"] == 2

    def test_cursor_is_exclusive(self, client: TestClient, seed):
        seed(10, 20, 30)

        response = client.get("/api/events", params={"since": 30})

        assert response.json() == {"events": [], "count": 0}

    def test_since_defaults_to_zero(self, client: TestClient, seed):
        seed(10, 20)

        payload = client.get("/api/events").json()

        assert [e["timestamp"] for e in payload["events"]] == [10, 20]

    def test_default_limit_reads_ten_newest(self, client: TestClient, seed):
        seed(*range(1, 16))

        payload = client.get("/api/events").json()

        assert payload["count"] == 10
        assert [e["timestamp"] for e in payload["events"]] == list(range(6, 16))

    def test_explicit_limit(self, client: TestClient, seed):
        seed(10, 20, 30, 40)

        payload = client.get("/api/events", params={"limit": 2}).json()

        assert [e["timestamp"] for e in payload["events"]] == [30, 40]

    def test_limit_is_capped(self, client: TestClient):
        mock_store = MagicMock(spec=EventStore)
        mock_store.recent = AsyncMock(return_value=[])
        app.dependency_overrides[get_event_store] = lambda: mock_store

        client.get("/api/events", params={"limit": 5000})
        client.get("/api/events", params={"limit": 0})

        assert [c.args[0] for c in mock_store.recent.await_args_list] == [100, 1]

    def test_empty_store(self, client: TestClient):
        response = client.get("/api/events", params={"since": 0})

        assert response.status_code == 200
        assert response.json() == {"events": [], "count": 0}

    def test_store_failure_returns_empty_feed(self, client: TestClient):
        mock_store = MagicMock(spec=EventStore)
        mock_store.recent = AsyncMock(side_effect=EventStoreError("redis down"))
        app.dependency_overrides[get_event_store] = lambda: mock_store

        response = client.get("/api/events", params={"since": 0})

        assert response.status_code == 200
        assert response.json() == {"events": [], "count": 0}

    def test_absent_fields_are_omitted(self, client: TestClient, seed):
        seed(10)

        event = client.get("/api/events").json()["events"][0]

        assert event == {"id": "evt-10", "timestamp": 10, "messageId": "msg-10"}

    def test_invalid_since_is_rejected(self, client: TestClient):
        response = client.get("/api/events", params={"since": "yesterday"})

        assert response.status_code == 422
