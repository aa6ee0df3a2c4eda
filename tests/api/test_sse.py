"""
Tests for the SSE stream endpoint.

The test settings close each stream after a fraction of a second, so the
test client can read the whole body.
"""

import json

import pytest
from fastapi.testclient import TestClient

from mailrelay.api.routes.sse import QueueWriter
from mailrelay.api.broadcaster import StreamClosedError


def _frames(body: str) -> list[str]:
    return [frame for frame in body.split("\n\n") if frame]


def _events(body: str) -> list[tuple[str, dict]]:
    """Parse `event:`/`data:` frames, skipping comments."""
    parsed = []
    for frame in _frames(body):
        if frame.startswith(":"):
            continue
        lines = frame.split("\n")
        name = lines[0].removeprefix("event: ")
        data = "\n".join(line.removeprefix("data: ") for line in lines[1:])
        parsed.append((name, json.loads(data)))
    return parsed


class TestSSEEndpoint:
    """Tests for GET /api/sse."""

    def test_response_headers(self, client: TestClient):
        response = client.get("/api/sse")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["cache-control"] == "no-cache, no-transform"
        assert response.headers["x-accel-buffering"] == "no"
        assert response.headers["x-content-type-options"] == "nosniff"

    def test_connection_event_first(self, client: TestClient):
        body = client.get("/api/sse").text

        name, envelope = _events(body)[0]
        assert name == "connection"
        assert envelope["type"] == "connection"
        assert envelope["data"]["status"] == "connected"
        assert envelope["data"]["clientId"]
        assert isinstance(envelope["timestamp"], int)

    def test_sends_keep_alive_comments(self, client: TestClient):
        body = client.get("/api/sse").text

        assert ": keep-alive" in _frames(body)

    def test_no_replay_of_old_events_without_cursor(self, client: TestClient, seed):
        seed(10, 20)

        body = client.get("/api/sse").text

        assert [name for name, _ in _events(body)] == ["connection"]

    def test_since_resumes_from_cursor(self, client: TestClient, seed):
        seed(10, 20)

        body = client.get("/api/sse", params={"since": 15}).text

        new_email = [env for name, env in _events(body) if name == "email:new"]
        assert len(new_email) == 1
        assert new_email[0]["type"] == "email:new"
        assert new_email[0]["data"] == {"messageId": "msg-20", "timestamp": 20}
        assert new_email[0]["timestamp"] == 20

    def test_each_connection_gets_its_own_client_id(self, client: TestClient):
        first = _events(client.get("/api/sse").text)[0][1]
        second = _events(client.get("/api/sse").text)[0][1]

        assert first["data"]["clientId"] != second["data"]["clientId"]


class TestQueueWriter:
    """Tests for the per-connection frame buffer."""

    @pytest.mark.asyncio
    async def test_buffers_frames_in_order(self):
        writer = QueueWriter(max_frames=4)

        await writer("a")
        await writer("b")

        assert writer.queue.get_nowait() == "a"
        assert writer.queue.get_nowait() == "b"

    @pytest.mark.asyncio
    async def test_full_buffer_reports_closed_stream(self):
        writer = QueueWriter(max_frames=1)
        await writer("a")

        with pytest.raises(StreamClosedError):
            await writer("b")

    @pytest.mark.asyncio
    async def test_close_is_idempotent_and_rejects_writes(self):
        writer = QueueWriter(max_frames=4)

        writer.close()
        writer.close()

        assert writer.queue.qsize() == 1
        assert writer.queue.get_nowait() is None
        with pytest.raises(StreamClosedError):
            await writer("a")
