"""
Tests for the httpx-based EventSource and its stream parser.
"""

import httpx
import pytest

from mailrelay.client.event_source import (
    EventSource,
    EventSourceError,
    MessageEvent,
    ReadyState,
    SSEParser,
)

STREAM_URL = "http://relay.test/api/sse"


class TestSSEParser:
    """Tests for SSEParser."""

    def _parse(self, text: str):
        events, comments = [], []
        parser = SSEParser(events.append, comments.append)
        for line in text.split("\n"):
            parser.feed_line(line)
        return parser, events, comments

    def test_named_event(self):
        _, events, _ = self._parse('event: email:new\ndata: {"a":1}\n\n')

        assert events == [MessageEvent(type="email:new", data='{"a":1}')]

    def test_unnamed_event_defaults_to_message(self):
        _, events, _ = self._parse("data: hello\n\n")

        assert events[0].type == "message"

    def test_multi_line_data_is_joined(self):
        _, events, _ = self._parse("data: first\ndata: second\n\n")

        assert events[0].data == "first\nsecond"

    def test_comments_are_reported_not_dispatched(self):
        _, events, comments = self._parse(": keep-alive\n\n")

        assert events == []
        assert comments == ["keep-alive"]

    def test_event_without_data_is_dropped(self):
        _, events, _ = self._parse("event: connection\n\ndata: x\n\n")

        assert [e.type for e in events] == ["message"]

    def test_id_and_retry_fields(self):
        parser, events, _ = self._parse("id: 42\nretry: 5000\ndata: x\n\n")

        assert events[0].last_event_id == "42"
        assert parser.retry == 5000

    def test_value_without_leading_space(self):
        _, events, _ = self._parse("data:tight\n\n")

        assert events[0].data == "tight"


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _stream_response(body: str, status_code: int = 200, content_type=None):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            status_code,
            headers={"content-type": content_type or "text/event-stream"},
            content=body.encode(),
        )

    return handler


class TestEventSource:
    """Tests for EventSource."""

    @pytest.mark.asyncio
    async def test_dispatches_stream_then_reports_end(self):
        body = (
            'event: connection\ndata: {"status":"connected"}\n\n'
            ": keep-alive\n\n"
            "data: plain\n\n"
        )
        async with _client(_stream_response(body)) as client:
            source = EventSource(STREAM_URL, client=client)
            calls = []
            source.onopen = lambda: calls.append(("open", source.ready_state))
            source.onmessage = lambda e: calls.append(("message", e.data))
            source.oncomment = lambda c: calls.append(("comment", c))
            source.onerror = lambda e: calls.append(("error", type(e)))
            source.add_event_listener(
                "connection", lambda e: calls.append(("connection", e.data))
            )

            await source.wait_closed()

        assert calls == [
            ("open", ReadyState.OPEN),
            ("connection", '{"status":"connected"}'),
            ("comment", "keep-alive"),
            ("message", "plain"),
            ("error", EventSourceError),
        ]
        assert source.ready_state == ReadyState.CLOSED

    @pytest.mark.asyncio
    async def test_sends_event_stream_accept_header(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.headers["accept"])
            return httpx.Response(200, headers={"content-type": "text/event-stream"})

        async with _client(handler) as client:
            source = EventSource(STREAM_URL, client=client)
            await source.wait_closed()

        assert seen == ["text/event-stream"]

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        async with _client(_stream_response("", status_code=503)) as client:
            source = EventSource(STREAM_URL, client=client)
            opened, errors = [], []
            source.onopen = lambda: opened.append(True)
            source.onerror = errors.append

            await source.wait_closed()

        assert opened == []
        assert isinstance(errors[0], EventSourceError)
        assert "503" in str(errors[0])

    @pytest.mark.asyncio
    async def test_wrong_content_type(self):
        handler = _stream_response("{}", content_type="application/json")
        async with _client(handler) as client:
            source = EventSource(STREAM_URL, client=client)
            errors = []
            source.onerror = errors.append

            await source.wait_closed()

        assert "content type" in str(errors[0])

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with _client(handler) as client:
            source = EventSource(STREAM_URL, client=client)
            errors = []
            source.onerror = errors.append

            await source.wait_closed()

        assert isinstance(errors[0], httpx.ConnectError)

    @pytest.mark.asyncio
    async def test_close_suppresses_callbacks(self):
        async with _client(_stream_response("data: x\n\n")) as client:
            source = EventSource(STREAM_URL, client=client)
            calls = []
            source.onopen = lambda: calls.append("open")
            source.onmessage = lambda e: calls.append("message")
            source.onerror = lambda e: calls.append("error")

            source.close()
            source.close()
            await source.wait_closed()

        assert calls == []
        assert source.ready_state == ReadyState.CLOSED

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_stop_stream(self, caplog):
        async with _client(_stream_response("data: one\n\ndata: two\n\n")) as client:
            source = EventSource(STREAM_URL, client=client)
            received = []

            def handler(event):
                received.append(event.data)
                raise RuntimeError("handler bug")

            source.onmessage = handler
            await source.wait_closed()

        assert received == ["one", "two"]
        assert "handler" in caplog.text

    @pytest.mark.asyncio
    async def test_remove_event_listener(self):
        body = 'event: email:new\ndata: {"x":1}\n\n'
        async with _client(_stream_response(body)) as client:
            source = EventSource(STREAM_URL, client=client)
            received = []
            listener = received.append
            source.add_event_listener("email:new", listener)
            source.remove_event_listener("email:new", listener)

            await source.wait_closed()

        assert received == []

    @pytest.mark.asyncio
    async def test_unexpected_exception_reported_through_onerror(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise RuntimeError("decoder blew up")

        async with _client(handler) as client:
            source = EventSource(STREAM_URL, client=client)
            errors = []
            source.onerror = errors.append

            await source.wait_closed()

        assert isinstance(errors[0], RuntimeError)
        assert source.ready_state == ReadyState.CLOSED

    @pytest.mark.asyncio
    async def test_invalid_url_reported_through_onerror(self):
        source = EventSource("http://[::1")
        errors = []
        source.onerror = errors.append

        await source.wait_closed()

        assert isinstance(errors[0], httpx.InvalidURL)
        assert source.ready_state == ReadyState.CLOSED
