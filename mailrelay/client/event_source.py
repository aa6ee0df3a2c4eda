"""
EventSource over httpx.

Mirrors the browser EventSource API closely enough for the subscription
manager: `onopen`, `onerror`, `onmessage`, named event listeners and
`close()`. Unlike the browser, it never reconnects on its own; after an
error it stays CLOSED and reconnection is left to the caller.
"""

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass
from enum import IntEnum
from typing import Callable

import httpx

logger = logging.getLogger(__name__)


class ReadyState(IntEnum):
    CONNECTING = 0
    OPEN = 1
    CLOSED = 2


class EventSourceError(Exception):
    """Transport-level failure of an SSE connection."""


@dataclass
class MessageEvent:
    """One dispatched SSE event."""

    type: str
    data: str
    last_event_id: str = ""


MessageListener = Callable[[MessageEvent], None]


class SSEParser:
    """
    Incremental parser for the text/event-stream format.

    Feed it one line at a time (without the line terminator); complete
    events are passed to `on_event`, comment lines to `on_comment`.
    """

    def __init__(
        self,
        on_event: Callable[[MessageEvent], None],
        on_comment: Callable[[str], None] | None = None,
    ):
        self.on_event = on_event
        self.on_comment = on_comment
        self.last_event_id = ""
        self.retry: int | None = None
        self._event_type = ""
        self._data: list[str] = []

    def feed_line(self, line: str):
        if line == "":
            self._dispatch()
            return

        if line.startswith(":"):
            if self.on_comment:
                self.on_comment(line[1:].lstrip(" "))
            return

        field, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]

        if field == "event":
            self._event_type = value
        elif field == "data":
            self._data.append(value)
        elif field == "id":
            if "\0" not in value:
                self.last_event_id = value
        elif field == "retry":
            if value.isdigit():
                self.retry = int(value)

    def _dispatch(self):
        if not self._data:
            self._event_type = ""
            return

        event = MessageEvent(
            type=self._event_type or "message",
            data="\n".join(self._data),
            last_event_id=self.last_event_id,
        )
        self._event_type = ""
        self._data = []
        self.on_event(event)


class EventSource:
    """
    Reads an SSE stream in a background task started on construction.

    Must be created from inside a running event loop.
    """

    def __init__(
        self,
        url: str,
        client: httpx.AsyncClient | None = None,
        headers: dict[str, str] | None = None,
    ):
        self.url = url
        self.ready_state = ReadyState.CONNECTING
        self.onopen: Callable[[], None] | None = None
        self.onerror: Callable[[Exception], None] | None = None
        self.onmessage: MessageListener | None = None
        self.oncomment: Callable[[str], None] | None = None

        self._listeners: dict[str, list[MessageListener]] = defaultdict(list)
        self._headers = {
            "Accept": "text/event-stream",
            "Cache-Control": "no-cache",
            **(headers or {}),
        }
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(10.0, read=None)
        )
        self._parser = SSEParser(self._dispatch, self._dispatch_comment)
        self._task = asyncio.get_running_loop().create_task(self._run())

    def add_event_listener(self, event_type: str, listener: MessageListener):
        self._listeners[event_type].append(listener)

    def remove_event_listener(self, event_type: str, listener: MessageListener):
        if listener in self._listeners[event_type]:
            self._listeners[event_type].remove(listener)

    def close(self):
        """Stop reading; no callbacks fire afterwards. Idempotent."""
        if self.ready_state == ReadyState.CLOSED:
            return
        self.ready_state = ReadyState.CLOSED
        if self._task is not asyncio.current_task() and not self._task.done():
            self._task.cancel()

    async def wait_closed(self):
        """Wait for the background reader to finish."""
        try:
            await self._task
        except asyncio.CancelledError:
            pass

    async def _run(self):
        error: Exception
        try:
            async with self._client.stream(
                "GET", self.url, headers=self._headers
            ) as response:
                if response.status_code != 200:
                    raise EventSourceError(
                        f"SSE endpoint returned HTTP {response.status_code}"
                    )
                content_type = response.headers.get("content-type", "")
                if not content_type.startswith("text/event-stream"):
                    raise EventSourceError(
                        f"SSE endpoint returned content type {content_type!r}"
                    )

                if self.ready_state == ReadyState.CLOSED:
                    return
                self.ready_state = ReadyState.OPEN
                self._call(self.onopen)

                async for line in response.aiter_lines():
                    if self.ready_state == ReadyState.CLOSED:
                        return
                    self._parser.feed_line(line)

            error = EventSourceError("SSE stream ended")
        except Exception as e:
            # Anything but cancellation ends this connection through onerror.
            error = e
        finally:
            if self._owns_client:
                await self._client.aclose()

        if self.ready_state != ReadyState.CLOSED:
            self.ready_state = ReadyState.CLOSED
            self._call(self.onerror, error)

    def _dispatch(self, event: MessageEvent):
        if self.ready_state == ReadyState.CLOSED:
            return
        if event.type == "message":
            self._call(self.onmessage, event)
        for listener in list(self._listeners.get(event.type, [])):
            self._call(listener, event)

    def _dispatch_comment(self, comment: str):
        if self.ready_state != ReadyState.CLOSED:
            self._call(self.oncomment, comment)

    def _call(self, callback: Callable | None, *args):
        # A failing handler must not tear down the stream reader.
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception(f"EventSource handler for {self.url} raised")
