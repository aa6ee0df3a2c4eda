"""
SSE broadcaster.

One SSEBroadcaster serves one client connection. It polls the event store
on an interval, forwards new events as `email:new` frames, and sends
keep-alive comments so proxies do not drop an idle-looking stream.

All per-connection state lives in a ConnectionContext owned by the
broadcaster; nothing is shared between connections.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Awaitable, Callable
from uuid import uuid4

from mailrelay.api.feed import fetch_events_since
from mailrelay.models.event import epoch_ms
from mailrelay.models.sse import (
    KEEP_ALIVE_FRAME,
    create_connection_event,
    create_new_email_event,
    format_event,
)
from mailrelay.store.base import EventStore

DEFAULT_POLL_INTERVAL = 1.0
DEFAULT_KEEP_ALIVE_INTERVAL = 15.0
DEFAULT_POLL_LIMIT = 50
DEFAULT_MAX_DURATION = 300.0

FrameWriter = Callable[[str], Awaitable[None]]

logger = logging.getLogger(__name__)


class StreamClosedError(ConnectionError):
    """Raised by a frame writer when the client can no longer receive frames."""


class StreamState(StrEnum):
    """Lifecycle of one SSE connection."""

    INIT = "init"
    STREAMING = "streaming"
    CLOSED = "closed"  # Write failure or self-termination
    CANCELLED = "cancelled"  # Client disconnect detected by the transport


TERMINAL_STATES = (StreamState.CLOSED, StreamState.CANCELLED)


@dataclass
class ConnectionContext:
    """Mutable state of a single SSE connection."""

    client_id: str
    last_poll_time: int
    state: StreamState = StreamState.INIT
    frames_sent: int = 0
    events_sent: int = 0
    poll_task: asyncio.Task | None = None
    keep_alive_task: asyncio.Task | None = None
    done: asyncio.Event = field(default_factory=asyncio.Event)

    @property
    def is_streaming(self) -> bool:
        return self.state == StreamState.STREAMING


class SSEBroadcaster:
    """
    Streams new notification events from the store to one client.

    Usage:
        broadcaster = SSEBroadcaster(store, writer)
        final_state = await broadcaster.run()

    `writer` is an async callable taking one formatted frame. It must raise
    OSError (StreamClosedError, ConnectionError, ...) once the client is gone;
    the broadcaster then stops both timers and never writes again.
    """

    def __init__(
        self,
        store: EventStore,
        writer: FrameWriter,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        keep_alive_interval: float = DEFAULT_KEEP_ALIVE_INTERVAL,
        poll_limit: int = DEFAULT_POLL_LIMIT,
        max_duration: float | None = DEFAULT_MAX_DURATION,
        since: int | None = None,
        client_id: str | None = None,
        clock: Callable[[], int] = epoch_ms,
    ):
        self.store = store
        self.poll_interval = poll_interval
        self.keep_alive_interval = keep_alive_interval
        self.poll_limit = poll_limit
        self.max_duration = max_duration or None
        self._writer = writer
        self.context = ConnectionContext(
            client_id=client_id or str(uuid4()),
            last_poll_time=clock() if since is None else since,
        )

    async def run(self) -> StreamState:
        """
        Stream until the client goes away or the duration bound is reached.

        Returns:
            The terminal state of the connection
        """
        ctx = self.context
        if ctx.state in TERMINAL_STATES:
            return ctx.state
        if ctx.state != StreamState.INIT:
            raise RuntimeError("SSEBroadcaster.run() can only be called once")

        ctx.state = StreamState.STREAMING
        logger.info(
            "SSE client connected",
            extra={
                "json_fields": {
                    "client_id": ctx.client_id,
                    "since": ctx.last_poll_time,
                }
            },
        )

        connection_frame = format_event(create_connection_event(ctx.client_id))
        if not await self._write(connection_frame):
            return ctx.state

        ctx.poll_task = asyncio.create_task(self._poll_loop())
        ctx.keep_alive_task = asyncio.create_task(self._keep_alive_loop())
        ctx.poll_task.add_done_callback(self._on_timer_done)
        ctx.keep_alive_task.add_done_callback(self._on_timer_done)

        try:
            await asyncio.wait_for(ctx.done.wait(), timeout=self.max_duration)
        except asyncio.TimeoutError:
            logger.info(
                f"SSE stream for {ctx.client_id} reached {self.max_duration}s, "
                "closing so the client reconnects"
            )
            self.close()
        except asyncio.CancelledError:
            self.cancel()
            raise
        finally:
            self._clear_timers()

        await self._join_timers()

        logger.info(
            "SSE client disconnected",
            extra={
                "json_fields": {
                    "client_id": ctx.client_id,
                    "state": ctx.state.value,
                    "events_sent": ctx.events_sent,
                }
            },
        )
        return ctx.state

    async def poll_once(self) -> int:
        """
        Forward events newer than the cursor, oldest first.

        The cursor advances to the newest timestamp in the batch rather than
        to wall-clock time, so events that land while a poll is in flight are
        picked up by the next one.

        Returns:
            Number of events written
        """
        ctx = self.context
        events = await fetch_events_since(
            self.store, ctx.last_poll_time, self.poll_limit
        )

        written = 0
        for event in events:
            if not await self._write(format_event(create_new_email_event(event))):
                return written
            written += 1
            ctx.events_sent += 1

        if events:
            ctx.last_poll_time = max(
                ctx.last_poll_time, max(event.timestamp for event in events)
            )
        return written

    def close(self):
        """Stop streaming after a write failure or self-termination."""
        self._finish(StreamState.CLOSED)

    def cancel(self):
        """Stop streaming because the transport reported a disconnect."""
        self._finish(StreamState.CANCELLED)

    async def _poll_loop(self):
        while self.context.is_streaming:
            await self.poll_once()
            if not self.context.is_streaming:
                break
            await asyncio.sleep(self.poll_interval)

    async def _keep_alive_loop(self):
        while self.context.is_streaming:
            await asyncio.sleep(self.keep_alive_interval)
            if not await self._write(KEEP_ALIVE_FRAME):
                break

    async def _write(self, frame: str) -> bool:
        ctx = self.context
        if not ctx.is_streaming:
            return False

        try:
            await self._writer(frame)
        except OSError as e:
            logger.info(f"SSE write to {ctx.client_id} failed, closing stream: {e}")
            self.close()
            return False

        ctx.frames_sent += 1
        return True

    def _finish(self, state: StreamState):
        ctx = self.context
        if ctx.state in TERMINAL_STATES:
            return
        ctx.state = state
        self._clear_timers()
        ctx.done.set()

    def _clear_timers(self):
        ctx = self.context
        current = asyncio.current_task()
        for task in (ctx.poll_task, ctx.keep_alive_task):
            if task is not None and task is not current and not task.done():
                task.cancel()

    async def _join_timers(self):
        ctx = self.context
        current = asyncio.current_task()
        tasks = [
            task
            for task in (ctx.poll_task, ctx.keep_alive_task)
            if task is not None and task is not current
        ]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _on_timer_done(self, task: asyncio.Task):
        if task.cancelled() or task.exception() is None:
            return
        logger.error(
            f"SSE timer for {self.context.client_id} failed, closing stream",
            exc_info=task.exception(),
        )
        self.close()
