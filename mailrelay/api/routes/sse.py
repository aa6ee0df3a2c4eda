"""
SSE stream endpoint.

Bridges an SSEBroadcaster to a StreamingResponse through a bounded
per-connection frame buffer.
"""

import asyncio
import logging
from typing import AsyncIterator

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse

from mailrelay.api.broadcaster import SSEBroadcaster, StreamClosedError
from mailrelay.config import Settings, get_settings
from mailrelay.models.sse import SSE_HEADERS
from mailrelay.store import EventStore, get_event_store

router = APIRouter()
logger = logging.getLogger(__name__)


class QueueWriter:
    """
    Frame writer feeding the response body.

    A full buffer means the client is not reading fast enough; that is
    reported as a closed stream instead of blocking the broadcaster.
    """

    def __init__(self, max_frames: int):
        self.max_frames = max_frames
        self.queue: asyncio.Queue[str | None] = asyncio.Queue()
        self.closed = False

    async def __call__(self, frame: str) -> None:
        if self.closed:
            raise StreamClosedError("stream already closed")
        if self.queue.qsize() >= self.max_frames:
            raise StreamClosedError("client is not reading, buffer full")
        self.queue.put_nowait(frame)

    def close(self):
        """Mark the end of the stream; safe to call more than once."""
        if not self.closed:
            self.closed = True
            self.queue.put_nowait(None)


async def _stream_frames(
    broadcaster: SSEBroadcaster, writer: QueueWriter
) -> AsyncIterator[str]:
    run_task = asyncio.create_task(broadcaster.run())
    run_task.add_done_callback(lambda _: writer.close())

    try:
        while True:
            frame = await writer.queue.get()
            if frame is None:
                break
            yield frame
    finally:
        # Reached on client disconnect as well as on normal completion.
        broadcaster.cancel()
        writer.close()
        if not run_task.done():
            run_task.cancel()


@router.get("/sse", operation_id="streamEvents")
async def stream_events(
    since: int | None = Query(
        default=None,
        description="Cursor to resume from (epoch ms); defaults to connection time",
    ),
    store: EventStore = Depends(get_event_store),
    settings: Settings = Depends(get_settings),
):
    """
    Stream new-mail events as Server-Sent Events.

    Sends a `connection` event first, then `email:new` events as they reach
    the store, with `: keep-alive` comments in between. The stream closes
    itself after SSE_MAX_STREAM_SECONDS so the client reconnects.
    """
    writer = QueueWriter(max_frames=settings.queue_size)
    broadcaster = SSEBroadcaster(
        store,
        writer,
        poll_interval=settings.poll_interval_ms / 1000,
        keep_alive_interval=settings.keep_alive_interval_ms / 1000,
        poll_limit=settings.poll_limit,
        max_duration=settings.max_stream_seconds,
        since=since,
    )

    return StreamingResponse(
        _stream_frames(broadcaster, writer),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
