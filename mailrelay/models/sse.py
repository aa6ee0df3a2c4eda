"""
Server-Sent Events models and frame formatting.

Every non-comment frame carries an SSEEvent envelope:
`{"type": ..., "data": ..., "timestamp": ...}`.
"""

import json
from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, Field

from mailrelay.models.event import NotificationEvent, epoch_ms

KEEP_ALIVE_FRAME = ": keep-alive\n\n"

SSE_HEADERS = {
    "Content-Type": "text/event-stream",
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
    "X-Content-Type-Options": "nosniff",
}


class SSEEventType(StrEnum):
    """Event names sent on the stream."""

    EMAIL_NEW = "email:new"
    EMAIL_READ = "email:read"
    EMAIL_SENT = "email:sent"
    CONNECTION = "connection"
    KEEPALIVE = "keepalive"


class NewEmailData(BaseModel):
    """Payload of an email:new event."""

    messageId: str
    timestamp: int


class EmailReadData(BaseModel):
    """Payload of an email:read event."""

    id: str
    threadId: str
    isRead: bool


class EmailSentData(BaseModel):
    """Payload of an email:sent event."""

    id: str
    threadId: str
    to: list[str] = Field(default_factory=list)
    subject: str = ""
    timestamp: str


class ConnectionData(BaseModel):
    """Payload of a connection event."""

    status: Literal["connected", "disconnected"]
    clientId: str | None = None


class SSEEvent(BaseModel):
    """Envelope for every event frame."""

    type: SSEEventType
    data: dict[str, Any] | str | None = None
    timestamp: int = Field(default_factory=epoch_ms)


def format_sse_message(event: str, data: Any) -> str:
    """
    Format a single SSE frame.

    Strings are sent verbatim; models and other values are JSON-encoded.
    Multi-line data is split into one `data:` line per line.
    """
    if isinstance(data, str):
        data_str = data
    elif isinstance(data, BaseModel):
        data_str = data.model_dump_json(exclude_none=True)
    else:
        data_str = json.dumps(data, separators=(",", ":"), default=str)

    data_lines = "".join(f"data: {line}\n" for line in data_str.split("\n"))
    return f"event: {event}\n{data_lines}\n"


def format_event(event: SSEEvent) -> str:
    """Format an envelope as a frame named after its type."""
    return format_sse_message(event.type.value, event)


def create_connection_event(client_id: str) -> SSEEvent:
    return SSEEvent(
        type=SSEEventType.CONNECTION,
        data=ConnectionData(status="connected", clientId=client_id).model_dump(),
    )


def create_new_email_event(event: NotificationEvent) -> SSEEvent:
    """Build the email:new envelope for a stored notification."""
    return SSEEvent(
        type=SSEEventType.EMAIL_NEW,
        data=NewEmailData(
            messageId=event.messageId, timestamp=event.timestamp
        ).model_dump(),
        timestamp=event.timestamp,
    )


def create_email_read_event(email_id: str, thread_id: str, is_read: bool) -> SSEEvent:
    return SSEEvent(
        type=SSEEventType.EMAIL_READ,
        data=EmailReadData(id=email_id, threadId=thread_id, isRead=is_read).model_dump(),
    )


def create_email_sent_event(
    email_id: str, thread_id: str, to: list[str], subject: str, sent_at: str
) -> SSEEvent:
    return SSEEvent(
        type=SSEEventType.EMAIL_SENT,
        data=EmailSentData(
            id=email_id, threadId=thread_id, to=to, subject=subject, timestamp=sent_at
        ).model_dump(),
    )
