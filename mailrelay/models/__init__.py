"""
Mail relay data models.

Pydantic models for notification events, Pub/Sub envelopes and SSE frames.
"""

from mailrelay.models.event import NotificationEvent, epoch_ms, now_ms
from mailrelay.models.pubsub import (
    ErrorResponse,
    EventFeedResponse,
    GmailNotificationPayload,
    PubSubMessageData,
    PubSubPushMessage,
    WebhookResponse,
)
from mailrelay.models.sse import (
    ConnectionData,
    EmailReadData,
    EmailSentData,
    NewEmailData,
    SSEEvent,
    SSEEventType,
)

__all__ = [
    "NotificationEvent",
    "epoch_ms",
    "now_ms",
    "ErrorResponse",
    "EventFeedResponse",
    "GmailNotificationPayload",
    "PubSubMessageData",
    "PubSubPushMessage",
    "WebhookResponse",
    "ConnectionData",
    "EmailReadData",
    "EmailSentData",
    "NewEmailData",
    "SSEEvent",
    "SSEEventType",
]
