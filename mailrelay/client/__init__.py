"""
Relay client.

Consumes the relay's SSE stream: an httpx-backed EventSource and a
subscription manager that reconnects on transport failure.
"""

from mailrelay.client.event_source import (
    EventSource,
    EventSourceError,
    MessageEvent,
    ReadyState,
    SSEParser,
)
from mailrelay.client.subscription import (
    ClientSubscription,
    ConnectionState,
    SubscriptionManager,
)

__all__ = [
    "ClientSubscription",
    "ConnectionState",
    "EventSource",
    "EventSourceError",
    "MessageEvent",
    "ReadyState",
    "SSEParser",
    "SubscriptionManager",
]
