"""
Event store interface.

The store is a short-window buffer of recent notification events, not a
system of record. Adapters only provide `append` and `recent`; cursor
filtering and ordering for consumers live in the callers.
"""

from abc import ABC, abstractmethod

from mailrelay.models.event import NotificationEvent

DEFAULT_MAX_EVENTS = 100
DEFAULT_TTL_SECONDS = 300


class EventStoreError(Exception):
    """Raised when the backing store cannot be reached or misbehaves."""


class EventStore(ABC):
    """
    Capacity- and time-bounded list of notification events, newest first.

    Subclasses must implement:
    - append: insert at the head, trim to max_events, refresh the TTL
    - recent: return up to `limit` events, newest first
    """

    def __init__(
        self,
        max_events: int = DEFAULT_MAX_EVENTS,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
    ):
        if max_events < 1:
            raise ValueError("max_events must be at least 1")
        if ttl_seconds < 1:
            raise ValueError("ttl_seconds must be at least 1")
        self.max_events = max_events
        self.ttl_seconds = ttl_seconds

    @abstractmethod
    async def append(self, event: NotificationEvent) -> None:
        """
        Insert an event at the head of the list.

        Raises:
            EventStoreError: If the backing store is unavailable
        """

    @abstractmethod
    async def recent(self, limit: int) -> list[NotificationEvent]:
        """
        Get up to `limit` most recently appended events, newest first.

        Raises:
            EventStoreError: If the backing store is unavailable
        """

    async def close(self) -> None:
        """Release any resources held by the adapter."""
