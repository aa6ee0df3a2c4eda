"""
In-process event store.

Only correct for a single-process deployment: separate worker processes
would each see their own buffer.
"""

import time
from typing import Callable

from mailrelay.models.event import NotificationEvent
from mailrelay.store.base import DEFAULT_MAX_EVENTS, DEFAULT_TTL_SECONDS, EventStore


class MemoryEventStore(EventStore):
    """
    List-backed store with the same trim/expire semantics as the Redis adapter.

    Mutations never await, so concurrent deliveries on one event loop cannot
    interleave inside an append.
    """

    def __init__(
        self,
        max_events: int = DEFAULT_MAX_EVENTS,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(max_events=max_events, ttl_seconds=ttl_seconds)
        self._clock = clock
        self._events: list[NotificationEvent] = []
        self._expires_at: float | None = None

    async def append(self, event: NotificationEvent) -> None:
        self._expire_if_due()
        self._events.insert(0, event)
        del self._events[self.max_events :]
        self._expires_at = self._clock() + self.ttl_seconds

    async def recent(self, limit: int) -> list[NotificationEvent]:
        self._expire_if_due()
        if limit <= 0:
            return []
        # Slicing copies, so later appends never show up in this result.
        return self._events[:limit]

    def __len__(self) -> int:
        self._expire_if_due()
        return len(self._events)

    def _expire_if_due(self):
        if self._expires_at is not None and self._clock() >= self._expires_at:
            self._events.clear()
            self._expires_at = None
