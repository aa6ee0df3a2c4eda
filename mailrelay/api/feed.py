"""
Cursor-based reads over the event store.

Shared by the event feed endpoint and the SSE broadcaster.
"""

import logging

from mailrelay.models.event import NotificationEvent
from mailrelay.store.base import EventStore, EventStoreError

DEFAULT_FEED_LIMIT = 10
MAX_FEED_LIMIT = 100

logger = logging.getLogger(__name__)


def clamp_limit(limit: int) -> int:
    """Bound a requested page size to 1..MAX_FEED_LIMIT."""
    return max(1, min(limit, MAX_FEED_LIMIT))


async def fetch_events_since(
    store: EventStore, since: int, limit: int = DEFAULT_FEED_LIMIT
) -> list[NotificationEvent]:
    """
    Get events newer than a cursor, oldest first.

    Reads up to `limit` most recent events, keeps those with
    `timestamp > since` and sorts them ascending so consumers can fold
    them in order. Store failures degrade to an empty result.

    Args:
        store: Event store to read from
        since: Cursor (epoch ms); only strictly newer events are returned
        limit: Number of recent events to consider (clamped to 1..100)

    Returns:
        Events in ascending timestamp order
    """
    try:
        recent = await store.recent(clamp_limit(limit))
    except EventStoreError as e:
        logger.error(f"Failed to read events from store: {e}", exc_info=True)
        return []

    events = [event for event in recent if event.timestamp > since]
    events.sort(key=lambda event: event.timestamp)
    return events
