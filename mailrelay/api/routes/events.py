"""Event feed: pull-based retrieval of notification events after a cursor."""

from fastapi import APIRouter, Depends, Query

from mailrelay.api.feed import DEFAULT_FEED_LIMIT, fetch_events_since
from mailrelay.models.pubsub import EventFeedResponse
from mailrelay.store import EventStore, get_event_store

router = APIRouter()


@router.get(
    "/events",
    response_model=EventFeedResponse,
    response_model_exclude_none=True,
    operation_id="listEvents",
)
async def list_events(
    since: int = Query(default=0, description="Cursor (epoch ms)"),
    limit: int = Query(
        default=DEFAULT_FEED_LIMIT, description="Max events to read (capped at 100)"
    ),
    store: EventStore = Depends(get_event_store),
) -> EventFeedResponse:
    """
    List events newer than `since`, oldest first.

    An empty list means nothing new. Store outages also yield an empty list
    so polling clients keep running.
    """
    events = await fetch_events_since(store, since=since, limit=limit)
    return EventFeedResponse(events=events, count=len(events))
