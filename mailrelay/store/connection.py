"""
Process-wide event store management.

The backend is picked from configuration once at startup; relay code only
ever talks to the EventStore interface.
"""

import logging

from mailrelay.config import Settings, get_settings
from mailrelay.models.event import NotificationEvent
from mailrelay.store.base import EventStore, EventStoreError
from mailrelay.store.memory import MemoryEventStore
from mailrelay.store.upstash import UpstashEventStore

logger = logging.getLogger(__name__)


def create_event_store(settings: Settings) -> EventStore:
    """
    Build the event store adapter selected by configuration.

    Args:
        settings: Relay settings

    Returns:
        An EventStore adapter

    Raises:
        ValueError: If the backend name is unknown, or `upstash` is
            requested without a URL and token
    """
    backend = settings.store_backend
    if backend == "auto":
        backend = "upstash" if settings.upstash_configured else "memory"

    if backend == "upstash":
        if not settings.upstash_configured:
            raise ValueError(
                "EVENT_STORE_BACKEND=upstash requires KV_REST_API_URL "
                "and KV_REST_API_TOKEN"
            )
        return UpstashEventStore(
            url=settings.kv_rest_url,
            token=settings.kv_rest_token,
            key=settings.store_key,
            max_events=settings.max_events,
            ttl_seconds=settings.ttl_seconds,
        )

    if backend == "memory":
        logger.warning(
            "Using in-process event store; only correct for a single-process "
            "deployment"
        )
        return MemoryEventStore(
            max_events=settings.max_events, ttl_seconds=settings.ttl_seconds
        )

    raise ValueError(f"Unknown EVENT_STORE_BACKEND: {settings.store_backend}")


class StoreConnection:
    """
    Holds the process-wide EventStore.

    Usage:
        # Initialize at app startup
        StoreConnection.initialize()

        # Use from request handlers (FastAPI dependency)
        store = get_event_store()

        # Close at app shutdown
        await StoreConnection.close()
    """

    _store: EventStore | None = None

    @classmethod
    def initialize(cls, settings: Settings | None = None) -> EventStore:
        """Create the store if it does not exist yet and return it."""
        if cls._store is None:
            cls._store = create_event_store(settings or get_settings())
            logger.info(f"Event store initialized: {type(cls._store).__name__}")
        return cls._store

    @classmethod
    def get_store(cls) -> EventStore:
        """Get the store, initializing it lazily from settings."""
        return cls.initialize()

    @classmethod
    def is_initialized(cls) -> bool:
        return cls._store is not None

    @classmethod
    async def close(cls):
        """Close the store; safe to call more than once."""
        store, cls._store = cls._store, None
        if store is not None:
            await store.close()


class UnavailableEventStore(EventStore):
    """
    Stand-in used when the configured backend cannot be created.

    Every operation raises EventStoreError, so callers take their normal
    degraded path: ingest still acknowledges, reads come back empty.
    """

    def __init__(self, reason: str):
        super().__init__()
        self.reason = reason

    async def append(self, event: NotificationEvent) -> None:
        raise EventStoreError(f"Event store unavailable: {self.reason}")

    async def recent(self, limit: int) -> list[NotificationEvent]:
        raise EventStoreError(f"Event store unavailable: {self.reason}")


def get_event_store() -> EventStore:
    """
    FastAPI dependency returning the process-wide store.

    A misconfigured backend yields an UnavailableEventStore instead of
    failing the request.
    """
    try:
        return StoreConnection.get_store()
    except ValueError as e:
        logger.error(f"Event store not configured: {e}")
        return UnavailableEventStore(str(e))
