"""
Mail relay event store.

Provides the EventStore interface, its adapters, and process-wide
store management.
"""

from mailrelay.store.base import EventStore, EventStoreError
from mailrelay.store.connection import (
    StoreConnection,
    UnavailableEventStore,
    create_event_store,
    get_event_store,
)
from mailrelay.store.memory import MemoryEventStore
from mailrelay.store.upstash import UpstashEventStore

__all__ = [
    "EventStore",
    "EventStoreError",
    "MemoryEventStore",
    "StoreConnection",
    "UnavailableEventStore",
    "UpstashEventStore",
    "create_event_store",
    "get_event_store",
]
