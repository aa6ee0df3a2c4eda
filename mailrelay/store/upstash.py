"""
Redis-over-REST event store (Upstash, Vercel KV).

Each append issues LPUSH, LTRIM and EXPIRE as separate commands. A failure
between them can leave a stale TTL or an over-long list for one cycle, but
never loses the event that was just pushed.
"""

import logging
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from mailrelay.models.event import NotificationEvent
from mailrelay.store.base import (
    DEFAULT_MAX_EVENTS,
    DEFAULT_TTL_SECONDS,
    EventStore,
    EventStoreError,
)

DEFAULT_KEY = "email:events"
DEFAULT_TIMEOUT_SECONDS = 5.0

logger = logging.getLogger(__name__)


class UpstashEventStore(EventStore):
    """Event store backed by a Redis list through the Upstash REST API."""

    def __init__(
        self,
        url: str,
        token: str,
        key: str = DEFAULT_KEY,
        max_events: int = DEFAULT_MAX_EVENTS,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        super().__init__(max_events=max_events, ttl_seconds=ttl_seconds)
        if not url or not token:
            raise ValueError("Upstash REST URL and token are required")

        self.key = key
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=url.rstrip("/"),
            headers={"Authorization": f"Bearer {token}"},
            timeout=timeout,
        )

    async def append(self, event: NotificationEvent) -> None:
        await self._command("lpush", self.key, body=event.to_json())
        await self._command("ltrim", self.key, 0, self.max_events - 1)
        await self._command("expire", self.key, self.ttl_seconds)

    async def recent(self, limit: int) -> list[NotificationEvent]:
        if limit <= 0:
            return []

        raw_events = await self._command("lrange", self.key, 0, limit - 1)
        if raw_events is None:
            return []
        if not isinstance(raw_events, list):
            raise EventStoreError(f"Unexpected LRANGE result: {type(raw_events)}")

        events = []
        for raw in raw_events:
            try:
                events.append(NotificationEvent.model_validate_json(raw))
            except (ValidationError, TypeError) as e:
                logger.warning(f"Skipping unparseable stored event: {e}")
        return events

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _command(self, *parts: str | int, body: str | None = None):
        """
        Run one Redis command through the REST API.

        Returns:
            The `result` field of the reply

        Raises:
            EventStoreError: On transport errors, non-2xx replies or an
                `error` field in the reply
        """
        command = str(parts[0]).upper()
        path = "/" + "/".join(quote(str(part), safe="") for part in parts)

        try:
            response = await self._client.post(path, content=body)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as e:
            raise EventStoreError(f"Upstash {command} failed: {e}") from e
        except ValueError as e:
            raise EventStoreError(f"Upstash {command} returned invalid JSON") from e

        if not isinstance(payload, dict):
            raise EventStoreError(f"Upstash {command} returned {type(payload)}")
        if payload.get("error"):
            raise EventStoreError(f"Upstash {command} error: {payload['error']}")

        return payload.get("result")
