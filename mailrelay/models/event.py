"""
Notification event model.

A NotificationEvent is created once per accepted webhook delivery and is
never mutated afterwards. Field names match the JSON wire format.
"""

import threading
import time
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

_clock_lock = threading.Lock()
_last_timestamp = 0


def epoch_ms() -> int:
    """Current wall-clock epoch time in milliseconds."""
    return int(time.time() * 1000)


def now_ms() -> int:
    """
    Current epoch time in milliseconds, strictly increasing per process.

    Wall-clock adjustments must not reorder events appended by this process,
    and two events ingested in the same millisecond must stay distinguishable
    by a `timestamp > since` cursor.
    """
    global _last_timestamp

    with _clock_lock:
        current = max(epoch_ms(), _last_timestamp + 1)
        _last_timestamp = current
        return current


class NotificationEvent(BaseModel):
    """A "new notification arrived" record held by the event store."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Unique event identifier assigned at ingest")
    timestamp: int = Field(description="Ingest time (epoch ms), used as cursor")
    messageId: str = Field(description="Push provider message ID")
    data: str | None = Field(
        default=None, description="Decoded push payload (informational only)"
    )
    publishTime: str | None = Field(
        default=None, description="Provider publish time, kept for diagnostics"
    )

    @classmethod
    def create(
        cls,
        message_id: str,
        data: str | None = None,
        publish_time: str | None = None,
    ) -> "NotificationEvent":
        """Build a new event with a fresh ID and ingest timestamp."""
        return cls(
            id=str(uuid4()),
            timestamp=now_ms(),
            messageId=message_id,
            data=data,
            publishTime=publish_time,
        )

    def to_json(self) -> str:
        """Serialize for storage, omitting absent optional fields."""
        return self.model_dump_json(exclude_none=True)
