"""
Relay configuration.

Settings are read from the environment (and `.env` via python-dotenv) once
per process and cached. Defaults match a single-process local deployment.
"""

import os
from functools import lru_cache

from pydantic import BaseModel, Field

DEFAULT_ALLOWED_ORIGINS = "http://localhost:3000,http://127.0.0.1:3000"


class Settings(BaseModel):
    """Runtime configuration for the relay service."""

    # Webhook verification
    verification_token: str = Field(
        default="", description="Shared HMAC secret for X-Goog-Signature"
    )

    # Event store
    store_backend: str = Field(
        default="auto", description="memory, upstash, or auto"
    )
    kv_rest_url: str = Field(default="", description="Upstash / Vercel KV REST URL")
    kv_rest_token: str = Field(default="", description="Upstash / Vercel KV token")
    store_key: str = Field(default="email:events")
    max_events: int = Field(default=100, ge=1)
    ttl_seconds: int = Field(default=300, ge=1)

    # SSE broadcaster
    poll_interval_ms: int = Field(default=1000, ge=1)
    keep_alive_interval_ms: int = Field(default=15000, ge=1)
    poll_limit: int = Field(default=50, ge=1, le=100)
    max_stream_seconds: float = Field(
        default=300, ge=0, description="Self-termination bound, 0 disables"
    )
    queue_size: int = Field(default=256, ge=1)

    # Logging
    log_level: str = Field(default="INFO", description="Root log level name")

    # CORS
    allowed_origins: list[str] = Field(
        default_factory=lambda: DEFAULT_ALLOWED_ORIGINS.split(",")
    )

    @property
    def verification_enabled(self) -> bool:
        return bool(self.verification_token)

    @property
    def upstash_configured(self) -> bool:
        return bool(self.kv_rest_url and self.kv_rest_token)

    @classmethod
    def from_env(cls) -> "Settings":
        """
        Build settings from environment variables.

        Raises:
            ValueError: If a numeric variable cannot be parsed
        """
        origins = os.getenv("ALLOWED_ORIGINS", DEFAULT_ALLOWED_ORIGINS)
        return cls(
            verification_token=os.getenv("GOOGLE_PUBSUB_VERIFICATION_TOKEN", ""),
            store_backend=os.getenv("EVENT_STORE_BACKEND", "auto").lower(),
            kv_rest_url=os.getenv("KV_REST_API_URL", "").rstrip("/"),
            kv_rest_token=os.getenv("KV_REST_API_TOKEN", ""),
            store_key=os.getenv("EVENT_STORE_KEY", "email:events"),
            max_events=int(os.getenv("EVENT_STORE_MAX_EVENTS", "100")),
            ttl_seconds=int(os.getenv("EVENT_STORE_TTL_SECONDS", "300")),
            poll_interval_ms=int(os.getenv("SSE_POLL_INTERVAL_MS", "1000")),
            keep_alive_interval_ms=int(
                os.getenv("SSE_KEEP_ALIVE_INTERVAL_MS", "15000")
            ),
            poll_limit=int(os.getenv("SSE_POLL_LIMIT", "50")),
            max_stream_seconds=float(os.getenv("SSE_MAX_STREAM_SECONDS", "300")),
            queue_size=int(os.getenv("SSE_QUEUE_SIZE", "256")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            allowed_origins=[o.strip() for o in origins.split(",") if o.strip()],
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the process-wide settings (FastAPI dependency)."""
    return Settings.from_env()
