"""
Mail Relay API - Main FastAPI Application.

Receives Gmail Pub/Sub pushes and relays them to browser tabs over SSE.
"""

import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from mailrelay import __version__
from mailrelay.config import get_settings
from mailrelay.store import EventStore, UnavailableEventStore, get_event_store
from mailrelay.utils.logging import setup_logging

# Load environment variables
load_dotenv()

# Configure logging early
setup_logging("mailrelay", level=get_settings().log_level)


def _init_event_store():
    """Initialize the event store selected by configuration."""
    from mailrelay.store import StoreConnection

    try:
        store = StoreConnection.initialize()
        print(f"   Event store: {type(store).__name__}")
        return True
    except ValueError as e:
        print(f"   Event store: Not configured - {e}")
        return False


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events."""
    # Startup
    settings = get_settings()
    print("🚀 Starting Mail Relay API...")
    print(f"   Environment: {os.getenv('K_SERVICE', 'local')}")
    print(
        "   Webhook verification: "
        f"{'enabled' if settings.verification_enabled else 'DISABLED'}"
    )

    store_initialized = _init_event_store()

    yield

    # Shutdown
    if store_initialized:
        from mailrelay.store import StoreConnection

        await StoreConnection.close()
        print("   Event store: Closed")

    print("👋 Shutting down Mail Relay API...")


OPENAPI_TAGS = [
    {
        "name": "webhook",
        "description": "Gmail Pub/Sub push endpoint",
    },
    {
        "name": "events",
        "description": "Pull-based event feed and SSE stream for browser clients",
    },
    {
        "name": "system",
        "description": "System health and information endpoints",
    },
]

app = FastAPI(
    title="Mail Relay API",
    description=(
        "Push-notification relay for the webmail client.\n\n"
        "Gmail Pub/Sub delivers new-mail notifications to the webhook, which "
        "verifies and buffers them. Browser tabs subscribe to the SSE stream "
        "(or poll the event feed) and re-fetch their inbox from the Gmail API "
        "when an `email:new` event arrives.\n\n"
        "**Authentication:** webhook deliveries are verified with an "
        "HMAC-SHA256 `X-Goog-Signature` header when "
        "`GOOGLE_PUBSUB_VERIFICATION_TOKEN` is set."
    ),
    version=__version__,
    lifespan=lifespan,
    openapi_tags=OPENAPI_TAGS,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


@app.get("/", tags=["system"], operation_id="getServiceInfo")
async def root():
    """Return basic information about the API service."""
    return {
        "service": "Mail Relay API",
        "version": __version__,
        "status": "operational",
        "description": "Gmail push-notification relay",
    }


@app.get("/health", tags=["system"], operation_id="healthCheck")
async def health_check(store: EventStore = Depends(get_event_store)):
    """Check service health status."""
    available = not isinstance(store, UnavailableEventStore)
    return {
        "status": "healthy" if available else "degraded",
        "event_store": type(store).__name__ if available else "unavailable",
        "service": "mailrelay",
        "environment": os.getenv("K_SERVICE", "local"),
    }


# Import and include routers
from mailrelay.api.routes import events, sse, webhook

app.include_router(webhook.router, prefix="/api", tags=["webhook"])
app.include_router(events.router, prefix="/api", tags=["events"])
app.include_router(sse.router, prefix="/api", tags=["events"])
