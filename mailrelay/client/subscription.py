"""
Client subscription manager.

Keeps one logical subscription to the relay's SSE stream alive: opens the
EventSource, dispatches typed events to application handlers, and
reconnects after transport errors.

Usage:
    manager = SubscriptionManager(
        "https://relay.example.com/api/sse",
        on_new_email=lambda event: refresh_inbox(),
        on_connection_change=lambda connected: print("connected", connected),
    )
    manager.connect()
    ...
    manager.disconnect()
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import Callable

import httpx

from mailrelay.client.event_source import EventSource, EventSourceError, MessageEvent
from mailrelay.models.sse import SSEEvent, SSEEventType

DEFAULT_RECONNECT_INTERVAL = 3.0
DEFAULT_MAX_RECONNECT_INTERVAL = 30.0
UNLIMITED_RECONNECTS = -1

EventHandler = Callable[[SSEEvent], None]
EventSourceFactory = Callable[[str], EventSource]

logger = logging.getLogger(__name__)


class ConnectionState(StrEnum):
    """Connection state of a subscription."""

    IDLE = "idle"  # Never connected
    CONNECTING = "connecting"  # Opening, or waiting to reconnect
    OPEN = "open"  # Receiving events
    STALLED = "stalled"  # Open but no frames within keep_alive_timeout
    CLOSED = "closed"  # Disconnected, no reconnect pending


@dataclass
class ClientSubscription:
    """Observable state of one subscription."""

    client_id: str | None = None
    last_cursor: int | None = None
    reconnect_attempts: int = 0
    connection_state: ConnectionState = ConnectionState.IDLE


class SubscriptionManager:
    """
    Manages an SSE subscription with automatic reconnection.

    Reconnects wait `reconnect_interval` seconds, multiplied by
    `backoff_multiplier` per consecutive attempt and capped at
    `max_reconnect_interval`. `max_reconnect_attempts=-1` retries forever.
    When `resume_from_cursor` is set, reconnects pass the newest event
    timestamp seen so far as `since`, so the server replays what was missed.

    Must be used from inside a running event loop.
    """

    def __init__(
        self,
        url: str,
        reconnect_interval: float = DEFAULT_RECONNECT_INTERVAL,
        max_reconnect_attempts: int = UNLIMITED_RECONNECTS,
        backoff_multiplier: float = 1.0,
        max_reconnect_interval: float = DEFAULT_MAX_RECONNECT_INTERVAL,
        keep_alive_timeout: float | None = None,
        resume_from_cursor: bool = True,
        on_new_email: EventHandler | None = None,
        on_email_read: EventHandler | None = None,
        on_email_sent: EventHandler | None = None,
        on_connection: EventHandler | None = None,
        on_event: EventHandler | None = None,
        on_error: Callable[[Exception], None] | None = None,
        on_connection_change: Callable[[bool], None] | None = None,
        on_state_change: Callable[[ConnectionState], None] | None = None,
        event_source_factory: EventSourceFactory = EventSource,
    ):
        self.url = url
        self.reconnect_interval = reconnect_interval
        self.max_reconnect_attempts = max_reconnect_attempts
        self.backoff_multiplier = backoff_multiplier
        self.max_reconnect_interval = max_reconnect_interval
        self.keep_alive_timeout = keep_alive_timeout
        self.resume_from_cursor = resume_from_cursor

        self.on_event = on_event
        self.on_error = on_error
        self.on_connection_change = on_connection_change
        self.on_state_change = on_state_change
        self._handlers: dict[SSEEventType, EventHandler | None] = {
            SSEEventType.CONNECTION: on_connection,
            SSEEventType.EMAIL_NEW: on_new_email,
            SSEEventType.EMAIL_READ: on_email_read,
            SSEEventType.EMAIL_SENT: on_email_sent,
        }

        self.subscription = ClientSubscription()
        self._event_source_factory = event_source_factory
        self._event_source: EventSource | None = None
        self._reconnect_handle: asyncio.TimerHandle | None = None
        self._keep_alive_handle: asyncio.TimerHandle | None = None
        self._destroyed = False

    @property
    def state(self) -> ConnectionState:
        return self.subscription.connection_state

    @property
    def connected(self) -> bool:
        return self.state == ConnectionState.OPEN

    @property
    def client_id(self) -> str | None:
        return self.subscription.client_id

    @property
    def event_source(self) -> EventSource | None:
        return self._event_source

    def connect(self):
        """Open the subscription. No-op if already open."""
        if self._destroyed:
            logger.warning("connect() called on a destroyed subscription")
            return
        if self.state == ConnectionState.OPEN:
            return

        self._cancel_reconnect()
        self._open()

    def disconnect(self):
        """Close the subscription and cancel any pending reconnect."""
        was_open = self.state in (ConnectionState.OPEN, ConnectionState.STALLED)
        self._cancel_reconnect()
        self._cancel_keep_alive()
        self._close_event_source()

        self.subscription.client_id = None
        self.subscription.reconnect_attempts = 0
        self._set_state(ConnectionState.CLOSED)
        if was_open:
            self._notify_connection(False)

    def reconnect(self):
        """Reconnect immediately, skipping the backoff delay."""
        self.disconnect()
        self.connect()

    def destroy(self):
        """Disconnect for good; later connect() calls are ignored."""
        self.disconnect()
        self._destroyed = True

    def build_url(self) -> str:
        """URL for the next connection, with the resume cursor if any."""
        cursor = self.subscription.last_cursor
        if not self.resume_from_cursor or cursor is None:
            return self.url
        return str(httpx.URL(self.url).copy_merge_params({"since": str(cursor)}))

    def next_reconnect_delay(self) -> float:
        """Delay before the upcoming reconnect attempt."""
        attempt = max(self.subscription.reconnect_attempts - 1, 0)
        delay = self.reconnect_interval * (self.backoff_multiplier**attempt)
        return min(delay, max(self.max_reconnect_interval, self.reconnect_interval))

    def _open(self):
        # Never two live sockets for one subscription.
        self._close_event_source()
        self._set_state(ConnectionState.CONNECTING)

        event_source = self._event_source_factory(self.build_url())
        self._event_source = event_source

        event_source.onopen = lambda: self._handle_open(event_source)
        event_source.onerror = lambda error: self._handle_error(event_source, error)
        event_source.onmessage = lambda message: self._handle_message(
            event_source, message
        )
        event_source.oncomment = lambda _: self._handle_activity(event_source)
        for event_type in self._handlers:
            event_source.add_event_listener(
                event_type.value,
                lambda message, t=event_type: self._handle_typed(
                    event_source, t, message
                ),
            )

    def _handle_open(self, event_source: EventSource):
        if event_source is not self._event_source:
            return

        self.subscription.reconnect_attempts = 0
        self._set_state(ConnectionState.OPEN)
        self._reset_keep_alive()
        self._notify_connection(True)

    def _handle_error(self, event_source: EventSource, error: Exception):
        if event_source is not self._event_source:
            return

        logger.warning(f"SSE connection error: {error}")
        self._cancel_keep_alive()

        attempts = self.subscription.reconnect_attempts
        if (
            self.max_reconnect_attempts == UNLIMITED_RECONNECTS
            or attempts < self.max_reconnect_attempts
        ):
            self.subscription.reconnect_attempts = attempts + 1
            self._set_state(ConnectionState.CONNECTING)
            delay = self.next_reconnect_delay()
            logger.info(
                f"Reconnecting in {delay:.1f}s "
                f"(attempt {self.subscription.reconnect_attempts})"
            )
            self._reconnect_handle = asyncio.get_running_loop().call_later(
                delay, self._reconnect_due
            )
        else:
            logger.error("SSE max reconnection attempts reached")
            self._close_event_source()
            self._set_state(ConnectionState.CLOSED)

        self._notify_connection(False)
        if self.on_error:
            self._call_user(self.on_error, error)

    def _reconnect_due(self):
        self._reconnect_handle = None
        if not self._destroyed:
            self._open()

    def _handle_message(self, event_source: EventSource, message: MessageEvent):
        if event_source is not self._event_source:
            return
        self._reset_keep_alive()

        event = self._parse(message)
        if event is not None and self.on_event:
            self.on_event(event)

    def _handle_typed(
        self,
        event_source: EventSource,
        event_type: SSEEventType,
        message: MessageEvent,
    ):
        if event_source is not self._event_source:
            return
        self._reset_keep_alive()

        event = self._parse(message)
        if event is None:
            return

        if event_type == SSEEventType.CONNECTION and isinstance(event.data, dict):
            if event.data.get("status") == "connected" and event.data.get("clientId"):
                self.subscription.client_id = event.data["clientId"]
        elif event_type == SSEEventType.EMAIL_NEW:
            self._advance_cursor(event)

        handler = self._handlers.get(event_type)
        if handler:
            handler(event)
        if self.on_event:
            self.on_event(event)

    def _handle_activity(self, event_source: EventSource):
        if event_source is self._event_source:
            self._reset_keep_alive()

    def _parse(self, message: MessageEvent) -> SSEEvent | None:
        try:
            return SSEEvent.model_validate_json(message.data)
        except ValueError as e:
            logger.error(f"Failed to parse SSE '{message.type}' event: {e}")
            return None

    def _advance_cursor(self, event: SSEEvent):
        timestamp = event.timestamp
        if isinstance(event.data, dict) and isinstance(
            event.data.get("timestamp"), int
        ):
            timestamp = event.data["timestamp"]

        cursor = self.subscription.last_cursor
        if cursor is None or timestamp > cursor:
            self.subscription.last_cursor = timestamp

    def _reset_keep_alive(self):
        if self.keep_alive_timeout is None:
            return
        self._cancel_keep_alive()
        self._keep_alive_handle = asyncio.get_running_loop().call_later(
            self.keep_alive_timeout, self._keep_alive_expired
        )

    def _keep_alive_expired(self):
        self._keep_alive_handle = None
        event_source = self._event_source
        if event_source is None or self.state != ConnectionState.OPEN:
            return

        logger.warning(
            f"No SSE frames for {self.keep_alive_timeout}s, connection stalled"
        )
        self._set_state(ConnectionState.STALLED)
        event_source.close()
        self._handle_error(event_source, EventSourceError("keep-alive timeout"))

    def _cancel_reconnect(self):
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

    def _cancel_keep_alive(self):
        if self._keep_alive_handle is not None:
            self._keep_alive_handle.cancel()
            self._keep_alive_handle = None

    def _close_event_source(self):
        event_source, self._event_source = self._event_source, None
        if event_source is not None:
            event_source.close()

    def _set_state(self, state: ConnectionState):
        if self.subscription.connection_state == state:
            return
        self.subscription.connection_state = state
        if self.on_state_change:
            self._call_user(self.on_state_change, state)

    def _notify_connection(self, connected: bool):
        if self.on_connection_change:
            self._call_user(self.on_connection_change, connected)

    def _call_user(self, callback: Callable, *args):
        # Application callbacks must not break reconnect scheduling.
        try:
            callback(*args)
        except Exception:
            logger.exception(f"Subscription callback {callback!r} raised")
