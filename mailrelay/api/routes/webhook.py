"""
Gmail Pub/Sub webhook ingest.

Push deliveries are verified against the raw body, validated, and appended
to the event store as NotificationEvents. Pub/Sub redelivers on any non-2xx,
so malformed JSON and store outages are still acknowledged with 200.
"""

import json
import logging

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from mailrelay.config import Settings, get_settings
from mailrelay.models.event import NotificationEvent
from mailrelay.models.pubsub import (
    ErrorResponse,
    GmailNotificationPayload,
    WebhookResponse,
    parse_push_message,
    validate_payload,
)
from mailrelay.store import EventStore, EventStoreError, get_event_store
from mailrelay.utils.encoding import decode_base64url_text
from mailrelay.utils.signature import extract_signature, verify_signature

router = APIRouter()
logger = logging.getLogger(__name__)


def _error(status_code: int, error: str, message: str | None = None) -> JSONResponse:
    body = ErrorResponse(error=error, message=message)
    return JSONResponse(
        status_code=status_code, content=body.model_dump(exclude_none=True)
    )


def _client_host(request: Request) -> str | None:
    return request.client.host if request.client else None


def _log_gmail_payload(decoded_data: str, message_id: str):
    """Log the Gmail notification carried in the payload, if it parses."""
    try:
        payload = GmailNotificationPayload.model_validate_json(decoded_data)
    except ValidationError:
        logger.debug(f"Payload of {message_id} is not a Gmail notification")
        return

    logger.info(
        f"Gmail notification for {payload.emailAddress}, "
        f"historyId={payload.historyId}"
    )


@router.post(
    "/webhook/gmail",
    response_model=WebhookResponse,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
    },
    operation_id="handleGmailWebhook",
)
async def handle_gmail_webhook(
    request: Request,
    store: EventStore = Depends(get_event_store),
    settings: Settings = Depends(get_settings),
):
    """
    Receive a Gmail Pub/Sub push delivery.

    1. Reads the raw body (the signature covers these exact bytes)
    2. Parses JSON; parse failures are acknowledged with 200
    3. Verifies X-Goog-Signature when a verification token is configured
    4. Validates the envelope and decodes `message.data` if present
    5. Appends a NotificationEvent to the event store
    """
    raw_body = await request.body()
    logger.info(f"Received Gmail webhook ({len(raw_body)} bytes)")

    try:
        body = json.loads(raw_body)
    except ValueError:
        logger.error(
            "Webhook body is not valid JSON",
            extra={"json_fields": {"client": _client_host(request)}},
        )
        return JSONResponse(
            status_code=status.HTTP_200_OK, content={"error": "Invalid JSON"}
        )

    if settings.verification_enabled:
        signature = extract_signature(request.headers)
        if not signature:
            logger.error(
                "Webhook rejected: missing signature",
                extra={"json_fields": {"client": _client_host(request)}},
            )
            return _error(
                status.HTTP_401_UNAUTHORIZED, "Unauthorized", "Missing signature header"
            )

        if not verify_signature(signature, raw_body, settings.verification_token):
            logger.error(
                "Webhook rejected: invalid signature",
                extra={
                    "json_fields": {
                        "client": _client_host(request),
                        "signature_length": len(signature),
                        "body_length": len(raw_body),
                    }
                },
            )
            return _error(
                status.HTTP_401_UNAUTHORIZED, "Unauthorized", "Invalid signature"
            )
    else:
        logger.warning(
            "GOOGLE_PUBSUB_VERIFICATION_TOKEN not set, skipping signature verification"
        )

    validation_error = validate_payload(body)
    if validation_error:
        logger.error(f"Webhook rejected: {validation_error}")
        return _error(status.HTTP_400_BAD_REQUEST, "Bad Request", validation_error)

    push = parse_push_message(body)
    message = push.message

    decoded_data = None
    if message.data:
        decoded_data = decode_base64url_text(message.data)
        if decoded_data is None:
            logger.warning(f"Could not decode data for message {message.messageId}")
        else:
            _log_gmail_payload(decoded_data, message.messageId)

    event = NotificationEvent.create(
        message_id=message.messageId,
        data=decoded_data,
        publish_time=message.publishTime,
    )

    stored = True
    try:
        await store.append(event)
    except EventStoreError as e:
        stored = False
        logger.error(
            f"Failed to store event {event.id}: {e}",
            exc_info=True,
            extra={"json_fields": {"message_id": message.messageId}},
        )
    else:
        logger.info(f"Event stored: {event.id}, message: {message.messageId}")

    return WebhookResponse(
        success=True, eventId=event.id, messageId=message.messageId, stored=stored
    )


@router.get(
    "/webhook/gmail",
    responses={401: {"model": ErrorResponse}},
    operation_id="handleGmailWebhookHandshake",
)
async def handle_gmail_handshake(
    request: Request,
    settings: Settings = Depends(get_settings),
):
    """
    Legacy GET handshake.

    Only checks that a `signature` query parameter is present when a
    verification token is configured. There is no body to sign, so no HMAC
    check is made and nothing is stored.
    """
    if settings.verification_enabled:
        signature = extract_signature(request.headers, request.query_params)
        if not signature:
            logger.error("Webhook handshake rejected: missing signature")
            return _error(
                status.HTTP_401_UNAUTHORIZED, "Unauthorized", "Missing signature"
            )

    logger.info("Webhook handshake acknowledged")
    return {"status": "ok"}
