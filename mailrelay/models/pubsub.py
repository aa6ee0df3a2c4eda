"""
Pub/Sub message models.

These models define the structure of Pub/Sub push messages received
from Gmail notifications, and the responses the relay returns.
"""

from typing import Any

from pydantic import BaseModel, Field

from mailrelay.models.event import NotificationEvent


class PubSubMessageData(BaseModel):
    """Inner message data from Pub/Sub push."""

    attributes: dict[str, str] = Field(
        default_factory=dict, description="Message attributes"
    )
    data: str | None = Field(
        default=None, description="base64url-encoded message payload"
    )
    messageId: str = Field(description="Pub/Sub message ID")
    publishTime: str | None = Field(
        default=None, description="When the message was published"
    )


class PubSubPushMessage(BaseModel):
    """
    Pub/Sub push message envelope.

    `message.data` may be absent: test and handshake deliveries omit it.
    """

    message: PubSubMessageData = Field(description="The Pub/Sub message")
    subscription: str | None = Field(
        default=None, description="Subscription resource name"
    )


class GmailNotificationPayload(BaseModel):
    """
    Decoded payload from Gmail Pub/Sub notifications.

    Only used for diagnostics; consumers re-fetch from the Gmail API.
    """

    emailAddress: str = Field(description="User's Gmail address")
    historyId: str | int = Field(description="Gmail history ID")


def validate_payload(body: Any) -> str | None:
    """
    Check the push envelope shape.

    Args:
        body: Parsed JSON request body

    Returns:
        An error message, or None if the body is a valid envelope
    """
    if not isinstance(body, dict):
        return "Request body is missing or not an object"

    message = body.get("message")
    if not isinstance(message, dict):
        return 'Missing "message" field in payload'

    message_id = message.get("messageId")
    if not isinstance(message_id, str) or not message_id:
        return 'Missing "messageId" in message'

    return None


def parse_push_message(body: dict[str, Any]) -> PubSubPushMessage:
    """
    Build a typed envelope from a body that passed validate_payload.

    Non-string optional fields are dropped rather than rejected.
    """
    message = body["message"]
    attributes = message.get("attributes")
    return PubSubPushMessage(
        message=PubSubMessageData(
            messageId=message["messageId"],
            data=message.get("data") if isinstance(message.get("data"), str) else None,
            publishTime=(
                message.get("publishTime")
                if isinstance(message.get("publishTime"), str)
                else None
            ),
            attributes=(
                {str(k): str(v) for k, v in attributes.items()}
                if isinstance(attributes, dict)
                else {}
            ),
        ),
        subscription=(
            body.get("subscription")
            if isinstance(body.get("subscription"), str)
            else None
        ),
    )


class WebhookResponse(BaseModel):
    """Response for an accepted webhook delivery."""

    success: bool = Field(default=True)
    eventId: str = Field(description="ID of the created notification event")
    messageId: str = Field(description="Pub/Sub message ID")
    stored: bool = Field(
        default=True, description="False if the event store was unavailable"
    )


class EventFeedResponse(BaseModel):
    """Response for the event feed endpoint."""

    events: list[NotificationEvent] = Field(default_factory=list)
    count: int = Field(default=0)


class ErrorResponse(BaseModel):
    """Error body returned by relay endpoints."""

    error: str
    message: str | None = None
