"""
Webhook signature verification.

Pub/Sub push deliveries carry an HMAC-SHA256 of the raw request body,
base64url-encoded, in the X-Goog-Signature header.
"""

import hashlib
import hmac
import logging
from typing import Mapping

from mailrelay.utils.encoding import decode_base64url

SIGNATURE_HEADER = "x-goog-signature"
SIGNATURE_QUERY_PARAM = "signature"

logger = logging.getLogger(__name__)


def compute_signature(body: bytes, secret: str) -> bytes:
    """Compute the raw HMAC-SHA256 digest of a body."""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()


def verify_signature(
    signature: str | None, body: bytes | str | None, secret: str | None
) -> bool:
    """
    Verify a webhook HMAC signature.

    Args:
        signature: base64url-encoded signature from the request
        body: Raw request body exactly as received
        secret: Shared verification secret

    Returns:
        True if the signature matches. Missing input or undecodable
        signatures return False rather than raising.
    """
    if not signature or not body or not secret:
        return False

    if isinstance(body, str):
        body = body.encode("utf-8")

    try:
        provided = decode_base64url(signature)
    except ValueError:
        logger.debug("Signature verification failed: signature is not base64")
        return False

    computed = compute_signature(body, secret)

    # Length is not secret; the digest content is.
    if len(provided) != len(computed):
        logger.debug(
            "Signature length mismatch",
            extra={
                "json_fields": {
                    "provided": len(provided),
                    "computed": len(computed),
                }
            },
        )
        return False

    is_valid = hmac.compare_digest(provided, computed)
    if not is_valid:
        logger.debug("Signature verification failed: HMAC mismatch")
    return is_valid


def extract_signature(
    headers: Mapping[str, str], query: Mapping[str, str] | None = None
) -> str | None:
    """
    Extract the signature from request headers or query parameters.

    The header name is matched case-insensitively. The query parameter is
    only consulted when given, which callers do for GET handshakes.
    """
    for name, value in headers.items():
        if name.lower() == SIGNATURE_HEADER and value:
            return value

    if query and query.get(SIGNATURE_QUERY_PARAM):
        return query[SIGNATURE_QUERY_PARAM]

    return None
