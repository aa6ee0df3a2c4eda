"""base64url helpers for Pub/Sub payloads and signatures."""

import base64


def to_standard_base64(value: str) -> str:
    """
    Convert base64url text to standard base64 with restored padding.

    Args:
        value: base64url (or standard base64) text, padded or not

    Returns:
        Standard base64 text whose length is a multiple of 4
    """
    converted = value.strip().replace("-", "+").replace("_", "/")
    return converted + "=" * (-len(converted) % 4)


def decode_base64url(value: str) -> bytes:
    """
    Decode base64url text to bytes.

    Raises:
        ValueError: If the text is not valid base64 (binascii.Error is a ValueError)
    """
    return base64.b64decode(to_standard_base64(value), validate=True)


def encode_base64url(data: bytes | str) -> str:
    """Encode bytes (or UTF-8 text) as unpadded base64url."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def decode_base64url_text(value: str) -> str | None:
    """
    Decode base64url text to a UTF-8 string.

    Returns:
        Decoded text, or None if the value is not valid base64 or not UTF-8
    """
    try:
        return decode_base64url(value).decode("utf-8")
    except ValueError:
        return None
