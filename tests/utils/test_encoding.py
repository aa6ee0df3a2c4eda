"""
Tests for base64url helpers.
"""

import base64

import pytest

from mailrelay.utils.encoding import (
    decode_base64url,
    decode_base64url_text,
    encode_base64url,
    to_standard_base64,
)


class TestToStandardBase64:
    """Tests for to_standard_base64 function."""

    def test_translates_url_safe_characters(self):
        assert to_standard_base64("ab-_") == "ab+/"

    def test_restores_padding(self):
        assert to_standard_base64("YQ") == "YQ=="
        assert to_standard_base64("YWI") == "YWI="
        assert to_standard_base64("YWJj") == "YWJj"

    def test_strips_whitespace(self):
        assert to_standard_base64("  YQ\n") == "YQ=="


class TestDecodeBase64Url:
    """Tests for decode_base64url function."""

    def test_unpadded_input(self):
        assert decode_base64url("aGVsbG8") == b"hello"

    def test_padded_input(self):
        assert decode_base64url("aGVsbG8=") == b"hello"

    def test_url_safe_alphabet(self):
        raw = bytes([0xFB, 0xFF, 0xBF])
        encoded = base64.urlsafe_b64encode(raw).decode()
        assert "-" in encoded or "_" in encoded
        assert decode_base64url(encoded) == raw

    def test_invalid_characters(self):
        with pytest.raises(ValueError):
            decode_base64url("not valid base64!!!")


class TestDecodeBase64UrlText:
    """Tests for decode_base64url_text function."""

    def test_json_payload(self):
        encoded = encode_base64url('{"emailAddress":"user@gmail.com"}')
        assert decode_base64url_text(encoded) == '{"emailAddress":"user@gmail.com"}'

    def test_invalid_base64_returns_none(self):
        assert decode_base64url_text("%%%") is None

    def test_non_utf8_returns_none(self):
        encoded = encode_base64url(b"\xff\xfe\xfd")
        assert decode_base64url_text(encoded) is None


class TestRoundTrip:
    """base64url encode then decode yields the original text."""

    @pytest.mark.parametrize(
        "text",
        [
            "",
            "a",
            "hello world",
            "Grüße aus Köln",
            "日本語のメール",
            "emoji 📬✉️",
            '{"historyId": 12345}',
        ],
    )
    def test_round_trip(self, text: str):
        encoded = encode_base64url(text)
        assert "=" not in encoded
        assert "+" not in encoded and "/" not in encoded
        assert decode_base64url_text(encoded) == text
