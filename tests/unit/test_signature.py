"""Tests for HMAC-SHA256 webhook signature verification."""

from __future__ import annotations

import hashlib
import hmac
from unittest.mock import patch

import pytest

from src.webhook.signature import (
    sign_body,
    strip_prefix,
    timing_safe_equal,
    verify_signature,
)

SECRET = "my-webhook-secret-key"
BODY = b'{"alert_type":"error","title":"High Memory Usage Alert"}'


def _reference_signature(body: bytes, secret: str) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


class TestSignBody:
    def test_matches_reference_hmac(self) -> None:
        assert sign_body(BODY, SECRET) == _reference_signature(BODY, SECRET)

    def test_lowercase_hex(self) -> None:
        sig = sign_body(BODY, SECRET)
        assert len(sig) == 64
        assert sig == sig.lower()

    def test_prefix(self) -> None:
        assert sign_body(BODY, SECRET, prefix=True) == f"sha256={sign_body(BODY, SECRET)}"

    def test_str_body_signed_as_utf8(self) -> None:
        assert sign_body("héllo", SECRET) == sign_body("héllo".encode(), SECRET)


class TestVerifySignature:
    def test_valid_signature(self) -> None:
        assert verify_signature(BODY, sign_body(BODY, SECRET), SECRET) is True

    @pytest.mark.parametrize("prefix", ["sha256=", "SHA256=", "Sha256="])
    def test_prefix_case_insensitive(self, prefix: str) -> None:
        sig = prefix + sign_body(BODY, SECRET)
        assert verify_signature(BODY, sig, SECRET) is True

    def test_uppercase_hex_accepted(self) -> None:
        assert verify_signature(BODY, sign_body(BODY, SECRET).upper(), SECRET) is True

    def test_modified_body_rejected(self) -> None:
        sig = sign_body(BODY, SECRET)
        assert verify_signature(BODY + b" ", sig, SECRET) is False

    def test_wrong_secret_rejected(self) -> None:
        sig = sign_body(BODY, "other-secret")
        assert verify_signature(BODY, sig, SECRET) is False

    def test_wrong_length_rejected(self) -> None:
        assert verify_signature(BODY, "abc123", SECRET) is False

    def test_all_zero_signature_rejected(self) -> None:
        assert verify_signature(BODY, "0" * 64, SECRET) is False

    def test_missing_signature_with_secret_rejected(self) -> None:
        assert verify_signature(BODY, None, SECRET) is False
        assert verify_signature(BODY, "", SECRET) is False

    def test_no_secret_skips_verification(self) -> None:
        assert verify_signature(BODY, None, None) is True
        assert verify_signature(BODY, "garbage", "") is True

    def test_exception_treated_as_failure(self) -> None:
        with patch("src.webhook.signature.sign_body", side_effect=RuntimeError("boom")):
            assert verify_signature(BODY, "a" * 64, SECRET) is False


class TestHelpers:
    def test_strip_prefix_only_when_present(self) -> None:
        assert strip_prefix("sha256=abc") == "abc"
        assert strip_prefix("SHA256=abc") == "abc"
        assert strip_prefix("abc") == "abc"

    def test_timing_safe_equal(self) -> None:
        assert timing_safe_equal("abcd", "abcd") is True
        assert timing_safe_equal("abcd", "abce") is False
        assert timing_safe_equal("abcd", "abc") is False
        assert timing_safe_equal("", "") is True

    def test_timing_safe_equal_uses_compare_digest(self) -> None:
        with patch(
            "src.webhook.signature.hmac.compare_digest", wraps=hmac.compare_digest,
        ) as compare:
            assert timing_safe_equal("abcd", "abcd") is True
        compare.assert_called_once_with(b"abcd", b"abcd")

    def test_timing_safe_equal_non_ascii(self) -> None:
        assert timing_safe_equal("é" * 4, "abcd") is False
