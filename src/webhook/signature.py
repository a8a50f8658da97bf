"""HMAC-SHA256 webhook signature verification.

Shared by the process-webhook and Datadog endpoints. Signatures are lowercase
hex digests of the raw request body, optionally prefixed with ``sha256=``.
"""

from __future__ import annotations

import hashlib
import hmac
import logging

logger = logging.getLogger(__name__)

_PREFIX = "sha256="


def sign_body(raw_body: bytes | str, secret: str, prefix: bool = False) -> str:
    """Compute the hex HMAC-SHA256 signature of ``raw_body``."""
    if isinstance(raw_body, str):
        raw_body = raw_body.encode()
    digest = hmac.new(secret.encode(), raw_body, hashlib.sha256).hexdigest()
    return f"{_PREFIX}{digest}" if prefix else digest


def strip_prefix(signature: str) -> str:
    """Remove a case-insensitive ``sha256=`` algorithm prefix if present."""
    if signature[: len(_PREFIX)].lower() == _PREFIX:
        return signature[len(_PREFIX):]
    return signature


def timing_safe_equal(a: str, b: str) -> bool:
    """Constant-time string comparison.

    Unequal lengths reject immediately; the length of a hex digest is not
    secret.
    """
    if len(a) != len(b):
        return False
    return hmac.compare_digest(a.encode(), b.encode())


def verify_signature(
    raw_body: bytes | str,
    signature_header: str | None,
    secret: str | None,
) -> bool:
    """Return True if ``signature_header`` is a valid signature of ``raw_body``.

    No secret configured means the route does not sign its requests and
    verification is skipped. Never raises.
    """
    if not secret:
        return True
    if not signature_header:
        return False

    try:
        received = strip_prefix(signature_header.strip()).lower()
        computed = sign_body(raw_body, secret)
        return timing_safe_equal(computed, received)
    except Exception:
        logger.exception("Error verifying webhook signature")
        return False
