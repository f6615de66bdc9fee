"""Kong webhook signature verification."""

from __future__ import annotations

import hashlib
import hmac
import time

DEFAULT_TOLERANCE_SECONDS = 300


def sign_payload(body: str, secret: str, timestamp: int | None = None) -> str:
    """Build a `t=<unix>,v1=<hex>` header value for `body`."""
    timestamp = int(time.time()) if timestamp is None else timestamp
    digest = hmac.new(
        secret.encode("utf-8"), f"{timestamp}.{body}".encode("utf-8"), hashlib.sha256
    ).hexdigest()
    return f"t={timestamp},v1={digest}"


def verify_webhook_signature(
    signature_header: str,
    body: str,
    secret: str,
    tolerance_seconds: int = DEFAULT_TOLERANCE_SECONDS,
    now: float | None = None,
) -> bool:
    """
    Check a Kong-Signature header against the raw request body.

    The header is `t=<unix seconds>,v1=<hex HMAC-SHA256 of "t.body">`. Stale or
    future timestamps outside the tolerance window are rejected. Malformed
    headers return False.
    """
    parts = [p.strip() for p in signature_header.split(",")]
    timestamp_part = next((p for p in parts if p.startswith("t=")), None)
    signature_part = next((p for p in parts if p.startswith("v1=")), None)
    if timestamp_part is None or signature_part is None:
        return False

    try:
        timestamp = int(timestamp_part[2:])
        received = bytes.fromhex(signature_part[3:])
    except ValueError:
        return False

    current = int(time.time() if now is None else now)
    if abs(current - timestamp) > tolerance_seconds:
        return False

    expected = hmac.new(
        secret.encode("utf-8"), f"{timestamp}.{body}".encode("utf-8"), hashlib.sha256
    ).digest()
    return hmac.compare_digest(received, expected)
