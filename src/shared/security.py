# src/shared/security.py
"""Constant-time webhook authenticity checks shared by the channel adapters."""

import hashlib
import hmac
from typing import Optional


def compute_hub_signature(body: bytes, secret: str) -> str:
    """Return the ``sha256=<hex>`` signature Meta places in X-Hub-Signature-256."""
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


def verify_hub_signature(body: bytes, secret: str, signature_header: Optional[str]) -> bool:
    """
    Verify an HMAC-SHA256 signature over the raw request body.

    Args:
        body: Raw request body exactly as received
        secret: App secret shared with the provider
        signature_header: Header value, ``sha256=<hex>``

    Returns:
        True if the signature matches, False otherwise (never raises)
    """
    if not secret or not signature_header or not signature_header.startswith("sha256="):
        return False
    expected = compute_hub_signature(body, secret)
    return hmac.compare_digest(expected.encode("utf-8"), signature_header.encode("utf-8"))


def verify_shared_secret(expected: Optional[str], provided: Optional[str]) -> bool:
    """Compare a shared-secret header against the configured value in constant time."""
    if not expected or not provided:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), provided.encode("utf-8"))
