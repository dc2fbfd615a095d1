"""Render webhook signature verification.

Wire contract: the sender signs ``{webhook-id}.{webhook-timestamp}.{raw body}``
with HMAC-SHA256, keyed by the shared secret with any ``whsec_`` prefix
removed, and sends the base64 digest in the ``webhook-signature`` header,
optionally tagged ``v1,``.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import logging

logger = logging.getLogger(__name__)

SECRET_PREFIX = "whsec_"
SIGNATURE_VERSION = "v1,"


def _normalize_secret(secret: str) -> bytes:
    return secret.removeprefix(SECRET_PREFIX).encode()


def _signed_content(webhook_id: str, webhook_timestamp: str, raw_body: bytes) -> bytes:
    return f"{webhook_id}.{webhook_timestamp}.".encode() + raw_body


def _decode_signature(signature: str) -> bytes:
    value = signature.strip().removeprefix(SIGNATURE_VERSION)
    value = value.replace("-", "+").replace("_", "/")
    value += "=" * (-len(value) % 4)
    return base64.b64decode(value, validate=True)


def sign_webhook_payload(
    raw_body: bytes, webhook_id: str, webhook_timestamp: str, secret: str
) -> str:
    """Return the ``v1,<base64>`` header value a sender would attach."""
    digest = hmac.new(
        _normalize_secret(secret),
        _signed_content(webhook_id, webhook_timestamp, raw_body),
        hashlib.sha256,
    ).digest()
    return SIGNATURE_VERSION + base64.b64encode(digest).decode()


def verify_webhook_signature(
    raw_body: bytes,
    signature: str | None,
    webhook_id: str | None,
    webhook_timestamp: str | None,
    secret: str | None,
) -> bool:
    """Check a delivery against the shared secret. Never raises."""
    if not signature or not webhook_id or not webhook_timestamp or not secret:
        logger.warning(
            "Missing signature components (signature=%s, id=%s, timestamp=%s, secret=%s)",
            bool(signature),
            bool(webhook_id),
            bool(webhook_timestamp),
            bool(secret),
        )
        return False

    try:
        provided = _decode_signature(signature)
    except (binascii.Error, ValueError):
        logger.warning("Undecodable webhook signature for delivery %s", webhook_id)
        return False

    computed = hmac.new(
        _normalize_secret(secret),
        _signed_content(webhook_id, webhook_timestamp, raw_body),
        hashlib.sha256,
    ).digest()

    if len(provided) != len(computed):
        logger.warning(
            "Signature length mismatch for delivery %s (%d != %d)",
            webhook_id,
            len(provided),
            len(computed),
        )
        return False

    if not hmac.compare_digest(provided, computed):
        logger.warning("Signature mismatch for delivery %s", webhook_id)
        return False
    return True
