"""
Webhook MAC verification for Instamojo callbacks.

The gateway signs a pipe-joined string of a fixed set of payload fields with
HMAC-SHA1 keyed by the merchant's private salt and sends the hex digest as
``mac``. Field order is part of the gateway contract and must not change.
"""
import hashlib
import hmac
from typing import Any, Mapping, Optional

import structlog

logger = structlog.get_logger(__name__)

MAC_FIELDS = (
    "payment_id",
    "payment_request_id",
    "payment_status",
    "buyer_name",
    "buyer_email",
    "buyer_phone",
    "amount",
    "currency",
    "fees",
)
MAC_DELIMITER = "|"


def build_mac_message(payload: Mapping[str, Any]) -> str:
    """Canonical string the MAC is computed over. Absent fields render as ''."""
    parts = []
    for field in MAC_FIELDS:
        value = payload.get(field)
        parts.append("" if value is None else str(value))
    return MAC_DELIMITER.join(parts)


def compute_mac(payload: Mapping[str, Any], secret: str) -> str:
    message = build_mac_message(payload)
    return hmac.new(secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha1).hexdigest()


def verify(payload: Mapping[str, Any], received_signature: Optional[str], secret: Optional[str]) -> bool:
    """True only when `received_signature` is the exact hex MAC of `payload`.

    Fails closed: an unconfigured secret or a missing signature is never valid.
    """
    if not secret:
        logger.error("webhook_secret_not_configured")
        return False
    if not received_signature:
        return False
    expected = compute_mac(payload, secret)
    return hmac.compare_digest(expected, str(received_signature).strip().lower())
