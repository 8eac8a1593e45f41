"""
Webhook Security Module

Signature verification for incoming payment provider webhooks.
- Pin Payments: HMAC-SHA256 over "timestamp.body", hex encoded
- Stripe: verified through the stripe library (see domain/billing/stripe_service.py)
"""

import hashlib
import hmac
import logging
import time
from typing import Optional

from fastapi import Request

logger = logging.getLogger(__name__)

PIN_SIGNATURE_HEADER = "Pin-Signature"
PIN_TIMESTAMP_HEADER = "Pin-Signature-Timestamp"


def constant_time_compare(a: str, b: str) -> bool:
    """
    Compare two strings in constant time to prevent timing attacks.
    Uses hmac.compare_digest which is designed for this purpose.
    """
    if not a or not b:
        return False
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


def compute_hmac_sha256(secret: str, payload: bytes) -> str:
    """Compute HMAC-SHA256 signature of payload"""
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def verify_timestamp(timestamp: Optional[str], max_age: Optional[int]) -> bool:
    """
    Verify webhook timestamp is within max_age seconds of now.

    A max_age of None disables the check, which is the default for Pin
    webhooks (see PIN_WEBHOOK_MAX_AGE_SECONDS).
    """
    if max_age is None:
        return True

    try:
        webhook_time = int(timestamp)
    except (ValueError, TypeError):
        logger.warning(f"🚫 Invalid webhook timestamp format: {timestamp}")
        return False

    age = abs(int(time.time()) - webhook_time)
    if age > max_age:
        logger.warning(f"🚫 Webhook timestamp too old: {age}s (max: {max_age}s)")
        return False
    return True


def verify_pin_signature(
    secret: str,
    timestamp: Optional[str],
    signature: Optional[str],
    body: bytes,
    max_age: Optional[int] = None,
) -> bool:
    """
    Verify a Pin Payments webhook signature.

    Args:
        secret: Webhook secret shared with Pin Payments
        timestamp: Value of the Pin-Signature-Timestamp header
        signature: Value of the Pin-Signature header (hex digest)
        body: Raw request body exactly as received
        max_age: Optional replay window in seconds

    Returns:
        True if the signature matches, False otherwise
    """
    if not timestamp or not signature:
        logger.error("❌ Missing Pin signature headers")
        return False

    if not verify_timestamp(timestamp, max_age):
        return False

    signed_payload = timestamp.encode("utf-8") + b"." + body
    expected_signature = compute_hmac_sha256(secret, signed_payload)

    return constant_time_compare(expected_signature, signature)


async def verify_pin_webhook(
    request: Request, secret: str, max_age: Optional[int] = None
) -> tuple[bool, bytes]:
    """
    Read the raw body and verify the Pin Payments signature headers.

    Returns:
        Tuple of (is_valid, raw_body)
    """
    # Get raw body BEFORE any parsing - the signature covers the exact bytes
    raw_body = await request.body()
    timestamp = request.headers.get(PIN_TIMESTAMP_HEADER)
    signature = request.headers.get(PIN_SIGNATURE_HEADER)

    logger.info(f"📥 Pin webhook received: timestamp={timestamp}, body={len(raw_body)} bytes")

    is_valid = verify_pin_signature(secret, timestamp, signature, raw_body, max_age)
    if is_valid:
        logger.info("✅ Pin webhook signature verified")
    else:
        logger.warning("🚫 Pin webhook signature verification failed")
    return is_valid, raw_body
