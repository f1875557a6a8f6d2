"""
Webhook Security Module

Signature verification for the Stripe webhook endpoint:
- Missing signature header and missing secret are reported separately
- Signatures are checked with Stripe's own scheme (HMAC-SHA256 over
  "timestamp.payload", constant-time compare, timestamp tolerance)
- The raw body is read once, before any JSON parsing
"""

import hashlib
import hmac
import json
import logging
import time
from typing import Optional

import stripe
from fastapi import Request

from .config import STRIPE_WEBHOOK_TOLERANCE_SECONDS
from .domain.billing.errors import InvalidSignature, Misconfigured, Unauthenticated

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "Stripe-Signature"


def compute_hmac_sha256(secret: str, payload: bytes) -> str:
    """Compute HMAC-SHA256 signature of payload"""
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def create_webhook_signature(secret: str, payload: bytes, timestamp: Optional[int] = None) -> str:
    """
    Create a Stripe-format signature header ("t=<timestamp>,v1=<hex>").
    Used for replaying captured events and in tests.
    """
    timestamp = int(time.time()) if timestamp is None else timestamp
    signed_payload = f"{timestamp}.".encode("utf-8") + payload
    return f"t={timestamp},v1={compute_hmac_sha256(secret, signed_payload)}"


async def verify_stripe_webhook(
    request: Request, secret: Optional[str], tolerance: int = STRIPE_WEBHOOK_TOLERANCE_SECONDS
) -> dict:
    """
    Verify the Stripe signature and return the parsed event.

    Raises:
        Unauthenticated: no Stripe-Signature header
        Misconfigured: webhook secret not configured
        InvalidSignature: signature (or payload) does not verify
    """
    # Get raw body BEFORE any parsing - the signature covers the exact bytes
    raw_body = await request.body()
    signature_header = request.headers.get(SIGNATURE_HEADER, "")

    if not signature_header:
        logger.error("❌ No signature in webhook request")
        raise Unauthenticated("No signature")

    if not secret:
        logger.error("❌ STRIPE_WEBHOOK_SECRET not configured")
        raise Misconfigured("Webhook secret not configured")

    payload = raw_body.decode("utf-8", errors="replace")
    try:
        stripe.WebhookSignature.verify_header(payload, signature_header, secret, tolerance)
    except stripe.SignatureVerificationError as e:
        logger.warning(f"🚫 Stripe webhook signature verification failed: {e}")
        raise InvalidSignature("Invalid signature") from e

    try:
        event = json.loads(payload)
    except json.JSONDecodeError as e:
        logger.error(f"❌ Signed webhook body is not valid JSON: {e}")
        raise InvalidSignature("Invalid JSON payload") from e

    logger.info(f"✅ Webhook signature verified: type={event.get('type')} id={event.get('id')}")
    return event
