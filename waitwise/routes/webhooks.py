"""
Payment Provider Webhook Handlers
Stripe invoice/subscription events and Pin Payments disputes
"""

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from ..config import PIN_WEBHOOK_MAX_AGE_SECONDS, PIN_WEBHOOK_SECRET, STRIPE_WEBHOOK_SECRET
from ..database import get_db
from ..domain.billing.stripe_service import (
    PaymentGateway,
    WebhookVerificationError,
    get_payment_gateway,
)
from ..domain.billing.webhook_service import WebhookService
from ..rate_limiter import webhook_rate_limiter
from ..webhook_security import verify_pin_webhook

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/stripe")
async def handle_stripe_webhook(
    request: Request,
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    _: None = Depends(webhook_rate_limiter),
):
    """
    Handle Stripe webhook events

    Events handled:
    - invoice.payment_succeeded - invoice paid, shop active, balance cleared
    - invoice.payment_failed - invoice failed, shop past_due, balance = amount due
    - customer.subscription.updated - mirror subscription status
    """
    body = await request.body()
    signature = request.headers.get("stripe-signature")

    if not signature or not STRIPE_WEBHOOK_SECRET:
        logger.error("❌ Missing stripe-signature header or STRIPE_WEBHOOK_SECRET")
        raise HTTPException(status_code=400, detail="Webhook Error: Missing signature or secret")

    try:
        event = gateway.construct_event(body, signature, STRIPE_WEBHOOK_SECRET)
    except WebhookVerificationError as e:
        logger.error(f"❌ Stripe signature verification failed: {e}")
        raise HTTPException(status_code=400, detail=f"Webhook Error: {e}") from None

    try:
        return WebhookService(db).handle_stripe_event(event)
    except Exception as e:
        logger.error(f"❌ Error processing Stripe webhook event: {e}")
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.post("/pin")
async def handle_pin_webhook(
    request: Request,
    db: Session = Depends(get_db),
    _: None = Depends(webhook_rate_limiter),
):
    """
    Handle Pin Payments webhook events

    Events handled:
    - charge.dispute.created - invoice disputed, shop past_due
    """
    if not PIN_WEBHOOK_SECRET:
        logger.error("❌ PIN_WEBHOOK_SECRET is not configured")
        raise HTTPException(status_code=400, detail="Failed to process webhook")

    is_valid, raw_body = await verify_pin_webhook(
        request, PIN_WEBHOOK_SECRET, PIN_WEBHOOK_MAX_AGE_SECONDS
    )
    if not is_valid:
        raise HTTPException(status_code=401, detail="Unauthorized")

    try:
        payload = json.loads(raw_body.decode("utf-8"))
        return WebhookService(db).handle_pin_event(payload)
    except Exception as e:
        logger.error(f"❌ Error processing Pin webhook: {e}")
        db.rollback()
        raise HTTPException(status_code=400, detail="Failed to process webhook")
