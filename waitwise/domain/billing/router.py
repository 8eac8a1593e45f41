"""Billing router - FastAPI endpoints for billing operations"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ...config import CRON_SECRET
from ...database import get_db
from ...webhook_security import constant_time_compare
from .invoicing_service import InvoicingService
from .payment_service import PaymentService
from .pin_service import PinPaymentsClient, PinPaymentsError, get_pin_client
from .schemas import (
    AttachPaymentMethodRequest,
    PinCardUpdateRequest,
    PinChargeRequest,
    PinChargeResponse,
    PinCustomerRequest,
    RetryPaymentRequest,
)
from .stripe_service import PaymentGateway, get_payment_gateway

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/billing", tags=["Billing"])


def get_payment_service(
    db: Session = Depends(get_db), gateway: PaymentGateway = Depends(get_payment_gateway)
) -> PaymentService:
    """Dependency injection for PaymentService"""
    return PaymentService(db, gateway)


def get_invoicing_service(
    db: Session = Depends(get_db), gateway: PaymentGateway = Depends(get_payment_gateway)
) -> InvoicingService:
    """Dependency injection for InvoicingService"""
    return InvoicingService(db, gateway)


def verify_cron_secret(authorization: Optional[str] = Header(None)):
    """Require 'Bearer <CRON_SECRET>' when a cron secret is configured"""
    if not CRON_SECRET:
        return
    if not constant_time_compare(authorization or "", f"Bearer {CRON_SECRET}"):
        logger.warning("🚫 Unauthorized attempt to run monthly invoicing")
        raise HTTPException(status_code=401, detail="Unauthorized")


# ============================================================================
# STRIPE
# ============================================================================


@router.post("/retry-payment")
async def retry_payment(
    body: RetryPaymentRequest,
    service: PaymentService = Depends(get_payment_service),
):
    """Retry the shop's most recent failed invoice"""
    return service.retry_payment(body.shop_id)


@router.post("/stripe/payment-method")
async def attach_payment_method(
    body: AttachPaymentMethodRequest,
    service: PaymentService = Depends(get_payment_service),
):
    """Attach a card to the shop's Stripe customer (created on first use)"""
    return service.attach_payment_method(body)


@router.post("/process-monthly-invoices")
async def process_monthly_invoices(
    _: None = Depends(verify_cron_secret),
    service: InvoicingService = Depends(get_invoicing_service),
):
    """Bill last month's usage (run by the scheduler on the 1st)"""
    return service.process_monthly_invoices()


# ============================================================================
# PIN PAYMENTS
# ============================================================================


@router.post("/pin/customers")
async def create_pin_customer(
    body: PinCustomerRequest,
    client: PinPaymentsClient = Depends(get_pin_client),
):
    """Create a Pin Payments customer from a card token"""
    try:
        customer_token = await client.create_customer(body.card_token, body.email)
    except PinPaymentsError as e:
        raise HTTPException(status_code=400, detail=e.message)
    return {"success": True, "customer_token": customer_token}


@router.put("/pin/customers/{customer_token}/card")
async def update_pin_customer_card(
    customer_token: str,
    body: PinCardUpdateRequest,
    client: PinPaymentsClient = Depends(get_pin_client),
):
    """Replace the card on a Pin Payments customer"""
    try:
        await client.update_customer_card(customer_token, body.card_token)
    except PinPaymentsError as e:
        raise HTTPException(status_code=400, detail=e.message)
    return {"success": True}


@router.post("/pin/charges", response_model=PinChargeResponse)
async def create_pin_charge(
    body: PinChargeRequest,
    client: PinPaymentsClient = Depends(get_pin_client),
):
    """Charge a Pin Payments customer"""
    try:
        result = await client.create_charge(
            body.customer_token, body.amount, body.shop_id, body.email
        )
    except PinPaymentsError as e:
        return JSONResponse(
            status_code=500, content={"success": False, "charge_token": None, "error": e.message}
        )

    if not result["success"]:
        return JSONResponse(status_code=400, content=result)
    return result
