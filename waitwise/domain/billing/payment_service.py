"""Payment service - Payment method setup and retry of failed invoices"""

import logging
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import Shop
from ...models_invoice import Invoice
from .repository import BillingRepository
from .schemas import AttachPaymentMethodRequest
from .stripe_service import PaymentGateway, PaymentGatewayError, RemoteInvoice

logger = logging.getLogger(__name__)

REQUIRES_ACTION_MESSAGE = (
    "Payment requires additional authentication. Please update your payment method and try again."
)


class PaymentService:
    """Service for Stripe payment methods and payment retries"""

    def __init__(self, db: Session, gateway: PaymentGateway):
        self.db = db
        self.gateway = gateway
        self.repo = BillingRepository()

    # ========================================================================
    # PAYMENT METHOD
    # ========================================================================

    def attach_payment_method(self, request: AttachPaymentMethodRequest) -> dict:
        """Save a payment method, creating the Stripe customer on first use"""
        shop = self.repo.get_shop(self.db, request.shop_id)
        if not shop:
            raise HTTPException(status_code=404, detail="Shop not found.")

        customer_id = shop.stripe_customer_id
        try:
            if customer_id:
                self.gateway.attach_payment_method(customer_id, request.payment_method_id)
                logger.info(
                    f"💳 Attached payment method {request.payment_method_id} to customer {customer_id}"
                )
            else:
                customer_id = self.gateway.create_customer(
                    request.email, request.payment_method_id, shop.id
                )
                logger.info(f"✅ Created Stripe customer {customer_id} for shop {shop.id}")
        except PaymentGatewayError as e:
            raise HTTPException(status_code=400, detail=str(e))

        updates = {
            "stripe_customer_id": customer_id,
            "stripe_payment_method_id": request.payment_method_id,
        }
        # Only a trial (or brand new) shop is activated here; past_due waits for a retry
        if shop.subscription_status in (None, "trial"):
            logger.info(
                f"🔄 Shop {shop.id} moving from {shop.subscription_status or 'null'} to active"
            )
            updates["subscription_status"] = "active"
            updates["account_balance"] = 0

        shop = self.repo.update_shop_payment_details(self.db, shop, **updates)

        return {
            "message": "Payment method attached successfully and shop updated.",
            "customer_id": customer_id,
            "payment_method_id": request.payment_method_id,
            "current_shop_status": shop.subscription_status,
        }

    # ========================================================================
    # PAYMENT RETRY
    # ========================================================================

    def _reconcile_paid(self, shop: Shop, invoice: Invoice, remote: Optional[RemoteInvoice]) -> None:
        updates = {"status": "paid", "error_message": None}
        if remote is not None:
            updates["amount_paid"] = remote.amount_paid
            if remote.charge_id:
                updates["stripe_charge_id"] = remote.charge_id
        self.repo.update_invoice(self.db, invoice, **updates)
        self.repo.update_shop_subscription(self.db, shop, subscription_status="active", account_balance=0)

    def retry_payment(self, shop_id: Optional[str]) -> dict:
        """Re-attempt the shop's most recent failed invoice"""
        if not shop_id:
            raise HTTPException(status_code=400, detail="Shop ID is required.")

        shop = self.repo.get_shop(self.db, shop_id)
        if not shop:
            raise HTTPException(status_code=404, detail="Could not find the shop.")
        if not shop.stripe_customer_id:
            raise HTTPException(status_code=400, detail="Shop has no Stripe customer on file.")

        invoice = self.repo.get_latest_failed_invoice(self.db, shop_id)
        if not invoice:
            raise HTTPException(status_code=404, detail="Could not find a failed invoice to retry.")
        if not invoice.stripe_invoice_id:
            raise HTTPException(status_code=400, detail="Failed invoice has no Stripe invoice to retry.")

        try:
            remote = self.gateway.retrieve_invoice(invoice.stripe_invoice_id)
        except PaymentGatewayError as e:
            raise HTTPException(status_code=400, detail=str(e))

        logger.info(f"🔁 Retrying invoice {remote.id} for shop {shop_id} (remote status: {remote.status})")

        if remote.status == "paid":
            # Paid out-of-band; only local records are behind
            self._reconcile_paid(shop, invoice, remote)
            logger.info(f"✅ Invoice {remote.id} was already paid, records reconciled")
            return {"success": True, "message": "Invoice was already paid. Your account is up to date."}

        if remote.status != "open":
            raise HTTPException(
                status_code=400,
                detail=f"Invoice cannot be retried while its status is '{remote.status}'.",
            )

        try:
            attempt = self.gateway.pay_invoice(remote.id)
        except PaymentGatewayError as e:
            self.repo.update_invoice(self.db, invoice, error_message=str(e))
            raise HTTPException(status_code=400, detail=str(e))

        if attempt.status == "paid":
            self._reconcile_paid(shop, invoice, attempt.invoice)
            logger.info(f"✅ Retry succeeded for invoice {remote.id}")
            return {"success": True, "message": "Payment successful."}

        if attempt.status == "requires_action":
            self.repo.update_invoice(
                self.db,
                invoice,
                status="requires_action",
                error_message=attempt.message or REQUIRES_ACTION_MESSAGE,
            )
            raise HTTPException(status_code=400, detail=REQUIRES_ACTION_MESSAGE)

        reason = attempt.message or f"Payment retry failed with status '{attempt.status}'."
        self.repo.update_invoice(self.db, invoice, status="failed", error_message=reason)
        logger.warning(f"⚠️ Retry failed for invoice {remote.id}: {reason}")
        raise HTTPException(status_code=400, detail=reason)
