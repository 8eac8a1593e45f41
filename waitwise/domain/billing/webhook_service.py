"""Webhook service - Reconciles payment provider events with invoices and shops"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ...models import Shop
from .repository import NON_DEBT_STATUSES, BillingRepository

logger = logging.getLogger(__name__)

SHOP_NOT_FOUND = {"received": True, "error": "Shop not found for customer"}


class WebhookProcessingError(Exception):
    """Raised when a verified webhook cannot be applied"""


def _failure_reason(invoice: dict) -> str:
    finalization_error = invoice.get("last_finalization_error") or {}
    payment_error = invoice.get("last_payment_error") or {}
    return finalization_error.get("message") or payment_error.get("message") or "Payment failed."


def _charge_id(invoice: dict) -> Optional[str]:
    charge = invoice.get("charge")
    if isinstance(charge, dict):
        return charge.get("id")
    return charge


class WebhookService:
    """Applies Stripe and Pin Payments webhook events to local state"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = BillingRepository()

    # ------------------------------------------------------------------
    # Stripe
    # ------------------------------------------------------------------

    def _resolve_invoice_shop(self, invoice: dict) -> Optional[Shop]:
        """Shop from invoice metadata, falling back to the Stripe customer id"""
        shop_id = (invoice.get("metadata") or {}).get("shop_id")
        if shop_id:
            shop = self.repo.get_shop(self.db, shop_id)
            if shop:
                return shop
            logger.warning(f"⚠️ Shop {shop_id} from invoice metadata not found, trying customer lookup")

        customer_id = invoice.get("customer")
        shop = self.repo.get_shop_by_stripe_customer_id(self.db, customer_id)
        if shop:
            logger.info(f"🔍 Resolved shop {shop.id} via customer {customer_id}")
        return shop

    def handle_stripe_event(self, event: dict) -> dict:
        """Dispatch a verified Stripe event by type"""
        event_type = event.get("type")
        data_object = (event.get("data") or {}).get("object") or {}
        logger.info(f"📥 Stripe event {event_type} for object {data_object.get('id')}")

        if event_type == "invoice.payment_succeeded":
            return self._handle_invoice_paid(data_object)
        elif event_type == "invoice.payment_failed":
            return self._handle_invoice_failed(data_object)
        elif event_type == "customer.subscription.updated":
            return self._handle_subscription_updated(data_object)

        logger.info(f"ℹ️ Unhandled Stripe event type: {event_type}")
        return {"received": True}

    def _handle_invoice_paid(self, invoice: dict) -> dict:
        shop = self._resolve_invoice_shop(invoice)
        if not shop:
            logger.error(f"❌ No shop for customer {invoice.get('customer')}")
            return SHOP_NOT_FOUND

        local_invoice = self.repo.get_invoice_by_stripe_id(self.db, invoice.get("id"))
        if local_invoice:
            self.repo.update_invoice(
                self.db,
                local_invoice,
                status="paid",
                amount_paid=invoice.get("amount_paid") or 0,
                stripe_charge_id=_charge_id(invoice),
            )
            logger.info(f"✅ Invoice {invoice.get('id')} marked as paid")
        else:
            logger.warning(f"⚠️ No local invoice for Stripe invoice {invoice.get('id')}")

        self.repo.update_shop_subscription(self.db, shop, subscription_status="active", account_balance=0)
        logger.info(f"✅ Shop {shop.id} set to active, balance reset")
        return {"received": True}

    def _handle_invoice_failed(self, invoice: dict) -> dict:
        shop = self._resolve_invoice_shop(invoice)
        if not shop:
            logger.error(f"❌ No shop for customer {invoice.get('customer')}")
            return SHOP_NOT_FOUND

        reason = _failure_reason(invoice)
        local_invoice = self.repo.get_invoice_by_stripe_id(self.db, invoice.get("id"))
        if local_invoice:
            self.repo.update_invoice(self.db, local_invoice, status="failed", error_message=reason)
            logger.info(f"❌ Invoice {invoice.get('id')} marked as failed: {reason}")
        else:
            logger.warning(f"⚠️ No local invoice for Stripe invoice {invoice.get('id')}")

        amount_due = invoice.get("amount_due") or 0
        self.repo.update_shop_subscription(
            self.db, shop, subscription_status="past_due", account_balance=amount_due
        )
        logger.info(f"⚠️ Shop {shop.id} set to past_due with balance {amount_due}")
        return {"received": True}

    def _handle_subscription_updated(self, subscription: dict) -> dict:
        customer_id = subscription.get("customer")
        new_status = subscription.get("status")

        shop = self.repo.get_shop_by_stripe_customer_id(self.db, customer_id)
        if not shop:
            logger.error(f"❌ subscription.updated: no shop for customer {customer_id}")
            return SHOP_NOT_FOUND

        balance = 0 if new_status in NON_DEBT_STATUSES else None
        self.repo.update_shop_subscription(
            self.db, shop, subscription_status=new_status, account_balance=balance
        )
        logger.info(f"🔄 Shop {shop.id} subscription status set to '{new_status}'")
        return {"received": True}

    # ------------------------------------------------------------------
    # Pin Payments
    # ------------------------------------------------------------------

    def handle_pin_event(self, payload: dict) -> dict:
        event_type = payload.get("event")
        data = payload.get("data") or {}
        logger.info(f"📥 Pin event {event_type}")

        if event_type == "charge.dispute.created":
            self._handle_dispute_created(data)
        else:
            logger.info(f"ℹ️ Unhandled Pin event type: {event_type}")
        return {"received": True}

    def _handle_dispute_created(self, data: dict) -> None:
        charge_token = data.get("charge_token")
        logger.warning(f"⚠️ Chargeback received for charge {charge_token}")

        invoice = self.repo.get_invoice_by_charge_token(self.db, charge_token) if charge_token else None
        if not invoice:
            raise WebhookProcessingError(f"No invoice found for charge {charge_token}")

        self.repo.update_invoice(
            self.db, invoice, status="disputed", error_message="Chargeback initiated by customer."
        )
        shop = self.repo.get_shop(self.db, invoice.shop_id)
        if shop:
            self.repo.update_shop_subscription(self.db, shop, subscription_status="past_due")
        logger.info(f"✅ Dispute recorded for shop {invoice.shop_id}")
