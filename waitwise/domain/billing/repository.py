"""Billing repository - Database operations for billing"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...models import BillableEvent, PricingTier, Shop
from ...models_invoice import Invoice

# Subscription states in which the shop owes nothing
NON_DEBT_STATUSES = {"active", "canceled", "ended"}


class BillingRepository:
    """Repository for billing database operations"""

    @staticmethod
    def get_shop(db: Session, shop_id: str) -> Optional[Shop]:
        """Get shop by ID"""
        return db.query(Shop).filter(Shop.id == shop_id).first()

    @staticmethod
    def get_shop_by_stripe_customer_id(db: Session, customer_id: str) -> Optional[Shop]:
        """Get shop by Stripe customer ID"""
        if not customer_id:
            return None
        return db.query(Shop).filter(Shop.stripe_customer_id == customer_id).first()

    @staticmethod
    def get_billable_shops(db: Session) -> list[Shop]:
        """Shops with a Stripe customer and payment method that are active or past due"""
        return (
            db.query(Shop)
            .filter(
                Shop.stripe_customer_id.isnot(None),
                Shop.stripe_payment_method_id.isnot(None),
                Shop.subscription_status.in_(["active", "past_due"]),
            )
            .all()
        )

    @staticmethod
    def update_shop_subscription(
        db: Session,
        shop: Shop,
        subscription_status: Optional[str] = None,
        account_balance: Optional[int] = None,
    ) -> Shop:
        """Update a shop's subscription status and/or balance"""
        if subscription_status is not None:
            shop.subscription_status = subscription_status
            # A shop with an active subscription never carries a balance
            if subscription_status == "active":
                account_balance = 0
        if account_balance is not None:
            shop.account_balance = account_balance

        db.commit()
        db.refresh(shop)
        return shop

    @staticmethod
    def update_shop_payment_details(db: Session, shop: Shop, **updates) -> Shop:
        """Update Stripe/Pin identifiers on a shop"""
        for key, value in updates.items():
            setattr(shop, key, value)
        db.commit()
        db.refresh(shop)
        return shop

    @staticmethod
    def get_invoice_by_stripe_id(db: Session, stripe_invoice_id: str) -> Optional[Invoice]:
        """Get local invoice mirroring a Stripe invoice"""
        return db.query(Invoice).filter(Invoice.stripe_invoice_id == stripe_invoice_id).first()

    @staticmethod
    def get_invoice_by_charge_token(db: Session, charge_token: str) -> Optional[Invoice]:
        """Get local invoice for a Pin Payments charge"""
        return db.query(Invoice).filter(Invoice.charge_token == charge_token).first()

    @staticmethod
    def get_latest_failed_invoice(db: Session, shop_id: str) -> Optional[Invoice]:
        """Most recent failed invoice for a shop"""
        return (
            db.query(Invoice)
            .filter(Invoice.shop_id == shop_id, Invoice.status == "failed")
            .order_by(Invoice.created_at.desc())
            .first()
        )

    @staticmethod
    def update_invoice(db: Session, invoice: Invoice, **updates) -> Invoice:
        """Update invoice columns"""
        for key, value in updates.items():
            setattr(invoice, key, value)
        db.commit()
        db.refresh(invoice)
        return invoice

    @staticmethod
    def create_invoice(db: Session, **invoice_data) -> Invoice:
        """Record a new invoice"""
        invoice = Invoice(**invoice_data)
        db.add(invoice)
        db.commit()
        db.refresh(invoice)
        return invoice

    @staticmethod
    def get_pricing_tier(db: Session, name: str) -> Optional[PricingTier]:
        """Get pricing tier by name"""
        return db.query(PricingTier).filter(PricingTier.name == name).first()

    @staticmethod
    def get_unbilled_events(
        db: Session, shop_id: str, start: datetime, end: datetime
    ) -> list[BillableEvent]:
        """Billable events in [start, end) that are not yet linked to an invoice"""
        return (
            db.query(BillableEvent)
            .filter(
                BillableEvent.shop_id == shop_id,
                BillableEvent.is_billable.is_(True),
                BillableEvent.invoice_id.is_(None),
                BillableEvent.created_at >= start,
                BillableEvent.created_at < end,
            )
            .all()
        )

    @staticmethod
    def link_events_to_invoice(db: Session, event_ids: list[str], invoice_id: str) -> int:
        """Mark billable events as billed on an invoice"""
        if not event_ids:
            return 0
        updated = (
            db.query(BillableEvent)
            .filter(BillableEvent.id.in_(event_ids))
            .update({BillableEvent.invoice_id: invoice_id}, synchronize_session=False)
        )
        db.commit()
        return updated
