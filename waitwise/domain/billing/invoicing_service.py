"""Invoicing service - Monthly usage invoices for shops"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from dateutil.relativedelta import relativedelta
from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...config import PAY_AS_YOU_GO_TIER
from ...models import Shop
from ...utils.dates import utcnow
from .repository import BillingRepository
from .stripe_service import PaymentGateway

logger = logging.getLogger(__name__)

INVOICE_DUE_DAYS = 7


def previous_month_range(now: datetime) -> tuple[datetime, datetime]:
    """[start of previous month, start of current month) in UTC"""
    current_month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    return current_month_start - relativedelta(months=1), current_month_start


class InvoicingService:
    """Bills last month's usage plus any outstanding balance, one Stripe invoice per shop"""

    def __init__(self, db: Session, gateway: PaymentGateway):
        self.db = db
        self.gateway = gateway
        self.repo = BillingRepository()

    def process_monthly_invoices(self, now: Optional[datetime] = None) -> dict:
        now = now or utcnow()
        period_start, period_end = previous_month_range(now)
        logger.info(f"🧾 Processing invoices for {period_start.isoformat()} to {period_end.isoformat()}")

        tier = self.repo.get_pricing_tier(self.db, PAY_AS_YOU_GO_TIER)
        if not tier:
            logger.error(f"❌ Pricing tier '{PAY_AS_YOU_GO_TIER}' not found")
            raise HTTPException(status_code=500, detail="Pricing tier not found or database error.")

        price_cents = round(tier.price_per_event * 100)
        currency = tier.currency.lower()

        results = []
        for shop in self.repo.get_billable_shops(self.db):
            results.append(
                self._bill_shop(shop, period_start, period_end, price_cents, currency, now)
            )

        return {"message": "Monthly invoicing process completed.", "results": results}

    def _bill_shop(
        self,
        shop: Shop,
        period_start: datetime,
        period_end: datetime,
        price_cents: int,
        currency: str,
        now: datetime,
    ) -> dict:
        logger.info(f"🏪 Billing shop {shop.name} ({shop.id}), status: {shop.subscription_status}")

        balance = shop.account_balance or 0
        events = self.repo.get_unbilled_events(self.db, shop.id, period_start, period_end)
        usage_amount = len(events) * price_cents
        total_due = usage_amount + balance

        if total_due <= 0:
            logger.info(f"⏭️ Shop {shop.id}: nothing due ({len(events)} events, balance {balance})")
            return {"shop_id": shop.id, "status": "skipped", "message": "No amount due or balance to clear."}

        result = {"shop_id": shop.id}
        status = "failed"
        stripe_invoice_id = None
        charge_id = None

        try:
            invoice = self.gateway.create_invoice(
                shop.stripe_customer_id,
                currency,
                f"Monthly usage for {period_start.strftime('%B %Y')}",
                {"shop_id": shop.id},
            )
            stripe_invoice_id = invoice.id

            if usage_amount > 0:
                self.gateway.add_invoice_item(
                    shop.stripe_customer_id,
                    invoice.id,
                    usage_amount,
                    currency,
                    f"Usage ({len(events)} clients) @ ${price_cents / 100:.2f} per client",
                )
            if balance > 0:
                self.gateway.add_invoice_item(
                    shop.stripe_customer_id,
                    invoice.id,
                    balance,
                    currency,
                    "Outstanding balance from previous period(s)",
                )

            attempt = self.gateway.pay_invoice(invoice.id)
            if attempt.status == "paid":
                status = "paid"
                charge_id = attempt.invoice.charge_id if attempt.invoice else None
                logger.info(f"✅ Invoice {invoice.id} for shop {shop.id} paid")
            else:
                logger.warning(f"⚠️ Invoice {invoice.id} for shop {shop.id} not paid: {attempt.status}")
            result.update({"status": status, "stripe_invoice_id": invoice.id})
        except Exception as e:
            logger.error(f"❌ Stripe API error for shop {shop.id}: {e}")
            result.update({"status": "stripe_api_error", "message": str(e)})

        # Shop status and balance follow from the invoice webhooks
        local_invoice = self.repo.create_invoice(
            self.db,
            shop_id=shop.id,
            month=period_start.date(),
            amount_due=total_due,
            amount_paid=total_due if status == "paid" else 0,
            currency=currency,
            status=status,
            stripe_invoice_id=stripe_invoice_id,
            stripe_charge_id=charge_id,
            due_date=now + timedelta(days=INVOICE_DUE_DAYS),
        )
        self.repo.link_events_to_invoice(self.db, [event.id for event in events], local_invoice.id)
        result["invoice_id"] = local_invoice.id
        return result
