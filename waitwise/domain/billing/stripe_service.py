"""Stripe service - Integration with the Stripe API"""

import json
import logging
from dataclasses import dataclass
from typing import Optional, Protocol

import stripe

from ...config import STRIPE_SECRET_KEY

logger = logging.getLogger(__name__)

# Card errors Stripe raises when an off-session payment needs the customer present
REQUIRES_ACTION_CODES = {"authentication_required", "invoice_payment_intent_requires_action"}


class WebhookVerificationError(Exception):
    """Raised when a Stripe webhook payload or signature is rejected"""


class PaymentGatewayError(Exception):
    """Raised when the payment provider rejects an API call"""


@dataclass
class RemoteInvoice:
    id: str
    status: Optional[str]
    amount_due: int = 0
    amount_paid: int = 0
    charge_id: Optional[str] = None


@dataclass
class PaymentAttempt:
    """Outcome of paying an invoice: 'paid', 'requires_action', or any other status string"""

    status: str
    invoice: Optional[RemoteInvoice] = None
    message: Optional[str] = None


class PaymentGateway(Protocol):
    """Capabilities the billing services need from the payment provider"""

    def construct_event(self, payload: bytes, signature: str, secret: str) -> dict: ...

    def retrieve_invoice(self, invoice_id: str) -> RemoteInvoice: ...

    def pay_invoice(self, invoice_id: str) -> PaymentAttempt: ...

    def create_invoice(
        self, customer_id: str, currency: str, description: str, metadata: dict
    ) -> RemoteInvoice: ...

    def add_invoice_item(
        self, customer_id: str, invoice_id: str, amount: int, currency: str, description: str
    ) -> None: ...

    def create_customer(self, email: str, payment_method_id: str, shop_id: str) -> str: ...

    def attach_payment_method(self, customer_id: str, payment_method_id: str) -> None: ...


def construct_stripe_event(payload: bytes, signature: str, secret: str) -> dict:
    """Verify the stripe-signature header (default 300s tolerance) and return the event as a plain dict"""
    body = payload.decode("utf-8") if isinstance(payload, bytes) else payload
    try:
        stripe.WebhookSignature.verify_header(
            body, signature, secret, tolerance=stripe.Webhook.DEFAULT_TOLERANCE
        )
        return json.loads(body)
    except stripe.SignatureVerificationError as e:
        raise WebhookVerificationError(str(e)) from e
    except ValueError as e:
        raise WebhookVerificationError(f"Invalid payload: {e}") from e


def _to_remote_invoice(invoice) -> RemoteInvoice:
    charge = getattr(invoice, "charge", None)
    if charge is not None and not isinstance(charge, str):
        charge = getattr(charge, "id", None)
    return RemoteInvoice(
        id=invoice.id,
        status=getattr(invoice, "status", None),
        amount_due=getattr(invoice, "amount_due", 0) or 0,
        amount_paid=getattr(invoice, "amount_paid", 0) or 0,
        charge_id=charge,
    )


class StripeGateway:
    """PaymentGateway backed by the stripe library"""

    def __init__(self, api_key: Optional[str] = None):
        self.api_key = api_key or STRIPE_SECRET_KEY
        if not self.api_key:
            logger.warning("STRIPE_SECRET_KEY not set; Stripe API calls will fail until configured")
        stripe.api_key = self.api_key

    def construct_event(self, payload: bytes, signature: str, secret: str) -> dict:
        return construct_stripe_event(payload, signature, secret)

    def retrieve_invoice(self, invoice_id: str) -> RemoteInvoice:
        try:
            invoice = stripe.Invoice.retrieve(invoice_id)
        except stripe.StripeError as e:
            logger.error(f"❌ Failed to retrieve invoice {invoice_id}: {e}")
            raise PaymentGatewayError(e.user_message or str(e)) from e
        return _to_remote_invoice(invoice)

    def pay_invoice(self, invoice_id: str) -> PaymentAttempt:
        """Attempt an off-session payment; card errors become an attempt outcome"""
        try:
            invoice = stripe.Invoice.pay(invoice_id, off_session=True)
        except stripe.CardError as e:
            message = e.user_message or str(e)
            if e.code in REQUIRES_ACTION_CODES:
                logger.warning(f"⚠️ Invoice {invoice_id} requires customer action: {message}")
                return PaymentAttempt(status="requires_action", message=message)
            logger.warning(f"⚠️ Card declined for invoice {invoice_id}: {message}")
            return PaymentAttempt(status="failed", message=message)
        except stripe.StripeError as e:
            logger.error(f"❌ Failed to pay invoice {invoice_id}: {e}")
            raise PaymentGatewayError(e.user_message or str(e)) from e

        remote = _to_remote_invoice(invoice)
        return PaymentAttempt(status=remote.status or "unknown", invoice=remote)

    def create_invoice(
        self, customer_id: str, currency: str, description: str, metadata: dict
    ) -> RemoteInvoice:
        invoice = stripe.Invoice.create(
            customer=customer_id,
            collection_method="charge_automatically",
            auto_advance=True,
            currency=currency,
            description=description,
            metadata=metadata,
        )
        return _to_remote_invoice(invoice)

    def add_invoice_item(
        self, customer_id: str, invoice_id: str, amount: int, currency: str, description: str
    ) -> None:
        stripe.InvoiceItem.create(
            customer=customer_id,
            invoice=invoice_id,
            amount=amount,
            currency=currency,
            description=description,
        )

    def create_customer(self, email: str, payment_method_id: str, shop_id: str) -> str:
        try:
            customer = stripe.Customer.create(
                email=email,
                payment_method=payment_method_id,
                invoice_settings={"default_payment_method": payment_method_id},
                # Links the Stripe customer back to the shop for webhooks
                metadata={"shop_id": shop_id},
            )
        except stripe.StripeError as e:
            logger.error(f"❌ Failed to create Stripe customer for shop {shop_id}: {e}")
            raise PaymentGatewayError(e.user_message or str(e)) from e
        return customer.id

    def attach_payment_method(self, customer_id: str, payment_method_id: str) -> None:
        """Attach a payment method and make it the default for future invoices"""
        try:
            stripe.PaymentMethod.attach(payment_method_id, customer=customer_id)
            stripe.Customer.modify(
                customer_id,
                invoice_settings={"default_payment_method": payment_method_id},
            )
        except stripe.StripeError as e:
            logger.error(f"❌ Failed to attach payment method for customer {customer_id}: {e}")
            raise PaymentGatewayError(e.user_message or str(e)) from e


def get_payment_gateway() -> PaymentGateway:
    """Dependency injection for the payment gateway"""
    return StripeGateway()
