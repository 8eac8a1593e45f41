import os
import time

# Configure before the app reads its settings
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_123"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_secret"
os.environ["PIN_WEBHOOK_SECRET"] = "pin_webhook_secret"
os.environ["PIN_SECRET_KEY"] = "pin_test_key"
os.environ["CLICKSEND_USERNAME"] = "waitwise"
os.environ["CLICKSEND_API_KEY"] = "clicksend-key"
os.environ["CLICKSEND_FROM_NUMBER"] = "+61400000000"
os.environ["DB_LOG_SLOW_QUERIES"] = "false"
os.environ.pop("CRON_SECRET", None)
os.environ.pop("PIN_WEBHOOK_MAX_AGE_SECONDS", None)

import pytest
from fastapi.testclient import TestClient

from waitwise.database import Base, SessionLocal, engine, get_db
from waitwise.domain.billing.stripe_service import (
    PaymentAttempt,
    RemoteInvoice,
    construct_stripe_event,
    get_payment_gateway,
)
from waitwise.main import app
from waitwise.models import Barber, BillableEvent, QueueEntry, Service, Shop
from waitwise.rate_limiter import (
    notify_rate_limiter,
    queue_join_rate_limiter,
    webhook_rate_limiter,
)
from waitwise.services.clicksend_service import get_sms_sender
from waitwise.webhook_security import (
    PIN_SIGNATURE_HEADER,
    PIN_TIMESTAMP_HEADER,
    compute_hmac_sha256,
)


class FakeGateway:
    """In-memory payment gateway; signatures are still checked with the stripe library"""

    def __init__(self):
        self.invoices = {}
        self.pay_outcomes = {}
        self.calls = []
        self.created = 0

    def construct_event(self, payload, signature, secret):
        return construct_stripe_event(payload, signature, secret)

    def retrieve_invoice(self, invoice_id):
        self.calls.append(("retrieve_invoice", invoice_id))
        return self.invoices[invoice_id]

    def pay_invoice(self, invoice_id):
        self.calls.append(("pay_invoice", invoice_id))
        outcome = self.pay_outcomes.get(invoice_id)
        if isinstance(outcome, Exception):
            raise outcome
        if outcome is None:
            remote = self.invoices[invoice_id]
            return PaymentAttempt(
                "paid",
                RemoteInvoice(invoice_id, "paid", remote.amount_due, remote.amount_due, f"ch_{invoice_id}"),
            )
        return outcome

    def create_invoice(self, customer_id, currency, description, metadata):
        self.created += 1
        invoice = RemoteInvoice(f"in_{self.created}", "draft")
        self.invoices[invoice.id] = invoice
        self.calls.append(("create_invoice", customer_id, currency, description, metadata))
        return invoice

    def add_invoice_item(self, customer_id, invoice_id, amount, currency, description):
        self.invoices[invoice_id].amount_due += amount
        self.calls.append(("add_invoice_item", invoice_id, amount, currency, description))

    def create_customer(self, email, payment_method_id, shop_id):
        self.calls.append(("create_customer", email, payment_method_id, shop_id))
        return "cus_new"

    def attach_payment_method(self, customer_id, payment_method_id):
        self.calls.append(("attach_payment_method", customer_id, payment_method_id))

    def called(self, name):
        return [call for call in self.calls if call[0] == name]


class FakeSender:
    def __init__(self):
        self.sent = []
        self.error = None

    async def send(self, to_phone, body):
        if self.error:
            raise self.error
        self.sent.append((to_phone, body))


def _allow():
    return None


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def sms():
    return FakeSender()


@pytest.fixture
def client(db, gateway, sms):
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    app.dependency_overrides[get_sms_sender] = lambda: sms
    for limiter in (queue_join_rate_limiter, notify_rate_limiter, webhook_rate_limiter):
        app.dependency_overrides[limiter] = _allow
    # No context manager: the lifespan would try to reach Redis
    c = TestClient(app)
    yield c
    app.dependency_overrides.clear()


@pytest.fixture
def shop(db):
    shop = Shop(
        name="Fade Factory",
        address="1 King St, Newtown",
        opening_time="09:00",
        closing_time="12:00",
        subscription_status="active",
        account_balance=0,
    )
    db.add(shop)
    db.commit()
    return shop


@pytest.fixture
def barber(db, shop):
    barber = Barber(shop_id=shop.id, name="Sam")
    db.add(barber)
    db.commit()
    return barber


@pytest.fixture
def haircut(db, shop):
    service = Service(shop_id=shop.id, name="Haircut", price=40.0, duration_minutes=30)
    db.add(service)
    db.commit()
    return service


def add_entry(db, shop, barber=None, services=(), **fields):
    fields.setdefault("client_name", "Alex")
    fields.setdefault("status", "waiting")
    entry = QueueEntry(shop_id=shop.id, barber_id=barber.id if barber else None, **fields)
    entry.services = list(services)
    db.add(entry)
    db.commit()
    return entry


def add_billable_event(db, entry, **fields):
    event = BillableEvent(shop_id=entry.shop_id, queue_entry_id=entry.id, **fields)
    db.add(event)
    db.commit()
    return event


def create_webhook_signature(secret, payload, provider="pin", timestamp=None):
    """Signature headers for a webhook delivery, in the provider's format"""
    timestamp = timestamp if timestamp is not None else int(time.time())
    signed_payload = f"{timestamp}.".encode("utf-8") + payload
    signature = compute_hmac_sha256(secret, signed_payload)

    if provider == "stripe":
        return {"stripe-signature": f"t={timestamp},v1={signature}"}
    return {PIN_TIMESTAMP_HEADER: str(timestamp), PIN_SIGNATURE_HEADER: signature}
