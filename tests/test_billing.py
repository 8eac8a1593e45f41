import sys
from datetime import date, datetime

import httpx
import pytest
from conftest import add_billable_event, add_entry

from waitwise.domain.billing.invoicing_service import InvoicingService, previous_month_range
from waitwise.domain.billing.pin_service import PinPaymentsClient, get_pin_client
from waitwise.domain.billing.stripe_service import (
    PaymentAttempt,
    PaymentGatewayError,
    RemoteInvoice,
)
from waitwise.main import app
from waitwise.models import PricingTier
from waitwise.models_invoice import Invoice


@pytest.fixture
def failed_invoice(db, shop):
    shop.stripe_customer_id = "cus_1"
    shop.subscription_status = "past_due"
    shop.account_balance = 4200
    invoice = Invoice(shop_id=shop.id, stripe_invoice_id="in_1", amount_due=4200, status="failed")
    db.add(invoice)
    db.commit()
    return invoice


def retry(client, shop_id):
    return client.post("/billing/retry-payment", json={"shop_id": shop_id})


# ============================================================================
# RETRY
# ============================================================================


def test_retry_reconciles_invoice_paid_elsewhere(client, db, shop, gateway, failed_invoice):
    gateway.invoices["in_1"] = RemoteInvoice("in_1", "paid", 4200, 4200, "ch_remote")

    r = retry(client, shop.id)
    assert r.status_code == 200
    assert r.json() == {"success": True, "message": "Invoice was already paid. Your account is up to date."}
    assert gateway.called("pay_invoice") == []

    db.refresh(shop)
    db.refresh(failed_invoice)
    assert failed_invoice.status == "paid"
    assert failed_invoice.stripe_charge_id == "ch_remote"
    assert shop.subscription_status == "active"
    assert shop.account_balance == 0


def test_retry_pays_open_invoice(client, db, shop, gateway, failed_invoice):
    gateway.invoices["in_1"] = RemoteInvoice("in_1", "open", 4200)

    r = retry(client, shop.id)
    assert r.status_code == 200
    assert r.json() == {"success": True, "message": "Payment successful."}
    assert gateway.called("pay_invoice") == [("pay_invoice", "in_1")]

    db.refresh(shop)
    db.refresh(failed_invoice)
    assert failed_invoice.status == "paid"
    assert failed_invoice.amount_paid == 4200
    assert shop.subscription_status == "active"
    assert shop.account_balance == 0


def test_retry_requires_action(client, db, shop, gateway, failed_invoice):
    gateway.invoices["in_1"] = RemoteInvoice("in_1", "open", 4200)
    gateway.pay_outcomes["in_1"] = PaymentAttempt("requires_action", message="authentication_required")

    r = retry(client, shop.id)
    assert r.status_code == 400
    assert "additional authentication" in r.json()["error"]

    db.refresh(failed_invoice)
    db.refresh(shop)
    assert failed_invoice.status == "requires_action"
    assert shop.subscription_status == "past_due"


def test_retry_failed_payment_keeps_invoice_failed(client, db, shop, gateway, failed_invoice):
    gateway.invoices["in_1"] = RemoteInvoice("in_1", "open", 4200)
    gateway.pay_outcomes["in_1"] = PaymentAttempt("failed", message="Your card has insufficient funds.")

    r = retry(client, shop.id)
    assert r.status_code == 400
    assert r.json() == {"error": "Your card has insufficient funds."}

    db.refresh(failed_invoice)
    assert failed_invoice.status == "failed"
    assert failed_invoice.error_message == "Your card has insufficient funds."


def test_retry_gateway_error(client, db, shop, gateway, failed_invoice):
    gateway.invoices["in_1"] = RemoteInvoice("in_1", "open", 4200)
    gateway.pay_outcomes["in_1"] = PaymentGatewayError("No such payment method")

    r = retry(client, shop.id)
    assert r.status_code == 400
    assert r.json() == {"error": "No such payment method"}


def test_retry_rejects_voided_invoice(client, db, shop, gateway, failed_invoice):
    gateway.invoices["in_1"] = RemoteInvoice("in_1", "void")

    r = retry(client, shop.id)
    assert r.status_code == 400
    assert gateway.called("pay_invoice") == []


def test_retry_lookup_errors(client, db, shop):
    r = client.post("/billing/retry-payment", json={})
    assert r.status_code == 400
    assert r.json() == {"error": "Shop ID is required."}

    r = retry(client, "no-such-shop")
    assert r.status_code == 404
    assert r.json() == {"error": "Could not find the shop."}

    r = retry(client, shop.id)
    assert r.status_code == 400
    assert r.json() == {"error": "Shop has no Stripe customer on file."}

    shop.stripe_customer_id = "cus_1"
    db.commit()
    r = retry(client, shop.id)
    assert r.status_code == 404
    assert r.json() == {"error": "Could not find a failed invoice to retry."}


# ============================================================================
# PAYMENT METHOD
# ============================================================================


def test_attach_payment_method_creates_customer_and_activates_trial(client, db, shop, gateway):
    shop.subscription_status = "trial"
    db.commit()

    r = client.post(
        "/billing/stripe/payment-method",
        json={"payment_method_id": "pm_1", "email": "owner@shop.test", "shop_id": shop.id},
    )
    assert r.status_code == 200
    assert r.json()["customer_id"] == "cus_new"
    assert r.json()["current_shop_status"] == "active"
    assert gateway.called("create_customer") == [("create_customer", "owner@shop.test", "pm_1", shop.id)]

    db.refresh(shop)
    assert shop.stripe_customer_id == "cus_new"
    assert shop.stripe_payment_method_id == "pm_1"


def test_attach_payment_method_does_not_clear_past_due(client, db, shop, gateway):
    shop.stripe_customer_id = "cus_1"
    shop.subscription_status = "past_due"
    shop.account_balance = 900
    db.commit()

    r = client.post(
        "/billing/stripe/payment-method",
        json={"payment_method_id": "pm_2", "email": "owner@shop.test", "shop_id": shop.id},
    )
    assert r.status_code == 200
    assert gateway.called("attach_payment_method") == [("attach_payment_method", "cus_1", "pm_2")]
    assert r.json()["current_shop_status"] == "past_due"
    db.refresh(shop)
    assert shop.account_balance == 900


def test_attach_payment_method_requires_fields(client):
    r = client.post("/billing/stripe/payment-method", json={"payment_method_id": "pm_1"})
    assert r.status_code == 400
    assert "Missing required fields" in r.json()["error"]


# ============================================================================
# MONTHLY INVOICING
# ============================================================================


@pytest.fixture
def billable_shop(db, shop, barber):
    shop.stripe_customer_id = "cus_1"
    shop.stripe_payment_method_id = "pm_1"
    shop.account_balance = 500
    db.add(PricingTier(name="Pay-as-you-go", price_per_event=1.5, currency="AUD"))
    db.commit()
    return shop


def test_previous_month_range():
    start, end = previous_month_range(datetime(2025, 1, 15, 8, 30))
    assert start == datetime(2024, 12, 1)
    assert end == datetime(2025, 1, 1)


def test_monthly_invoice_bills_usage_and_balance(db, billable_shop, barber, gateway):
    events = [
        add_billable_event(db, add_entry(db, billable_shop, barber, status="done"), created_at=datetime(2025, 5, day))
        for day in (3, 14, 31)
    ]
    outside = add_billable_event(
        db, add_entry(db, billable_shop, barber, status="done"), created_at=datetime(2025, 6, 2)
    )

    result = InvoicingService(db, gateway).process_monthly_invoices(now=datetime(2025, 6, 10))

    assert result["message"] == "Monthly invoicing process completed."
    [shop_result] = result["results"]
    assert shop_result["status"] == "paid"

    create_call = gateway.called("create_invoice")[0]
    assert create_call[1:4] == ("cus_1", "aud", "Monthly usage for May 2025")
    items = gateway.called("add_invoice_item")
    assert [(amount, description) for _, _, amount, _, description in items] == [
        (450, "Usage (3 clients) @ $1.50 per client"),
        (500, "Outstanding balance from previous period(s)"),
    ]

    invoice = db.query(Invoice).filter(Invoice.id == shop_result["invoice_id"]).one()
    assert invoice.amount_due == 950
    assert invoice.amount_paid == 950
    assert invoice.month == date(2025, 5, 1)
    assert invoice.currency == "aud"
    assert invoice.stripe_invoice_id == "in_1"
    assert invoice.stripe_charge_id == "ch_in_1"

    for event in events:
        db.refresh(event)
        assert event.invoice_id == invoice.id
    db.refresh(outside)
    assert outside.invoice_id is None


def test_monthly_invoice_skips_shop_with_nothing_due(db, billable_shop, gateway):
    billable_shop.account_balance = 0
    db.commit()

    result = InvoicingService(db, gateway).process_monthly_invoices(now=datetime(2025, 6, 10))

    assert result["results"][0]["status"] == "skipped"
    assert gateway.called("create_invoice") == []
    assert db.query(Invoice).count() == 0


def test_monthly_invoice_records_stripe_error(db, billable_shop, gateway):
    gateway.pay_outcomes["in_1"] = PaymentGatewayError("card_declined")

    result = InvoicingService(db, gateway).process_monthly_invoices(now=datetime(2025, 6, 10))

    [shop_result] = result["results"]
    assert shop_result["status"] == "stripe_api_error"
    invoice = db.query(Invoice).one()
    assert invoice.status == "failed"
    assert invoice.amount_paid == 0


def test_monthly_invoice_ignores_trial_shops(db, billable_shop, gateway):
    billable_shop.subscription_status = "trial"
    db.commit()

    result = InvoicingService(db, gateway).process_monthly_invoices(now=datetime(2025, 6, 10))
    assert result["results"] == []


def test_monthly_invoice_requires_pricing_tier(client, db, shop):
    r = client.post("/billing/process-monthly-invoices")
    assert r.status_code == 500
    assert r.json() == {"error": "Pricing tier not found or database error."}


def test_monthly_invoice_cron_secret(client, db, billable_shop, monkeypatch):
    router_module = sys.modules["waitwise.domain.billing.router"]
    monkeypatch.setattr(router_module, "CRON_SECRET", "s3cret")

    r = client.post("/billing/process-monthly-invoices")
    assert r.status_code == 401

    r = client.post(
        "/billing/process-monthly-invoices", headers={"Authorization": "Bearer wrong"}
    )
    assert r.status_code == 401

    r = client.post(
        "/billing/process-monthly-invoices", headers={"Authorization": "Bearer s3cret"}
    )
    assert r.status_code == 200


# ============================================================================
# PIN PAYMENTS ROUTES
# ============================================================================


def pin_client_for(status_code, payload):
    transport = httpx.MockTransport(lambda request: httpx.Response(status_code, json=payload))
    return PinPaymentsClient(secret_key="sk", transport=transport)


def test_pin_customer_route(client):
    app.dependency_overrides[get_pin_client] = lambda: pin_client_for(201, {"response": {"token": "cus_pin"}})

    r = client.post("/billing/pin/customers", json={"card_token": "card_1", "email": "a@b.test"})
    assert r.status_code == 200
    assert r.json() == {"success": True, "customer_token": "cus_pin"}


def test_pin_charge_route_declined(client, shop):
    app.dependency_overrides[get_pin_client] = lambda: pin_client_for(
        400, {"error_description": "The card was declined"}
    )

    r = client.post(
        "/billing/pin/charges",
        json={
            "customer_token": "cus_pin",
            "amount": 4500,
            "shop_id": shop.id,
            "email": "owner@shop.test",
        },
    )
    assert r.status_code == 400
    assert r.json() == {"success": False, "charge_token": None, "error": "The card was declined"}


def test_pin_charge_route_without_key(client, shop):
    app.dependency_overrides[get_pin_client] = lambda: PinPaymentsClient(secret_key="")

    r = client.post(
        "/billing/pin/charges",
        json={
            "customer_token": "cus_pin",
            "amount": 4500,
            "shop_id": shop.id,
            "email": "owner@shop.test",
        },
    )
    assert r.status_code == 500
    assert r.json() == {
        "success": False,
        "charge_token": None,
        "error": "Pin Payments secret key not set.",
    }


def test_pin_charge_route_requires_email(client, shop):
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(201, json={"response": {"token": "ch_1"}})

    app.dependency_overrides[get_pin_client] = lambda: PinPaymentsClient(
        secret_key="sk", transport=httpx.MockTransport(handler)
    )

    r = client.post(
        "/billing/pin/charges",
        json={"customer_token": "cus_pin", "amount": 4500, "shop_id": shop.id},
    )
    assert r.status_code == 400
    assert "email" in r.json()["error"]

    r = client.post(
        "/billing/pin/charges",
        json={"customer_token": "cus_pin", "amount": 4500, "shop_id": shop.id, "email": "  "},
    )
    assert r.status_code == 400
    assert "Customer token, amount, shop_id, and email are required." in r.json()["error"]
    assert requests == []


def test_pin_charge_route_connection_failure(client, shop):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    app.dependency_overrides[get_pin_client] = lambda: PinPaymentsClient(
        secret_key="sk", transport=httpx.MockTransport(handler)
    )

    r = client.post(
        "/billing/pin/charges",
        json={
            "customer_token": "cus_pin",
            "amount": 4500,
            "shop_id": shop.id,
            "email": "owner@shop.test",
        },
    )
    assert r.status_code == 500
    data = r.json()
    assert data["success"] is False
    assert data["charge_token"] is None
    assert "connection refused" in data["error"]
