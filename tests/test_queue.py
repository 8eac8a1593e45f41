from datetime import datetime

import httpx
import pytest
from conftest import add_entry

from waitwise.domain.queue import service as queue_service
from waitwise.main import app
from waitwise.models import Appointment, BillableEvent, Service
from waitwise.services.clicksend_service import (
    ClicksendSender,
    SmsDeliveryError,
    get_sms_sender,
)


@pytest.fixture
def open_shop(monkeypatch):
    monkeypatch.setattr(queue_service, "is_shop_open", lambda shop, now=None: True)


def join(client, shop, barber, services, **fields):
    body = {
        "shop_id": shop.id,
        "barber_id": barber.id if barber else None,
        "client_name": "Alex",
        "client_phone": "+61412345678",
        "service_ids": [service.id for service in services],
    }
    body.update(fields)
    return client.post("/queue/entries", json=body)


def set_status(client, entry, status, **fields):
    return client.post(f"/queue/entries/{entry.id}/status", json={"status": status, **fields})


def test_join_queue_appends_to_barber_queue(client, db, shop, barber, haircut, open_shop):
    add_entry(db, shop, barber, queue_position=1)
    add_entry(db, shop, barber, queue_position=2)

    r = join(client, shop, barber, [haircut])
    assert r.status_code == 201
    data = r.json()
    assert data["status"] == "waiting"
    assert data["queue_position"] == 3
    assert data["service_ids"] == [haircut.id]


def test_join_queue_when_closed(client, db, shop, barber, haircut, monkeypatch):
    monkeypatch.setattr(queue_service, "is_shop_open", lambda shop, now=None: False)

    r = join(client, shop, barber, [haircut])
    assert r.status_code == 400
    assert r.json() == {"error": "Shop is currently closed"}


def test_join_queue_validation(client, db, shop, barber, haircut, open_shop):
    r = join(client, shop, barber, [])
    assert r.status_code == 400

    r = join(client, shop, barber, [haircut], client_name="   ")
    assert r.status_code == 400

    r = join(client, shop, barber, [haircut], shop_id="missing")
    assert r.status_code == 404

    r = join(client, shop, barber, [haircut], barber_id="missing")
    assert r.status_code == 404
    assert r.json() == {"error": "Barber not found"}

    other_shop_service = Service(shop_id="elsewhere", name="Shave", price=20, duration_minutes=15)
    db.add(other_shop_service)
    db.commit()
    r = join(client, shop, barber, [other_shop_service])
    assert r.status_code == 400


def test_done_writes_billable_event_and_completes_appointment(client, db, shop, barber):
    appointment = Appointment(
        shop_id=shop.id,
        barber_id=barber.id,
        start_time=datetime(2025, 5, 1, 0, 0),
        end_time=datetime(2025, 5, 1, 0, 30),
        status="in_progress",
    )
    db.add(appointment)
    db.commit()
    entry = add_entry(db, shop, barber, status="in_progress", appointment_id=appointment.id)

    r = set_status(client, entry, "done")
    assert r.status_code == 200
    assert r.json()["status"] == "done"

    events = db.query(BillableEvent).filter(BillableEvent.queue_entry_id == entry.id).all()
    assert len(events) == 1
    assert events[0].shop_id == shop.id
    db.refresh(appointment)
    assert appointment.status == "completed"


def test_no_show_is_not_billable(client, db, shop, barber):
    entry = add_entry(db, shop, barber, queue_position=1)

    r = set_status(client, entry, "no_show")
    assert r.status_code == 200
    assert db.query(BillableEvent).count() == 0


def test_invalid_status_rejected(client, db, shop, barber):
    entry = add_entry(db, shop, barber)
    r = set_status(client, entry, "teleported")
    assert r.status_code == 400
    assert "status must be one of" in r.json()["error"]


def test_in_progress_notifies_next_waiting_client(client, db, shop, barber, sms):
    current = add_entry(db, shop, barber, queue_position=1)
    following = add_entry(db, shop, barber, queue_position=2, client_phone="+61412345678")

    r = set_status(client, current, "in_progress")
    assert r.status_code == 200
    notification = r.json()["notification"]
    assert notification["entry_id"] == following.id
    assert notification["status"] == "sent"
    assert len(sms.sent) == 1

    db.refresh(following)
    assert following.notification_sent_at is not None


def test_in_progress_does_not_resend(client, db, shop, barber, sms):
    current = add_entry(db, shop, barber, queue_position=1)
    add_entry(
        db,
        shop,
        barber,
        queue_position=2,
        client_phone="+61412345678",
        notification_sent_at=datetime(2025, 1, 1),
    )

    r = set_status(client, current, "in_progress")
    assert r.json()["notification"]["status"] == "already_sent"
    assert sms.sent == []


def test_in_progress_respects_paused_sms(client, db, shop, barber, sms):
    current = add_entry(db, shop, barber, queue_position=1)
    add_entry(db, shop, barber, queue_position=2, client_phone="+61412345678")

    r = set_status(client, current, "in_progress", sms_paused=True)
    assert r.json()["notification"]["status"] == "paused"
    assert sms.sent == []


def test_sms_failure_does_not_block_status_change(client, db, shop, barber, sms):
    sms.error = SmsDeliveryError("Clicksend API Error: Unknown error")
    current = add_entry(db, shop, barber, queue_position=1)
    following = add_entry(db, shop, barber, queue_position=2, client_phone="+61412345678")

    r = set_status(client, current, "in_progress")
    assert r.status_code == 200
    assert r.json()["status"] == "in_progress"
    assert r.json()["notification"]["status"] == "failed"
    db.refresh(following)
    assert following.notification_sent_at is None


def test_unreachable_sms_provider_does_not_block_status_change(client, db, shop, barber):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    app.dependency_overrides[get_sms_sender] = lambda: ClicksendSender(
        "user", "key", "+61400000000", transport=httpx.MockTransport(handler)
    )
    current = add_entry(db, shop, barber, queue_position=1)
    following = add_entry(db, shop, barber, queue_position=2, client_phone="+61412345678")

    r = set_status(client, current, "in_progress")
    assert r.status_code == 200
    assert r.json()["status"] == "in_progress"
    assert r.json()["notification"]["status"] == "failed"
    db.refresh(following)
    assert following.notification_sent_at is None


def test_requeue_puts_no_show_at_front(client, db, shop, barber):
    add_entry(db, shop, barber, queue_position=4)
    add_entry(db, shop, barber, queue_position=5)
    no_show = add_entry(db, shop, barber, status="no_show", queue_position=1)

    r = client.post(f"/queue/entries/{no_show.id}/requeue")
    assert r.status_code == 200
    assert r.json()["status"] == "waiting"
    assert r.json()["queue_position"] == 3


def test_requeue_into_empty_queue(client, db, shop, barber):
    no_show = add_entry(db, shop, barber, status="no_show", queue_position=7)

    r = client.post(f"/queue/entries/{no_show.id}/requeue")
    assert r.json()["queue_position"] == 1


def test_requeue_errors(client, db, shop, barber):
    r = client.post("/queue/entries/missing/requeue")
    assert r.status_code == 404

    waiting = add_entry(db, shop, barber)
    r = client.post(f"/queue/entries/{waiting.id}/requeue")
    assert r.status_code == 400

    unassigned = add_entry(db, shop, None, status="no_show")
    r = client.post(f"/queue/entries/{unassigned.id}/requeue")
    assert r.status_code == 400
    assert r.json() == {
        "error": "This client has no assigned staff member and cannot be re-queued."
    }
