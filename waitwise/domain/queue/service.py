"""Queue service - Business logic for walk-in queue management"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import QueueEntry
from ...services.clicksend_service import SmsConfigurationError, SmsDeliveryError
from ...services.notification_service import NotificationService
from ..shops.service import is_shop_open
from ..shops.repository import ShopRepository
from .repository import QueueRepository
from .schemas import JoinQueueRequest, UpdateStatusRequest

logger = logging.getLogger(__name__)

# Queue status -> status of the appointment the entry was checked in from
APPOINTMENT_STATUS_FOR = {"done": "completed", "no_show": "no_show"}


def serialize_entry(entry: QueueEntry) -> dict:
    return {
        "id": entry.id,
        "shop_id": entry.shop_id,
        "barber_id": entry.barber_id,
        "client_name": entry.client_name,
        "status": entry.status,
        "queue_position": entry.queue_position,
        "service_ids": [service.id for service in entry.services],
    }


class QueueService:
    """Service layer for queue business logic"""

    def __init__(self, db: Session, notifier: NotificationService):
        self.db = db
        self.notifier = notifier
        self.repo = QueueRepository()
        self.shop_repo = ShopRepository()

    def join_queue(self, request: JoinQueueRequest, now: Optional[datetime] = None) -> dict:
        """Add a walk-in to the back of the queue for their barber (or the shop)"""
        shop = self.shop_repo.get_shop(self.db, request.shop_id)
        if not shop:
            raise HTTPException(status_code=404, detail="Shop not found")

        if not is_shop_open(shop, now):
            raise HTTPException(status_code=400, detail="Shop is currently closed")

        if request.barber_id and not self.repo.get_barber(self.db, shop.id, request.barber_id):
            raise HTTPException(status_code=404, detail="Barber not found")

        service_ids = list(dict.fromkeys(request.service_ids))
        services = self.repo.get_shop_services(self.db, shop.id, service_ids)
        if len(services) != len(service_ids):
            raise HTTPException(status_code=400, detail="One or more services not found")

        position = self.repo.get_last_waiting_position(self.db, shop.id, request.barber_id) + 1
        entry = self.repo.create_entry(
            self.db,
            services,
            shop_id=shop.id,
            barber_id=request.barber_id,
            client_name=request.client_name,
            client_phone=request.client_phone,
            status="waiting",
            queue_position=position,
        )
        logger.info(f"✅ {entry.client_name} joined queue at shop {shop.id} in position {position}")
        return serialize_entry(entry)

    async def update_status(self, entry_id: str, request: UpdateStatusRequest) -> dict:
        entry = self.repo.get_entry(self.db, entry_id)
        if not entry:
            raise HTTPException(status_code=404, detail="Queue entry not found")

        # The billable event is written before the status so a completed cut is never unbilled
        if request.status == "done":
            self.repo.create_billable_event(self.db, entry.shop_id, entry.id)
            logger.info(f"💰 Billable event recorded for queue entry {entry.id}")

        entry = self.repo.update_entry(self.db, entry, status=request.status)
        logger.info(f"🔄 Queue entry {entry.id} -> {request.status}")

        if entry.appointment_id and request.status in APPOINTMENT_STATUS_FOR:
            self.repo.update_appointment_status(
                self.db, entry.appointment_id, APPOINTMENT_STATUS_FOR[request.status]
            )

        result = serialize_entry(entry)
        result["notification"] = None
        if request.status == "in_progress" and entry.barber_id:
            result["notification"] = await self._notify_next(entry, request.sms_paused)
        return result

    async def _notify_next(self, entry: QueueEntry, sms_paused: bool) -> Optional[dict]:
        """Text the first waiting client for the same barber"""
        next_entry = self.repo.get_first_waiting(self.db, entry.shop_id, entry.barber_id)
        if not next_entry:
            return None

        if next_entry.notification_sent_at:
            logger.info(f"ℹ️ Notification for client {next_entry.id} already sent. Skipping re-send.")
            return {"entry_id": next_entry.id, "status": "already_sent"}

        if sms_paused:
            logger.info(f"⏸️ SMS paused: would have notified {next_entry.id}")
            return {"entry_id": next_entry.id, "status": "paused"}

        try:
            outcome = await self.notifier.send_notification(next_entry.id, "queue")
        except (SmsDeliveryError, SmsConfigurationError) as e:
            # The status change stands even when the text does not go out
            logger.error(f"❌ Failed to notify {next_entry.id}: {e}")
            return {"entry_id": next_entry.id, "status": "failed", "error": str(e)}

        status = "sent" if outcome.get("success") else "skipped"
        return {"entry_id": next_entry.id, "status": status, "message": outcome.get("message")}

    def requeue(self, entry_id: str) -> dict:
        """Put a no-show back at the front of their barber's queue"""
        entry = self.repo.get_entry(self.db, entry_id)
        if not entry:
            raise HTTPException(status_code=404, detail="Queue entry not found")
        if entry.status != "no_show":
            raise HTTPException(status_code=400, detail="Only no-show entries can be re-queued")
        if not entry.barber_id:
            raise HTTPException(
                status_code=400,
                detail="This client has no assigned staff member and cannot be re-queued.",
            )

        first = self.repo.get_first_waiting(self.db, entry.shop_id, entry.barber_id)
        position = (first.queue_position or 1) - 1 if first else 1

        entry = self.repo.update_entry(self.db, entry, status="waiting", queue_position=position)
        logger.info(f"↩️ Queue entry {entry.id} re-queued at position {position}")
        return serialize_entry(entry)
