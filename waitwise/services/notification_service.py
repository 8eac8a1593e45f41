"""
Customer notification service
One SMS per queue entry ("you're next") or order ("ready for pickup"),
guarded by the entity's notification timestamp
"""

import logging
import re
from typing import Optional

from fastapi import Depends, HTTPException
from sqlalchemy.orm import Session, joinedload

from ..database import get_db
from ..models import Order, QueueEntry
from ..utils.dates import utcnow
from .clicksend_service import (
    SmsConfigurationError,
    SmsDeliveryError,
    SmsSender,
    get_sms_sender,
)

logger = logging.getLogger(__name__)

PHONE_PATTERN = re.compile(r"^\+?\d{8,14}$")

QUEUE_TEMPLATE = (
    "Hi from {shop}! You are now first in the queue for {barber}. "
    "Please make your way to the shop. Do not reply."
)
ORDER_TEMPLATE = (
    "Hi from {shop}! Your order is ready for pickup. Please head over to collect it. Do not reply."
)


class EntityNotFoundError(Exception):
    pass


def normalize_phone(phone: Optional[str]) -> Optional[str]:
    """Strip whitespace and return the number if it looks dialable, else None"""
    if not phone:
        return None
    compact = re.sub(r"\s", "", phone)
    return compact if PHONE_PATTERN.match(compact) else None


class NotificationService:
    def __init__(self, db: Session, sender: SmsSender):
        self.db = db
        self.sender = sender

    def _load_queue_entry(self, entity_id: str) -> tuple:
        entry = (
            self.db.query(QueueEntry)
            .options(joinedload(QueueEntry.barber), joinedload(QueueEntry.shop))
            .filter(QueueEntry.id == entity_id)
            .first()
        )
        if not entry:
            raise EntityNotFoundError("Queue entry not found.")

        barber_name = entry.barber.name if entry.barber and entry.barber.name else "the barber"
        shop_name = entry.shop.name if entry.shop and entry.shop.name else "the shop"
        body = QUEUE_TEMPLATE.format(shop=shop_name, barber=barber_name)
        return entry, entry.notification_sent_at, body, "notification_sent_at"

    def _load_order(self, entity_id: str) -> tuple:
        order = (
            self.db.query(Order)
            .options(joinedload(Order.shop))
            .filter(Order.id == entity_id)
            .first()
        )
        if not order:
            raise EntityNotFoundError("Order not found.")

        shop_name = order.shop.name if order.shop and order.shop.name else "the food truck"
        return order, order.order_ready_notified_at, ORDER_TEMPLATE.format(shop=shop_name), "order_ready_notified_at"

    async def send_notification(self, entity_id: str, notification_type: str) -> dict:
        """
        Send the notification for a queue entry or order at most once.

        Raises:
            ValueError: unknown notification type
            EntityNotFoundError: no such queue entry / order
            SmsConfigurationError, SmsDeliveryError: provider problems (marker left unset)
        """
        if notification_type == "queue":
            entity, sent_at, body, marker = self._load_queue_entry(entity_id)
        elif notification_type == "order":
            entity, sent_at, body, marker = self._load_order(entity_id)
        else:
            raise ValueError("Invalid notification type specified.")

        if sent_at:
            logger.info(f"ℹ️ Notification already sent for {notification_type} ID {entity_id}. Skipping.")
            return {"message": f"Notification already sent for {notification_type} ID {entity_id}."}

        phone = normalize_phone(entity.client_phone)
        if not phone:
            logger.info(f"⏭️ Skipping SMS for {notification_type} ID {entity_id}: phone missing or invalid")
            return {
                "message": f"SMS skipped for {notification_type} ID {entity_id}: Phone number not provided or invalid."
            }

        await self.sender.send(phone, body)

        setattr(entity, marker, utcnow())
        self.db.commit()
        logger.info(f"✅ SMS sent for {notification_type} ID {entity_id}")
        return {"success": True, "message": f"SMS sent to {phone} for {notification_type} ID {entity_id}"}

    async def notify_customer(self, entity_id: Optional[str], notification_type: Optional[str]) -> dict:
        """HTTP-facing wrapper that maps failures to status codes"""
        if not entity_id or not notification_type:
            raise HTTPException(status_code=400, detail="Missing entity_id or type in request body")

        try:
            return await self.send_notification(entity_id, notification_type)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except EntityNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))
        except SmsConfigurationError as e:
            logger.error(f"❌ {e}")
            raise HTTPException(status_code=500, detail=str(e))
        except SmsDeliveryError as e:
            raise HTTPException(status_code=400, detail=str(e))


def get_notification_service(
    db: Session = Depends(get_db), sender: SmsSender = Depends(get_sms_sender)
) -> NotificationService:
    """Dependency injection for NotificationService"""
    return NotificationService(db, sender)
