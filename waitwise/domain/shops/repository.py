"""Shop repository - Database operations for shops, staff, services and bookings"""

from datetime import datetime
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session, selectinload

from ...models import Appointment, Barber, QueueEntry, Service, Shop

ACTIVE_APPOINTMENT_STATUSES = ("booked", "checked_in", "in_progress")
ACTIVE_QUEUE_STATUSES = ("waiting", "in_progress")


class ShopRepository:
    """Repository for shop database operations"""

    @staticmethod
    def list_shops(db: Session, search: Optional[str] = None) -> list[Shop]:
        """All shops ordered by name, optionally filtered on name/address"""
        query = db.query(Shop)
        if search:
            pattern = f"%{search.strip()}%"
            query = query.filter(or_(Shop.name.ilike(pattern), Shop.address.ilike(pattern)))
        return query.order_by(Shop.name).all()

    @staticmethod
    def get_shop(db: Session, shop_id: str) -> Optional[Shop]:
        return db.query(Shop).filter(Shop.id == shop_id).first()

    @staticmethod
    def get_working_barbers(
        db: Session, shop_id: str, barber_id: Optional[str] = None
    ) -> list[Barber]:
        query = db.query(Barber).filter(Barber.shop_id == shop_id, Barber.is_working_today.is_(True))
        if barber_id:
            query = query.filter(Barber.id == barber_id)
        return query.all()

    @staticmethod
    def get_services_by_ids(db: Session, service_ids: list[str]) -> list[Service]:
        if not service_ids:
            return []
        return db.query(Service).filter(Service.id.in_(service_ids)).all()

    @staticmethod
    def get_active_appointments(
        db: Session, shop_id: str, start: datetime, end: datetime
    ) -> list[Appointment]:
        """Booked/checked-in/in-progress appointments starting in [start, end)"""
        return (
            db.query(Appointment)
            .filter(
                Appointment.shop_id == shop_id,
                Appointment.status.in_(ACTIVE_APPOINTMENT_STATUSES),
                Appointment.start_time >= start,
                Appointment.start_time < end,
            )
            .order_by(Appointment.start_time)
            .all()
        )

    @staticmethod
    def get_active_queue(
        db: Session,
        shop_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[QueueEntry]:
        """Waiting and in-progress entries, optionally limited to those created in [start, end)"""
        query = (
            db.query(QueueEntry)
            .options(selectinload(QueueEntry.services))
            .filter(QueueEntry.shop_id == shop_id, QueueEntry.status.in_(ACTIVE_QUEUE_STATUSES))
        )
        if start is not None:
            query = query.filter(QueueEntry.created_at >= start)
        if end is not None:
            query = query.filter(QueueEntry.created_at < end)
        return query.order_by(QueueEntry.queue_position, QueueEntry.created_at).all()
