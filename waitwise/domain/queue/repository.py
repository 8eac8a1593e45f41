"""Queue repository - Database operations for queue entries"""

from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ...models import Appointment, Barber, BillableEvent, QueueEntry, Service


class QueueRepository:
    """Repository for queue database operations"""

    @staticmethod
    def get_entry(db: Session, entry_id: str) -> Optional[QueueEntry]:
        return db.query(QueueEntry).filter(QueueEntry.id == entry_id).first()

    @staticmethod
    def _waiting(db: Session, shop_id: str, barber_id: Optional[str]):
        query = db.query(QueueEntry).filter(
            QueueEntry.shop_id == shop_id, QueueEntry.status == "waiting"
        )
        if barber_id:
            query = query.filter(QueueEntry.barber_id == barber_id)
        return query

    @staticmethod
    def get_last_waiting_position(db: Session, shop_id: str, barber_id: Optional[str]) -> int:
        """Highest waiting position for the barber (or whole shop), 0 when nobody waits"""
        query = QueueRepository._waiting(db, shop_id, barber_id)
        return query.with_entities(func.max(QueueEntry.queue_position)).scalar() or 0

    @staticmethod
    def get_first_waiting(db: Session, shop_id: str, barber_id: Optional[str]) -> Optional[QueueEntry]:
        return (
            QueueRepository._waiting(db, shop_id, barber_id)
            .order_by(QueueEntry.queue_position.asc())
            .first()
        )

    @staticmethod
    def get_barber(db: Session, shop_id: str, barber_id: str) -> Optional[Barber]:
        return db.query(Barber).filter(Barber.id == barber_id, Barber.shop_id == shop_id).first()

    @staticmethod
    def get_shop_services(db: Session, shop_id: str, service_ids: list[str]) -> list[Service]:
        return (
            db.query(Service)
            .filter(Service.shop_id == shop_id, Service.id.in_(service_ids))
            .all()
        )

    @staticmethod
    def create_entry(db: Session, services: list[Service], **entry_data) -> QueueEntry:
        entry = QueueEntry(**entry_data)
        entry.services = services
        db.add(entry)
        db.commit()
        db.refresh(entry)
        return entry

    @staticmethod
    def update_entry(db: Session, entry: QueueEntry, **updates) -> QueueEntry:
        for key, value in updates.items():
            setattr(entry, key, value)
        db.commit()
        db.refresh(entry)
        return entry

    @staticmethod
    def create_billable_event(db: Session, shop_id: str, queue_entry_id: str) -> BillableEvent:
        event = BillableEvent(shop_id=shop_id, queue_entry_id=queue_entry_id)
        db.add(event)
        db.commit()
        return event

    @staticmethod
    def update_appointment_status(db: Session, appointment_id: str, status: str) -> Optional[Appointment]:
        appointment = db.query(Appointment).filter(Appointment.id == appointment_id).first()
        if appointment:
            appointment.status = status
            db.commit()
        return appointment
