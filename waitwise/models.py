import uuid

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from .database import Base
from .utils.dates import utcnow


def generate_id():
    """Generate a UUID primary key"""
    return str(uuid.uuid4())


class Shop(Base):
    __tablename__ = "shops"

    id = Column(String(36), primary_key=True, default=generate_id)
    name = Column(String(255), nullable=False)
    address = Column(String(500), nullable=True)
    email = Column(String(255), nullable=True)
    opening_time = Column(String(8), nullable=True)  # "HH:MM"
    closing_time = Column(String(8), nullable=True)  # "HH:MM"

    # Stripe billing
    stripe_customer_id = Column(String(255), nullable=True, index=True)
    stripe_payment_method_id = Column(String(255), nullable=True)

    subscription_status = Column(String(50), nullable=True)  # trial, active, past_due, canceled
    account_balance = Column(Integer, default=0, nullable=False)  # smallest currency unit

    created_at = Column(DateTime, default=utcnow)

    barbers = relationship("Barber", back_populates="shop", cascade="all, delete-orphan")
    services = relationship("Service", back_populates="shop", cascade="all, delete-orphan")


class Barber(Base):
    __tablename__ = "barbers"

    id = Column(String(36), primary_key=True, default=generate_id)
    shop_id = Column(String(36), ForeignKey("shops.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    avatar_url = Column(String(500), nullable=True)
    is_working_today = Column(Boolean, default=True, nullable=False)
    is_on_break = Column(Boolean, default=False, nullable=False)
    break_end_time = Column(DateTime, nullable=True)

    shop = relationship("Shop", back_populates="barbers")


class Service(Base):
    __tablename__ = "services"

    id = Column(String(36), primary_key=True, default=generate_id)
    shop_id = Column(String(36), ForeignKey("shops.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    price = Column(Float, nullable=False, default=0)  # major units
    duration_minutes = Column(Integer, nullable=False, default=30)

    shop = relationship("Shop", back_populates="services")


class QueueEntryService(Base):
    """Services requested for a queue entry"""

    __tablename__ = "queue_entry_services"

    queue_entry_id = Column(String(36), ForeignKey("queue_entries.id"), primary_key=True)
    service_id = Column(String(36), ForeignKey("services.id"), primary_key=True)


class QueueEntry(Base):
    __tablename__ = "queue_entries"

    id = Column(String(36), primary_key=True, default=generate_id)
    shop_id = Column(String(36), ForeignKey("shops.id"), nullable=False, index=True)
    barber_id = Column(String(36), ForeignKey("barbers.id"), nullable=True, index=True)
    appointment_id = Column(String(36), ForeignKey("appointments.id"), nullable=True)
    client_name = Column(String(255), nullable=True)
    client_phone = Column(String(50), nullable=True)
    status = Column(String(20), default="waiting", nullable=False)  # waiting, in_progress, done, no_show
    queue_position = Column(Integer, nullable=True)
    # Set once the "you're next" SMS went out; guards against duplicate sends
    notification_sent_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, index=True)

    shop = relationship("Shop")
    barber = relationship("Barber")
    appointment = relationship("Appointment")
    services = relationship("Service", secondary="queue_entry_services")


class BillableEvent(Base):
    __tablename__ = "billable_events"

    id = Column(String(36), primary_key=True, default=generate_id)
    shop_id = Column(String(36), ForeignKey("shops.id"), nullable=False, index=True)
    queue_entry_id = Column(String(36), ForeignKey("queue_entries.id"), nullable=False)
    is_billable = Column(Boolean, default=True, nullable=False)
    invoice_id = Column(String(36), ForeignKey("invoices.id"), nullable=True)  # null until billed
    created_at = Column(DateTime, default=utcnow, index=True)


class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(String(36), primary_key=True, default=generate_id)
    shop_id = Column(String(36), ForeignKey("shops.id"), nullable=False, index=True)
    barber_id = Column(String(36), ForeignKey("barbers.id"), nullable=True)
    client_name = Column(String(255), nullable=True)
    client_phone = Column(String(50), nullable=True)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    # booked, checked_in, in_progress, completed, cancelled, no_show
    status = Column(String(20), default="booked", nullable=False)
    created_at = Column(DateTime, default=utcnow)


class Order(Base):
    """Food truck pickup order"""

    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=generate_id)
    shop_id = Column(String(36), ForeignKey("shops.id"), nullable=False, index=True)
    client_name = Column(String(255), nullable=True)
    client_phone = Column(String(50), nullable=True)
    status = Column(String(20), default="pending", nullable=False)
    notes = Column(Text, nullable=True)
    order_ready_notified_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    shop = relationship("Shop")


class PricingTier(Base):
    __tablename__ = "pricing_tiers"

    id = Column(String(36), primary_key=True, default=generate_id)
    name = Column(String(100), unique=True, nullable=False)
    price_per_event = Column(Float, nullable=False)  # major units
    currency = Column(String(10), nullable=False, default="AUD")
