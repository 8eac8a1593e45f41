"""
Invoice model - local mirror of a payment provider's invoice/charge lifecycle
"""

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from .database import Base
from .models import generate_id
from .utils.dates import utcnow


class Invoice(Base):
    """Usage invoice billed to a shop"""

    __tablename__ = "invoices"

    id = Column(String(36), primary_key=True, default=generate_id)
    shop_id = Column(String(36), ForeignKey("shops.id"), nullable=False, index=True)

    # Provider references
    stripe_invoice_id = Column(String(255), nullable=True, index=True)
    stripe_charge_id = Column(String(255), nullable=True)
    charge_token = Column(String(255), nullable=True, index=True)  # Pin Payments charge

    # Billing period (first day of the month billed)
    month = Column(Date, nullable=True)

    # Amounts in the smallest currency unit
    amount_due = Column(Integer, nullable=False, default=0)
    amount_paid = Column(Integer, nullable=False, default=0)
    currency = Column(String(10), nullable=True)

    status = Column(String(50), nullable=False, default="failed")  # paid, failed, disputed, requires_action
    error_message = Column(Text, nullable=True)

    due_date = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, index=True)

    shop = relationship("Shop")
