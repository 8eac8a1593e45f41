"""Shop domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class ShopResponse(BaseModel):
    """Public view of a shop"""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    address: Optional[str] = None
    opening_time: Optional[str] = None
    closing_time: Optional[str] = None
    is_open: bool = False


class ServiceSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    price: float
    duration_minutes: int


class QueueEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    barber_id: Optional[str] = None
    client_name: Optional[str] = None
    status: str
    queue_position: Optional[int] = None
    created_at: Optional[datetime] = None
    services: list[ServiceSummary] = []


class AvailableSlotsRequest(BaseModel):
    """Slot search; date_string is a calendar date (or datetime) in shop time"""

    services_ids: Optional[list[str]] = None
    date_string: Optional[str] = None
    barber_id: Optional[str] = None


class AvailableSlot(BaseModel):
    barber_id: str
    barber_name: str
    time: str  # "HH:MM"


class AvailableSlotsResponse(BaseModel):
    available_slots: list[AvailableSlot]
