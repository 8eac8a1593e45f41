"""Queue domain schemas - Pydantic models for validation"""

from typing import Optional

from pydantic import BaseModel, field_validator

QUEUE_STATUSES = ("waiting", "in_progress", "done", "no_show")


class JoinQueueRequest(BaseModel):
    """Schema for a walk-in joining a shop's queue"""

    shop_id: str
    barber_id: Optional[str] = None
    client_name: str
    client_phone: Optional[str] = None
    service_ids: list[str]

    @field_validator("client_name")
    @classmethod
    def validate_client_name(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("client_name is required")
        return v.strip()

    @field_validator("service_ids")
    @classmethod
    def validate_service_ids(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("at least one service must be selected")
        return v


class UpdateStatusRequest(BaseModel):
    status: str
    # Dashboard toggle: when set, moving a client in_progress does not text the next one
    sms_paused: bool = False

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: str) -> str:
        if v not in QUEUE_STATUSES:
            raise ValueError(f"status must be one of: {', '.join(QUEUE_STATUSES)}")
        return v
