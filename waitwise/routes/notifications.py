from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ..rate_limiter import notify_rate_limiter
from ..services.notification_service import NotificationService, get_notification_service

router = APIRouter(prefix="/notifications", tags=["Notifications"])


class NotifyCustomerRequest(BaseModel):
    entity_id: Optional[str] = None
    type: Optional[str] = None  # "queue" | "order"


@router.post("/notify-customer")
async def notify_customer(
    body: NotifyCustomerRequest,
    service: NotificationService = Depends(get_notification_service),
    _: None = Depends(notify_rate_limiter),
):
    """Text a customer that it's their turn / their order is ready (once per entity)"""
    return await service.notify_customer(body.entity_id, body.type)
