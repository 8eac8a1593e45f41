"""Queue router - FastAPI endpoints for walk-in queue management"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...database import get_db
from ...rate_limiter import queue_join_rate_limiter
from ...services.notification_service import NotificationService, get_notification_service
from .schemas import JoinQueueRequest, UpdateStatusRequest
from .service import QueueService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/queue", tags=["Queue"])


def get_queue_service(
    db: Session = Depends(get_db),
    notifier: NotificationService = Depends(get_notification_service),
) -> QueueService:
    """Dependency injection for QueueService"""
    return QueueService(db, notifier)


@router.post("/entries", status_code=201)
async def join_queue(
    body: JoinQueueRequest,
    service: QueueService = Depends(get_queue_service),
    _: None = Depends(queue_join_rate_limiter),
):
    """Join a shop's queue"""
    return service.join_queue(body)


@router.post("/entries/{entry_id}/status")
async def update_queue_status(
    entry_id: str,
    body: UpdateStatusRequest,
    service: QueueService = Depends(get_queue_service),
):
    """Move a queue entry to waiting, in_progress, done or no_show"""
    return await service.update_status(entry_id, body)


@router.post("/entries/{entry_id}/requeue")
async def requeue_entry(entry_id: str, service: QueueService = Depends(get_queue_service)):
    """Re-queue a no-show client"""
    return service.requeue(entry_id)
