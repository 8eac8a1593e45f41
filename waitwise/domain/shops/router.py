"""Shops router - FastAPI endpoints for shop discovery and booking slots"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...database import get_db
from .schemas import AvailableSlotsRequest, AvailableSlotsResponse, QueueEntryResponse, ShopResponse
from .service import ShopService
from .slots import SlotService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/shops", tags=["Shops"])


def get_shop_service(db: Session = Depends(get_db)) -> ShopService:
    """Dependency injection for ShopService"""
    return ShopService(db)


def get_slot_service(db: Session = Depends(get_db)) -> SlotService:
    """Dependency injection for SlotService"""
    return SlotService(db)


@router.get("", response_model=list[ShopResponse])
async def list_shops(
    search: Optional[str] = None,
    service: ShopService = Depends(get_shop_service),
):
    """List shops with their open/closed state"""
    return service.list_shops(search)


@router.get("/{shop_id}", response_model=ShopResponse)
async def get_shop(shop_id: str, service: ShopService = Depends(get_shop_service)):
    """Get a specific shop"""
    return service.get_shop_details(shop_id)


@router.get("/{shop_id}/queue", response_model=list[QueueEntryResponse])
async def get_shop_queue(shop_id: str, service: ShopService = Depends(get_shop_service)):
    """Waiting and in-progress queue entries"""
    return service.get_queue(shop_id)


@router.post("/{shop_id}/available-slots", response_model=AvailableSlotsResponse)
async def get_available_slots(
    shop_id: str,
    body: AvailableSlotsRequest,
    service: SlotService = Depends(get_slot_service),
):
    """Bookable start times for the requested services on a given day"""
    return service.get_available_slots(shop_id, body.services_ids, body.date_string, body.barber_id)
