"""Shop service - Business logic for shop listing and opening hours"""

import logging
from datetime import datetime
from typing import Optional

from dateutil import tz
from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...config import SHOP_TIMEZONE
from ...models import QueueEntry, Shop
from ...utils.dates import parse_clock_time
from .repository import ShopRepository

logger = logging.getLogger(__name__)


def shop_now(now: Optional[datetime] = None) -> datetime:
    """Current time in the shops' timezone"""
    shop_tz = tz.gettz(SHOP_TIMEZONE)
    if now is None:
        return datetime.now(shop_tz)
    if now.tzinfo is None:
        now = now.replace(tzinfo=tz.UTC)
    return now.astimezone(shop_tz)


def is_shop_open(shop: Shop, now: Optional[datetime] = None) -> bool:
    """Open when opening <= now <= closing today; closed if either time is missing"""
    opening = parse_clock_time(shop.opening_time)
    closing = parse_clock_time(shop.closing_time)
    if opening is None or closing is None:
        return False

    current = shop_now(now).time().replace(tzinfo=None)
    return opening <= current <= closing


def serialize_shop(shop: Shop, now: Optional[datetime] = None) -> dict:
    return {
        "id": shop.id,
        "name": shop.name,
        "address": shop.address,
        "opening_time": shop.opening_time,
        "closing_time": shop.closing_time,
        "is_open": is_shop_open(shop, now),
    }


class ShopService:
    """Service layer for shop business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = ShopRepository()

    def list_shops(self, search: Optional[str] = None, now: Optional[datetime] = None) -> list[dict]:
        shops = self.repo.list_shops(self.db, search)
        logger.info(f"🏪 Listing {len(shops)} shops (search={search!r})")
        return [serialize_shop(shop, now) for shop in shops]

    def get_shop(self, shop_id: str) -> Shop:
        shop = self.repo.get_shop(self.db, shop_id)
        if not shop:
            raise HTTPException(status_code=404, detail="Shop not found")
        return shop

    def get_shop_details(self, shop_id: str) -> dict:
        return serialize_shop(self.get_shop(shop_id))

    def get_queue(self, shop_id: str) -> list[QueueEntry]:
        """Waiting and in-progress entries for a shop"""
        self.get_shop(shop_id)
        return self.repo.get_active_queue(self.db, shop_id)
