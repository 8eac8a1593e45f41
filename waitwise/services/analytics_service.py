"""Usage analytics - revenue, customer and no-show statistics for a shop"""

import logging
from collections import defaultdict
from datetime import datetime

from dateutil import parser as date_parser
from fastapi import Depends, HTTPException
from sqlalchemy.orm import Session, joinedload, selectinload

from ..database import get_db
from ..models import BillableEvent, QueueEntry
from ..utils.dates import to_naive_utc

logger = logging.getLogger(__name__)

EMPTY_ANALYTICS = {
    "totalRevenue": 0,
    "totalCustomers": 0,
    "noShowRate": 0,
    "barberRevenueData": [],
    "barberClientData": [],
}


def _parse_bound(value: str, field: str) -> datetime:
    try:
        return to_naive_utc(date_parser.isoparse(value))
    except (ValueError, TypeError):
        raise HTTPException(status_code=400, detail=f"Invalid {field}: {value}") from None


def _entry_revenue(entry: QueueEntry) -> float:
    return sum(service.price or 0 for service in entry.services)


class AnalyticsService:
    def __init__(self, db: Session):
        self.db = db

    def get_analytics(self, shop_id: str, start_date: str, end_date: str) -> dict:
        if not shop_id or not start_date or not end_date:
            raise HTTPException(
                status_code=400,
                detail="Missing required parameters: shop_id, startDate, or endDate",
            )

        start = _parse_bound(start_date, "startDate")
        end = _parse_bound(end_date, "endDate")

        done_entry_ids = [
            row.queue_entry_id
            for row in self.db.query(BillableEvent.queue_entry_id).filter(
                BillableEvent.shop_id == shop_id,
                BillableEvent.created_at >= start,
                BillableEvent.created_at <= end,
            )
        ]
        if not done_entry_ids:
            return dict(EMPTY_ANALYTICS, barberRevenueData=[], barberClientData=[])

        done_entries = (
            self.db.query(QueueEntry)
            .options(joinedload(QueueEntry.barber), selectinload(QueueEntry.services))
            .filter(QueueEntry.id.in_(done_entry_ids))
            .all()
        )
        no_show_count = (
            self.db.query(QueueEntry)
            .filter(
                QueueEntry.shop_id == shop_id,
                QueueEntry.status == "no_show",
                QueueEntry.created_at >= start,
                QueueEntry.created_at <= end,
            )
            .count()
        )

        total_customers = len(done_entries)
        total_revenue = 0.0
        barber_revenue: dict[str, float] = defaultdict(float)
        barber_clients: dict[str, int] = defaultdict(int)

        for entry in done_entries:
            revenue = _entry_revenue(entry)
            total_revenue += revenue
            if entry.barber and entry.barber.name:
                barber_revenue[entry.barber.name] += revenue
                barber_clients[entry.barber.name] += 1

        relevant = total_customers + no_show_count
        no_show_rate = (no_show_count / relevant) * 100 if relevant > 0 else 0

        logger.info(
            f"📊 Analytics for shop {shop_id}: {total_customers} customers, {no_show_count} no-shows"
        )
        return {
            "totalRevenue": total_revenue,
            "totalCustomers": total_customers,
            "noShowRate": no_show_rate,
            "barberRevenueData": [
                {"name": name, "revenue": revenue} for name, revenue in barber_revenue.items()
            ],
            "barberClientData": [
                {"name": name, "clients": clients} for name, clients in barber_clients.items()
            ],
        }


def get_analytics_service(db: Session = Depends(get_db)) -> AnalyticsService:
    return AnalyticsService(db)
