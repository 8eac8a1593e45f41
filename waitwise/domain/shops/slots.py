"""
Available booking slots

For each working barber, walk the shop's opening hours in fixed steps and
offer every start time whose service window does not overlap an existing
appointment. The earliest start is pushed back by the current time (today
only), the barber's break, and the estimated time to clear their queue.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from dateutil import parser as date_parser
from dateutil import tz
from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...config import SHOP_TIMEZONE
from ...models import Appointment, Barber, QueueEntry
from ...utils.dates import parse_clock_time
from .repository import ShopRepository
from .service import shop_now

logger = logging.getLogger(__name__)

BUFFER_MINUTES = 10  # between appointments
SLOT_INTERVAL_MINUTES = 30
QUEUE_CLIENT_BUFFER_MINUTES = 5  # changeover per client already waiting


def round_up_to_interval(value: datetime, interval: int = SLOT_INTERVAL_MINUTES) -> datetime:
    """Round the minute up to the next multiple of interval and drop seconds"""
    remainder = value.minute % interval
    if remainder > 0:
        value = value + timedelta(minutes=interval - remainder)
    return value.replace(second=0, microsecond=0)


def _utc_to_local(value: datetime, shop_tz) -> datetime:
    if value.tzinfo is None:
        value = value.replace(tzinfo=tz.UTC)
    return value.astimezone(shop_tz)


def _local_to_naive_utc(value: datetime) -> datetime:
    return value.astimezone(tz.UTC).replace(tzinfo=None)


def _parse_target_date(date_string: str, shop_tz) -> datetime:
    try:
        parsed = date_parser.isoparse(date_string)
    except (ValueError, TypeError):
        raise HTTPException(status_code=400, detail=f"Invalid date_string: {date_string}") from None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=shop_tz)
    else:
        parsed = parsed.astimezone(shop_tz)
    return parsed.replace(hour=0, minute=0, second=0, microsecond=0)


def _queue_minutes(entries: list[QueueEntry]) -> int:
    if not entries:
        return 0
    service_minutes = sum(
        service.duration_minutes or 0 for entry in entries for service in entry.services
    )
    return service_minutes + len(entries) * QUEUE_CLIENT_BUFFER_MINUTES


class SlotService:
    def __init__(self, db: Session):
        self.db = db
        self.repo = ShopRepository()

    def get_available_slots(
        self,
        shop_id: Optional[str],
        services_ids: Optional[list[str]],
        date_string: Optional[str],
        barber_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> dict:
        if not shop_id or not date_string or not services_ids:
            raise HTTPException(
                status_code=400,
                detail="Missing required parameters: shop_id, services_ids, date_string",
            )

        shop_tz = tz.gettz(SHOP_TIMEZONE)
        day_start = _parse_target_date(date_string, shop_tz)
        day_end = day_start + timedelta(days=1)

        shop = self.repo.get_shop(self.db, shop_id)
        if not shop:
            raise HTTPException(status_code=404, detail="Shop not found")

        opening = parse_clock_time(shop.opening_time)
        closing = parse_clock_time(shop.closing_time)
        if opening is None or closing is None:
            logger.info(f"⏭️ Shop {shop_id} has no opening hours set, no slots offered")
            return {"available_slots": []}

        day_open = day_start.replace(hour=opening.hour, minute=opening.minute)
        day_close = day_start.replace(hour=closing.hour, minute=closing.minute)
        # Closing past midnight (e.g. 23:00 to 02:00)
        if day_close <= day_open:
            day_close += timedelta(days=1)

        barbers = self.repo.get_working_barbers(self.db, shop_id, barber_id)
        if not barbers:
            return {"available_slots": []}

        services = self.repo.get_services_by_ids(self.db, services_ids)
        if len(services) != len(services_ids):
            raise HTTPException(status_code=400, detail="Couldn't fetch service durations")

        slot_minutes = sum(service.duration_minutes for service in services) + BUFFER_MINUTES

        utc_start, utc_end = _local_to_naive_utc(day_start), _local_to_naive_utc(day_end)
        appointments = self.repo.get_active_appointments(self.db, shop_id, utc_start, utc_end)
        queue = self.repo.get_active_queue(self.db, shop_id, utc_start, utc_end)

        current = shop_now(now)
        is_today = day_start.date() == current.date()

        slots = []
        for barber in barbers:
            earliest = self._earliest_start(
                barber,
                day_open,
                current,
                is_today,
                [entry for entry in queue if entry.barber_id == barber.id],
                shop_tz,
            )
            slots.extend(
                self._barber_slots(
                    barber,
                    earliest,
                    day_close,
                    slot_minutes,
                    [appt for appt in appointments if appt.barber_id == barber.id],
                    shop_tz,
                )
            )

        slots.sort(key=lambda slot: (slot["time"], slot["barber_name"]))
        logger.info(f"🗓️ {len(slots)} slots for shop {shop_id} on {day_start.date()}")
        return {"available_slots": slots}

    def _earliest_start(
        self,
        barber: Barber,
        day_open: datetime,
        now: datetime,
        is_today: bool,
        barber_queue: list[QueueEntry],
        shop_tz,
    ) -> datetime:
        earliest = day_open
        if is_today and earliest < now:
            earliest = now

        if barber.is_on_break and barber.break_end_time:
            break_end = _utc_to_local(barber.break_end_time, shop_tz)
            if break_end > earliest:
                earliest = break_end

        queue_finish = now + timedelta(minutes=_queue_minutes(barber_queue))
        if is_today and queue_finish > earliest:
            earliest = queue_finish

        return round_up_to_interval(earliest)

    def _barber_slots(
        self,
        barber: Barber,
        start: datetime,
        day_close: datetime,
        slot_minutes: int,
        appointments: list[Appointment],
        shop_tz,
    ) -> list[dict]:
        booked = sorted(
            (
                (_utc_to_local(appt.start_time, shop_tz), _utc_to_local(appt.end_time, shop_tz))
                for appt in appointments
            ),
            key=lambda window: window[0],
        )
        slot_length = timedelta(minutes=slot_minutes)
        step = timedelta(minutes=SLOT_INTERVAL_MINUTES)

        slots = []
        current = start
        while current + slot_length <= day_close:
            slot_end = current + slot_length
            conflict = next(
                ((appt_start, appt_end) for appt_start, appt_end in booked
                 if current < appt_end and slot_end > appt_start),
                None,
            )
            if conflict is None:
                slots.append(
                    {
                        "barber_id": barber.id,
                        "barber_name": barber.name,
                        "time": current.strftime("%H:%M"),
                    }
                )
                current += step
                continue

            after_conflict = round_up_to_interval(conflict[1] + timedelta(minutes=BUFFER_MINUTES))
            current = after_conflict if after_conflict > current else current + step

        return slots
