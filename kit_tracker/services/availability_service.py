from __future__ import annotations

import datetime as dt
from typing import Iterable, Optional

from kit_tracker.models import ACTIVE_STATUSES, Booking, Equipment
from kit_tracker.services.entity_store import EntityStore


def parse_day(value: str) -> Optional[dt.date]:
    try:
        return dt.date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        return None


class AvailabilityService:
    """Answers "is this item committed on this day?".

    Dates are compared as exact strings; a booking covers one day only.
    Returned bookings never block anything.
    """

    def __init__(self, store: EntityStore) -> None:
        self.store = store

    def _active_bookings(self, date: Optional[str] = None) -> list[Booking]:
        return [
            b
            for b in self.store.list_bookings()
            if b.status in ACTIVE_STATUSES and (date is None or b.date == date)
        ]

    def is_booked(self, equipment_id: str, date: str) -> bool:
        return any(equipment_id in b.equipment_ids for b in self._active_bookings(date))

    def booked_equipment_ids(self, date: str) -> set[str]:
        out: set[str] = set()
        for booking in self._active_bookings(date):
            out.update(booking.equipment_ids)
        return out

    def conflicts(self, equipment_ids: Iterable[str], date: str) -> list[str]:
        booked = self.booked_equipment_ids(date)
        out: list[str] = []
        for equipment_id in equipment_ids:
            if equipment_id in booked and equipment_id not in out:
                out.append(equipment_id)
        return out

    def available_equipment(self, date: str) -> list[Equipment]:
        booked = self.booked_equipment_ids(date)
        return [item for item in self.store.list_equipment() if item.id not in booked]

    def availability_status(self, equipment_id: str) -> str:
        """IN_USE when any active booking holds the item, on any day."""
        if any(equipment_id in b.equipment_ids for b in self._active_bookings()):
            return "IN_USE"
        return "AVAILABLE"

    def next_available_date(self, equipment_id: str, *, today: Optional[dt.date] = None) -> Optional[str]:
        """Day after the last future active booking, or None if free now."""
        today = today or dt.date.today()
        days = [
            day
            for day in (parse_day(b.date) for b in self._active_bookings() if equipment_id in b.equipment_ids)
            if day is not None and day > today
        ]
        if not days:
            return None
        return (max(days) + dt.timedelta(days=1)).isoformat()
