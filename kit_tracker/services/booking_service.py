from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional

from kit_tracker.errors import BookingConflictError, NotFoundError, ValidationError
from kit_tracker.models import STATUSES, Booking, BookingStatus, utcnow_iso
from kit_tracker.services.availability_service import AvailabilityService, parse_day
from kit_tracker.services.entity_store import EntityStore
from kit_tracker.services.hierarchy_service import _field, _norm_text

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BookingStats:
    total: int
    upcoming: int
    this_month: int
    items_booked: int


def _norm_status(value: Any) -> str:
    text = _norm_text(value)
    status = text.lower() if text is not None else None
    if status not in STATUSES:
        raise ValidationError("status must be one of requested, dispatched, packed, returned")
    return status


class BookingService:
    def __init__(
        self,
        store: EntityStore,
        availability: AvailabilityService,
        *,
        enforce_availability: bool = True,
    ) -> None:
        self.store = store
        self.availability = availability
        self.enforce_availability = enforce_availability

    # ---------------- lifecycle ----------------
    def add_booking(self, data: Mapping[str, Any]) -> str:
        date = _norm_text(_field(data, "date"))
        if date is None:
            raise ValidationError("date is required")
        if parse_day(date) is None or len(date) != 10:
            raise ValidationError("date must be an ISO date (YYYY-MM-DD)")

        name = _norm_text(_field(data, "name"))
        if name is None:
            raise ValidationError("name is required")

        raw_ids = _field(data, "equipment_ids") or []
        if isinstance(raw_ids, str):
            raise ValidationError("equipment_ids must be a list of ids")
        equipment_ids: list[str] = []
        for raw in raw_ids:
            equipment_id = _norm_text(raw)
            if equipment_id is not None and equipment_id not in equipment_ids:
                equipment_ids.append(equipment_id)
        if not equipment_ids:
            raise ValidationError("at least one equipment item is required")

        for equipment_id in equipment_ids:
            if not self.store.has_equipment(equipment_id):
                raise NotFoundError("equipment", equipment_id)

        if self.enforce_availability:
            clashing = self.availability.conflicts(equipment_ids, date)
            if clashing:
                raise BookingConflictError(date, clashing)

        # Status is never taken from the input; every booking starts as requested.
        booking = Booking(
            id=self.store.create_id(),
            date=date,
            equipment_ids=equipment_ids,
            name=name,
            notes=str(_field(data, "notes") or ""),
            status=BookingStatus.REQUESTED,
        )
        self.store.put_bookings(booking)
        logger.info("Booked %d item(s) for %s as %s (%s)", len(equipment_ids), date, booking.id, name)
        return booking.id

    def update_booking_status(self, booking_id: str, new_status: Any) -> Booking:
        status = _norm_status(new_status)
        booking = self.store.require_booking(booking_id)
        previous = booking.status
        booking.status = status
        booking.updated_at = utcnow_iso()
        self.store.put_bookings(booking)
        logger.info("Booking %s status %s -> %s", booking_id, previous, status)
        return booking

    def delete_booking(self, booking_id: str) -> None:
        self.store.require_booking(booking_id)
        self.store.remove_bookings(booking_id)
        logger.info("Deleted booking %s", booking_id)

    def purge_bookings_referencing(self, equipment_id: str) -> list[str]:
        """Drop every booking that lists ``equipment_id``, whole records only."""
        doomed = [b.id for b in self.store.list_bookings() if equipment_id in b.equipment_ids]
        if doomed:
            self.store.remove_bookings(*doomed)
            logger.info("Purged %d booking(s) referencing equipment %s", len(doomed), equipment_id)
        return doomed

    # ---------------- queries ----------------
    def equipment_names(self, booking: Booking) -> list[str]:
        names: list[str] = []
        for equipment_id in booking.equipment_ids:
            item = self.store.get_equipment(equipment_id)
            names.append(item.name if item is not None else "Unknown equipment")
        return names

    def list_bookings(self, *, status: Optional[str] = None, search: Optional[str] = None) -> list[Booking]:
        """Bookings newest day first, optionally filtered.

        ``search`` matches the booking name or any booked item's name,
        case-insensitively. ``status`` of None or "all" keeps every status.
        """
        wanted = None if status in (None, "", "all") else _norm_status(status)
        needle = (search or "").strip().lower()

        out: list[Booking] = []
        for booking in self.store.list_bookings():
            if wanted is not None and booking.status != wanted:
                continue
            if needle:
                haystack = " ".join([booking.name, *self.equipment_names(booking)]).lower()
                if needle not in haystack:
                    continue
            out.append(booking)

        out.sort(key=lambda b: parse_day(b.date) or dt.date.min, reverse=True)
        return out

    def bookings_for_equipment(self, equipment_id: str) -> list[Booking]:
        return [b for b in self.store.list_bookings() if equipment_id in b.equipment_ids]

    @staticmethod
    def group_by_month(bookings: Iterable[Booking]) -> dict[str, list[Booking]]:
        grouped: dict[str, list[Booking]] = {}
        for booking in bookings:
            day = parse_day(booking.date)
            label = day.strftime("%B %Y") if day is not None else "Unknown"
            grouped.setdefault(label, []).append(booking)
        return grouped

    def booking_stats(self, *, today: Optional[dt.date] = None) -> BookingStats:
        today = today or dt.date.today()
        bookings = self.store.list_bookings()
        upcoming = 0
        this_month = 0
        for booking in bookings:
            day = parse_day(booking.date)
            if day is None:
                continue
            if day >= today and booking.status != BookingStatus.RETURNED.value:
                upcoming += 1
            if (day.year, day.month) == (today.year, today.month):
                this_month += 1
        return BookingStats(
            total=len(bookings),
            upcoming=upcoming,
            this_month=this_month,
            items_booked=sum(len(b.equipment_ids) for b in bookings),
        )
