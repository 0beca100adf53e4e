from __future__ import annotations

import logging
import secrets
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Iterator, Optional

from pydantic import ValidationError as PydanticValidationError

from kit_tracker.errors import NotFoundError, PersistenceError
from kit_tracker.models import Booking, Equipment
from kit_tracker.storage.base import BOOKINGS_KEY, EQUIPMENT_KEY, StorageAdapter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoreSnapshot:
    equipment: list[Equipment]
    bookings: list[Booking]


class EntityStore:
    """Owns the Equipment and Booking collections.

    Reads hand out copies; the only way to change state is through
    ``put_*`` / ``remove_*``. Each change rewrites the whole affected
    collection through the storage adapter. Inside ``mutation()`` the
    writes are deferred until the outermost block exits, so a multi-record
    operation costs one save per collection.

    A failed save never rolls back memory. The error is logged, kept on
    ``last_persistence_error`` and handed to ``on_persistence_error``.
    """

    def __init__(
        self,
        storage: StorageAdapter,
        *,
        on_persistence_error: Optional[Callable[[PersistenceError], None]] = None,
        autoload: bool = True,
    ) -> None:
        self.storage = storage
        self.on_persistence_error = on_persistence_error
        self.last_persistence_error: Optional[PersistenceError] = None

        self._equipment: dict[str, Equipment] = {}
        self._bookings: dict[str, Booking] = {}
        self._depth = 0
        self._dirty: set[str] = set()

        if autoload:
            self.refresh()

    # ---------------- identity ----------------
    def create_id(self) -> str:
        while True:
            candidate = f"{int(time.time() * 1000)}{secrets.token_hex(3)}"
            if candidate not in self._equipment and candidate not in self._bookings:
                return candidate

    # ---------------- loading ----------------
    def refresh(self) -> StoreSnapshot:
        equipment = self._load_collection(EQUIPMENT_KEY, Equipment)
        bookings = self._load_collection(BOOKINGS_KEY, Booking)

        self._equipment = {item.id: item for item in equipment}
        self._bookings = {booking.id: booking for booking in bookings}
        self._dirty.clear()
        logger.info("Loaded %d equipment items and %d bookings", len(self._equipment), len(self._bookings))
        return self.snapshot()

    def _load_collection(self, key: str, model: type) -> list[Any]:
        try:
            raw = self.storage.load(key)
        except Exception as e:
            raise PersistenceError(f"failed to load {key}: {e}", key=key) from e
        if raw is None:
            logger.debug("No stored %s collection; starting empty", key)
            return []
        try:
            return [model.model_validate(record) for record in raw]
        except (PydanticValidationError, TypeError) as e:
            raise PersistenceError(f"stored {key} collection is corrupted: {e}", key=key) from e

    # ---------------- reads ----------------
    def snapshot(self) -> StoreSnapshot:
        return StoreSnapshot(equipment=self.list_equipment(), bookings=self.list_bookings())

    def list_equipment(self) -> list[Equipment]:
        return [item.model_copy(deep=True) for item in self._equipment.values()]

    def list_bookings(self) -> list[Booking]:
        return [booking.model_copy(deep=True) for booking in self._bookings.values()]

    def has_equipment(self, equipment_id: Optional[str]) -> bool:
        return equipment_id is not None and equipment_id in self._equipment

    def get_equipment(self, equipment_id: str) -> Optional[Equipment]:
        item = self._equipment.get(equipment_id)
        return item.model_copy(deep=True) if item is not None else None

    def require_equipment(self, equipment_id: str) -> Equipment:
        item = self.get_equipment(equipment_id)
        if item is None:
            raise NotFoundError("equipment", equipment_id)
        return item

    def get_booking(self, booking_id: str) -> Optional[Booking]:
        booking = self._bookings.get(booking_id)
        return booking.model_copy(deep=True) if booking is not None else None

    def require_booking(self, booking_id: str) -> Booking:
        booking = self.get_booking(booking_id)
        if booking is None:
            raise NotFoundError("booking", booking_id)
        return booking

    # ---------------- writes ----------------
    @contextmanager
    def mutation(self) -> Iterator["EntityStore"]:
        self._depth += 1
        try:
            yield self
        finally:
            self._depth -= 1
            if self._depth == 0:
                self._flush_dirty()

    def put_equipment(self, *items: Equipment) -> None:
        for item in items:
            self._equipment[item.id] = item.model_copy(deep=True)
        self._touch(EQUIPMENT_KEY)

    def remove_equipment(self, *equipment_ids: str) -> None:
        for equipment_id in equipment_ids:
            self._equipment.pop(equipment_id, None)
        self._touch(EQUIPMENT_KEY)

    def put_bookings(self, *bookings: Booking) -> None:
        for booking in bookings:
            self._bookings[booking.id] = booking.model_copy(deep=True)
        self._touch(BOOKINGS_KEY)

    def remove_bookings(self, *booking_ids: str) -> None:
        for booking_id in booking_ids:
            self._bookings.pop(booking_id, None)
        self._touch(BOOKINGS_KEY)

    def flush(self) -> None:
        """Write both collections now; raises PersistenceError on failure."""
        for key in (EQUIPMENT_KEY, BOOKINGS_KEY):
            self._save(key)
        self._dirty.clear()

    def _touch(self, key: str) -> None:
        self._dirty.add(key)
        if self._depth == 0:
            self._flush_dirty()

    def _flush_dirty(self) -> None:
        dirty = sorted(self._dirty)
        self._dirty.clear()
        for key in dirty:
            try:
                self._save(key)
            except PersistenceError as e:
                logger.exception("Persisting %s failed; in-memory state kept", key)
                self.last_persistence_error = e
                if self.on_persistence_error is not None:
                    self.on_persistence_error(e)

    def _save(self, key: str) -> None:
        if key == EQUIPMENT_KEY:
            records = [item.to_storage() for item in self._equipment.values()]
        else:
            records = [booking.to_storage() for booking in self._bookings.values()]
        try:
            self.storage.save(key, records)
        except Exception as e:
            raise PersistenceError(f"failed to save {key}: {e}", key=key) from e
