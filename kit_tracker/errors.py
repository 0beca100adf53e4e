from __future__ import annotations


class KitTrackerError(RuntimeError):
    pass


class ValidationError(KitTrackerError, ValueError):
    """A required field is missing or a value is outside its allowed set."""


class BookingConflictError(ValidationError):
    def __init__(self, date: str, equipment_ids: list[str]) -> None:
        self.date = date
        self.equipment_ids = list(equipment_ids)
        super().__init__(f"equipment already booked on {date}: {', '.join(self.equipment_ids)}")


class NotFoundError(KitTrackerError, LookupError):
    def __init__(self, kind: str, item_id: str) -> None:
        self.kind = kind
        self.item_id = item_id
        super().__init__(f"{kind} not found: {item_id}")


class CycleError(KitTrackerError):
    def __init__(self, item_id: str, parent_id: str) -> None:
        self.item_id = item_id
        self.parent_id = parent_id
        super().__init__(f"parent {parent_id} would make {item_id} its own ancestor")


class SchemaError(KitTrackerError):
    """CSV input is unreadable or lacks a required column family."""


class PersistenceError(KitTrackerError):
    def __init__(self, message: str, *, key: str | None = None) -> None:
        self.key = key
        super().__init__(message)
