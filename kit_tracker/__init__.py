"""Equipment inventory hierarchy and booking tracker."""

from .core.settings import Settings, load_settings
from .errors import (
    BookingConflictError,
    CycleError,
    KitTrackerError,
    NotFoundError,
    PersistenceError,
    SchemaError,
    ValidationError,
)
from .models import Booking, BookingStatus, Condition, Equipment
from .tracker import Tracker, create_tracker

__all__ = [
    "Booking",
    "BookingConflictError",
    "BookingStatus",
    "Condition",
    "CycleError",
    "Equipment",
    "KitTrackerError",
    "NotFoundError",
    "PersistenceError",
    "SchemaError",
    "Settings",
    "Tracker",
    "ValidationError",
    "create_tracker",
    "load_settings",
]
