from __future__ import annotations

import datetime as dt
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Condition(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"
    NEEDS_REPAIR = "needs-repair"


class BookingStatus(str, Enum):
    REQUESTED = "requested"
    DISPATCHED = "dispatched"
    PACKED = "packed"
    RETURNED = "returned"


# A booking in any of these states keeps its equipment out of circulation.
ACTIVE_STATUSES = frozenset(
    s.value for s in (BookingStatus.REQUESTED, BookingStatus.DISPATCHED, BookingStatus.PACKED)
)
CONDITIONS = frozenset(c.value for c in Condition)
STATUSES = frozenset(s.value for s in BookingStatus)


def today_iso() -> str:
    return dt.date.today().isoformat()


def utcnow_iso() -> str:
    return dt.datetime.now(dt.timezone.utc).isoformat()


class _Record(BaseModel):
    # Stored and exchanged with camelCase keys; Python code uses snake_case.
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
        validate_assignment=True,
        validate_default=True,
    )

    def to_storage(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class Equipment(_Record):
    id: str
    name: str
    type: str
    serial_number: str
    condition: Condition = Condition.GOOD
    purchase_date: str = Field(default_factory=today_iso)
    notes: str = ""
    parent_id: Optional[str] = None
    children: List[str] = Field(default_factory=list)

    @property
    def is_root(self) -> bool:
        return self.parent_id is None


class Booking(_Record):
    id: str
    date: str
    equipment_ids: List[str]
    name: str
    notes: str = ""
    status: BookingStatus = BookingStatus.REQUESTED
    created_at: str = Field(default_factory=utcnow_iso)
    updated_at: str = Field(default_factory=utcnow_iso)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES
