from __future__ import annotations

from typing import Any, Optional, Protocol, runtime_checkable


EQUIPMENT_KEY = "equipment"
BOOKINGS_KEY = "bookings"


@runtime_checkable
class StorageAdapter(Protocol):
    """Durable key-value store holding whole serialized collections.

    ``load`` returns None for a key that was never written; callers treat
    that the same as an empty list.
    """

    def load(self, key: str) -> Optional[list[dict[str, Any]]]:
        ...

    def save(self, key: str, records: list[dict[str, Any]]) -> None:
        ...
