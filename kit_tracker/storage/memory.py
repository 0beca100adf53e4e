from __future__ import annotations

import copy
from typing import Any, Optional


class MemoryStorage:
    def __init__(self, initial: Optional[dict[str, list[dict[str, Any]]]] = None) -> None:
        self._data: dict[str, list[dict[str, Any]]] = copy.deepcopy(initial or {})

    def load(self, key: str) -> Optional[list[dict[str, Any]]]:
        if key not in self._data:
            return None
        return copy.deepcopy(self._data[key])

    def save(self, key: str, records: list[dict[str, Any]]) -> None:
        self._data[key] = copy.deepcopy(list(records))

    def clear(self) -> None:
        self._data.clear()
