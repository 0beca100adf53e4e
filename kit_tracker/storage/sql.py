from __future__ import annotations

import copy
from typing import Any, Optional

from sqlalchemy.exc import OperationalError

from kit_tracker.db.base import Base
from kit_tracker.db.models import StorageEntry
from kit_tracker.db.session import DBRuntime


_SCHEMA_HINT = "Database schema not initialized. Set RUN_MIGRATIONS=1 (or AUTO_CREATE_DB=1 for dev)."


class SqlStorage:
    """Stores each collection as a JSON value in the ``storage_entries`` table."""

    def __init__(self, runtime: DBRuntime, *, create_tables: bool = False) -> None:
        self.runtime = runtime
        if create_tables:
            Base.metadata.create_all(bind=runtime.engine)

    def load(self, key: str) -> Optional[list[dict[str, Any]]]:
        with self.runtime.SessionLocal() as db:
            try:
                row = db.get(StorageEntry, key)
            except OperationalError as e:
                raise RuntimeError(_SCHEMA_HINT) from e
            if row is None or row.value is None:
                return None
            if not isinstance(row.value, list):
                raise ValueError(f"Invalid stored collection shape for {key!r} (expected list)")
            return copy.deepcopy(row.value)

    def save(self, key: str, records: list[dict[str, Any]]) -> None:
        with self.runtime.SessionLocal() as db:
            row = db.get(StorageEntry, key)
            if row is None:
                row = StorageEntry(key=key)
                db.add(row)
            row.value = copy.deepcopy(list(records))
            db.commit()
