"""Persistence adapters for the equipment and bookings collections."""

from __future__ import annotations

from kit_tracker.core.settings import Settings
from kit_tracker.db.migrate import upgrade_database
from kit_tracker.db.session import DBRuntime, create_engine_and_sessionmaker

from .base import BOOKINGS_KEY, EQUIPMENT_KEY, StorageAdapter
from .json_file import JsonFileStorage
from .memory import MemoryStorage
from .sql import SqlStorage


def build_storage(settings: Settings, *, runtime: DBRuntime | None = None) -> StorageAdapter:
    if settings.storage_backend == "memory":
        return MemoryStorage()
    if settings.storage_backend == "json":
        return JsonFileStorage(settings.storage_path)
    if runtime is None:
        runtime = create_engine_and_sessionmaker(settings.database_url, echo=settings.db_echo)
    if settings.run_migrations:
        upgrade_database(runtime)
    return SqlStorage(runtime, create_tables=settings.auto_create_db and not settings.run_migrations)


__all__ = [
    "BOOKINGS_KEY",
    "EQUIPMENT_KEY",
    "JsonFileStorage",
    "MemoryStorage",
    "SqlStorage",
    "StorageAdapter",
    "build_storage",
]
