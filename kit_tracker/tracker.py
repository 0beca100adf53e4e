from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from kit_tracker.core.log_config import PACKAGE_LOGGER, configure_logging
from kit_tracker.core.settings import Settings
from kit_tracker.db.session import DBRuntime, create_engine_and_sessionmaker
from kit_tracker.errors import PersistenceError
from kit_tracker.services.availability_service import AvailabilityService
from kit_tracker.services.booking_service import BookingService
from kit_tracker.services.csv_export_service import CsvExportService
from kit_tracker.services.csv_import_service import CsvImportService
from kit_tracker.services.db_log_handler import DBLogHandler
from kit_tracker.services.entity_store import EntityStore, StoreSnapshot
from kit_tracker.services.hierarchy_service import HierarchyService
from kit_tracker.storage import StorageAdapter, build_storage

logger = logging.getLogger(__name__)


@dataclass
class Tracker:
    settings: Settings
    store: EntityStore
    hierarchy: HierarchyService
    availability: AvailabilityService
    bookings: BookingService
    importer: CsvImportService
    exporter: CsvExportService
    runtime: Optional[DBRuntime] = None
    log_handler: Optional[logging.Handler] = None

    def refresh(self) -> StoreSnapshot:
        return self.store.refresh()

    def close(self) -> None:
        if self.log_handler is not None:
            logging.getLogger(PACKAGE_LOGGER).removeHandler(self.log_handler)
            self.log_handler = None
        if self.runtime is not None:
            logger.info("Disposing database...")
            self.runtime.dispose()

    def __enter__(self) -> "Tracker":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


def create_tracker(
    settings: Optional[Settings] = None,
    *,
    storage: Optional[StorageAdapter] = None,
    on_persistence_error: Optional[Callable[[PersistenceError], None]] = None,
) -> Tracker:
    """Wire the store and services from ``settings``.

    Passing ``storage`` bypasses the configured backend, which is how an
    embedding application supplies its own profile storage.
    """
    settings = settings or Settings()
    configure_logging(settings.log_level)

    runtime: Optional[DBRuntime] = None
    if storage is None:
        if settings.storage_backend == "sqlalchemy":
            runtime = create_engine_and_sessionmaker(settings.database_url, echo=settings.db_echo)
        storage = build_storage(settings, runtime=runtime)

    log_handler: Optional[logging.Handler] = None
    if settings.enable_db_log_handler and runtime is not None:
        log_handler = DBLogHandler(runtime.SessionLocal)
        logging.getLogger(PACKAGE_LOGGER).addHandler(log_handler)

    store = EntityStore(storage, on_persistence_error=on_persistence_error)
    availability = AvailabilityService(store)
    bookings = BookingService(store, availability, enforce_availability=settings.enforce_availability)
    hierarchy = HierarchyService(
        store,
        max_depth=settings.max_hierarchy_depth,
        orphan_policy=settings.orphan_policy,
        bookings=bookings,
    )
    importer = CsvImportService(store, max_depth=settings.max_hierarchy_depth)
    exporter = CsvExportService(store, hierarchy, availability)

    logger.info(
        "Tracker ready (storage=%s, orphan_policy=%s, enforce_availability=%s)",
        type(storage).__name__,
        settings.orphan_policy,
        settings.enforce_availability,
    )
    return Tracker(
        settings=settings,
        store=store,
        hierarchy=hierarchy,
        availability=availability,
        bookings=bookings,
        importer=importer,
        exporter=exporter,
        runtime=runtime,
        log_handler=log_handler,
    )
