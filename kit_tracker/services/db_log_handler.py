from __future__ import annotations

import logging
from typing import Callable

from sqlalchemy.orm import Session

from kit_tracker.core.log_config import PACKAGE_LOGGER
from kit_tracker.db.models import ActivityLog


class DBLogHandler(logging.Handler):
    """Stores WARNING+ records from the ``kit_tracker`` loggers in ``activity_logs``.

    Records from any other logger are dropped, so SQLAlchemy's own output
    can never feed back into the table.
    """

    def __init__(
        self,
        sessionmaker: Callable[[], Session],
        *,
        level: int = logging.WARNING,
    ) -> None:
        super().__init__(level=level)
        self._sessionmaker = sessionmaker
        self.addFilter(self._package_only)

    @staticmethod
    def _package_only(record: logging.LogRecord) -> bool:
        return record.name == PACKAGE_LOGGER or record.name.startswith(PACKAGE_LOGGER + ".")

    def emit(self, record: logging.LogRecord) -> None:
        try:
            message = record.getMessage()
            meta = {"module": record.module, "func": record.funcName, "lineno": record.lineno}
            if record.exc_info:
                meta["exception"] = logging.Formatter().formatException(record.exc_info)
            with self._sessionmaker() as db:
                db.add(ActivityLog(level=record.levelname, logger=record.name, message=message, meta=meta))
                db.commit()
        except Exception:
            self.handleError(record)
