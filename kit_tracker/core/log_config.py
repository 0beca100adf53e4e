from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
PACKAGE_LOGGER = "kit_tracker"


def configure_logging(level: str = "INFO", *, root: bool = False) -> logging.Logger:
    """Set the package log level; with ``root`` also install a console handler.

    Scripts pass ``root=True``; embedding applications keep their own setup.
    """
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        raise ValueError(f"unknown log level: {level}")
    if root:
        logging.basicConfig(level=numeric, format=LOG_FORMAT)
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(numeric)
    return package_logger
