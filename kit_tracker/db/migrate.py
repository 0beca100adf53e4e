from __future__ import annotations

import logging
from pathlib import Path

from alembic import command
from alembic.config import Config

from kit_tracker.db.session import DBRuntime

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"


def alembic_config(database_url: str) -> Config:
    cfg = Config()
    cfg.set_main_option("script_location", str(MIGRATIONS_DIR))
    # ConfigParser interpolation treats "%" specially.
    cfg.set_main_option("sqlalchemy.url", database_url.replace("%", "%%"))
    return cfg


def upgrade_database(runtime: DBRuntime, revision: str = "head") -> None:
    """Run ``alembic upgrade`` on the runtime's engine.

    The migration shares the runtime's connection so an in-memory SQLite
    database is migrated in place.
    """
    cfg = alembic_config(runtime.engine.url.render_as_string(hide_password=False))
    logger.info("Upgrading database schema to %s", revision)
    with runtime.engine.begin() as conn:
        cfg.attributes["connection"] = conn
        command.upgrade(cfg, revision)
