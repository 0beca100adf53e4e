from __future__ import annotations

import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Optional, Union

import yaml


ORPHAN_POLICIES = ("promote", "cascade")
STORAGE_BACKENDS = ("memory", "json", "sqlalchemy")


def _env_bool(key: str, default: str = "1") -> bool:
    return os.getenv(key, default).strip().lower() not in ("0", "false", "no", "off")


def _env_int(key: str, default: str) -> int:
    raw = os.getenv(key, default)
    try:
        return int(str(raw).strip())
    except Exception:
        return int(default)


@dataclass(frozen=True, slots=True)
class Settings:
    # Storage
    storage_backend: str = field(default_factory=lambda: os.getenv("KIT_STORAGE_BACKEND", "json").strip().lower())
    storage_path: str = field(default_factory=lambda: os.getenv("KIT_STORAGE_PATH", "data"))

    # Database (used by the sqlalchemy backend only)
    database_url: str = field(default_factory=lambda: os.getenv("DATABASE_URL", "sqlite:///./kit_tracker.db"))
    db_echo: bool = field(default_factory=lambda: _env_bool("DB_ECHO", "0"))
    # Production databases use migrations (RUN_MIGRATIONS=1); AUTO_CREATE_DB is the dev/test shortcut.
    auto_create_db: bool = field(default_factory=lambda: _env_bool("AUTO_CREATE_DB", "1"))
    run_migrations: bool = field(default_factory=lambda: _env_bool("RUN_MIGRATIONS", "0"))

    # Hierarchy
    # Guard for corrupted parent chains; real inventories are a few levels deep.
    max_hierarchy_depth: int = field(default_factory=lambda: _env_int("KIT_MAX_HIERARCHY_DEPTH", "50"))
    orphan_policy: str = field(default_factory=lambda: os.getenv("KIT_ORPHAN_POLICY", "promote").strip().lower())

    # Bookings
    enforce_availability: bool = field(default_factory=lambda: _env_bool("KIT_ENFORCE_AVAILABILITY", "1"))

    # Logging
    log_level: str = field(default_factory=lambda: os.getenv("KIT_LOG_LEVEL", "INFO").strip().upper())
    enable_db_log_handler: bool = field(default_factory=lambda: _env_bool("KIT_DB_LOG_HANDLER", "0"))

    def __post_init__(self) -> None:
        if self.storage_backend not in STORAGE_BACKENDS:
            raise ValueError(f"storage_backend must be one of {', '.join(STORAGE_BACKENDS)}")
        if self.orphan_policy not in ORPHAN_POLICIES:
            raise ValueError(f"orphan_policy must be one of {', '.join(ORPHAN_POLICIES)}")
        if self.max_hierarchy_depth < 1:
            raise ValueError("max_hierarchy_depth must be >= 1")


def load_settings(path: Optional[Union[str, Path]] = None, **overrides: Any) -> Settings:
    """Build Settings from the environment, a YAML file and keyword overrides.

    Later sources win: environment defaults, then the YAML mapping, then
    ``overrides``. Unknown YAML keys are rejected so typos surface early.
    """
    values: dict[str, Any] = {}
    if path is not None:
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Settings file not found: {config_path}")
        with config_path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError("Invalid settings file (expected mapping)")
        values.update(data)
    values.update(overrides)

    known = {f.name for f in fields(Settings)}
    unknown = sorted(set(values) - known)
    if unknown:
        raise ValueError(f"Unknown settings: {', '.join(unknown)}")
    return replace(Settings(), **values)
