from __future__ import annotations

from pathlib import Path
import sys

# Ensure repo root is importable
REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT))


import pytest

from kit_tracker.core.settings import Settings
from kit_tracker.storage import MemoryStorage
from kit_tracker.tracker import create_tracker


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(
        storage_backend="json",
        storage_path=str(tmp_path / "profile"),
        database_url=f"sqlite:///{tmp_path / 'test.db'}",
        auto_create_db=True,
        max_hierarchy_depth=50,
        orphan_policy="promote",
        enforce_availability=True,
        log_level="DEBUG",
        enable_db_log_handler=False,
    )


@pytest.fixture()
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture()
def tracker(settings: Settings, storage: MemoryStorage):
    with create_tracker(settings, storage=storage) as t:
        yield t
