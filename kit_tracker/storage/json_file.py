from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Optional


class JsonFileStorage:
    """One ``<key>.json`` file per collection inside ``directory``.

    Writes go through a temp file + fsync + os.replace so a crash mid-save
    leaves the previous file intact.
    """

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def load(self, key: str) -> Optional[list[dict[str, Any]]]:
        path = self._path(key)
        if not path.exists():
            return None
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
        if data is None:
            return None
        if not isinstance(data, list):
            raise ValueError(f"Invalid stored collection shape for {key!r} (expected list)")
        return data

    def save(self, key: str, records: list[dict[str, Any]]) -> None:
        path = self._path(key)
        self.directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(prefix=path.name + ".", suffix=".tmp", dir=str(self.directory))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as tmpf:
                json.dump(list(records), tmpf, ensure_ascii=False, indent=2)
                tmpf.flush()
                os.fsync(tmpf.fileno())
            os.replace(tmp_path, path)
        finally:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
