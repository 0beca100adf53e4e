from __future__ import annotations

import io
import logging
import re
import unicodedata
from dataclasses import dataclass, field
from typing import Any, Optional

import pandas as pd

from kit_tracker.errors import SchemaError
from kit_tracker.models import CONDITIONS, Condition, Equipment, today_iso
from kit_tracker.services.entity_store import EntityStore
from kit_tracker.services.hierarchy_service import _norm_text

logger = logging.getLogger(__name__)


# Normalized header -> canonical field. Headers are lowercased and stripped of
# everything but letters and digits before lookup.
COLUMN_SYNONYMS: dict[str, str] = {
    "name": "name",
    "itemname": "name",
    "equipmentstructure": "name",
    "type": "type",
    "serialnumber": "serial_number",
    "serial": "serial_number",
    "condition": "condition",
    "purchasedate": "purchase_date",
    "date": "purchase_date",
    "notes": "notes",
    "parentid": "parent",
    "parent": "parent",
    "parentitem": "parent",
    "parentequipment": "parent",
}
REQUIRED_FIELDS = ("name", "type", "serial_number")

ROOT_REFERENCES = {"", "none", "top level"}

# Tree glyphs as they appear after a UTF-8 export is opened as cp1252.
_MOJIBAKE = ("â””â”€", "â”œâ”€", "â”‚", "ðŸ“¦", "ðŸ”§")
_ASCII_TREE = set("|`")
_COMPONENT_COUNT_RE = re.compile(r"\s*[\[(]\s*\d+\s+components?\s*[\])]\s*$", re.IGNORECASE)
_SERIAL_REF_RE = re.compile(r"^(?P<label>.*?)\s*\((?P<serial>[^()]*)\)\s*$")


def _cell(value: Any) -> str:
    # Short rows come back as NaN even with keep_default_na=False.
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return ""
    return str(value)


def normalize_header(header: Any) -> str:
    return re.sub(r"[^a-z0-9]", "", str(header).lower())


def _is_decoration(ch: str) -> bool:
    if ch.isspace() or ch in _ASCII_TREE:
        return True
    if "\u2500" <= ch <= "\u257f":
        return True
    return unicodedata.category(ch) in ("So", "Sk", "Mn", "Cf", "Co")


def clean_name(raw: Any) -> str:
    """Undo the indentation, tree connectors, icons and component counts
    added by the hierarchical exports."""
    text = str(raw or "")
    for glyph in _MOJIBAKE:
        text = text.replace(glyph, "")
    start = 0
    while start < len(text) and _is_decoration(text[start]):
        start += 1
    text = _COMPONENT_COUNT_RE.sub("", text[start:])
    return text.strip()


def parse_parent_reference(raw: Any) -> Optional[tuple[str, Optional[str]]]:
    """Return (serial, label) for a parent cell, or None for a root marker.

    ``label`` is None when the cell is bare text rather than "Name (SN)".
    """
    text = (str(raw) if raw is not None else "").strip()
    if text.lower() in ROOT_REFERENCES:
        return None
    match = _SERIAL_REF_RE.match(text)
    if match and match.group("serial").strip():
        return match.group("serial").strip(), clean_name(match.group("label"))
    return text, None


@dataclass
class ImportResult:
    imported_count: int = 0
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    ids: list[str] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {"importedCount": self.imported_count, "errors": list(self.errors)}


class CsvImportService:
    def __init__(self, store: EntityStore, *, max_depth: int = 50) -> None:
        self.store = store
        self.max_depth = max_depth

    def read_rows(self, text: str) -> tuple[dict[str, str], list[dict[str, str]]]:
        """Parse CSV text into (column map, rows of canonical fields)."""
        if text.startswith("\ufeff"):
            text = text[1:]
        if not text.strip():
            raise SchemaError("CSV input is empty")
        try:
            df = pd.read_csv(io.StringIO(text), dtype=str, keep_default_na=False, skip_blank_lines=True)
        except (pd.errors.ParserError, pd.errors.EmptyDataError) as e:
            raise SchemaError(f"CSV could not be parsed: {e}") from e

        column_map: dict[str, str] = {}
        for header in df.columns:
            canonical = COLUMN_SYNONYMS.get(normalize_header(header))
            if canonical is not None and canonical not in column_map:
                column_map[canonical] = str(header)

        missing = [name for name in REQUIRED_FIELDS if name not in column_map]
        if missing:
            raise SchemaError(f"Missing required columns: {', '.join(missing)}")

        rows: list[dict[str, str]] = []
        for record in df.to_dict(orient="records"):
            rows.append({canonical: _cell(record.get(header)) for canonical, header in column_map.items()})
        return column_map, rows

    def import_csv(self, text: str) -> ImportResult:
        _, rows = self.read_rows(text)
        result = ImportResult()

        # Pass 1: every valid row becomes a provisional root.
        created: list[Equipment] = []
        parent_refs: dict[str, tuple[int, str]] = {}
        by_serial: dict[str, Equipment] = {}
        by_name: dict[str, list[Equipment]] = {}
        taken_ids = set()

        for index, row in enumerate(rows, start=1):
            name = clean_name(row.get("name"))
            equipment_type = _norm_text(row.get("type"))
            serial = _norm_text(row.get("serial_number"))
            if not name or equipment_type is None or serial is None:
                result.errors.append(f"Row {index}: Missing required fields")
                continue

            condition = (_norm_text(row.get("condition")) or Condition.GOOD.value).lower().replace(" ", "-")
            if condition not in CONDITIONS:
                result.warnings.append(f"Row {index}: unknown condition {row.get('condition')!r}; using good")
                condition = Condition.GOOD.value

            new_id = self.store.create_id()
            while new_id in taken_ids:
                new_id = self.store.create_id()
            taken_ids.add(new_id)

            item = Equipment(
                id=new_id,
                name=name,
                type=equipment_type,
                serial_number=serial,
                condition=condition,
                purchase_date=_norm_text(row.get("purchase_date")) or today_iso(),
                notes=row.get("notes") or "",
                parent_id=None,
                children=[],
            )
            created.append(item)
            parent_refs[item.id] = (index, row.get("parent") or "")
            if serial in by_serial:
                result.warnings.append(f"Row {index}: duplicate serial number {serial}; parent lookups use the first row")
            else:
                by_serial[serial] = item
            by_name.setdefault(name.lower(), []).append(item)

        # Pass 2: resolve parent references against the rows just read.
        existing_by_serial: dict[str, Equipment] = {}
        for item in self.store.list_equipment():
            existing_by_serial.setdefault(item.serial_number, item)
        touched_existing: dict[str, Equipment] = {}
        created_by_id = {item.id: item for item in created}

        for item in created:
            index, raw_ref = parent_refs[item.id]
            ref = parse_parent_reference(raw_ref)
            if ref is None:
                continue
            serial, label = ref

            # "Name (SN)" names its serial outright; only bare text may match by name.
            parent: Optional[Equipment] = by_serial.get(serial)
            if parent is None and label is None:
                named = by_name.get(clean_name(serial).lower(), [])
                if len(named) == 1:
                    parent = named[0]
            if parent is None and serial in existing_by_serial:
                parent_id = existing_by_serial[serial].id
                parent = touched_existing.setdefault(parent_id, existing_by_serial[serial])

            if parent is None:
                result.warnings.append(f"Row {index}: parent {raw_ref.strip()!r} not found; imported as top level")
                continue
            if parent.id == item.id or self._would_cycle(item.id, parent.id, created_by_id):
                result.warnings.append(f"Row {index}: parent {raw_ref.strip()!r} would create a cycle; imported as top level")
                continue

            item.parent_id = parent.id
            parent.children = [*parent.children, item.id]

        with self.store.mutation():
            if created:
                self.store.put_equipment(*created)
            if touched_existing:
                self.store.put_equipment(*touched_existing.values())

        result.imported_count = len(created)
        result.ids = [item.id for item in created]
        for warning in result.warnings:
            logger.warning("CSV import: %s", warning)
        logger.info("CSV import finished: %d imported, %d row errors", result.imported_count, len(result.errors))
        return result

    def _would_cycle(self, item_id: str, parent_id: str, created_by_id: dict[str, Equipment]) -> bool:
        current: Optional[str] = parent_id
        steps = 0
        while current is not None and steps <= self.max_depth:
            if current == item_id:
                return True
            node = created_by_id.get(current)
            current = node.parent_id if node is not None else None
            steps += 1
        return steps > self.max_depth
