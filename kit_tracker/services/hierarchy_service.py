from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Mapping, Optional

from kit_tracker.errors import CycleError, NotFoundError, ValidationError
from kit_tracker.models import CONDITIONS, Condition, Equipment, today_iso
from kit_tracker.services.entity_store import EntityStore

if TYPE_CHECKING:
    from kit_tracker.services.booking_service import BookingService

logger = logging.getLogger(__name__)


EDITABLE_FIELDS = ("name", "type", "serial_number", "condition", "purchase_date", "notes", "parent_id")

_CAMEL = {
    "serial_number": "serialNumber",
    "purchase_date": "purchaseDate",
    "parent_id": "parentId",
    "equipment_ids": "equipmentIds",
}


def _has_field(data: Mapping[str, Any], name: str) -> bool:
    return name in data or _CAMEL.get(name, name) in data


def _field(data: Mapping[str, Any], name: str, default: Any = None) -> Any:
    if name in data:
        return data[name]
    return data.get(_CAMEL.get(name, name), default)


def _norm_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, Enum):
        # str() of a str-Enum member is "Cls.MEMBER" on 3.11+
        value = value.value
    text = str(value).strip()
    return text or None


def _norm_condition(value: Any) -> str:
    text = _norm_text(value)
    if text is None:
        return Condition.GOOD.value
    text = text.lower().replace(" ", "-").replace("_", "-")
    if text not in CONDITIONS:
        raise ValidationError("condition must be one of excellent, good, fair, poor, needs-repair")
    return text


@dataclass(frozen=True)
class DeletionResult:
    deleted_ids: list[str]
    promoted_ids: list[str] = field(default_factory=list)
    purged_booking_ids: list[str] = field(default_factory=list)


class HierarchyService:
    """Keeps the equipment parent/child forest consistent.

    ``parent_id`` is the authoritative relation; ``children`` is an index
    rewritten alongside it on every change.
    """

    def __init__(
        self,
        store: EntityStore,
        *,
        max_depth: int = 50,
        orphan_policy: str = "promote",
        bookings: Optional["BookingService"] = None,
    ) -> None:
        if orphan_policy not in ("promote", "cascade"):
            raise ValueError("orphan_policy must be one of promote, cascade")
        self.store = store
        self.max_depth = max_depth
        self.orphan_policy = orphan_policy
        self.bookings = bookings

    # ---------------- validation ----------------
    def validate_payload(self, payload: Mapping[str, Any], *, current: Optional[Equipment] = None) -> dict[str, Any]:
        cleaned: dict[str, Any] = {}
        for name in EDITABLE_FIELDS:
            if _has_field(payload, name):
                cleaned[name] = _field(payload, name)
            elif current is not None:
                cleaned[name] = getattr(current, name)

        for required in ("name", "type", "serial_number"):
            value = _norm_text(cleaned.get(required))
            if value is None:
                raise ValidationError(f"{required} is required")
            cleaned[required] = value

        cleaned["condition"] = _norm_condition(cleaned.get("condition"))
        cleaned["purchase_date"] = _norm_text(cleaned.get("purchase_date")) or today_iso()
        cleaned["notes"] = str(cleaned.get("notes") or "")

        parent_id = _norm_text(cleaned.get("parent_id"))
        if parent_id is not None and not self.store.has_equipment(parent_id):
            raise NotFoundError("equipment", parent_id)
        cleaned["parent_id"] = parent_id
        return cleaned

    # ---------------- mutations ----------------
    def add_equipment(self, data: Mapping[str, Any]) -> str:
        cleaned = self.validate_payload(data)
        item = Equipment(id=self.store.create_id(), children=[], **cleaned)

        with self.store.mutation():
            self.store.put_equipment(item)
            if item.parent_id is not None:
                parent = self.store.require_equipment(item.parent_id)
                parent.children = [*parent.children, item.id]
                self.store.put_equipment(parent)

        logger.info("Added equipment %s (%s) parent=%s", item.id, item.name, item.parent_id)
        return item.id

    def update_equipment(self, equipment_id: str, data: Mapping[str, Any]) -> Equipment:
        current = self.store.require_equipment(equipment_id)
        cleaned = self.validate_payload(data, current=current)

        old_parent_id = current.parent_id
        new_parent_id = cleaned["parent_id"]
        if new_parent_id is not None and new_parent_id != old_parent_id:
            if not self.can_have_parent(equipment_id, new_parent_id):
                raise CycleError(equipment_id, new_parent_id)

        updated = Equipment(id=equipment_id, children=list(current.children), **cleaned)

        with self.store.mutation():
            self.store.put_equipment(updated)
            if old_parent_id != new_parent_id:
                if old_parent_id is not None:
                    old_parent = self.store.get_equipment(old_parent_id)
                    if old_parent is not None:
                        old_parent.children = [c for c in old_parent.children if c != equipment_id]
                        self.store.put_equipment(old_parent)
                if new_parent_id is not None:
                    new_parent = self.store.require_equipment(new_parent_id)
                    if equipment_id not in new_parent.children:
                        new_parent.children = [*new_parent.children, equipment_id]
                    self.store.put_equipment(new_parent)

        if old_parent_id != new_parent_id:
            logger.info("Moved equipment %s from parent %s to %s", equipment_id, old_parent_id, new_parent_id)
        return updated

    def delete_equipment(self, equipment_id: str) -> DeletionResult:
        item = self.store.require_equipment(equipment_id)

        if self.orphan_policy == "cascade":
            deleted = [equipment_id, *self.get_descendants(equipment_id)]
            promoted: list[str] = []
        else:
            deleted = [equipment_id]
            promoted = [child.id for child in self.get_children_of(equipment_id)]

        purged: list[str] = []
        with self.store.mutation():
            if item.parent_id is not None:
                parent = self.store.get_equipment(item.parent_id)
                if parent is not None:
                    parent.children = [c for c in parent.children if c != equipment_id]
                    self.store.put_equipment(parent)

            for child_id in promoted:
                child = self.store.require_equipment(child_id)
                child.parent_id = None
                self.store.put_equipment(child)

            self.store.remove_equipment(*deleted)

            if self.bookings is not None:
                for removed_id in deleted:
                    purged.extend(self.bookings.purge_bookings_referencing(removed_id))

        logger.info(
            "Deleted equipment %s (policy=%s, removed=%d, promoted=%d, bookings purged=%d)",
            equipment_id,
            self.orphan_policy,
            len(deleted),
            len(promoted),
            len(purged),
        )
        return DeletionResult(deleted_ids=deleted, promoted_ids=promoted, purged_booking_ids=purged)

    # ---------------- queries ----------------
    def can_have_parent(self, item_id: str, candidate_parent_id: Optional[str]) -> bool:
        if candidate_parent_id is None:
            return True
        if item_id == candidate_parent_id:
            return False
        if not self.store.has_equipment(item_id):
            return False
        return not self._is_descendant(item_id, candidate_parent_id, depth=0)

    def _is_descendant(self, ancestor_id: str, search_id: str, *, depth: int) -> bool:
        if depth >= self.max_depth:
            # Only reachable with a corrupted (cyclic) children index; refuse the link.
            logger.warning("Hierarchy depth cap %d reached below %s", self.max_depth, ancestor_id)
            return True
        node = self.store.get_equipment(ancestor_id)
        if node is None:
            return False
        for child_id in node.children:
            if child_id == search_id:
                return True
            if self._is_descendant(child_id, search_id, depth=depth + 1):
                return True
        return False

    def get_children_of(self, equipment_id: str) -> list[Equipment]:
        if not self.store.has_equipment(equipment_id):
            raise NotFoundError("equipment", equipment_id)
        return [item for item in self.store.list_equipment() if item.parent_id == equipment_id]

    def get_roots(self) -> list[Equipment]:
        return [item for item in self.store.list_equipment() if item.parent_id is None]

    def hierarchy_level(self, equipment_id: str) -> int:
        item = self.store.require_equipment(equipment_id)
        level = 0
        while item.parent_id is not None and level < self.max_depth:
            parent = self.store.get_equipment(item.parent_id)
            if parent is None:
                break
            level += 1
            item = parent
        return level

    def get_path(self, equipment_id: str) -> list[Equipment]:
        """Items from the root down to ``equipment_id``."""
        item = self.store.require_equipment(equipment_id)
        visited: set[str] = set()
        path: list[Equipment] = []
        current: Optional[Equipment] = item
        while current is not None and current.id not in visited and len(path) <= self.max_depth:
            visited.add(current.id)
            path.append(current)
            current = self.store.get_equipment(current.parent_id) if current.parent_id is not None else None
        path.reverse()
        return path

    def get_descendants(self, equipment_id: str) -> list[str]:
        if not self.store.has_equipment(equipment_id):
            raise NotFoundError("equipment", equipment_id)

        children_map: dict[str, list[str]] = {}
        for item in self.store.list_equipment():
            if item.parent_id is not None:
                children_map.setdefault(item.parent_id, []).append(item.id)

        result: list[str] = []
        seen: set[str] = {equipment_id}
        stack = list(reversed(children_map.get(equipment_id, [])))
        while stack:
            node_id = stack.pop()
            if node_id in seen:
                continue
            seen.add(node_id)
            result.append(node_id)
            stack.extend(reversed(children_map.get(node_id, [])))
        return result

    def get_hierarchy(self) -> list[dict[str, Any]]:
        """Nested tree of plain dicts, roots and siblings sorted by name."""
        items = self.store.list_equipment()
        node_map: dict[str, dict[str, Any]] = {}
        for item in items:
            node = item.to_storage()
            node["children"] = []
            node_map[item.id] = node

        roots: list[dict[str, Any]] = []
        for item in items:
            node = node_map[item.id]
            if item.parent_id is not None and item.parent_id in node_map:
                node_map[item.parent_id]["children"].append(node)
            else:
                roots.append(node)

        for node in node_map.values():
            node["children"] = sorted(node["children"], key=lambda x: (str(x.get("name") or "").lower(), x["id"]))
        return sorted(roots, key=lambda x: (str(x.get("name") or "").lower(), x["id"]))

    def parent_candidates(self, item_id: Optional[str] = None, *, equipment_type: Optional[str] = None) -> list[Equipment]:
        """Items that could become the parent of ``item_id``.

        ``equipment_type`` narrows the list to matching types, which is how
        the edit form offers parents; it is not enforced on assignment.
        """
        wanted = equipment_type.strip().lower() if equipment_type else None
        out: list[Equipment] = []
        for item in self.store.list_equipment():
            if wanted is not None and item.type.strip().lower() != wanted:
                continue
            if item_id is not None and not self.can_have_parent(item_id, item.id):
                continue
            out.append(item)
        return sorted(out, key=lambda x: (x.name.lower(), x.id))

    def check_consistency(self) -> list[str]:
        items = {item.id: item for item in self.store.list_equipment()}
        problems: list[str] = []

        for item in items.values():
            if item.parent_id is not None and item.parent_id not in items:
                problems.append(f"{item.id}: parent {item.parent_id} does not exist")
            expected = [other.id for other in items.values() if other.parent_id == item.id]
            if sorted(expected) != sorted(item.children):
                problems.append(f"{item.id}: children {item.children} != {expected}")

            seen: set[str] = set()
            current: Optional[Equipment] = item
            while current is not None and current.parent_id is not None:
                if current.id in seen:
                    problems.append(f"{item.id}: parent chain contains a cycle")
                    break
                seen.add(current.id)
                current = items.get(current.parent_id)
        return problems
