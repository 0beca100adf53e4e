from __future__ import annotations

import datetime as dt
from typing import Any, Callable, Optional

import pandas as pd

from kit_tracker.models import ACTIVE_STATUSES, Booking, BookingStatus, Equipment
from kit_tracker.services.availability_service import AvailabilityService, parse_day
from kit_tracker.services.entity_store import EntityStore
from kit_tracker.services.hierarchy_service import HierarchyService


CONDITION_LABELS = {
    "excellent": "Excellent",
    "good": "Good",
    "fair": "Fair",
    "poor": "Poor",
    "needs-repair": "Needs Repair",
}

# Expected service life by condition, in years from purchase.
REPLACEMENT_YEARS = {"excellent": 7, "good": 5, "fair": 3, "poor": 1, "needs-repair": 0}

# Bookings that actually left storage.
_USED_STATUSES = {BookingStatus.DISPATCHED.value, BookingStatus.PACKED.value, BookingStatus.RETURNED.value}

ROOT_ICON = "\U0001F4E6"  # package
CHILD_ICON = "\U0001F527"  # wrench
BRANCH = "├─ "
LAST_BRANCH = "└─ "


def format_condition(condition: Optional[str]) -> str:
    return CONDITION_LABELS.get(condition or "", condition or "Unknown")


def _to_csv(headers: list[str], rows: list[dict[str, Any]]) -> str:
    return pd.DataFrame(rows, columns=headers).to_csv(index=False, lineterminator="\n")


class CsvExportService:
    """Human-readable CSV reports over the current inventory and bookings."""

    def __init__(
        self,
        store: EntityStore,
        hierarchy: HierarchyService,
        availability: AvailabilityService,
        *,
        today: Callable[[], dt.date] = dt.date.today,
    ) -> None:
        self.store = store
        self.hierarchy = hierarchy
        self.availability = availability
        self.today = today

    # ---------------- ordering ----------------
    def hierarchical_order(self) -> list[Equipment]:
        """Roots by name, each followed depth-first by its children by name.

        Items unreachable from a root (dangling parents) are appended last.
        """
        items = {item.id: item for item in self.store.list_equipment()}
        ordered: list[Equipment] = []
        processed: set[str] = set()

        def visit(item: Equipment, depth: int) -> None:
            if item.id in processed or depth > self.hierarchy.max_depth:
                return
            ordered.append(item)
            processed.add(item.id)
            children = sorted(
                (items[c] for c in item.children if c in items),
                key=lambda x: x.name.lower(),
            )
            for child in children:
                visit(child, depth + 1)

        for root in sorted((i for i in items.values() if i.parent_id is None), key=lambda x: x.name.lower()):
            visit(root, 0)
        ordered.extend(item for item in items.values() if item.id not in processed)
        return ordered

    def _parent_of(self, item: Equipment) -> Optional[Equipment]:
        return self.store.get_equipment(item.parent_id) if item.parent_id is not None else None

    def _bookings_of(self, equipment_id: str) -> list[Booking]:
        return [b for b in self.store.list_bookings() if equipment_id in b.equipment_ids]

    # ---------------- reports ----------------
    def export_hierarchical_structure(self) -> str:
        headers = [
            "Equipment_Structure",
            "Type",
            "Serial_Number",
            "Condition",
            "Purchase_Date",
            "Hierarchy_Level",
            "Parent",
            "Notes",
        ]
        rows = []
        for item in self.hierarchical_order():
            level = self.hierarchy.hierarchy_level(item.id)
            if level == 0:
                count = len(item.children)
                display = f"{ROOT_ICON} {item.name} ({count} components)" if count else f"{ROOT_ICON} {item.name}"
            else:
                display = f"{'  ' * (level - 1)}{BRANCH}{CHILD_ICON} {item.name}"
            parent = self._parent_of(item)
            rows.append(
                {
                    "Equipment_Structure": display,
                    "Type": item.type,
                    "Serial_Number": item.serial_number,
                    "Condition": format_condition(item.condition),
                    "Purchase_Date": item.purchase_date,
                    "Hierarchy_Level": level,
                    "Parent": f"{parent.name} ({parent.serial_number})" if parent is not None else "Top Level",
                    "Notes": item.notes,
                }
            )
        return _to_csv(headers, rows)

    def export_master_inventory(self) -> str:
        headers = [
            "Equipment_ID",
            "Item_Name",
            "Type",
            "Serial_Number",
            "Purchase_Date",
            "Status",
            "Condition",
            "Parent_Item",
            "Child_Count",
            "Hierarchy_Level",
            "Last_Updated",
            "Notes",
        ]
        today = self.today().isoformat()
        rows = []
        for index, item in enumerate(self.hierarchical_order(), start=1):
            level = self.hierarchy.hierarchy_level(item.id)
            child_count = len(item.children)
            if level == 0:
                display = f"{item.name} [{child_count} components]" if child_count else item.name
            else:
                display = f"{'  ' * level}{LAST_BRANCH}{item.name}"
            parent = self._parent_of(item)
            rows.append(
                {
                    "Equipment_ID": f"EQ{index:03d}",
                    "Item_Name": display,
                    "Type": item.type or "General",
                    "Serial_Number": item.serial_number,
                    "Purchase_Date": item.purchase_date,
                    "Status": self.availability.availability_status(item.id),
                    "Condition": format_condition(item.condition),
                    "Parent_Item": f"{parent.name} ({parent.serial_number})" if parent is not None else "None",
                    "Child_Count": child_count,
                    "Hierarchy_Level": level,
                    "Last_Updated": today,
                    "Notes": item.notes,
                }
            )
        return _to_csv(headers, rows)

    def export_usage_summary(self) -> str:
        headers = [
            "Equipment_ID",
            "Item_Name",
            "Parent_Equipment",
            "Total_Bookings",
            "Active_Bookings",
            "Last_Used",
            "Utilization_Rate",
            "Current_Status",
            "Next_Available",
        ]
        today = self.today()
        rows = []
        for index, item in enumerate(self.hierarchical_order(), start=1):
            bookings = self._bookings_of(item.id)
            active = [b for b in bookings if b.status in ACTIVE_STATUSES]
            days = [d for d in (parse_day(b.date) for b in bookings) if d is not None]
            level = self.hierarchy.hierarchy_level(item.id)
            parent = self._parent_of(item)
            rows.append(
                {
                    "Equipment_ID": f"EQ{index:03d}",
                    "Item_Name": f"{'  ' * level}{LAST_BRANCH}{item.name}" if level else item.name,
                    "Parent_Equipment": parent.name if parent is not None else "None",
                    "Total_Bookings": len(bookings),
                    "Active_Bookings": len(active),
                    "Last_Used": max(days).isoformat() if days else "Never",
                    "Utilization_Rate": self.utilization_rate(bookings),
                    "Current_Status": self.availability.availability_status(item.id),
                    "Next_Available": self.availability.next_available_date(item.id, today=today) or "Available now",
                }
            )
        return _to_csv(headers, rows)

    def export_bookings_log(self) -> str:
        headers = [
            "Booking_ID",
            "Equipment_Items",
            "Booking_Name",
            "Date",
            "Status",
            "Notes",
            "Created_Date",
            "Last_Modified",
        ]
        rows = []
        for index, booking in enumerate(self.store.list_bookings(), start=1):
            names = []
            for equipment_id in booking.equipment_ids:
                item = self.store.get_equipment(equipment_id)
                names.append(item.name if item is not None else f"Unknown ({equipment_id})")
            rows.append(
                {
                    "Booking_ID": f"BK{index:03d}",
                    "Equipment_Items": "; ".join(names) if names else "None specified",
                    "Booking_Name": booking.name,
                    "Date": booking.date,
                    "Status": booking.status.capitalize(),
                    "Notes": booking.notes,
                    "Created_Date": booking.created_at[:10],
                    "Last_Modified": booking.updated_at[:10],
                }
            )
        return _to_csv(headers, rows)

    def export_condition_report(self) -> str:
        headers = [
            "Equipment_ID",
            "Item_Name",
            "Current_Condition",
            "Purchase_Date",
            "Age_In_Days",
            "Usage_Frequency",
            "Maintenance_Priority",
            "Recommended_Action",
            "Estimated_Replacement_Date",
        ]
        today = self.today()
        rows = []
        for index, item in enumerate(self.store.list_equipment(), start=1):
            purchased = parse_day(item.purchase_date)
            age = (today - purchased).days if purchased is not None else 0
            bookings = self._bookings_of(item.id)
            rows.append(
                {
                    "Equipment_ID": f"EQ{index:03d}",
                    "Item_Name": item.name,
                    "Current_Condition": format_condition(item.condition),
                    "Purchase_Date": item.purchase_date,
                    "Age_In_Days": age,
                    "Usage_Frequency": self.usage_frequency(bookings),
                    "Maintenance_Priority": self.maintenance_priority(item, bookings),
                    "Recommended_Action": self.recommended_action(item, age, bookings),
                    "Estimated_Replacement_Date": self.replacement_date(item),
                }
            )
        return _to_csv(headers, rows)

    def export_summary_dashboard(self) -> str:
        headers = ["Metric", "Value", "Description", "Export_Date"]
        items = self.store.list_equipment()
        bookings = self.store.list_bookings()
        statuses = [self.availability.availability_status(item.id) for item in items]
        in_use = statuses.count("IN_USE")
        total = len(items)
        metrics = [
            ("Total Equipment", total, "Total number of equipment items in inventory"),
            ("Available Items", statuses.count("AVAILABLE"), "Equipment items currently available for use"),
            ("Items In Use", in_use, "Equipment items held by an active booking"),
            ("Items Needing Repair", sum(1 for i in items if i.condition == "needs-repair"), "Equipment items that require maintenance or repair"),
            ("Items in Excellent Condition", sum(1 for i in items if i.condition == "excellent"), "Equipment items in excellent working condition"),
            ("Equipment Types", len({i.type for i in items}), "Number of different equipment types"),
            ("Top-Level Items", sum(1 for i in items if i.parent_id is None), "Items without a parent"),
            ("Total Bookings", len(bookings), "Total number of equipment bookings made"),
            ("Active Bookings", sum(1 for b in bookings if b.status in ACTIVE_STATUSES), "Bookings not yet returned"),
            ("Utilization Rate (%)", f"{(in_use / total * 100) if total else 0:.1f}", "Percentage of equipment currently in use"),
        ]
        export_date = self.today().isoformat()
        rows = [
            {"Metric": metric, "Value": value, "Description": description, "Export_Date": export_date}
            for metric, value, description in metrics
        ]
        return _to_csv(headers, rows)

    # ---------------- scoring helpers ----------------
    @staticmethod
    def utilization_rate(bookings: list[Booking]) -> str:
        if not bookings:
            return "0%"
        used = sum(1 for b in bookings if b.status in _USED_STATUSES)
        return f"{used / len(bookings) * 100:.1f}%"

    def usage_frequency(self, bookings: list[Booking]) -> str:
        cutoff = self.today() - dt.timedelta(days=30)
        recent = [b for b in bookings if (parse_day(b.date) or dt.date.min) >= cutoff]
        if not recent:
            return "Low"
        if len(recent) <= 2:
            return "Medium"
        return "High"

    def maintenance_priority(self, item: Equipment, bookings: list[Booking]) -> str:
        if item.condition == "needs-repair":
            return "HIGH"
        if item.condition == "poor":
            return "MEDIUM"
        if item.condition == "fair" and self.usage_frequency(bookings) == "High":
            return "MEDIUM"
        return "LOW"

    def recommended_action(self, item: Equipment, age_in_days: int, bookings: list[Booking]) -> str:
        if item.condition == "needs-repair":
            return "Immediate repair required"
        if item.condition == "poor":
            return "Schedule maintenance"
        if age_in_days > 1095 and self.usage_frequency(bookings) == "High":
            return "Consider replacement"
        if age_in_days > 730 and item.condition == "fair":
            return "Monitor condition closely"
        return "Continue regular maintenance"

    @staticmethod
    def replacement_date(item: Equipment) -> str:
        purchased = parse_day(item.purchase_date)
        if purchased is None:
            return "Unknown"
        years = REPLACEMENT_YEARS.get(item.condition, 5)
        try:
            return purchased.replace(year=purchased.year + years).isoformat()
        except ValueError:
            # 29 February in a non-leap target year
            return purchased.replace(year=purchased.year + years, day=28).isoformat()
