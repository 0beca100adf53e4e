from __future__ import annotations

import datetime as dt
import io

import pandas as pd

from kit_tracker.services.csv_export_service import CsvExportService
from kit_tracker.storage import MemoryStorage
from kit_tracker.tracker import Tracker, create_tracker


def _frame(text: str) -> pd.DataFrame:
    return pd.read_csv(io.StringIO(text), dtype=str, keep_default_na=False)


def _fixed_exporter(tracker: Tracker, day: dt.date) -> CsvExportService:
    return CsvExportService(tracker.store, tracker.hierarchy, tracker.availability, today=lambda: day)


def _rig(tracker: Tracker) -> dict:
    h = tracker.hierarchy
    ids = {}
    ids["stand"] = h.add_equipment(
        {"name": "Speaker Stand", "type": "Audio", "serialNumber": "SN-001", "purchaseDate": "2020-01-15"}
    )
    ids["clip"] = h.add_equipment(
        {"name": "Mic Clip", "type": "Audio", "serialNumber": "SN-002", "parentId": ids["stand"], "condition": "fair"}
    )
    ids["screw"] = h.add_equipment(
        {"name": "Thumb Screw", "type": "Hardware", "serialNumber": "SN-003", "parentId": ids["clip"]}
    )
    ids["mixer"] = h.add_equipment(
        {"name": "Analog Mixer", "type": "Audio", "serialNumber": "SN-010", "condition": "needs-repair",
         "purchaseDate": "2019-03-01", "notes": "channel 4 hums"}
    )
    return ids


def test_hierarchical_structure_layout(tracker: Tracker):
    ids = _rig(tracker)
    df = _frame(tracker.exporter.export_hierarchical_structure())

    assert list(df.columns) == [
        "Equipment_Structure", "Type", "Serial_Number", "Condition",
        "Purchase_Date", "Hierarchy_Level", "Parent", "Notes",
    ]
    assert list(df["Serial_Number"]) == ["SN-010", "SN-001", "SN-002", "SN-003"]
    assert df.loc[0, "Equipment_Structure"] == "\U0001F4E6 Analog Mixer"
    assert df.loc[1, "Equipment_Structure"] == "\U0001F4E6 Speaker Stand (1 components)"
    assert df.loc[2, "Equipment_Structure"] == "├─ \U0001F527 Mic Clip"
    assert df.loc[3, "Equipment_Structure"] == "  ├─ \U0001F527 Thumb Screw"
    assert list(df["Hierarchy_Level"]) == ["0", "0", "1", "2"]
    assert list(df["Parent"]) == ["Top Level", "Top Level", "Speaker Stand (SN-001)", "Mic Clip (SN-002)"]
    assert df.loc[0, "Condition"] == "Needs Repair"
    assert ids


def test_hierarchical_export_reimports_to_same_structure(tracker: Tracker):
    _rig(tracker)
    exported = tracker.exporter.export_hierarchical_structure()

    with create_tracker(tracker.settings, storage=MemoryStorage()) as fresh:
        result = fresh.importer.import_csv(exported)
        assert result.imported_count == 4
        assert result.errors == []
        assert result.warnings == []

        items = {item.serial_number: item for item in fresh.store.list_equipment()}
        assert items["SN-001"].name == "Speaker Stand"
        assert items["SN-002"].name == "Mic Clip"
        assert items["SN-003"].name == "Thumb Screw"
        assert items["SN-010"].condition == "needs-repair"
        assert items["SN-010"].notes == "channel 4 hums"
        assert items["SN-002"].condition == "fair"
        assert items["SN-002"].parent_id == items["SN-001"].id
        assert items["SN-003"].parent_id == items["SN-002"].id
        assert items["SN-010"].parent_id is None
        assert fresh.hierarchy.check_consistency() == []


def test_master_inventory_and_usage(tracker: Tracker):
    ids = _rig(tracker)
    tracker.bookings.add_booking({"date": "2024-06-10", "equipmentIds": [ids["stand"]], "name": "Gig"})
    exporter = _fixed_exporter(tracker, dt.date(2024, 6, 1))

    master = _frame(exporter.export_master_inventory())
    assert list(master["Equipment_ID"]) == ["EQ001", "EQ002", "EQ003", "EQ004"]
    assert master.loc[1, "Item_Name"] == "Speaker Stand [1 components]"
    assert master.loc[2, "Item_Name"] == "  └─ Mic Clip"
    assert master.loc[1, "Status"] == "IN_USE"
    assert master.loc[0, "Status"] == "AVAILABLE"
    assert master.loc[2, "Parent_Item"] == "Speaker Stand (SN-001)"
    assert master.loc[0, "Parent_Item"] == "None"
    assert set(master["Last_Updated"]) == {"2024-06-01"}

    usage = _frame(exporter.export_usage_summary())
    stand = usage[usage["Item_Name"] == "Speaker Stand"].iloc[0]
    assert stand["Total_Bookings"] == "1"
    assert stand["Active_Bookings"] == "1"
    assert stand["Last_Used"] == "2024-06-10"
    assert stand["Next_Available"] == "2024-06-11"
    assert stand["Utilization_Rate"] == "0.0%"
    mixer = usage[usage["Item_Name"] == "Analog Mixer"].iloc[0]
    assert mixer["Last_Used"] == "Never"
    assert mixer["Next_Available"] == "Available now"


def test_bookings_log_names_items(tracker: Tracker):
    ids = _rig(tracker)
    booking = tracker.bookings.add_booking(
        {"date": "2024-06-10", "equipmentIds": [ids["stand"], ids["mixer"]], "name": "Gig", "notes": "load at 5"}
    )
    tracker.bookings.update_booking_status(booking, "dispatched")

    df = _frame(tracker.exporter.export_bookings_log())
    assert len(df) == 1
    row = df.iloc[0]
    assert row["Booking_ID"] == "BK001"
    assert row["Equipment_Items"] == "Speaker Stand; Analog Mixer"
    assert row["Status"] == "Dispatched"
    assert row["Notes"] == "load at 5"
    assert len(row["Created_Date"]) == 10


def test_condition_report_scoring(tracker: Tracker):
    _rig(tracker)
    exporter = _fixed_exporter(tracker, dt.date(2024, 6, 1))
    df = _frame(exporter.export_condition_report())
    rows = {row["Item_Name"]: row for _, row in df.iterrows()}

    mixer = rows["Analog Mixer"]
    assert mixer["Maintenance_Priority"] == "HIGH"
    assert mixer["Recommended_Action"] == "Immediate repair required"
    assert mixer["Estimated_Replacement_Date"] == "2019-03-01"
    assert mixer["Age_In_Days"] == str((dt.date(2024, 6, 1) - dt.date(2019, 3, 1)).days)

    stand = rows["Speaker Stand"]
    assert stand["Maintenance_Priority"] == "LOW"
    assert stand["Usage_Frequency"] == "Low"
    assert stand["Estimated_Replacement_Date"] == "2025-01-15"


def test_summary_dashboard_counts(tracker: Tracker):
    ids = _rig(tracker)
    tracker.bookings.add_booking({"date": "2024-06-10", "equipmentIds": [ids["clip"]], "name": "Gig"})
    exporter = _fixed_exporter(tracker, dt.date(2024, 6, 1))

    df = _frame(exporter.export_summary_dashboard())
    metrics = dict(zip(df["Metric"], df["Value"]))
    assert metrics["Total Equipment"] == "4"
    assert metrics["Items In Use"] == "1"
    assert metrics["Available Items"] == "3"
    assert metrics["Items Needing Repair"] == "1"
    assert metrics["Equipment Types"] == "2"
    assert metrics["Top-Level Items"] == "2"
    assert metrics["Active Bookings"] == "1"
    assert metrics["Utilization Rate (%)"] == "25.0"
    assert set(df["Export_Date"]) == {"2024-06-01"}


def test_export_of_empty_inventory_has_headers_only(tracker: Tracker):
    text = tracker.exporter.export_master_inventory()
    assert text.splitlines() == [
        "Equipment_ID,Item_Name,Type,Serial_Number,Purchase_Date,Status,Condition,"
        "Parent_Item,Child_Count,Hierarchy_Level,Last_Updated,Notes"
    ]
