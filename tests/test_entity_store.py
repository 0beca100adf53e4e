from __future__ import annotations

import json
from pathlib import Path

import pytest

from kit_tracker.errors import PersistenceError
from kit_tracker.models import Equipment
from kit_tracker.services.entity_store import EntityStore
from kit_tracker.storage import BOOKINGS_KEY, EQUIPMENT_KEY, JsonFileStorage, MemoryStorage, StorageAdapter
from kit_tracker.tracker import create_tracker


class FlakyStorage(MemoryStorage):
    def __init__(self) -> None:
        super().__init__()
        self.fail_saves = False
        self.saves: list[str] = []

    def save(self, key, records):
        if self.fail_saves:
            raise OSError("disk full")
        self.saves.append(key)
        super().save(key, records)


def _item(store: EntityStore, name: str, serial: str) -> Equipment:
    return Equipment(id=store.create_id(), name=name, type="Audio", serial_number=serial)


def test_adapters_satisfy_protocol(tmp_path: Path):
    assert isinstance(MemoryStorage(), StorageAdapter)
    assert isinstance(JsonFileStorage(tmp_path), StorageAdapter)


def test_absent_keys_load_as_empty():
    store = EntityStore(MemoryStorage())
    snap = store.snapshot()
    assert snap.equipment == []
    assert snap.bookings == []


def test_reads_are_copies():
    store = EntityStore(MemoryStorage())
    item = _item(store, "Case", "C-1")
    store.put_equipment(item)

    item.name = "Changed outside"
    fetched = store.require_equipment(item.id)
    assert fetched.name == "Case"
    fetched.children.append("bogus")
    assert store.require_equipment(item.id).children == []


def test_writes_are_persisted_with_camel_case_keys():
    storage = MemoryStorage()
    store = EntityStore(storage)
    item = _item(store, "Case", "C-1")
    store.put_equipment(item)

    stored = storage.load(EQUIPMENT_KEY)
    assert stored[0]["serialNumber"] == "C-1"
    assert stored[0]["parentId"] is None
    assert storage.load(BOOKINGS_KEY) is None

    reloaded = EntityStore(storage)
    assert [e.id for e in reloaded.list_equipment()] == [item.id]


def test_mutation_block_saves_once_per_collection():
    storage = FlakyStorage()
    store = EntityStore(storage)
    with store.mutation():
        for n in range(3):
            store.put_equipment(_item(store, f"Item {n}", f"S-{n}"))
        with store.mutation():
            store.remove_equipment("does-not-exist")
        assert storage.saves == []
    assert storage.saves == [EQUIPMENT_KEY]


def test_failed_save_keeps_memory_and_reports():
    storage = FlakyStorage()
    seen: list[PersistenceError] = []
    store = EntityStore(storage, on_persistence_error=seen.append)
    storage.fail_saves = True

    item = _item(store, "Case", "C-1")
    store.put_equipment(item)

    assert store.has_equipment(item.id)
    assert isinstance(store.last_persistence_error, PersistenceError)
    assert store.last_persistence_error.key == EQUIPMENT_KEY
    assert seen == [store.last_persistence_error]

    with pytest.raises(PersistenceError):
        store.flush()

    storage.fail_saves = False
    store.flush()
    assert storage.load(EQUIPMENT_KEY)[0]["id"] == item.id


def test_corrupted_collection_raises_on_refresh():
    storage = MemoryStorage({EQUIPMENT_KEY: [{"id": "x", "name": "No type"}]})
    with pytest.raises(PersistenceError) as exc:
        EntityStore(storage)
    assert exc.value.key == EQUIPMENT_KEY


def test_refresh_picks_up_external_changes():
    storage = MemoryStorage()
    store = EntityStore(storage)
    other = EntityStore(storage)
    other.put_equipment(_item(other, "Case", "C-1"))

    assert store.list_equipment() == []
    snap = store.refresh()
    assert [e.name for e in snap.equipment] == ["Case"]


def test_ids_are_unique():
    store = EntityStore(MemoryStorage())
    ids = {store.create_id() for _ in range(500)}
    assert len(ids) == 500


def test_json_file_storage_round_trip(tmp_path: Path):
    directory = tmp_path / "profile"
    storage = JsonFileStorage(directory)
    assert storage.load(EQUIPMENT_KEY) is None

    storage.save(EQUIPMENT_KEY, [{"id": "1", "name": "Lautsprecher"}])
    assert json.loads((directory / "equipment.json").read_text(encoding="utf-8")) == [
        {"id": "1", "name": "Lautsprecher"}
    ]
    assert storage.load(EQUIPMENT_KEY) == [{"id": "1", "name": "Lautsprecher"}]
    assert sorted(p.name for p in directory.iterdir()) == ["equipment.json"]

    (directory / "bookings.json").write_text('{"not": "a list"}', encoding="utf-8")
    with pytest.raises(ValueError):
        storage.load(BOOKINGS_KEY)


def test_tracker_on_json_backend_survives_restart(settings):
    with create_tracker(settings) as first:
        stand = first.hierarchy.add_equipment({"name": "Speaker Stand", "type": "Audio", "serialNumber": "SN-001"})
        clip = first.hierarchy.add_equipment(
            {"name": "Mic Clip", "type": "Audio", "serialNumber": "SN-002", "parentId": stand}
        )
        first.bookings.add_booking({"date": "2024-06-01", "equipmentIds": [clip], "name": "Rehearsal"})

    with create_tracker(settings) as second:
        assert second.store.require_equipment(stand).children == [clip]
        assert second.availability.is_booked(clip, "2024-06-01")
        assert (Path(settings.storage_path) / "bookings.json").exists()
