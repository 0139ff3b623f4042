from pathlib import Path

import pytest

from core import CollisionError, NotFoundError, TaskRecord, ValidationError
from infrastructure.file_repository import FileRecordStore


def _record(task_id: str = "AUTH-001", **kwargs) -> TaskRecord:
    defaults = dict(title="Repository sample", project=task_id.split("-")[0], created="2026-01-15", updated="2026-01-15")
    defaults.update(kwargs)
    return TaskRecord(id=task_id, **defaults)


def test_create_get_roundtrip(tmp_path: Path):
    store = FileRecordStore(tmp_path / "todos", name="active")
    store.create(_record(tags=["api"]))

    assert (tmp_path / "todos" / "AUTH-001.md").exists()
    fresh = FileRecordStore(tmp_path / "todos")
    loaded = fresh.get("AUTH-001")
    assert loaded.title == "Repository sample"
    assert loaded.tags == ["api"]
    assert fresh.ids() == ["AUTH-001"]


def test_create_collision(tmp_path: Path):
    store = FileRecordStore(tmp_path)
    store.create(_record())
    with pytest.raises(CollisionError):
        store.create(_record(title="Other"))


def test_get_missing_raises_and_read_returns_none(tmp_path: Path):
    store = FileRecordStore(tmp_path)
    assert store.read("AUTH-404") is None
    with pytest.raises(NotFoundError):
        store.get("AUTH-404")


def test_reads_are_copies(tmp_path: Path):
    store = FileRecordStore(tmp_path)
    store.create(_record())
    copy = store.get("AUTH-001")
    copy.title = "mutated"
    assert store.get("AUTH-001").title == "Repository sample"


def test_update_applies_mutator_and_keeps_id(tmp_path: Path):
    store = FileRecordStore(tmp_path)
    store.create(_record())

    def rename(record):
        record.title = "Renamed"

    updated = store.update("AUTH-001", rename)
    assert updated.title == "Renamed"
    assert "Renamed" in (tmp_path / "AUTH-001.md").read_text(encoding="utf-8")

    def change_id(record):
        record.id = "AUTH-002"

    with pytest.raises(ValidationError):
        store.update("AUTH-001", change_id)


def test_delete(tmp_path: Path):
    store = FileRecordStore(tmp_path)
    store.create(_record())
    assert store.delete("AUTH-001") is True
    assert store.delete("AUTH-001") is False
    assert not store.exists("AUTH-001")


def test_list_with_predicate_sorted_by_id(tmp_path: Path):
    store = FileRecordStore(tmp_path)
    store.create(_record("AUTH-002", status="done"))
    store.create(_record("AUTH-001"))
    assert [r.id for r in store.list()] == ["AUTH-001", "AUTH-002"]
    assert [r.id for r in store.list(lambda r: r.status == "done")] == ["AUTH-002"]


def test_cache_is_refreshed_on_demand(tmp_path: Path):
    store = FileRecordStore(tmp_path)
    assert store.ids() == []
    (tmp_path / "AUTH-003.md").write_text(_record("AUTH-003").to_file_content(), encoding="utf-8")
    assert store.ids() == []
    store.refresh()
    assert store.ids() == ["AUTH-003"]


def test_unparseable_files_are_skipped_but_scanned(tmp_path: Path):
    store = FileRecordStore(tmp_path)
    store.create(_record())
    (tmp_path / "AUTH-009.md").write_text("not a task", encoding="utf-8")
    store.refresh()
    assert store.ids() == ["AUTH-001"]
    scanned = {path.name: error for path, _, error in store.scan()}
    assert scanned["AUTH-001.md"] is None
    assert scanned["AUTH-009.md"]


class TestPathSafety:
    @pytest.mark.parametrize("task_id", ["../../etc/passwd", "AUTH/001", "AUTH\\001", ""])
    def test_rejects_path_characters(self, tmp_path: Path, task_id: str):
        store = FileRecordStore(tmp_path)
        with pytest.raises(ValidationError):
            store.read(task_id)
