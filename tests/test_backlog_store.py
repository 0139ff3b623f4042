"""Tests for the bucketed backlog document."""

from pathlib import Path

import pytest
import yaml

from core import CANDIDATE_PROMOTED, Candidate, CollisionError, NotFoundError, ValidationError
from infrastructure.backlog_store import BacklogStore, human_date, parse_rendered, render_body
from infrastructure.task_file_parser import split_front_matter


def _store(tmp_path: Path) -> BacklogStore:
    return BacklogStore(tmp_path / "BACKLOG.md", clock=lambda: "2026-01-15")


def _candidate(task_id: str, title: str, priority: str = "P2", **kwargs) -> Candidate:
    return Candidate(id=task_id, title=title, priority=priority, **kwargs)


def test_initialize_writes_empty_document(tmp_path: Path):
    store = _store(tmp_path)
    assert store.initialize() is True
    assert store.initialize() is False
    content = (tmp_path / "BACKLOG.md").read_text(encoding="utf-8")
    assert "# Backlog" in content
    assert "**Last Updated:** January 15, 2026" in content
    for heading in ("### P0 - Critical", "### P1 - High Priority", "### P2 - Medium Priority", "### P3 - Low Priority"):
        assert heading in content


def test_insert_persists_structured_entries_and_rendered_lines(tmp_path: Path):
    store = _store(tmp_path)
    store.insert(
        [
            _candidate("AUTH-001", "Add login form", "P1", tags=["security"], phase="Phase 1", subtasks=["wire form"]),
            _candidate("AUTH-002", "Polish copy", "P3"),
        ]
    )
    content = (tmp_path / "BACKLOG.md").read_text(encoding="utf-8")
    assert "- [ ] **AUTH-001**: Add login form [security] (Phase 1)" in content
    assert "  - wire form" in content
    assert content.index("**AUTH-001**") < content.index("### P2") < content.index("**AUTH-002**")

    meta = yaml.safe_load(split_front_matter(content)[0])
    assert [e["id"] for e in meta["entries"]] == ["AUTH-001", "AUTH-002"]
    assert meta["created"] == "2026-01-15"

    reloaded = _store(tmp_path).get("AUTH-001")
    assert reloaded.added == "2026-01-15"
    assert reloaded.tags == ["security"]
    assert reloaded.state == "pending"


def test_insert_rejects_duplicates_and_missing_ids(tmp_path: Path):
    store = _store(tmp_path)
    store.insert([_candidate("AUTH-001", "First")])
    with pytest.raises(CollisionError):
        store.insert([_candidate("AUTH-001", "Again")])
    with pytest.raises(CollisionError):
        store.insert([_candidate("AUTH-002", "A"), _candidate("AUTH-002", "B")])
    with pytest.raises(ValidationError):
        store.insert([Candidate(title="No id")])
    assert store.ids() == ["AUTH-001"]


def test_entries_in_bucket_order_and_filters(tmp_path: Path):
    store = _store(tmp_path)
    store.insert([_candidate("A-001", "low", "P3"), _candidate("A-002", "crit", "P0"), _candidate("A-003", "mid")])
    store.mark_promoted("A-003")
    assert [e.id for e in store.entries()] == ["A-002", "A-003", "A-001"]
    assert [e.id for e in store.entries(include_promoted=False)] == ["A-002", "A-001"]
    assert [e.id for e in store.entries(priority="p3")] == ["A-001"]


def test_mark_promoted_renders_marker(tmp_path: Path):
    store = _store(tmp_path)
    store.insert([_candidate("AUTH-001", "Add login form")])
    entry = store.mark_promoted("AUTH-001")
    assert entry.state == CANDIDATE_PROMOTED
    assert "- [promoted] **AUTH-001**: Add login form" in (tmp_path / "BACKLOG.md").read_text(encoding="utf-8")
    with pytest.raises(NotFoundError):
        store.mark_promoted("AUTH-404")


def test_update_priority_moves_entry_to_end_of_new_bucket(tmp_path: Path):
    store = _store(tmp_path)
    store.insert([_candidate("A-001", "one", "P1"), _candidate("A-002", "two", "P2"), _candidate("A-003", "three", "P1")])
    store.update("A-002", {"priority": "P1", "tags": "ops, Infra"})
    assert [e.id for e in store.entries(priority="P1")] == ["A-001", "A-003", "A-002"]
    assert store.get("A-002").tags == ["ops", "infra"]


def test_update_validates_fields(tmp_path: Path):
    store = _store(tmp_path)
    store.insert([_candidate("A-001", "one")])
    with pytest.raises(ValidationError):
        store.update("A-001", {"owner": "ana"})
    with pytest.raises(ValidationError):
        store.update("A-001", {})
    with pytest.raises(ValidationError):
        store.update("A-001", {"title": "  "})
    with pytest.raises(NotFoundError):
        store.update("A-404", {"title": "x"})


def test_remove(tmp_path: Path):
    store = _store(tmp_path)
    store.insert([_candidate("A-001", "one")])
    assert store.remove("A-001").id == "A-001"
    assert store.ids() == []
    with pytest.raises(NotFoundError):
        store.remove("A-001")


def test_hand_written_backlog_is_read_from_rendered_lines(tmp_path: Path):
    (tmp_path / "BACKLOG.md").write_text(
        "# Backlog\n\n## Queue\n\n### P1 - High Priority\n\n"
        "- [ ] **OPS-004**: Rotate keys [security] (Hardening)\n  - stage first\n"
        "- [promoted] **OPS-002**: Add alerts\n\n### P3 - Low Priority\n\n- [ ] **OPS-009**: Tidy docs\n",
        encoding="utf-8",
    )
    store = _store(tmp_path)
    entries = store.entries()
    assert [e.id for e in entries] == ["OPS-004", "OPS-002", "OPS-009"]
    assert entries[0].tags == ["security"]
    assert entries[0].phase == "Hardening"
    assert entries[0].subtasks == ["stage first"]
    assert entries[1].promoted
    assert entries[2].priority == "P3"


def test_render_then_parse_rendered():
    entries = [_candidate("A-001", "one", "P0", tags=["x"]), _candidate("A-002", "two", "P2", phase="Later")]
    parsed = parse_rendered(render_body(entries, "2026-01-15"))
    assert [(e.id, e.priority, e.tags, e.phase) for e in parsed] == [("A-001", "P0", ["x"], None), ("A-002", "P2", [], "Later")]


def test_human_date():
    assert human_date("2026-03-05") == "March 5, 2026"
    assert human_date("garbage") == "garbage"


def test_unreadable_front_matter_raises_validation_error(tmp_path: Path):
    (tmp_path / "BACKLOG.md").write_text("---\nentries: [unclosed\n---\n", encoding="utf-8")
    store = _store(tmp_path)
    with pytest.raises(ValidationError) as excinfo:
        store.entries()
    assert excinfo.value.details["path"].endswith("BACKLOG.md")
