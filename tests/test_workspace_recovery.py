"""Workspace layout, id allocation and journal roll-forward."""

from core import Candidate, TaskRecord
from application.id_allocator import IdentifierAllocator
from infrastructure.journal import OP_ARCHIVE, OP_PROMOTE
from infrastructure.workspace import ProjectWorkspace


def _record(task_id: str, **kwargs) -> TaskRecord:
    return TaskRecord(id=task_id, title=f"Task {task_id}", project=task_id.split("-")[0], created="2026-01-15", updated="2026-01-15", **kwargs)


def test_initialize_creates_tree(storage_dir, clock):
    ws = ProjectWorkspace(storage_dir, clock=clock)
    created = ws.initialize()
    assert (storage_dir / "todos").is_dir()
    assert (storage_dir / "archive").is_dir()
    assert (storage_dir / "BACKLOG.md").is_file()
    assert len(created) == 4
    assert ws.initialize() == []


def test_statuses_cover_both_tiers(workspace):
    workspace.active.create(_record("A-001", status="todo"))
    workspace.archive.save(_record("A-002", status="done"))
    assert workspace.statuses() == {"A-001": "todo", "A-002": "done"}
    assert workspace.locate("A-002") == "archive"
    assert workspace.locate("A-404") is None


class TestIdentifierAllocator:
    def test_first_id_and_batch(self, workspace):
        allocator = IdentifierAllocator(workspace)
        assert allocator.next("auth") == "AUTH-001"
        assert allocator.allocate_batch("AUTH", 3) == ["AUTH-001", "AUTH-002", "AUTH-003"]

    def test_scans_every_tier_per_project(self, workspace):
        workspace.backlog.insert([Candidate(id="AUTH-004", title="Backlog one")])
        workspace.archive.save(_record("AUTH-007"))
        workspace.active.create(_record("OPS-020"))
        allocator = IdentifierAllocator(workspace)
        assert allocator.next("AUTH") == "AUTH-008"
        assert allocator.next("OPS") == "OPS-021"

    def test_removed_ids_stay_burned(self, workspace):
        workspace.backlog.insert([Candidate(id="AUTH-001", title="one"), Candidate(id="AUTH-002", title="two")])
        workspace.commit_id("AUTH-002")
        workspace.backlog.remove("AUTH-002")
        workspace.backlog.remove("AUTH-001")
        assert IdentifierAllocator(workspace).next("AUTH") == "AUTH-003"

        reopened = ProjectWorkspace(workspace.storage_dir)
        assert IdentifierAllocator(reopened).next("AUTH") == "AUTH-003"


class TestJournal:
    def test_pending_entry_is_rolled_forward_on_open(self, workspace, storage_dir, clock):
        record = _record("AUTH-001", status="done")
        workspace.active.create(record)
        record.archived = "2026-01-15"
        # Crash after the archive copy was written but before the active file was removed.
        workspace.journal.begin(OP_ARCHIVE, record)
        workspace.archive.save(record)

        reopened = ProjectWorkspace(storage_dir, clock=clock)
        assert not (storage_dir / "todos" / "AUTH-001.md").exists()
        assert reopened.archive.get("AUTH-001").archived == "2026-01-15"
        assert reopened.journal.pending() == []

    def test_interrupted_promote_marks_backlog(self, workspace, storage_dir, clock):
        workspace.backlog.insert([Candidate(id="AUTH-001", title="Login")])
        workspace.journal.begin(OP_PROMOTE, _record("AUTH-001"))

        reopened = ProjectWorkspace(storage_dir, clock=clock)
        assert reopened.active.exists("AUTH-001")
        assert reopened.backlog.get("AUTH-001").promoted

    def test_replay_is_idempotent(self, workspace):
        record = _record("AUTH-001", status="done")
        workspace.active.create(record)
        workspace.transition(OP_ARCHIVE, record)
        entry = workspace.journal.begin(OP_ARCHIVE, record)
        assert workspace.recover() == 1
        assert not entry.path.exists()
        assert workspace.archive.exists("AUTH-001")
        assert not workspace.active.exists("AUTH-001")

    def test_corrupt_entry_is_moved_aside(self, workspace, storage_dir):
        journal_dir = storage_dir / ".journal"
        journal_dir.mkdir(parents=True, exist_ok=True)
        (journal_dir / "0001-archive-AUTH-001.json").write_text("{not json", encoding="utf-8")
        assert workspace.journal.pending() == []
        assert (journal_dir / "0001-archive-AUTH-001.corrupt").exists()
