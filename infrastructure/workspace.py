import logging
from datetime import date
from pathlib import Path
from typing import Dict, List, Optional, Set

import yaml

from core import TaskRecord, split_task_id
from core.errors import ValidationError
from application.ports import Clock, SequenceStore
from infrastructure.atomic_io import write_text_atomic
from infrastructure.backlog_store import BacklogStore
from infrastructure.file_repository import FileRecordStore
from infrastructure.journal import OP_ARCHIVE, OP_PROMOTE, OP_UNARCHIVE, JournalEntry, TransitionJournal

logger = logging.getLogger("project_tasks.workspace")

STORAGE_DIRNAME = ".project"
TODOS_DIRNAME = "todos"
ARCHIVE_DIRNAME = "archive"
JOURNAL_DIRNAME = ".journal"
BACKLOG_FILENAME = "BACKLOG.md"
SEQUENCES_FILENAME = "sequences.yaml"
INDEX_FILENAME = "TODO.md"


def today_iso() -> str:
    return date.today().isoformat()


class SequenceFile(SequenceStore):
    """Per-project high-water marks; numbers at or below the mark are never handed out again."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._marks: Optional[Dict[str, int]] = None

    def _load(self) -> Dict[str, int]:
        if self._marks is None:
            marks: Dict[str, int] = {}
            if self.path.exists():
                try:
                    raw = yaml.safe_load(self.path.read_text(encoding="utf-8")) or {}
                except yaml.YAMLError as exc:
                    logger.warning("Ignoring unreadable %s: %s", self.path, exc)
                    raw = {}
                if isinstance(raw, dict):
                    for key, value in raw.items():
                        try:
                            marks[str(key).upper()] = int(value)
                        except (TypeError, ValueError):
                            continue
            self._marks = marks
        return self._marks

    def high_water(self, project: str) -> int:
        return self._load().get(project, 0)

    def advance(self, project: str, number: int) -> None:
        marks = self._load()
        if number <= marks.get(project, 0):
            return
        marks[project] = number
        write_text_atomic(self.path, yaml.safe_dump(dict(sorted(marks.items())), sort_keys=False))

    def refresh(self) -> None:
        self._marks = None


class ProjectWorkspace:
    """Owns the ``.project`` tree: backlog, active and archive stores, journal, sequences.

    Construct once per process and pass it to the controller. Stores cache
    what they read; call ``refresh()`` after files were edited outside this
    object.
    """

    def __init__(self, storage_dir: Path, *, clock: Optional[Clock] = None, recover: bool = True):
        self.storage_dir = Path(storage_dir)
        self.clock: Clock = clock or today_iso
        self.active = FileRecordStore(self.storage_dir / TODOS_DIRNAME, name="active")
        self.archive = FileRecordStore(self.storage_dir / ARCHIVE_DIRNAME, name="archive")
        self.backlog = BacklogStore(self.storage_dir / BACKLOG_FILENAME, clock=self.clock)
        self.sequences = SequenceFile(self.storage_dir / SEQUENCES_FILENAME)
        self.journal = TransitionJournal(self.storage_dir / JOURNAL_DIRNAME)
        if recover:
            self.recover()

    @classmethod
    def for_root(cls, project_root: Path, **kwargs) -> "ProjectWorkspace":
        return cls(Path(project_root) / STORAGE_DIRNAME, **kwargs)

    @property
    def project_root(self) -> Path:
        return self.storage_dir.parent

    @property
    def index_path(self) -> Path:
        return self.storage_dir / INDEX_FILENAME

    @property
    def config_path(self) -> Path:
        return self.storage_dir / "config.yaml"

    def initialize(self) -> List[str]:
        """Create the directory tree and an empty backlog; returns what was created."""
        created: List[str] = []
        for directory in (self.storage_dir, self.active.directory, self.archive.directory):
            if not directory.exists():
                directory.mkdir(parents=True, exist_ok=True)
                created.append(str(directory))
        if self.backlog.initialize():
            created.append(str(self.backlog.path))
        return created

    def refresh(self) -> None:
        self.active.refresh()
        self.archive.refresh()
        self.backlog.refresh()
        self.sequences.refresh()
        self.recover()

    def statuses(self) -> Dict[str, str]:
        """id → status over Archive ∪ Active (an active record wins on duplicates)."""
        snapshot = {r.id: r.status for r in self.archive.list()}
        snapshot.update({r.id: r.status for r in self.active.list()})
        return snapshot

    def known_ids(self) -> Set[str]:
        return set(self.backlog.ids()) | set(self.active.ids()) | set(self.archive.ids())

    def locate(self, task_id: str) -> Optional[str]:
        if self.active.exists(task_id):
            return "active"
        if self.archive.exists(task_id):
            return "archive"
        if self.backlog.find(task_id) is not None:
            return "backlog"
        return None

    def commit_id(self, task_id: str) -> None:
        try:
            project, number = split_task_id(task_id)
        except ValidationError:
            return
        self.sequences.advance(project, number)

    def transition(self, op: str, record: TaskRecord) -> TaskRecord:
        entry = self.journal.begin(op, record)
        self._apply(entry)
        self.journal.complete(entry)
        return record

    def _apply(self, entry: JournalEntry) -> None:
        record = entry.record
        if entry.op == OP_PROMOTE:
            if not self.active.exists(record.id):
                self.active.save(record)
            if self.backlog.find(record.id) is not None:
                self.backlog.mark_promoted(record.id)
        elif entry.op == OP_ARCHIVE:
            self.archive.save(record)
            self.active.delete(record.id)
        elif entry.op == OP_UNARCHIVE:
            self.active.save(record)
            self.archive.delete(record.id)
        self.commit_id(record.id)

    def recover(self) -> int:
        """Roll pending journal entries forward; returns how many were replayed."""
        replayed = 0
        for entry in self.journal.pending():
            logger.warning("Recovering interrupted %s of %s", entry.op, entry.task_id)
            self._apply(entry)
            self.journal.complete(entry)
            replayed += 1
        return replayed
