import copy
import logging
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from core import CollisionError, NotFoundError, TaskRecord, ValidationError
from application.ports import RecordStore
from infrastructure.atomic_io import write_text_atomic
from infrastructure.task_file_parser import TaskFileParseError, TaskFileParser

logger = logging.getLogger("project_tasks.store")

RECORD_SUFFIX = ".md"


class FileRecordStore(RecordStore):
    """One markdown file per record, keyed by file stem.

    The in-memory cache belongs to this instance: it is filled on first access
    and only changes through this store's own writes or ``refresh()``.
    """

    def __init__(self, directory: Path, name: str = "records"):
        self.directory = Path(directory)
        self.name = name
        self._cache: Optional[Dict[str, TaskRecord]] = None

    def _resolve_path(self, task_id: str) -> Path:
        # SEC: Validate task_id against path traversal
        if not task_id or ".." in task_id or "/" in task_id or "\\" in task_id:
            raise ValidationError(f"Invalid task id: contains path characters: {task_id!r}")
        resolved = (self.directory / f"{task_id}{RECORD_SUFFIX}").resolve()
        if not resolved.is_relative_to(self.directory.resolve()):
            raise ValidationError(f"Path traversal detected: {resolved} is outside {self.directory}")
        return resolved

    def _record_files(self) -> List[Path]:
        if not self.directory.is_dir():
            return []
        return sorted(
            p for p in self.directory.glob(f"*{RECORD_SUFFIX}") if p.is_file() and not p.name.startswith(".")
        )

    def _entries(self) -> Dict[str, TaskRecord]:
        if self._cache is None:
            cache: Dict[str, TaskRecord] = {}
            for path in self._record_files():
                record = TaskFileParser.parse(path)
                if record is not None:
                    cache[path.stem] = record
            self._cache = cache
            logger.debug("Loaded %d %s record(s) from %s", len(cache), self.name, self.directory)
        return self._cache

    def _write(self, key: str, record: TaskRecord) -> TaskRecord:
        path = self._resolve_path(key)
        write_text_atomic(path, record.to_file_content())
        stored = copy.deepcopy(record)
        stored._source_path = str(path)
        self._entries()[key] = stored
        return copy.deepcopy(stored)

    def refresh(self) -> None:
        self._cache = None

    def exists(self, task_id: str) -> bool:
        self._resolve_path(task_id)
        return task_id in self._entries()

    def ids(self) -> List[str]:
        return sorted(self._entries().keys())

    def read(self, task_id: str) -> Optional[TaskRecord]:
        self._resolve_path(task_id)
        record = self._entries().get(task_id)
        return copy.deepcopy(record) if record is not None else None

    def get(self, task_id: str) -> TaskRecord:
        record = self.read(task_id)
        if record is None:
            raise NotFoundError(f"Task {task_id} not found in {self.name}", details={"id": task_id})
        return record

    def create(self, record: TaskRecord) -> TaskRecord:
        if self.exists(record.id):
            raise CollisionError(f"Task {record.id} already exists in {self.name}", details={"id": record.id})
        return self._write(record.id, record)

    def save(self, record: TaskRecord) -> TaskRecord:
        """Create or overwrite unconditionally."""
        return self._write(record.id, record)

    def update(self, task_id: str, mutator: Callable[[TaskRecord], None]) -> TaskRecord:
        record = self.get(task_id)
        mutator(record)
        if record.id != task_id:
            raise ValidationError(f"Task id is immutable ({task_id} -> {record.id})")
        return self._write(task_id, record)

    def delete(self, task_id: str) -> bool:
        path = self._resolve_path(task_id)
        self._entries().pop(task_id, None)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        return True

    def list(self, predicate: Optional[Callable[[TaskRecord], bool]] = None) -> List[TaskRecord]:
        records = [copy.deepcopy(r) for _, r in sorted(self._entries().items())]
        if predicate is None:
            return records
        return [r for r in records if predicate(r)]

    def scan(self) -> List[Tuple[Path, Optional[TaskRecord], Optional[str]]]:
        """Fresh read of every file for auditing: (path, record or None, parse error)."""
        results: List[Tuple[Path, Optional[TaskRecord], Optional[str]]] = []
        for path in self._record_files():
            try:
                results.append((path, TaskFileParser.parse_strict(path), None))
            except TaskFileParseError as exc:
                results.append((path, None, str(exc)))
        return results
