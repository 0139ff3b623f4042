"""Write-ahead records for two-file transitions.

Promote, archive and unarchive each touch two locations. Before the first
write, the full target record is saved under ``.project/.journal/``; the entry
is removed once both steps are done. Replaying an entry is idempotent, so a
crash at any point is repaired by rolling the pending entries forward.
"""

import json
import logging
import time
from pathlib import Path
from typing import Any, Dict, List

from core import TaskRecord
from infrastructure.atomic_io import write_text_atomic
from infrastructure.task_file_parser import TaskFileParser

logger = logging.getLogger("project_tasks.journal")

OP_PROMOTE = "promote"
OP_ARCHIVE = "archive"
OP_UNARCHIVE = "unarchive"
OPERATIONS = (OP_PROMOTE, OP_ARCHIVE, OP_UNARCHIVE)


class JournalEntry:
    def __init__(self, path: Path, op: str, task_id: str, record: TaskRecord, started: float):
        self.path = path
        self.op = op
        self.task_id = task_id
        self.record = record
        self.started = started

    def __repr__(self) -> str:
        return f"JournalEntry(op={self.op!r}, task_id={self.task_id!r})"


class TransitionJournal:
    def __init__(self, directory: Path):
        self.directory = Path(directory)

    def begin(self, op: str, record: TaskRecord) -> JournalEntry:
        if op not in OPERATIONS:
            raise ValueError(f"Unknown journal operation: {op}")
        started = time.time()
        path = self.directory / f"{time.time_ns():020d}-{op}-{record.id}.json"
        payload = {
            "op": op,
            "task_id": record.id,
            "started": started,
            "record": record.to_file_content(),
        }
        write_text_atomic(path, json.dumps(payload, ensure_ascii=False, indent=2))
        logger.debug("Journal begin %s %s", op, record.id)
        return JournalEntry(path, op, record.id, record, started)

    def complete(self, entry: JournalEntry) -> None:
        try:
            entry.path.unlink()
        except FileNotFoundError:
            pass
        logger.debug("Journal complete %s %s", entry.op, entry.task_id)

    def pending(self) -> List[JournalEntry]:
        """Entries left behind by interrupted transitions, oldest first.

        Unreadable entries are moved aside with a ``.corrupt`` suffix.
        """
        if not self.directory.is_dir():
            return []
        entries: List[JournalEntry] = []
        for path in sorted(self.directory.glob("*.json")):
            try:
                payload: Dict[str, Any] = json.loads(path.read_text(encoding="utf-8"))
                op = payload["op"]
                if op not in OPERATIONS:
                    raise ValueError(f"unknown op {op!r}")
                record = TaskFileParser.parse_content(payload["record"])
            except (ValueError, KeyError, TypeError) as exc:
                logger.error("Unreadable journal entry %s: %s", path, exc)
                path.replace(path.with_suffix(".corrupt"))
                continue
            entries.append(JournalEntry(path, op, str(payload.get("task_id") or record.id), record, payload.get("started", 0)))
        return entries
