"""Priority-bucketed backlog kept as structured data plus a rendered view.

``.project/BACKLOG.md`` stores its entries as a YAML list in the front
matter; the markdown body is regenerated from that list on every write and is
never edited in place. Documents without ``entries`` (hand-written backlogs)
are read once from their rendered lines and upgraded on the next write.
"""

import logging
import re
from datetime import date
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import yaml

from core import (
    CANDIDATE_PENDING,
    CANDIDATE_PROMOTED,
    PRIORITY_LABELS,
    VALID_PRIORITIES,
    Candidate,
    CollisionError,
    NotFoundError,
    ValidationError,
)
from core.task_record import dedupe, normalize_task_id, stamp_forward, validate_priority
from application.ports import BacklogRepository, Clock
from infrastructure.atomic_io import write_text_atomic
from infrastructure.task_file_parser import split_front_matter

logger = logging.getLogger("project_tasks.backlog")

BACKLOG_TITLE = "Backlog"
FOOTER = "*Use `promote_task` to move items to active work*"
UPDATABLE_FIELDS = ("title", "tags", "phase", "subtasks", "priority")

_BUCKET_HEADING = re.compile(r"^###\s+(P[0-3])\b")
_ENTRY_LINE = re.compile(r"^[-*]\s+\[( |x|X|promoted)\]\s+\*\*([A-Za-z][A-Za-z0-9]*-\d+)\*\*:\s*(.*)$")
_ENTRY_TAIL = re.compile(r"^(.+?)(?:\s*\[([^\]]+)\])?(?:\s*\(([^)]+)\))?$")
_SUBTASK_LINE = re.compile(r"^\s{2,}[-*]\s+(.+)$")


def bucket_heading(priority: str) -> str:
    return f"### {priority} - {PRIORITY_LABELS[priority]}"


def human_date(iso_date: str) -> str:
    """2026-03-05 -> March 5, 2026"""
    try:
        value = date.fromisoformat(iso_date)
    except (TypeError, ValueError):
        return str(iso_date or "")
    return f"{value.strftime('%B')} {value.day}, {value.year}"


def render_entry(entry: Candidate) -> List[str]:
    marker = "promoted" if entry.state == CANDIDATE_PROMOTED else " "
    tags = f" [{', '.join(entry.tags)}]" if entry.tags else ""
    phase = f" ({entry.phase})" if entry.phase else ""
    lines = [f"- [{marker}] **{entry.id}**: {entry.title}{tags}{phase}"]
    lines += [f"  - {sub}" for sub in entry.subtasks]
    return lines


def render_body(entries: Iterable[Candidate], updated: str) -> str:
    """Pure projection of the structured entries to the bucketed document body."""
    entries = list(entries)
    lines = [f"# {BACKLOG_TITLE}", "", f"**Last Updated:** {human_date(updated)}", "", "## Queue", ""]
    for priority in VALID_PRIORITIES:
        lines += [bucket_heading(priority), ""]
        bucket = [e for e in entries if e.priority == priority]
        for entry in bucket:
            lines += render_entry(entry)
        if bucket:
            lines.append("")
    lines += ["---", FOOTER, ""]
    return "\n".join(lines)


def parse_rendered(body: str) -> List[Candidate]:
    """Read entries back from rendered (or hand-written) bucket lines."""
    entries: List[Candidate] = []
    bucket: Optional[str] = None
    current: Optional[Candidate] = None
    for line in body.splitlines():
        heading = _BUCKET_HEADING.match(line.strip())
        if heading:
            bucket = heading.group(1)
            current = None
            continue
        if line.startswith("#"):
            bucket = None
            current = None
            continue
        entry = _ENTRY_LINE.match(line.strip()) if not line.startswith(" ") else None
        if entry and bucket:
            tail = _ENTRY_TAIL.match(entry.group(3).strip())
            title = tail.group(1).strip() if tail else entry.group(3).strip()
            tags = [t.strip() for t in tail.group(2).split(",")] if tail and tail.group(2) else []
            current = Candidate(
                id=entry.group(2).upper(),
                title=title,
                priority=bucket,
                phase=(tail.group(3).strip() if tail and tail.group(3) else None),
                tags=dedupe(tags),
                state=CANDIDATE_PROMOTED if entry.group(1) == "promoted" else CANDIDATE_PENDING,
            )
            entries.append(current)
            continue
        sub = _SUBTASK_LINE.match(line)
        if sub and current is not None:
            current.subtasks.append(sub.group(1).strip())
    return entries


class BacklogStore(BacklogRepository):
    """Ordered map id → Candidate persisted as one document."""

    def __init__(self, path: Path, clock: Clock):
        self.path = Path(path)
        self._clock = clock
        self._entries: Optional[Dict[str, Candidate]] = None
        self._created: str = ""
        self._updated: str = ""

    def _load(self) -> Dict[str, Candidate]:
        if self._entries is not None:
            return self._entries
        entries: Dict[str, Candidate] = {}
        self._created = ""
        self._updated = ""
        if self.path.exists():
            content = self.path.read_text(encoding="utf-8")
            parts = split_front_matter(content)
            meta: Dict[str, Any] = {}
            body = content
            if parts is not None:
                try:
                    loaded = yaml.safe_load(parts[0]) or {}
                except yaml.YAMLError as exc:
                    raise ValidationError(
                        f"Unreadable front matter in {self.path}: fix or remove the file",
                        details={"path": str(self.path), "reason": str(exc)},
                    ) from None
                meta = loaded if isinstance(loaded, dict) else {}
                body = parts[1]
            self._created = str(meta.get("created", "") or "")
            self._updated = str(meta.get("updated", "") or "")
            if isinstance(meta.get("entries"), list):
                items = [Candidate.from_dict(raw) for raw in meta["entries"] if isinstance(raw, dict)]
            else:
                items = parse_rendered(body)
                if items:
                    logger.info("Read %d backlog entries from rendered lines in %s", len(items), self.path)
            for item in items:
                if item.id:
                    entries[item.id] = item
        self._entries = entries
        return entries

    def _save(self) -> None:
        entries = self._load()
        today = self._clock()
        self._created = self._created or today
        self._updated = stamp_forward(self._updated, today)
        meta = {
            "title": BACKLOG_TITLE,
            "created": self._created,
            "updated": self._updated,
            "entries": [e.to_dict() for e in entries.values()],
        }
        front = yaml.safe_dump(meta, allow_unicode=True, sort_keys=False, default_flow_style=False)
        content = "---\n" + front + "---\n\n" + render_body(entries.values(), self._updated)
        write_text_atomic(self.path, content)

    def initialize(self) -> bool:
        """Write an empty backlog document if none exists."""
        if self.path.exists():
            return False
        self._entries = {}
        self._created = ""
        self._updated = ""
        self._save()
        return True

    def refresh(self) -> None:
        self._entries = None

    def render(self) -> str:
        self._load()
        return render_body(self._entries.values(), self._updated or self._clock())

    @property
    def updated(self) -> str:
        self._load()
        return self._updated

    def ids(self) -> List[str]:
        return list(self._load().keys())

    def find(self, task_id: str) -> Optional[Candidate]:
        entry = self._load().get(task_id)
        return Candidate.from_dict(entry.to_dict()) if entry else None

    def get(self, task_id: str) -> Candidate:
        entry = self.find(task_id)
        if entry is None:
            raise NotFoundError(f"Task {task_id} not found in backlog", details={"id": task_id})
        return entry

    def entries(self, priority: Optional[str] = None, include_promoted: bool = True) -> List[Candidate]:
        wanted = validate_priority(priority) if priority else None
        out = []
        for bucket in VALID_PRIORITIES:
            if wanted and bucket != wanted:
                continue
            for entry in self._load().values():
                if entry.priority != bucket:
                    continue
                if entry.promoted and not include_promoted:
                    continue
                out.append(Candidate.from_dict(entry.to_dict()))
        return out

    def insert(self, candidates: Iterable[Candidate]) -> List[Candidate]:
        entries = self._load()
        batch = list(candidates)
        today = self._clock()
        seen = set()
        for candidate in batch:
            if not candidate.id:
                raise ValidationError("Backlog entries need an id before insert")
            normalize_task_id(candidate.id)
            if candidate.id in entries or candidate.id in seen:
                raise CollisionError(f"Task {candidate.id} already exists in backlog", details={"id": candidate.id})
            seen.add(candidate.id)
            candidate.priority = validate_priority(candidate.priority)
        inserted = []
        for candidate in batch:
            stored = Candidate.from_dict(candidate.to_dict())
            stored.state = CANDIDATE_PENDING
            stored.added = stored.added or today
            stored.tags = dedupe(stored.tags)
            entries[stored.id] = stored
            inserted.append(Candidate.from_dict(stored.to_dict()))
        if inserted:
            self._save()
            logger.info("Inserted %d backlog entries", len(inserted))
        return inserted

    def mark_promoted(self, task_id: str) -> Candidate:
        entries = self._load()
        entry = entries.get(task_id)
        if entry is None:
            raise NotFoundError(f"Task {task_id} not found in backlog", details={"id": task_id})
        if entry.state != CANDIDATE_PROMOTED:
            entry.state = CANDIDATE_PROMOTED
            self._save()
        return Candidate.from_dict(entry.to_dict())

    def update(self, task_id: str, fields: Dict[str, Any]) -> Candidate:
        entries = self._load()
        entry = entries.get(task_id)
        if entry is None:
            raise NotFoundError(f"Task {task_id} not found in backlog", details={"id": task_id})
        unknown = sorted(set(fields) - set(UPDATABLE_FIELDS))
        if unknown:
            raise ValidationError(f"Unknown backlog field(s): {', '.join(unknown)}", details={"fields": unknown})
        if not fields:
            raise ValidationError("No backlog fields to update")

        if "title" in fields:
            title = str(fields["title"] or "").strip()
            if not title:
                raise ValidationError("Backlog title cannot be empty")
            entry.title = title
        if "tags" in fields:
            raw = fields["tags"]
            values = raw.split(",") if isinstance(raw, str) else list(raw or [])
            entry.tags = dedupe(str(t).strip().lower() for t in values)
        if "phase" in fields:
            entry.phase = str(fields["phase"] or "").strip() or None
        if "subtasks" in fields:
            entry.subtasks = [str(s).strip() for s in (fields["subtasks"] or []) if str(s).strip()]
        if "priority" in fields:
            priority = validate_priority(fields["priority"])
            if priority != entry.priority:
                entry.priority = priority
                # Relocate to the end of the new bucket.
                entries.pop(task_id)
                entries[task_id] = entry
        self._save()
        return Candidate.from_dict(entry.to_dict())

    def remove(self, task_id: str) -> Candidate:
        entries = self._load()
        entry = entries.pop(task_id, None)
        if entry is None:
            raise NotFoundError(f"Task {task_id} not found in backlog", details={"id": task_id})
        self._save()
        return entry
