import re
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

import yaml

from .errors import ValidationError
from .status import normalize_priority_code, normalize_task_status
from .subtask import SubTask

TASK_ID_PATTERN = re.compile(r"^([A-Z][A-Z0-9]*)-(\d+)$")
PROJECT_PATTERN = re.compile(r"^[A-Z][A-Z0-9]*$")
DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")

BODY_SECTIONS = ("Description", "Subtasks", "Notes")


@dataclass
class TaskRecord:
    id: str
    title: str
    project: str
    priority: str = "P2"
    status: str = "todo"
    owner: str = "unassigned"
    depends_on: List[str] = field(default_factory=list)
    blocked_by: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    estimate: str = ""
    due: Optional[str] = None
    phase: str = ""
    created: str = ""
    updated: str = ""
    completed: Optional[str] = None
    archived: Optional[str] = None
    subtasks: List[SubTask] = field(default_factory=list)
    description: str = ""
    notes: str = ""
    _source_path: Optional[str] = field(default=None, repr=False, compare=False)

    @property
    def number(self) -> int:
        return split_task_id(self.id)[1]

    @property
    def filename(self) -> str:
        return f"{self.id}.md"

    @property
    def source_path(self) -> Optional[Path]:
        return Path(self._source_path) if self._source_path else None

    def is_done(self) -> bool:
        return self.status == "done"

    def metadata(self) -> Dict[str, Any]:
        meta: Dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "project": self.project,
            "priority": self.priority,
            "status": self.status,
            "owner": self.owner,
            "depends_on": list(self.depends_on),
            "blocked_by": list(self.blocked_by),
            "tags": list(self.tags),
        }
        if self.estimate:
            meta["estimate"] = self.estimate
        if self.due:
            meta["due"] = self.due
        if self.phase:
            meta["phase"] = self.phase
        meta["created"] = self.created
        meta["updated"] = self.updated
        if self.completed:
            meta["completed"] = self.completed
        if self.archived:
            meta["archived"] = self.archived
        return meta

    def to_file_content(self) -> str:
        front = yaml.safe_dump(self.metadata(), allow_unicode=True, sort_keys=False, default_flow_style=False)
        lines = ["---", front.rstrip("\n"), "---", "", f"# {self.id}: {self.title}", ""]
        lines += ["## Description", ""]
        if self.description.strip():
            lines += [self.description.strip(), ""]
        lines += ["## Subtasks", ""]
        if self.subtasks:
            lines += [st.to_markdown() for st in self.subtasks]
            lines.append("")
        lines += ["## Notes", ""]
        if self.notes.strip():
            lines += [self.notes.strip(), ""]
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        data = self.metadata()
        data.setdefault("estimate", self.estimate or None)
        data.setdefault("due", self.due)
        data.setdefault("phase", self.phase or None)
        data.setdefault("completed", self.completed)
        data.setdefault("archived", self.archived)
        data["subtasks"] = [st.to_dict() for st in self.subtasks]
        data["description"] = self.description
        data["notes"] = self.notes
        return data


def split_task_id(task_id: str) -> tuple:
    match = TASK_ID_PATTERN.match(task_id or "")
    if not match:
        raise ValidationError(f"Invalid task id: {task_id!r}. Expected PROJECT-NNN")
    return match.group(1), int(match.group(2))


def format_task_id(project: str, number: int) -> str:
    return f"{project}-{number:03d}"


def normalize_task_id(value: Any) -> str:
    """Uppercase and validate an id supplied by a caller."""
    task_id = str(value or "").strip().upper()
    if not task_id:
        raise ValidationError("Task id is required")
    if ".." in task_id or "/" in task_id or "\\" in task_id:
        raise ValidationError(f"Invalid task id: contains path characters: {task_id}")
    split_task_id(task_id)
    return task_id


def normalize_project(value: Any) -> str:
    project = str(value or "").strip().upper()
    if not PROJECT_PATTERN.match(project):
        raise ValidationError(f"Invalid project prefix: {value!r}. Use letters and digits, starting with a letter")
    return project


def validate_status(value: Any) -> str:
    try:
        return normalize_task_status(str(value or ""))
    except ValueError as exc:
        raise ValidationError(str(exc)) from None


def validate_priority(value: Any) -> str:
    try:
        return normalize_priority_code(str(value or ""))
    except ValueError as exc:
        raise ValidationError(str(exc)) from None


def is_valid_date(value: Any) -> bool:
    text = str(value or "")
    if not DATE_PATTERN.match(text):
        return False
    try:
        date.fromisoformat(text)
    except ValueError:
        return False
    return True


def validate_due(value: Any) -> Optional[str]:
    """Empty clears the due date; anything else must be a real YYYY-MM-DD date."""
    if value is None:
        return None
    if isinstance(value, date):
        return value.isoformat()
    text = str(value).strip()
    if not text:
        return None
    if not is_valid_date(text):
        raise ValidationError(f"Invalid due date: {value!r}. Expected YYYY-MM-DD")
    return text


def validate_depends_on(task_id: Optional[str], values: Iterable[Any]) -> List[str]:
    """Dependency ids share the canonical uppercase form of every task id."""
    deps = dedupe([str(v or "").strip().upper() for v in values or []])
    if task_id and task_id in deps:
        raise ValidationError(f"{task_id} cannot depend on itself", details={"depends_on": deps})
    return deps


def dedupe(values: Iterable[str], key: Callable[[str], str] = str) -> List[str]:
    seen = set()
    out: List[str] = []
    for value in values:
        text = str(value or "").strip()
        if text and key(text) not in seen:
            seen.add(key(text))
            out.append(text)
    return out


def stamp_forward(current: Optional[str], today: str) -> str:
    """Return the later of an existing date stamp and today; stamps never move backward."""
    if current and is_valid_date(current) and current > today:
        return current
    return today
