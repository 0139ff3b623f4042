"""State transitions for task records.

LifecycleController is the only writer of task state: it creates records,
promotes backlog entries, applies field updates, and moves records between
the active and archive tiers. Everything it rejects is raised as a
``TaskError`` subclass before any file is touched.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from core import (
    CollisionError,
    NotFoundError,
    StateError,
    SubTask,
    TaskRecord,
    ValidationError,
    build_dependency_graph,
    detect_cycle,
)
from core.task_record import (
    dedupe,
    normalize_project,
    normalize_task_id,
    split_task_id,
    stamp_forward,
    validate_depends_on,
    validate_due,
    validate_priority,
    validate_status,
)
from application.id_allocator import IdentifierAllocator
from infrastructure.journal import OP_ARCHIVE, OP_PROMOTE, OP_UNARCHIVE
from infrastructure.workspace import ProjectWorkspace

logger = logging.getLogger("project_tasks.lifecycle")

APPEND_PREFIX = "append:"
ADD_PREFIX = "add:"
REMOVE_PREFIX = "remove:"
PROMOTED_DESCRIPTION = "Promoted from backlog."

UPDATABLE_FIELDS = (
    "title",
    "description",
    "notes",
    "owner",
    "priority",
    "status",
    "depends_on",
    "blocked_by",
    "tags",
    "estimate",
    "due",
    "phase",
    "add_subtask",
    "complete_subtask",
)


@dataclass
class TransitionResult:
    record: TaskRecord
    changed: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    noop: bool = False


def _as_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return [str(v).strip() for v in value if v is not None and str(v).strip()]


def apply_list_directives(
    current: List[str],
    value: Any,
    *,
    transform: Callable[[str], str],
    key: Callable[[str], str] = str,
) -> List[str]:
    """Whole replacement, or ``add:X`` / ``remove:X`` edits of an ordered set.

    Tokens without a prefix are added when the value mixes them with
    directives; a value without any directive replaces the list. Membership
    is decided on ``key(item)`` and the first-seen spelling is kept.
    """
    tokens = _as_list(value)
    lowered = [t.lower() for t in tokens]
    if not any(t.startswith((ADD_PREFIX, REMOVE_PREFIX)) for t in lowered):
        return dedupe((transform(t) for t in tokens), key=key)
    result = list(current)
    for token, low in zip(tokens, lowered):
        if low.startswith(REMOVE_PREFIX):
            item = transform(token[len(REMOVE_PREFIX):].strip())
            result = [existing for existing in result if key(existing) != key(item)]
        else:
            item = transform(token[len(ADD_PREFIX):].strip() if low.startswith(ADD_PREFIX) else token)
            if item and key(item) not in {key(existing) for existing in result}:
                result.append(item)
    return result


def _append_text(existing: str, addition: str) -> str:
    existing = (existing or "").strip()
    addition = (addition or "").strip()
    if not existing:
        return addition
    if not addition:
        return existing
    return f"{existing}\n\n{addition}"


class LifecycleController:
    def __init__(
        self,
        workspace: ProjectWorkspace,
        *,
        allocator: Optional[IdentifierAllocator] = None,
        clock: Optional[Callable[[], str]] = None,
        strict_dependencies: bool = True,
        default_owner: str = "unassigned",
        default_priority: str = "P2",
    ):
        self.workspace = workspace
        self.allocator = allocator or IdentifierAllocator(workspace)
        self.clock = clock or workspace.clock
        self.strict_dependencies = strict_dependencies
        self.default_owner = default_owner or "unassigned"
        self.default_priority = validate_priority(default_priority or "P2")

    def _today(self) -> str:
        return self.clock()

    def _dependency_graph(self) -> Dict[str, List[str]]:
        records = self.workspace.archive.list() + self.workspace.active.list()
        return build_dependency_graph([(r.id, r.depends_on) for r in records])

    def _check_dependencies(self, task_id: str, depends_on: List[str]) -> List[str]:
        """Self-references always fail; cycles fail when strict, else warn."""
        deps = validate_depends_on(task_id, depends_on)
        if not deps:
            return []
        cycle = detect_cycle(task_id, deps, self._dependency_graph())
        if not cycle:
            return []
        path = " -> ".join(cycle)
        if self.strict_dependencies:
            raise ValidationError(f"Dependency cycle: {path}", details={"cycle": cycle})
        logger.warning("Accepted dependency cycle for %s: %s", task_id, path)
        return [f"Dependency cycle: {path}"]

    def _require_active(self, task_id: str) -> TaskRecord:
        record = self.workspace.active.read(task_id)
        if record is not None:
            return record
        if self.workspace.archive.exists(task_id):
            raise StateError(f"Task {task_id} is archived; unarchive it first", details={"id": task_id})
        raise NotFoundError(f"Task {task_id} not found", details={"id": task_id})

    def get(self, task_id: str) -> Tuple[TaskRecord, str]:
        task_id = normalize_task_id(task_id)
        record = self.workspace.active.read(task_id)
        if record is not None:
            return record, "active"
        record = self.workspace.archive.read(task_id)
        if record is not None:
            return record, "archive"
        raise NotFoundError(f"Task {task_id} not found", details={"id": task_id})

    def create(
        self,
        title: str,
        project: str,
        *,
        priority: Optional[str] = None,
        status: Optional[str] = None,
        owner: Optional[str] = None,
        depends_on: Optional[Iterable[str]] = None,
        blocked_by: Optional[Iterable[str]] = None,
        estimate: Optional[str] = None,
        due: Optional[str] = None,
        tags: Optional[Iterable[str]] = None,
        subtasks: Optional[Iterable[Any]] = None,
        description: str = "",
        notes: str = "",
        phase: str = "",
    ) -> TransitionResult:
        title = str(title or "").strip()
        if not title:
            raise ValidationError("Task title is required")
        project = normalize_project(project)
        priority = validate_priority(priority or self.default_priority)
        status = validate_status(status or "todo")
        due = validate_due(due)
        task_id = self.allocator.next(project)
        deps = validate_depends_on(task_id, _as_list(depends_on))
        warnings = self._check_dependencies(task_id, deps)

        today = self._today()
        record = TaskRecord(
            id=task_id,
            title=title,
            project=project,
            priority=priority,
            status=status,
            owner=str(owner or "").strip() or self.default_owner,
            depends_on=deps,
            blocked_by=dedupe(_as_list(blocked_by)),
            tags=dedupe(_as_list(tags), key=str.lower),
            estimate=str(estimate or "").strip(),
            due=due,
            phase=str(phase or "").strip(),
            created=today,
            updated=today,
            completed=today if status == "done" else None,
            subtasks=[s for s in (SubTask.from_value(v) for v in subtasks or []) if s.text],
            description=str(description or "").strip(),
            notes=str(notes or "").strip(),
        )
        if self.workspace.locate(task_id) is not None:
            raise CollisionError(f"Task {task_id} already exists", details={"id": task_id})
        stored = self.workspace.active.create(record)
        self.workspace.commit_id(task_id)
        logger.info("Created %s (%s, %s)", task_id, priority, status)
        return TransitionResult(record=stored, changed=["created"], warnings=warnings)

    def promote(
        self,
        task_id: str,
        *,
        owner: Optional[str] = None,
        priority: Optional[str] = None,
        depends_on: Optional[Iterable[str]] = None,
        estimate: Optional[str] = None,
        due: Optional[str] = None,
    ) -> TransitionResult:
        task_id = normalize_task_id(task_id)
        existing = self.workspace.active.read(task_id)
        if existing is not None:
            logger.info("Promote of %s skipped: already active", task_id)
            return TransitionResult(
                record=existing,
                warnings=[f"Task {task_id} is already active; nothing promoted"],
                noop=True,
            )
        entry = self.workspace.backlog.get(task_id)
        if self.workspace.archive.exists(task_id):
            raise StateError(f"Task {task_id} is archived; use unarchive_task", details={"id": task_id})

        project, _ = split_task_id(task_id)
        deps = validate_depends_on(task_id, _as_list(depends_on))
        due = validate_due(due)
        warnings = self._check_dependencies(task_id, deps)
        today = self._today()
        record = TaskRecord(
            id=task_id,
            title=entry.title,
            project=project,
            priority=validate_priority(priority) if priority else entry.priority,
            status="todo",
            owner=str(owner or "").strip() or self.default_owner,
            depends_on=deps,
            tags=dedupe(entry.tags),
            estimate=str(estimate or "").strip(),
            due=due,
            phase=entry.phase or "",
            created=today,
            updated=today,
            subtasks=[SubTask(text=s) for s in entry.subtasks],
            description=PROMOTED_DESCRIPTION,
        )
        self.workspace.transition(OP_PROMOTE, record)
        logger.info("Promoted %s from backlog (%s)", task_id, record.priority)
        return TransitionResult(record=self.workspace.active.get(task_id), changed=["promoted"], warnings=warnings)

    def update(self, task_id: str, fields: Dict[str, Any]) -> TransitionResult:
        task_id = normalize_task_id(task_id)
        fields = {k: v for k, v in (fields or {}).items() if k not in {"id", "task_id"}}
        if not fields:
            raise ValidationError("No fields to update", details={"id": task_id})
        unknown = sorted(set(fields) - set(UPDATABLE_FIELDS))
        if unknown:
            raise ValidationError(
                f"Unknown field(s): {', '.join(unknown)}",
                details={"fields": unknown, "allowed": list(UPDATABLE_FIELDS)},
            )
        record = self._require_active(task_id)
        changed: List[str] = []
        warnings: List[str] = []
        today = self._today()

        if "title" in fields:
            title = str(fields["title"] or "").strip()
            if not title:
                raise ValidationError("Task title cannot be empty")
            record.title = title
            changed.append("title")
        for body_field in ("description", "notes"):
            if body_field in fields:
                text = str(fields[body_field] or "")
                if text.startswith(APPEND_PREFIX):
                    setattr(record, body_field, _append_text(getattr(record, body_field), text[len(APPEND_PREFIX):]))
                else:
                    setattr(record, body_field, text.strip())
                changed.append(body_field)
        if "owner" in fields:
            record.owner = str(fields["owner"] or "").strip() or self.default_owner
            changed.append("owner")
        if "priority" in fields:
            record.priority = validate_priority(fields["priority"])
            changed.append("priority")
        if "estimate" in fields:
            record.estimate = str(fields["estimate"] or "").strip()
            changed.append("estimate")
        if "due" in fields:
            record.due = validate_due(fields["due"])
            changed.append("due")
        if "phase" in fields:
            record.phase = str(fields["phase"] or "").strip()
            changed.append("phase")
        if "blocked_by" in fields:
            record.blocked_by = apply_list_directives(record.blocked_by, fields["blocked_by"], transform=str.strip)
            changed.append("blocked_by")
        if "tags" in fields:
            record.tags = apply_list_directives(record.tags, fields["tags"], transform=str.strip, key=str.lower)
            changed.append("tags")
        if "depends_on" in fields:
            deps = apply_list_directives(record.depends_on, fields["depends_on"], transform=lambda t: t.strip().upper())
            deps = validate_depends_on(task_id, deps)
            warnings += self._check_dependencies(task_id, deps)
            record.depends_on = deps
            changed.append("depends_on")
        if "add_subtask" in fields:
            for text in _as_subtask_texts(fields["add_subtask"]):
                record.subtasks.append(SubTask(text=text))
            changed.append("subtasks")
        if "complete_subtask" in fields:
            needle = str(fields["complete_subtask"] or "").strip().lower()
            match = next((s for s in record.subtasks if not s.done and needle and needle in s.text.lower()), None)
            if match is None:
                raise ValidationError(
                    f"No open subtask matching {fields['complete_subtask']!r} in {task_id}",
                    details={"subtasks": [s.to_dict() for s in record.subtasks]},
                )
            match.done = True
            if "subtasks" not in changed:
                changed.append("subtasks")
        if "status" in fields:
            previous = record.status
            record.status = validate_status(fields["status"])
            changed.append("status")
            if record.status == "done" and previous != "done":
                record.completed = stamp_forward(record.completed, today)
                changed.append("completed")

        record.updated = stamp_forward(record.updated, today)
        stored = self.workspace.active.update(task_id, lambda current: _copy_into(current, record))
        logger.info("Updated %s: %s", task_id, ", ".join(changed))
        return TransitionResult(record=stored, changed=changed, warnings=warnings)

    def archive(self, task_id: str, *, force: bool = False) -> TransitionResult:
        task_id = normalize_task_id(task_id)
        record = self.workspace.active.read(task_id)
        if record is None:
            if self.workspace.archive.exists(task_id):
                raise StateError(f"Task {task_id} is already archived", details={"id": task_id})
            raise NotFoundError(f"Task {task_id} not found", details={"id": task_id})
        warnings: List[str] = []
        if record.status != "done":
            if not force:
                raise StateError(
                    f"Task {task_id} is {record.status}; only done tasks can be archived (use force)",
                    details={"id": task_id, "status": record.status},
                )
            warnings.append(f"Archived {task_id} with status {record.status} (forced)")
        today = self._today()
        record.archived = stamp_forward(record.archived, today)
        record.updated = stamp_forward(record.updated, today)
        self.workspace.transition(OP_ARCHIVE, record)
        logger.info("Archived %s%s", task_id, " (forced)" if warnings else "")
        return TransitionResult(record=self.workspace.archive.get(task_id), changed=["archived"], warnings=warnings)

    def unarchive(self, task_id: str) -> TransitionResult:
        task_id = normalize_task_id(task_id)
        record = self.workspace.archive.get(task_id)
        if self.workspace.active.exists(task_id):
            raise CollisionError(f"Task {task_id} is already active", details={"id": task_id})
        record.archived = None
        record.updated = stamp_forward(record.updated, self._today())
        self.workspace.transition(OP_UNARCHIVE, record)
        logger.info("Unarchived %s (status %s)", task_id, record.status)
        return TransitionResult(record=self.workspace.active.get(task_id), changed=["unarchived"])


def _as_subtask_texts(value: Any) -> List[str]:
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if str(v or "").strip()]
    text = str(value or "").strip()
    if not text:
        raise ValidationError("add_subtask needs text")
    return [text]


def _copy_into(target: TaskRecord, source: TaskRecord) -> None:
    for name in TaskRecord.__dataclass_fields__:
        if name == "_source_path":
            continue
        setattr(target, name, getattr(source, name))
