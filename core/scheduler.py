"""Deterministic ordering of tasks for "what next" and for listings."""

from typing import Callable, Iterable, List, Mapping, Optional

from .dependency_validator import is_ready
from .status import PRIORITY_ORDER, STATUS_ORDER
from .task_record import TaskRecord

DEFAULT_NEXT_LIMIT = 5

_UNKNOWN_PRIORITY_RANK = PRIORITY_ORDER["P2"]


def rank_key(task: TaskRecord) -> tuple:
    """Sort key: in_progress first, then priority, then due presence/date, then id."""
    due = task.due or ""
    return (
        0 if task.status == "in_progress" else 1,
        PRIORITY_ORDER.get(task.priority, _UNKNOWN_PRIORITY_RANK),
        0 if due else 1,
        due,
        task.id,
    )


def rank(tasks: Iterable[TaskRecord]) -> List[TaskRecord]:
    return sorted(tasks, key=rank_key)


def select_next(
    records: Iterable[TaskRecord],
    statuses: Mapping[str, str],
    *,
    owner: Optional[str] = None,
    project: Optional[str] = None,
    include_blocked: bool = False,
    limit: int = DEFAULT_NEXT_LIMIT,
) -> List[TaskRecord]:
    """Filter records down to the ready subset and rank it.

    ``statuses`` is the id→status snapshot used for dependency checks; it must
    cover every tier whose records can satisfy a dependency.
    """
    project = project.upper() if project else None
    ready: List[TaskRecord] = []
    for task in records:
        if task.status == "done":
            continue
        if task.status == "blocked" and not include_blocked:
            continue
        if owner and task.owner != owner:
            continue
        if project and task.project != project:
            continue
        if not is_ready(task.depends_on, statuses):
            continue
        ready.append(task)
    ranked = rank(ready)
    if limit is not None and limit >= 0:
        return ranked[:limit]
    return ranked


def listing_key(task: TaskRecord) -> tuple:
    return (
        STATUS_ORDER.get(task.status, len(STATUS_ORDER)),
        PRIORITY_ORDER.get(task.priority, _UNKNOWN_PRIORITY_RANK),
        task.id,
    )


def sort_for_listing(tasks: Iterable[TaskRecord]) -> List[TaskRecord]:
    return sorted(tasks, key=listing_key)


def matches(
    task: TaskRecord,
    *,
    project: Optional[str] = None,
    owner: Optional[str] = None,
    status: Optional[str] = None,
    priority: Optional[str] = None,
    tag: Optional[str] = None,
) -> bool:
    if project and task.project != project.upper():
        return False
    if owner and task.owner != owner:
        return False
    if status and task.status != status:
        return False
    if priority and task.priority != priority.upper():
        return False
    if tag and tag.lower() not in [t.lower() for t in task.tags]:
        return False
    return True


def make_filter(**criteria) -> Callable[[TaskRecord], bool]:
    return lambda task: matches(task, **criteria)


__all__ = [
    "DEFAULT_NEXT_LIMIT",
    "rank_key",
    "rank",
    "select_next",
    "listing_key",
    "sort_for_listing",
    "matches",
    "make_filter",
]
