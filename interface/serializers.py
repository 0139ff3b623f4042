"""Canonical JSON shapes for task records and backlog candidates.

Every external boundary (intent API, MCP, CLI) serializes through these
helpers so the wire contract stays in one place.
"""

from typing import Any, Dict, Optional

from core import Candidate, TaskRecord
from core.status import Status


def task_to_dict(task: TaskRecord, *, compact: bool = False, ready: Optional[bool] = None) -> Dict[str, Any]:
    """Serialize a record.

    compact=True: the fields a scheduler consumer needs
    compact=False: every field including body sections
    """
    if compact:
        d: Dict[str, Any] = {
            "id": task.id,
            "title": task.title,
            "project": task.project,
            "priority": task.priority,
            "status": task.status,
            "owner": task.owner,
            "depends_on": list(task.depends_on),
            "due": task.due,
        }
        subtasks = task.subtasks
        if subtasks:
            d["subtasks_done"] = f"{sum(1 for s in subtasks if s.done)}/{len(subtasks)}"
    else:
        d = task.to_dict()
    try:
        d["status_emoji"] = Status.from_string(task.status).emoji
    except ValueError:
        pass
    if ready is not None:
        d["ready"] = ready
    return d


def candidate_to_dict(candidate: Candidate) -> Dict[str, Any]:
    d = candidate.to_dict()
    if not d.get("id"):
        d.pop("id", None)
        d.pop("state", None)
        d.pop("added", None)
    return d
