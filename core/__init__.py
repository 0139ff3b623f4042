from .status import (
    Status,
    VALID_STATUSES,
    VALID_PRIORITIES,
    PRIORITY_ORDER,
    STATUS_ORDER,
    PRIORITY_LABELS,
)
from .subtask import SubTask
from .task_record import TaskRecord, format_task_id, split_task_id
from .errors import TaskError, NotFoundError, ValidationError, StateError, CollisionError
from .candidate_extractor import Candidate, CANDIDATE_PENDING, CANDIDATE_PROMOTED, extract
from .dependency_validator import (
    is_ready,
    detect_cycle,
    find_cycles,
    get_blocked_by_dependencies,
    build_dependency_graph,
)
from .scheduler import rank, select_next, sort_for_listing

__all__ = [
    "Status",
    "VALID_STATUSES",
    "VALID_PRIORITIES",
    "PRIORITY_ORDER",
    "STATUS_ORDER",
    "PRIORITY_LABELS",
    "SubTask",
    "TaskRecord",
    "format_task_id",
    "split_task_id",
    "TaskError",
    "NotFoundError",
    "ValidationError",
    "StateError",
    "CollisionError",
    "Candidate",
    "CANDIDATE_PENDING",
    "CANDIDATE_PROMOTED",
    "extract",
    "is_ready",
    "detect_cycle",
    "find_cycles",
    "get_blocked_by_dependencies",
    "build_dependency_graph",
    "rank",
    "select_next",
    "sort_for_listing",
]
