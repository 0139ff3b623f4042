from enum import Enum
from typing import Dict, Final, Literal, Optional


class Status(Enum):
    TODO = ("todo", "⚪")
    IN_PROGRESS = ("in_progress", "🔵")
    BLOCKED = ("blocked", "🔴")
    REVIEW = ("review", "🟡")
    DONE = ("done", "✅")

    @property
    def code(self) -> str:
        return self.value[0]

    @property
    def emoji(self) -> str:
        return self.value[1]

    @classmethod
    def from_string(cls, value: str) -> "Status":
        code = normalize_task_status(value)
        for status in cls:
            if status.code == code:
                return status
        raise ValueError(f"Invalid task status: {value!r}")


TaskStatusCode = Literal["todo", "in_progress", "blocked", "review", "done"]
PriorityCode = Literal["P0", "P1", "P2", "P3"]

VALID_STATUSES: Final[tuple] = ("todo", "in_progress", "blocked", "review", "done")
VALID_PRIORITIES: Final[tuple] = ("P0", "P1", "P2", "P3")

# Lower sorts first.
PRIORITY_ORDER: Final[Dict[str, int]] = {"P0": 0, "P1": 1, "P2": 2, "P3": 3}
STATUS_ORDER: Final[Dict[str, int]] = {"in_progress": 0, "todo": 1, "blocked": 2, "review": 3, "done": 4}

PRIORITY_LABELS: Final[Dict[str, str]] = {
    "P0": "Critical",
    "P1": "High Priority",
    "P2": "Medium Priority",
    "P3": "Low Priority",
}

# Order matters: the first keyword found in a title wins.
PRIORITY_KEYWORDS: Final[tuple] = (
    ("critical", "P0"),
    ("blocker", "P0"),
    ("urgent", "P0"),
    ("high", "P1"),
    ("important", "P1"),
    ("medium", "P2"),
    ("normal", "P2"),
    ("low", "P3"),
    ("minor", "P3"),
    ("nice-to-have", "P3"),
)

_PRIORITY_ALIASES: Final[Dict[str, str]] = {
    "CRITICAL": "P0",
    "HIGHEST": "P0",
    "HIGH": "P1",
    "MEDIUM": "P2",
    "NORMAL": "P2",
    "LOW": "P3",
    "LOWEST": "P3",
}


def normalize_task_status(value: str, *, allow_unknown: bool = False) -> str:
    """Normalize status input to the canonical lowercase code.

    Accepts spaces/dashes in place of underscores ("in progress", "in-progress").
    When allow_unknown=True, returns the normalized token even if it is not a
    known status.
    """
    token = (value or "").strip().lower().replace(" ", "_").replace("-", "_")
    if token in VALID_STATUSES:
        return token
    if allow_unknown:
        return token
    raise ValueError(f"Invalid task status: {value!r}. Must be one of: {', '.join(VALID_STATUSES)}")


def normalize_priority_code(value: str) -> str:
    """Strict priority check: accepts P0..P3 in any case."""
    token = (value or "").strip().upper()
    if token in VALID_PRIORITIES:
        return token
    raise ValueError(f"Invalid priority: {value!r}. Must be one of: {', '.join(VALID_PRIORITIES)}")


def normalize_priority(value: Optional[str]) -> str:
    """Lenient priority mapping used by the audit fixer (CRITICAL→P0, HIGH→P1, ...).

    Anything unrecognised maps to P2.
    """
    if not value:
        return "P2"
    upper = str(value).strip().upper()
    if upper in VALID_PRIORITIES:
        return upper
    return _PRIORITY_ALIASES.get(upper, "P2")


def infer_priority(text: str, default: str) -> str:
    lowered = (text or "").lower()
    for keyword, priority in PRIORITY_KEYWORDS:
        if keyword in lowered:
            return priority
    return default


def status_label(status: str) -> str:
    """Human label for a status code ("in_progress" → "IN PROGRESS")."""
    return (status or "").replace("_", " ").upper()
