"""Planning text → draft tasks.

The extractor is a line heuristic over markdown-ish planning notes, not a
grammar. Headings give context (phase/section), bullets become candidates,
and deeper-indented bullets under an open candidate become its subtasks.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .errors import ValidationError
from .status import infer_priority, normalize_priority_code

CANDIDATE_PENDING = "pending"
CANDIDATE_PROMOTED = "promoted"

DEFAULT_SUBTASK_INDENT = 2
MIN_TITLE_LENGTH = 3

_H1 = re.compile(r"^#\s+(.+)")
_H2 = re.compile(r"^##\s+(.+)")
_H3 = re.compile(r"^###\s+(.+)")
_CHECKLIST = re.compile(r"^[-*+]\s*\[[ xX]\]\s*(.+)")
_BULLET = re.compile(r"^[-*+]\s+(.+)")
_RESERVED = re.compile(r"^(note:|see:|ref:|link:)", re.IGNORECASE)
_TAG = re.compile(r"\[([^\]]+)\]")
_EMPHASIS = re.compile(r"[*_]")
_SPACES = re.compile(r"\s+")


@dataclass
class Candidate:
    """A draft task: what a backlog entry holds before promotion."""

    title: str
    priority: str = "P2"
    phase: Optional[str] = None
    section: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    subtasks: List[str] = field(default_factory=list)
    id: Optional[str] = None
    state: str = CANDIDATE_PENDING
    added: Optional[str] = None

    @property
    def promoted(self) -> bool:
        return self.state == CANDIDATE_PROMOTED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "priority": self.priority,
            "phase": self.phase,
            "section": self.section,
            "tags": list(self.tags),
            "subtasks": list(self.subtasks),
            "state": self.state,
            "added": self.added,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Candidate":
        return cls(
            id=data.get("id"),
            title=str(data.get("title", "") or ""),
            priority=str(data.get("priority", "P2") or "P2"),
            phase=data.get("phase") or None,
            section=data.get("section") or None,
            tags=[str(t) for t in (data.get("tags") or [])],
            subtasks=[str(s) for s in (data.get("subtasks") or [])],
            state=str(data.get("state", CANDIDATE_PENDING) or CANDIDATE_PENDING),
            added=str(data["added"]) if data.get("added") else None,
        )


def _heading_text(raw: str) -> str:
    return _EMPHASIS.sub("", raw).strip()


def _bullet_text(trimmed: str) -> Optional[str]:
    match = _CHECKLIST.match(trimmed) or _BULLET.match(trimmed)
    if not match:
        return None
    return match.group(1).strip()


def _split_tags(title: str) -> tuple:
    tags: List[str] = []
    for raw in _TAG.findall(title):
        tag = raw.strip().lower()
        if tag and tag not in tags:
            tags.append(tag)
    if not tags:
        return title, tags
    stripped = _SPACES.sub(" ", _TAG.sub("", title)).strip()
    return stripped, tags


def extract(
    text: str,
    project: str,
    default_priority: str = "P2",
    *,
    indent_threshold: int = DEFAULT_SUBTASK_INDENT,
) -> List[Candidate]:
    """Convert planning text into candidates (no ids assigned).

    Args:
        text: Markdown-ish planning notes
        project: Project prefix the candidates will belong to (ids are
            assigned later by the allocator)
        default_priority: Priority when no keyword matches
        indent_threshold: Leading-whitespace width above which a bullet under
            an open candidate becomes its subtask

    Returns:
        Candidates in document order

    Raises:
        ValidationError: default_priority is not one of P0..P3
    """
    try:
        default_priority = normalize_priority_code(default_priority)
    except ValueError as exc:
        raise ValidationError(str(exc)) from None

    candidates: List[Candidate] = []
    phase: Optional[str] = None
    section: Optional[str] = None
    parent: Optional[Candidate] = None

    for line in (text or "").splitlines():
        trimmed = line.strip()
        if not trimmed:
            continue

        h2 = _H2.match(trimmed)
        if h2:
            phase = _heading_text(h2.group(1))
            section = None
            parent = None
            continue
        h3 = _H3.match(trimmed)
        if h3:
            section = _heading_text(h3.group(1))
            parent = None
            continue
        if _H1.match(trimmed):
            phase = None
            section = None
            parent = None
            continue

        title = _bullet_text(trimmed)
        if title is None:
            continue
        if len(title) < MIN_TITLE_LENGTH or _RESERVED.match(title):
            continue

        indent = len(line) - len(line.lstrip())
        if indent > indent_threshold and parent is not None:
            parent.subtasks.append(title)
            continue

        display, tags = _split_tags(title)
        candidate = Candidate(
            title=display or title,
            priority=infer_priority(title, default_priority),
            phase=phase,
            section=section,
            tags=tags,
        )
        candidates.append(candidate)
        parent = candidate

    return candidates


def filter_by_phase(candidates: List[Candidate], phase: Optional[str]) -> List[Candidate]:
    """Keep candidates whose phase contains ``phase`` (case-insensitive)."""
    if not phase:
        return list(candidates)
    needle = phase.strip().lower()
    return [c for c in candidates if c.phase and needle in c.phase.lower()]


__all__ = [
    "Candidate",
    "CANDIDATE_PENDING",
    "CANDIDATE_PROMOTED",
    "DEFAULT_SUBTASK_INDENT",
    "extract",
    "filter_by_phase",
]
