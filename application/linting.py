"""Cross-record consistency audit for the active and archive tiers.

Normal mutations never run these checks; invalid states persist until this
pass is invoked. With ``fix=True`` a small set of issues is repaired in place
(invalid priority aliases, missing ``updated`` stamps); everything else is
reported only.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from core import VALID_PRIORITIES, VALID_STATUSES, TaskRecord, build_dependency_graph, find_cycles
from core.status import normalize_priority
from core.task_record import is_valid_date
from infrastructure.atomic_io import write_text_atomic
from infrastructure.workspace import ProjectWorkspace

logger = logging.getLogger("project_tasks.lint")

Severity = str  # "error" | "warning"

REQUIRED_FIELDS = ("id", "title", "project", "status", "priority")
STRICT_FIELDS = ("owner", "estimate", "description")


@dataclass(frozen=True)
class LintIssue:
    code: str
    severity: Severity
    message: str
    target: Dict[str, Any] = field(default_factory=dict)
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "severity": self.severity,
            "message": self.message,
            "target": dict(self.target or {}),
            "details": dict(self.details or {}),
        }


@dataclass
class LintReport:
    files_checked: int = 0
    issues: List[LintIssue] = field(default_factory=list)
    fixed: List[Dict[str, str]] = field(default_factory=list)

    @property
    def errors(self) -> List[LintIssue]:
        return [i for i in self.issues if i.severity == "error"]

    def to_dict(self) -> Dict[str, Any]:
        errors = sum(1 for i in self.issues if i.severity == "error")
        warnings = sum(1 for i in self.issues if i.severity != "error")
        return {
            "files_checked": self.files_checked,
            "summary": {"errors": errors, "warnings": warnings, "total": len(self.issues), "fixed": len(self.fixed)},
            "issues": [i.to_dict() for i in self.issues],
            "fixed": list(self.fixed),
        }


def _target(tier: str, path: Path, task_id: str = "") -> Dict[str, Any]:
    target = {"tier": tier, "file": f"{path.parent.name}/{path.name}"}
    if task_id:
        target["id"] = task_id
    return target


def _lint_record(
    record: TaskRecord,
    path: Path,
    tier: str,
    *,
    strict: bool,
    fix: bool,
    today: str,
    report: LintReport,
) -> bool:
    """Per-file checks; returns True when the record was modified by a fix."""
    target = _target(tier, path, record.id)
    dirty = False

    for name in REQUIRED_FIELDS:
        if not str(getattr(record, name, "") or "").strip():
            report.issues.append(LintIssue("MISSING_FIELD", "error", f"Missing required field: {name}", target, {"field": name}))

    if strict:
        for name in STRICT_FIELDS:
            value = str(getattr(record, name, "") or "").strip()
            if not value or (name == "owner" and value == "unassigned"):
                report.issues.append(
                    LintIssue("MISSING_RECOMMENDED", "warning", f"Missing recommended field: {name} (strict mode)", target, {"field": name})
                )

    if record.status and record.status not in VALID_STATUSES:
        report.issues.append(
            LintIssue(
                "INVALID_STATUS",
                "error",
                f"Invalid status: {record.status!r}. Must be one of: {', '.join(VALID_STATUSES)}",
                target,
            )
        )

    if record.priority and record.priority not in VALID_PRIORITIES:
        normalized = normalize_priority(record.priority)
        if fix:
            report.fixed.append({"file": target["file"], "action": f"Normalized priority {record.priority} to {normalized}"})
            record.priority = normalized
            dirty = True
        else:
            report.issues.append(
                LintIssue(
                    "INVALID_PRIORITY",
                    "error",
                    f"Invalid priority: {record.priority!r}. Must be one of: {', '.join(VALID_PRIORITIES)}",
                    target,
                    {"suggested": normalized},
                )
            )

    if not record.updated:
        if fix:
            record.updated = today
            report.fixed.append({"file": target["file"], "action": "Added updated timestamp"})
            dirty = True
        else:
            report.issues.append(LintIssue("MISSING_UPDATED", "warning", "Missing updated timestamp in front matter", target))

    if record.id and path.stem != record.id:
        report.issues.append(
            LintIssue(
                "FILENAME_MISMATCH",
                "error",
                f"Filename {path.name!r} doesn't match task id {record.id!r}",
                target,
                {"expected": f"{record.id}.md"},
            )
        )

    if record.due and not is_valid_date(record.due):
        report.issues.append(
            LintIssue("INVALID_DUE", "warning", f"Invalid due date format: {record.due!r}. Expected YYYY-MM-DD", target)
        )
    elif record.due and tier == "active" and record.status != "done" and record.due < today:
        report.issues.append(LintIssue("OVERDUE", "warning", f"Task is overdue (due: {record.due})", target))

    if record.id and record.id in record.depends_on:
        report.issues.append(LintIssue("SELF_DEPENDENCY", "error", "Task depends on itself", target))

    return dirty


def lint_workspace(workspace: ProjectWorkspace, *, fix: bool = False, strict: bool = False, today: Optional[str] = None) -> LintReport:
    today = today or workspace.clock()
    report = LintReport()
    parsed: List[tuple] = []

    for tier, store in (("active", workspace.active), ("archive", workspace.archive)):
        for path, record, error in store.scan():
            report.files_checked += 1
            if record is None:
                report.issues.append(LintIssue("PARSE_ERROR", "error", f"Unparseable task file: {error}", _target(tier, path)))
                continue
            if _lint_record(record, path, tier, strict=strict, fix=fix, today=today, report=report):
                write_text_atomic(path, record.to_file_content())
                logger.info("Auto-fixed %s", path)
            parsed.append((tier, path, record))

    seen: Dict[str, tuple] = {}
    for tier, path, record in parsed:
        if not record.id:
            continue
        if record.id in seen:
            first_tier, first_path = seen[record.id]
            report.issues.append(
                LintIssue(
                    "DUPLICATE_ID",
                    "error",
                    f"Task id {record.id} appears in {first_tier} and {tier}",
                    _target(tier, path, record.id),
                    {"other": f"{first_path.parent.name}/{first_path.name}"},
                )
            )
        else:
            seen[record.id] = (tier, path)

    statuses = {record.id: record.status for _, _, record in parsed if record.id}
    backlog_ids = set(workspace.backlog.ids())
    for tier, path, record in parsed:
        target = _target(tier, path, record.id)
        for dep_id in record.depends_on:
            if dep_id == record.id or dep_id in statuses:
                continue
            if dep_id in backlog_ids:
                report.issues.append(
                    LintIssue("DEPENDENCY_NOT_PROMOTED", "warning", f"Dependency {dep_id!r} is still in the backlog", target)
                )
            else:
                report.issues.append(
                    LintIssue(
                        "BROKEN_DEPENDENCY",
                        "error",
                        f"Broken dependency: {dep_id!r} does not exist",
                        target,
                        {"dependency": dep_id},
                    )
                )
        if record.status == "done":
            unresolved = [d for d in record.depends_on if d in statuses and statuses[d] != "done"]
            if unresolved:
                report.issues.append(
                    LintIssue(
                        "DONE_WITH_OPEN_DEPENDENCIES",
                        "warning",
                        f"Task marked done but has unresolved dependencies: {', '.join(unresolved)}",
                        target,
                        {"dependencies": unresolved},
                    )
                )

    for candidate in workspace.backlog.entries(include_promoted=False):
        if candidate.id in statuses:
            report.issues.append(
                LintIssue(
                    "BACKLOG_NOT_MARKED",
                    "warning",
                    f"{candidate.id} exists as a task but its backlog entry is still pending",
                    {"tier": "backlog", "id": candidate.id},
                )
            )

    graph = build_dependency_graph([(r.id, r.depends_on) for _, _, r in parsed if r.id])
    for cycle in find_cycles(graph):
        if len(cycle) <= 2:
            continue  # self dependency, already reported
        report.issues.append(
            LintIssue(
                "DEPENDENCY_CYCLE",
                "error",
                f"Dependency cycle: {' -> '.join(cycle)}",
                {"id": cycle[0]},
                {"cycle": cycle},
            )
        )

    if fix and report.fixed:
        workspace.active.refresh()
        workspace.archive.refresh()
    return report
