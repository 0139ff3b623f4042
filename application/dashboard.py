"""TODO index: a generated markdown projection of the active tier."""

from typing import Any, Dict, List

from core import (
    PRIORITY_LABELS,
    VALID_PRIORITIES,
    VALID_STATUSES,
    Status,
    TaskRecord,
    ValidationError,
    select_next,
    sort_for_listing,
)
from core.status import status_label
from infrastructure.atomic_io import write_text_atomic
from infrastructure.backlog_store import human_date
from infrastructure.workspace import ProjectWorkspace

FORMATS = ("dashboard", "table", "kanban")
TITLE_WIDTH = 35

_PRIORITY_DOTS = {"P0": "🔴", "P1": "🟠", "P2": "🟡", "P3": "🟢"}

FOOTER = (
    "---\n\n"
    "*This file is auto-generated by `sync_todo_index`. Tasks are managed in "
    "`.project/todos/` with YAML front matter.*\n\n"
    "**Tools:** `create_task` | `update_task` | `get_next_task` | `list_tasks`\n"
)


def _short(title: str) -> str:
    return title if len(title) <= TITLE_WIDTH else title[:TITLE_WIDTH] + "..."


def _link(task: TaskRecord) -> str:
    return f"[{task.id}](todos/{task.id}.md)"


def summarize(tasks: List[TaskRecord], statuses: Dict[str, str], limit: int = 5) -> Dict[str, Any]:
    counts = {status: sum(1 for t in tasks if t.status == status) for status in VALID_STATUSES}
    counts["total"] = len(tasks)
    open_by_priority = {p: sum(1 for t in tasks if t.priority == p and t.status != "done") for p in VALID_PRIORITIES}
    actionable = select_next(tasks, statuses, limit=limit)
    return {
        "counts": counts,
        "active": counts["total"] - counts["done"],
        "open_by_priority": open_by_priority,
        "next": [t.id for t in actionable],
        "_actionable": actionable,
    }


def render_dashboard(tasks: List[TaskRecord], summary: Dict[str, Any], updated: str) -> str:
    counts = summary["counts"]
    pc = summary["open_by_priority"]
    rows = [
        (Status.IN_PROGRESS, "P0"),
        (Status.TODO, "P1"),
        (Status.BLOCKED, "P2"),
        (Status.REVIEW, "P3"),
    ]
    lines = [
        "# TODO Dashboard",
        "",
        f"**Last Updated:** {human_date(updated)}",
        "",
        "## Overview",
        "",
        "| Status | Count | | Priority | Active |",
        "|--------|-------|-|----------|--------|",
    ]
    for status, priority in rows:
        label = status_label(status.code).title()
        short = PRIORITY_LABELS[priority].split()[0]
        lines.append(
            f"| {status.emoji} {label} | {counts[status.code]} | | {_PRIORITY_DOTS[priority]} {priority} ({short}) | {pc[priority]} |"
        )
    lines.append(f"| {Status.DONE.emoji} Done | {counts['done']} | | | |")
    lines.append(f"| **Total** | **{counts['total']}** | | **Active** | **{summary['active']}** |")
    lines += ["", "## 🎯 Next Up (Dependency-Ready)", ""]

    actionable = summary["_actionable"]
    if actionable:
        lines += ["| Priority | ID | Title | Owner | Status |", "|----------|-------|-------|-------|--------|"]
        for task in actionable:
            lines.append(f"| {task.priority} | {_link(task)} | {_short(task.title)} | {task.owner} | {task.status} |")
    else:
        lines.append("*No actionable tasks available. All tasks are either done, blocked, or waiting on dependencies.*")

    in_progress = [t for t in sort_for_listing(tasks) if t.status == "in_progress"]
    lines += ["", f"## {Status.IN_PROGRESS.emoji} In Progress ({len(in_progress)})", ""]
    if in_progress:
        lines += [f"- **{_link(t)}** {t.title} (*{t.owner}*)" for t in in_progress]
    else:
        lines.append("*No tasks in progress.*")

    blocked = [t for t in sort_for_listing(tasks) if t.status == "blocked"]
    if blocked:
        lines += ["", f"## {Status.BLOCKED.emoji} Blocked ({len(blocked)})", ""]
        for task in blocked:
            blockers = f" Blocked by: {', '.join(task.blocked_by)}" if task.blocked_by else ""
            lines.append(f"- **{_link(task)}** {task.title}{blockers}")

    projects: List[str] = []
    for task in tasks:
        if task.project not in projects:
            projects.append(task.project)
    if projects:
        lines += ["", "## 📁 Projects", ""]
        for project in sorted(projects):
            members = [t for t in tasks if t.project == project]
            done = sum(1 for t in members if t.status == "done")
            lines.append(f"- **{project}**: {done}/{len(members)} done")

    return "\n".join(lines) + "\n\n" + FOOTER


def render_table(tasks: List[TaskRecord], summary: Dict[str, Any], updated: str) -> str:
    lines = [
        "# TODO",
        "",
        f"**Last Updated:** {human_date(updated)}",
        "",
        "| ID | Title | Status | Priority | Owner | Due | Depends On |",
        "|----|-------|--------|----------|-------|-----|------------|",
    ]
    for task in sort_for_listing(tasks):
        deps = ", ".join(task.depends_on) or "-"
        lines.append(
            f"| {_link(task)} | {_short(task.title)} | {task.status} | {task.priority} | {task.owner} | {task.due or '-'} | {deps} |"
        )
    if not tasks:
        lines.append("| - | *No active tasks* | | | | | |")
    return "\n".join(lines) + "\n\n" + FOOTER


def render_kanban(tasks: List[TaskRecord], summary: Dict[str, Any], updated: str) -> str:
    lines = ["# TODO Board", "", f"**Last Updated:** {human_date(updated)}"]
    ordered = sort_for_listing(tasks)
    for status in Status:
        column = [t for t in ordered if t.status == status.code]
        lines += ["", f"## {status.emoji} {status_label(status.code)} ({len(column)})", ""]
        if column:
            lines += [f"- {t.priority} **{_link(t)}** {t.title}" for t in column]
        else:
            lines.append("*Empty*")
    return "\n".join(lines) + "\n\n" + FOOTER


_RENDERERS = {"dashboard": render_dashboard, "table": render_table, "kanban": render_kanban}


def sync_todo_index(workspace: ProjectWorkspace, fmt: str = "dashboard", *, limit: int = 5) -> Dict[str, Any]:
    """Regenerate ``.project/TODO.md``; returns the written path and the summary."""
    if fmt not in _RENDERERS:
        raise ValidationError(f"Unknown format {fmt!r}. Use one of: {', '.join(FORMATS)}")
    tasks = workspace.active.list()
    summary = summarize(tasks, workspace.statuses(), limit=limit)
    content = _RENDERERS[fmt](tasks, summary, workspace.clock())
    write_text_atomic(workspace.index_path, content)
    public = {k: v for k, v in summary.items() if not k.startswith("_")}
    return {"path": str(workspace.index_path), "format": fmt, "summary": public}
