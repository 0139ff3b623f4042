"""JSON intent API for the task engine.

This module is the single entry point used by:
- MCP server: `project-tasks mcp` (tools map 1:1 to intents here)
- CLI subcommands, which build an intent payload and print the response

Every handler receives the TaskManager and the request payload and returns
an AIResponse. Domain failures (TaskError) become structured error
responses; storage failures (OSError) are not caught here.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Callable, Dict, List, Optional

import jsonschema

from core import TaskError, get_blocked_by_dependencies
from application.lifecycle import TransitionResult
from application.task_manager import TaskManager
from interface.serializers import candidate_to_dict, task_to_dict

logger = logging.getLogger("project_tasks.intent")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class AIResponse:
    success: bool
    intent: str
    result: Dict[str, Any] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)
    summary: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    error_recovery: Optional[str] = None
    timestamp: str = field(default_factory=_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "success": self.success,
            "intent": self.intent,
            "result": self.result or {},
            "summary": self.summary,
            "warnings": self.warnings or [],
            "error": None,
            "timestamp": self.timestamp,
        }
        if not self.success:
            payload["error"] = {
                "code": self.error_code or "ERROR",
                "message": self.error_message or "Unknown error",
            }
            if self.error_recovery:
                payload["error"]["recovery"] = self.error_recovery
        # Keep output stable: drop None fields at top-level, but keep `error: null`.
        return {k: v for k, v in payload.items() if v is not None or k == "error"}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)


def error_response(
    intent: str,
    code: str,
    message: str,
    *,
    recovery: str = "",
    result: Optional[Dict[str, Any]] = None,
) -> AIResponse:
    return AIResponse(
        success=False,
        intent=intent,
        result=result or {},
        error_code=code,
        error_message=message,
        error_recovery=recovery or None,
    )


_RECOVERY_HINTS: Dict[str, str] = {
    "NOT_FOUND": "Check the id with list_tasks or list_backlog.",
    "VALIDATION_ERROR": "Fix the offending argument and retry.",
    "STATE_ERROR": "Bring the task into the required state first (or pass force where supported).",
    "COLLISION": "The id is already in use in the target tier.",
}


def _ok(intent: str, result: Dict[str, Any], summary: str, warnings: Optional[List[str]] = None) -> AIResponse:
    return AIResponse(success=True, intent=intent, result=result, summary=summary, warnings=list(warnings or []))


def _transition_payload(outcome: TransitionResult) -> Dict[str, Any]:
    return {"id": outcome.record.id, "task": task_to_dict(outcome.record)}


_CREATE_FIELDS = (
    "priority",
    "status",
    "owner",
    "depends_on",
    "blocked_by",
    "estimate",
    "due",
    "tags",
    "subtasks",
    "description",
    "notes",
    "phase",
)


def handle_create_task(manager: TaskManager, data: Dict[str, Any]) -> AIResponse:
    fields = {k: data[k] for k in _CREATE_FIELDS if data.get(k) is not None}
    outcome = manager.create_task(data.get("title", ""), data.get("project", ""), **fields)
    record = outcome.record
    return _ok("create_task", _transition_payload(outcome), f"Created {record.id}: {record.title}", outcome.warnings)


def handle_update_task(manager: TaskManager, data: Dict[str, Any]) -> AIResponse:
    fields = {k: v for k, v in data.items() if k not in {"intent", "id"}}
    outcome = manager.update_task(data.get("id", ""), fields)
    result = _transition_payload(outcome)
    result["changed_fields"] = list(outcome.changed)
    return _ok("update_task", result, f"Updated {outcome.record.id}: {', '.join(outcome.changed)}", outcome.warnings)


def handle_get_task(manager: TaskManager, data: Dict[str, Any]) -> AIResponse:
    record, location = manager.get_task(data.get("id", ""))
    waiting_on = get_blocked_by_dependencies(record.id, record.depends_on, manager.workspace.statuses())
    return _ok(
        "get_task",
        {"task": task_to_dict(record, ready=not waiting_on), "location": location, "waiting_on": waiting_on},
        f"{record.id} ({location}, {record.status})",
    )


def handle_get_next_task(manager: TaskManager, data: Dict[str, Any]) -> AIResponse:
    tasks = manager.next_tasks(
        owner=data.get("owner"),
        project=data.get("project"),
        include_blocked=bool(data.get("include_blocked", False)),
        limit=data.get("limit"),
    )
    if tasks:
        summary = f"Next: {tasks[0].id} ({tasks[0].title})"
    else:
        summary = "No ready tasks: everything is done, blocked, or waiting on dependencies"
    return _ok(
        "get_next_task",
        {"count": len(tasks), "tasks": [task_to_dict(t, compact=True) for t in tasks]},
        summary,
    )


def handle_list_tasks(manager: TaskManager, data: Dict[str, Any]) -> AIResponse:
    include_archived = bool(data.get("include_archived", False))
    listing = manager.list_tasks(
        project=data.get("project"),
        owner=data.get("owner"),
        status=data.get("status"),
        priority=data.get("priority"),
        tag=data.get("tag"),
        include_archived=include_archived,
    )
    result: Dict[str, Any] = {
        "total": listing["total"],
        "counts": listing["counts"],
        "groups": {status: [task_to_dict(t, compact=True) for t in tasks] for status, tasks in listing["groups"].items()},
    }
    if include_archived:
        result["archived"] = [task_to_dict(t, compact=True) for t in listing["archived"]]
    return _ok("list_tasks", result, f"{listing['total']} active task(s)")


def handle_import_tasks(manager: TaskManager, data: Dict[str, Any]) -> AIResponse:
    outcome = manager.import_tasks(
        data.get("source", ""),
        data.get("project", ""),
        source_type=str(data.get("source_type") or "content"),
        default_priority=data.get("default_priority"),
        phase=data.get("phase"),
        dry_run=bool(data.get("dry_run", False)),
    )
    candidates = [candidate_to_dict(c) for c in outcome["candidates"]]
    warnings: List[str] = []
    if not candidates:
        where = f" in phase {data.get('phase')!r}" if data.get("phase") else ""
        warnings.append(f"No tasks found{where}. The parser looks for '- [ ]' or '- ' list items under ## / ### headings.")
    if outcome["dry_run"]:
        return _ok(
            "import_tasks",
            {"dry_run": True, "count": len(candidates), "candidates": candidates},
            f"Preview: {len(candidates)} candidate(s)",
            warnings,
        )
    by_priority: Dict[str, int] = {}
    for c in outcome["candidates"]:
        by_priority[c.priority] = by_priority.get(c.priority, 0) + 1
    return _ok(
        "import_tasks",
        {"dry_run": False, "inserted": outcome["inserted"], "ids": outcome["ids"], "by_priority": by_priority, "candidates": candidates},
        f"Imported {outcome['inserted']} task(s) into the backlog",
        warnings,
    )


def handle_promote_task(manager: TaskManager, data: Dict[str, Any]) -> AIResponse:
    fields = {k: data[k] for k in ("owner", "priority", "depends_on", "estimate", "due") if data.get(k) is not None}
    outcome = manager.promote_task(data.get("id", ""), **fields)
    result = _transition_payload(outcome)
    result["noop"] = outcome.noop
    if outcome.noop:
        summary = f"{outcome.record.id} is already active"
    else:
        summary = f"Promoted {outcome.record.id} ({outcome.record.priority})"
    return _ok("promote_task", result, summary, outcome.warnings)


def handle_archive_task(manager: TaskManager, data: Dict[str, Any]) -> AIResponse:
    outcome = manager.archive_task(data.get("id", ""), force=bool(data.get("force", False)))
    return _ok("archive_task", _transition_payload(outcome), f"Archived {outcome.record.id}", outcome.warnings)


def handle_unarchive_task(manager: TaskManager, data: Dict[str, Any]) -> AIResponse:
    outcome = manager.unarchive_task(data.get("id", ""))
    return _ok("unarchive_task", _transition_payload(outcome), f"Restored {outcome.record.id} ({outcome.record.status})")


def handle_list_backlog(manager: TaskManager, data: Dict[str, Any]) -> AIResponse:
    entries = manager.list_backlog(
        priority=data.get("priority"),
        include_promoted=bool(data.get("include_promoted", True)),
    )
    pending = sum(1 for e in entries if not e.promoted)
    return _ok(
        "list_backlog",
        {"total": len(entries), "pending": pending, "entries": [candidate_to_dict(e) for e in entries]},
        f"{len(entries)} backlog entr{'y' if len(entries) == 1 else 'ies'} ({pending} pending)",
    )


def handle_update_backlog_item(manager: TaskManager, data: Dict[str, Any]) -> AIResponse:
    fields = {k: v for k, v in data.items() if k not in {"intent", "id"}}
    entry = manager.update_backlog_item(data.get("id", ""), fields)
    return _ok("update_backlog_item", {"entry": candidate_to_dict(entry)}, f"Updated backlog entry {entry.id}")


def handle_remove_backlog_item(manager: TaskManager, data: Dict[str, Any]) -> AIResponse:
    entry = manager.remove_backlog_item(data.get("id", ""))
    return _ok("remove_backlog_item", {"entry": candidate_to_dict(entry)}, f"Removed backlog entry {entry.id}")


def handle_lint_tasks(manager: TaskManager, data: Dict[str, Any]) -> AIResponse:
    report = manager.lint(fix=bool(data.get("fix", False)), strict=bool(data.get("strict", False)))
    body = report.to_dict()
    s = body["summary"]
    summary = f"{s['errors']} error(s), {s['warnings']} warning(s) in {body['files_checked']} file(s)"
    if s["fixed"]:
        summary += f"; {s['fixed']} auto-fixed"
    return _ok("lint_tasks", body, summary)


def handle_sync_todo_index(manager: TaskManager, data: Dict[str, Any]) -> AIResponse:
    result = manager.sync_index(str(data.get("format") or "dashboard"))
    counts = result["summary"]["counts"]
    return _ok(
        "sync_todo_index",
        result,
        f"Synced TODO.md: {counts['total']} task(s), {counts['in_progress']} in progress, {counts['blocked']} blocked",
    )


def handle_init_project(manager: TaskManager, data: Dict[str, Any]) -> AIResponse:
    created = manager.init_project()
    summary = f"Initialized {manager.storage_dir}" if created else f"{manager.storage_dir} already initialized"
    return _ok("init_project", {"storage_dir": str(manager.storage_dir), "created": created}, summary)


INTENT_HANDLERS: Dict[str, Callable[[TaskManager, Dict[str, Any]], AIResponse]] = {
    "create_task": handle_create_task,
    "update_task": handle_update_task,
    "get_task": handle_get_task,
    "get_next_task": handle_get_next_task,
    "list_tasks": handle_list_tasks,
    "import_tasks": handle_import_tasks,
    "promote_task": handle_promote_task,
    "archive_task": handle_archive_task,
    "unarchive_task": handle_unarchive_task,
    "list_backlog": handle_list_backlog,
    "update_backlog_item": handle_update_backlog_item,
    "remove_backlog_item": handle_remove_backlog_item,
    "lint_tasks": handle_lint_tasks,
    "sync_todo_index": handle_sync_todo_index,
    "init_project": handle_init_project,
}


@lru_cache(maxsize=1)
def _input_schemas_by_intent() -> Dict[str, Dict[str, Any]]:
    from interface.mcp_server import get_tool_definitions

    return {tool["name"]: dict(tool["inputSchema"]) for tool in get_tool_definitions()}


def _schema_error(intent: str, args: Dict[str, Any]) -> Optional[jsonschema.ValidationError]:
    schema = _input_schemas_by_intent().get(intent)
    if not schema:
        return None
    try:
        jsonschema.validate(instance=args, schema=schema)
    except jsonschema.ValidationError as exc:
        return exc
    return None


def _describe_schema_error(exc: jsonschema.ValidationError) -> str:
    where = ".".join(str(p) for p in exc.absolute_path)
    return f"{where}: {exc.message}" if where else exc.message


def validate_arguments(intent: str, args: Dict[str, Any]) -> Optional[str]:
    """Check arguments against the published tool schema; returns an error message or None."""
    exc = _schema_error(intent, args)
    return _describe_schema_error(exc) if exc is not None else None


def process_intent(manager: TaskManager, data: Dict[str, Any]) -> AIResponse:
    if not isinstance(data, dict):
        return error_response("unknown", "INVALID_REQUEST", "payload must be a JSON object")
    intent = str(data.get("intent", "") or "").strip().lower()
    if not intent:
        return error_response("unknown", "INVALID_REQUEST", "intent is required")
    handler = INTENT_HANDLERS.get(intent)
    if not handler:
        return error_response(
            intent,
            "UNKNOWN_INTENT",
            f"Unknown intent: {intent}",
            recovery=f"Use one of: {', '.join(sorted(INTENT_HANDLERS))}",
        )

    payload = {k: v for k, v in data.items() if k != "intent"}
    schema_error = _schema_error(intent, payload)
    if schema_error is not None:
        # A bad value for a named field is a validation failure; shape problems are malformed calls.
        code = "VALIDATION_ERROR" if schema_error.absolute_path else "INVALID_REQUEST"
        return error_response(
            intent,
            code,
            _describe_schema_error(schema_error),
            recovery="Check the tool input schema (tools/list).",
            result={"field": str(schema_error.absolute_path[0])} if schema_error.absolute_path else None,
        )

    try:
        return handler(manager, payload)
    except TaskError as exc:
        logger.info("%s failed: %s %s", intent, exc.code, exc.message)
        return error_response(
            intent,
            exc.code,
            exc.message,
            recovery=_RECOVERY_HINTS.get(exc.code, ""),
            result=exc.details,
        )
