#!/usr/bin/env python3
"""MCP (Model Context Protocol) stdio server for project-tasks.

This server is a thin, deterministic wrapper around the intent API:
`interface.intent_api.process_intent`. Tool names are the intent names.
"""

from __future__ import annotations

import io
import json
import logging
import sys
from contextlib import redirect_stdout
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from application.task_manager import TaskManager
from interface.intent_api import INTENT_HANDLERS, process_intent
from interface.tasks_dir_resolver import get_storage_dir

logger = logging.getLogger("project_tasks.mcp")

MCP_VERSION = "2024-11-05"
SERVER_NAME = "project-tasks-mcp"
SERVER_VERSION = "0.1.0"


@dataclass
class JsonRpcRequest:
    """JSON-RPC 2.0 request."""

    jsonrpc: str
    method: str
    id: Optional[int | str] = None
    params: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "JsonRpcRequest":
        return cls(
            jsonrpc=str(data.get("jsonrpc", "2.0") or "2.0"),
            method=str(data["method"]),
            id=data.get("id"),
            params=data.get("params", {}) if isinstance(data.get("params", {}), dict) else {},
        )


def json_rpc_response(id: Optional[int | str], result: Any) -> Dict[str, Any]:
    """Create JSON-RPC success response."""
    return {"jsonrpc": "2.0", "id": id, "result": result}


def json_rpc_error(id: Optional[int | str], code: int, message: str, data: Any = None) -> Dict[str, Any]:
    """Create JSON-RPC error response."""
    error: Dict[str, Any] = {"code": code, "message": message}
    if data is not None:
        error["data"] = data
    return {"jsonrpc": "2.0", "id": id, "error": error}


_ID = {"type": "string", "description": "Task id (PROJECT-NNN), case-insensitive."}
_ID_LIST = {
    "type": ["array", "string"],
    "items": {"type": "string"},
    "description": "List of task ids (or comma-separated string).",
}
_TAG_LIST = {
    "type": ["array", "string"],
    "items": {"type": "string"},
    "description": "Tags (array or comma-separated string).",
}
_PRIORITY = {"type": "string", "description": "P0 (critical) | P1 (high) | P2 (medium) | P3 (low)."}
_STATUS = {"type": "string", "description": "todo | in_progress | blocked | review | done."}
_DUE = {"type": "string", "description": "Due date YYYY-MM-DD (empty string clears it)."}

_TOOL_SPECS: Dict[str, Dict[str, Any]] = {
    "create_task": {
        "description": "Create a task directly in the active tier (bypasses the backlog). The id is allocated per project.",
        "schema": {
            "type": "object",
            "properties": {
                "title": {"type": "string", "minLength": 1},
                "project": {"type": "string", "description": "Project prefix, e.g. AUTH."},
                "priority": _PRIORITY,
                "status": _STATUS,
                "owner": {"type": "string"},
                "depends_on": _ID_LIST,
                "blocked_by": _TAG_LIST,
                "estimate": {"type": "string", "description": "Free-form estimate, e.g. 2h or 3d."},
                "due": _DUE,
                "tags": _TAG_LIST,
                "subtasks": {"type": "array", "items": {"type": ["string", "object"]}},
                "description": {"type": "string"},
                "notes": {"type": "string"},
                "phase": {"type": "string"},
            },
            "required": ["title", "project"],
        },
    },
    "update_task": {
        "description": (
            "Update fields of an active task. description/notes starting with 'append:' append. "
            "depends_on/tags/blocked_by accept a full list or 'add:X' / 'remove:X' directives. "
            "Setting status=done stamps the completed date."
        ),
        "schema": {
            "type": "object",
            "properties": {
                "id": _ID,
                "title": {"type": "string"},
                "description": {"type": "string"},
                "notes": {"type": "string"},
                "owner": {"type": "string"},
                "priority": _PRIORITY,
                "status": _STATUS,
                "depends_on": _ID_LIST,
                "blocked_by": _TAG_LIST,
                "tags": _TAG_LIST,
                "estimate": {"type": "string"},
                "due": _DUE,
                "phase": {"type": "string"},
                "add_subtask": {"type": ["string", "array"], "items": {"type": "string"}},
                "complete_subtask": {"type": "string", "description": "Text (partial match) of the first open subtask to check off."},
            },
            "required": ["id"],
        },
    },
    "get_task": {
        "description": "Read one task from the active or archive tier.",
        "schema": {"type": "object", "properties": {"id": _ID}, "required": ["id"]},
    },
    "get_next_task": {
        "description": "Ready tasks ranked: in_progress first, then priority, then due date, then id. Unmet dependencies exclude a task.",
        "schema": {
            "type": "object",
            "properties": {
                "owner": {"type": "string"},
                "project": {"type": "string"},
                "include_blocked": {"type": "boolean", "default": False},
                "limit": {"type": "integer", "minimum": 0, "default": 5},
            },
            "required": [],
        },
    },
    "list_tasks": {
        "description": "Active tasks grouped by status (in_progress, todo, blocked, review, done).",
        "schema": {
            "type": "object",
            "properties": {
                "project": {"type": "string"},
                "owner": {"type": "string"},
                "status": _STATUS,
                "priority": _PRIORITY,
                "tag": {"type": "string"},
                "include_archived": {"type": "boolean", "default": False},
            },
            "required": [],
        },
    },
    "import_tasks": {
        "description": "Extract tasks from planning text (## phase headings, - [ ] / - bullets, [tag] tokens) into the backlog.",
        "schema": {
            "type": "object",
            "properties": {
                "source": {"type": "string", "description": "Planning text, or a file path when source_type=file."},
                "project": {"type": "string"},
                "source_type": {"type": "string", "enum": ["content", "file"], "default": "content"},
                "default_priority": _PRIORITY,
                "phase": {"type": "string", "description": "Only import candidates whose phase contains this text."},
                "dry_run": {"type": "boolean", "default": False},
            },
            "required": ["source", "project"],
        },
    },
    "promote_task": {
        "description": "Materialize a backlog entry as an active task; the backlog entry is kept and marked promoted.",
        "schema": {
            "type": "object",
            "properties": {
                "id": _ID,
                "owner": {"type": "string"},
                "priority": _PRIORITY,
                "depends_on": _ID_LIST,
                "estimate": {"type": "string"},
                "due": _DUE,
            },
            "required": ["id"],
        },
    },
    "archive_task": {
        "description": "Move a done task to the archive tier (force=true archives any status).",
        "schema": {
            "type": "object",
            "properties": {"id": _ID, "force": {"type": "boolean", "default": False}},
            "required": ["id"],
        },
    },
    "unarchive_task": {
        "description": "Move an archived task back to the active tier, keeping its status.",
        "schema": {"type": "object", "properties": {"id": _ID}, "required": ["id"]},
    },
    "list_backlog": {
        "description": "Backlog entries in bucket order (P0..P3).",
        "schema": {
            "type": "object",
            "properties": {"priority": _PRIORITY, "include_promoted": {"type": "boolean", "default": True}},
            "required": [],
        },
    },
    "update_backlog_item": {
        "description": "Edit a backlog entry in place; a priority change moves it to the end of the new bucket.",
        "schema": {
            "type": "object",
            "properties": {
                "id": _ID,
                "title": {"type": "string"},
                "tags": _TAG_LIST,
                "phase": {"type": "string"},
                "priority": _PRIORITY,
                "subtasks": {"type": "array", "items": {"type": "string"}},
            },
            "required": ["id"],
        },
    },
    "remove_backlog_item": {
        "description": "Delete a backlog entry. Its id stays reserved.",
        "schema": {"type": "object", "properties": {"id": _ID}, "required": ["id"]},
    },
    "lint_tasks": {
        "description": "Audit task files (required fields, broken/self/cyclic dependencies, duplicates, dates).",
        "schema": {
            "type": "object",
            "properties": {
                "fix": {"type": "boolean", "default": False, "description": "Normalize priorities and stamp missing updated dates."},
                "strict": {"type": "boolean", "default": False, "description": "Also warn about missing owner/estimate/description."},
            },
            "required": [],
        },
    },
    "sync_todo_index": {
        "description": "Regenerate .project/TODO.md from the active tasks.",
        "schema": {
            "type": "object",
            "properties": {"format": {"type": "string", "enum": ["dashboard", "table", "kanban"], "default": "dashboard"}},
            "required": [],
        },
    },
    "init_project": {
        "description": "Create the .project/ tree (todos/, archive/, BACKLOG.md).",
        "schema": {"type": "object", "properties": {}, "required": []},
    },
}


def get_tool_definitions() -> List[Dict[str, Any]]:
    """Return MCP tool definitions (1:1 with intent API intents)."""
    tools: List[Dict[str, Any]] = []
    for intent in sorted(INTENT_HANDLERS.keys()):
        spec = _TOOL_SPECS.get(intent) or {}
        description = str(spec.get("description") or f"Run project-tasks intent '{intent}'.")
        schema = dict(spec.get("schema") or {"type": "object", "properties": {}, "required": []})
        schema.setdefault("type", "object")
        schema.setdefault("required", [])
        tools.append({"name": intent, "description": description, "inputSchema": schema})
    return tools


class MCPServer:
    """MCP stdio server exposing the task engine operations."""

    def __init__(self, storage_dir: Optional[Path] = None, manager: Optional[TaskManager] = None):
        if manager is None:
            manager = TaskManager(Path(storage_dir) if storage_dir else get_storage_dir())
        self.manager = manager
        self._initialized = False

    @staticmethod
    def _json_content(payload: Any) -> Dict[str, Any]:
        return {"type": "text", "text": json.dumps(payload, ensure_ascii=False, indent=2)}

    def handle_request(self, request: JsonRpcRequest) -> Optional[Dict[str, Any]]:
        method = request.method
        params = request.params

        if method == "initialize":
            return json_rpc_response(
                request.id,
                {
                    "protocolVersion": MCP_VERSION,
                    "serverInfo": {"name": SERVER_NAME, "version": SERVER_VERSION},
                    "capabilities": {"tools": {}},
                },
            )

        if not self._initialized and method != "notifications/initialized":
            return json_rpc_error(request.id, -32002, "Server not initialized")

        if method == "notifications/initialized":
            self._initialized = True
            return None

        if method == "tools/list":
            return json_rpc_response(request.id, {"tools": get_tool_definitions()})

        if method == "tools/call":
            return self._handle_tools_call(request.id, params)

        if method == "ping":
            return json_rpc_response(request.id, {})

        return json_rpc_error(request.id, -32601, f"Method not found: {method}")

    def _handle_tools_call(self, id: Optional[int | str], params: Dict[str, Any]) -> Dict[str, Any]:
        tool_name = params.get("name")
        arguments = params.get("arguments", {})
        if tool_name not in INTENT_HANDLERS:
            return json_rpc_error(id, -32602, f"Unknown tool: {tool_name}")
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            return json_rpc_error(id, -32602, "arguments must be an object")

        payload = dict(arguments)
        payload["intent"] = tool_name
        # Files may have been edited between calls.
        self.manager.refresh()
        leaked = io.StringIO()
        with redirect_stdout(leaked):
            resp = process_intent(self.manager, payload)
        leaked_text = leaked.getvalue()
        if leaked_text.strip():
            # Never leak prints into the JSON-RPC channel; route to stderr + warnings.
            print(leaked_text, file=sys.stderr, end="")
            resp.warnings.append(leaked_text.strip().splitlines()[0])
        body = resp.to_dict()
        return json_rpc_response(
            id,
            {
                "content": [self._json_content(body)],
                "isError": not bool(body.get("success", False)),
            },
        )


def run_stdio(*, storage_dir: Optional[Path] = None, stdin=None, stdout=None) -> int:
    """Run MCP server over stdio (newline-delimited JSON-RPC)."""
    stdin = stdin or sys.stdin
    stdout = stdout or sys.stdout
    server = MCPServer(storage_dir=storage_dir)
    logger.info("MCP server ready (storage: %s)", server.manager.storage_dir)
    for line in stdin:
        raw = line.strip()
        if not raw:
            continue
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            resp = json_rpc_error(None, -32700, f"Parse error: {exc}")
            stdout.write(json.dumps(resp, ensure_ascii=False) + "\n")
            stdout.flush()
            continue
        if not isinstance(data, dict) or "method" not in data:
            resp = json_rpc_error(data.get("id") if isinstance(data, dict) else None, -32600, "Invalid Request")
            stdout.write(json.dumps(resp, ensure_ascii=False) + "\n")
            stdout.flush()
            continue
        req = JsonRpcRequest.from_dict(data)
        out = server.handle_request(req)
        if out is None:
            continue
        stdout.write(json.dumps(out, ensure_ascii=False) + "\n")
        stdout.flush()
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Module entrypoint for `python -m interface.mcp_server`."""
    import argparse

    parser = argparse.ArgumentParser(prog="project-tasks-mcp", add_help=True)
    parser.add_argument("--root", type=str, help="Project root holding .project/ (overrides PROJECT_TASKS_ROOT).")
    args = parser.parse_args(argv)
    return run_stdio(storage_dir=get_storage_dir(args.root))


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
