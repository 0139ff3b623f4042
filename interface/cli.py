#!/usr/bin/env python3
"""project-tasks command line: thin wrappers that build intent payloads.

Every subcommand except ``mcp`` runs one intent through the intent API and
prints the JSON response; the exit code is 1 when the intent failed.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import config
from application.task_manager import TaskManager
from interface.intent_api import process_intent
from interface.mcp_server import run_stdio
from interface.tasks_dir_resolver import get_storage_dir

logger = logging.getLogger("project_tasks.cli")


def configure_logging(storage_dir: Optional[Path] = None) -> None:
    """Log to stderr; stdout carries JSON only."""
    level = getattr(logging, config.get_log_level(storage_dir), logging.WARNING)
    root = logging.getLogger("project_tasks")
    if not any(getattr(h, "_project_tasks", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        handler._project_tasks = True  # type: ignore[attr-defined]
        root.addHandler(handler)
    root.setLevel(level)


def _storage_dir(args: argparse.Namespace) -> Path:
    return get_storage_dir(Path(args.root) if getattr(args, "root", None) else None)


def _run_intent(args: argparse.Namespace, intent: str, payload: Dict[str, Any]) -> int:
    manager = TaskManager(_storage_dir(args))
    data = {k: v for k, v in payload.items() if v is not None}
    data["intent"] = intent
    resp = process_intent(manager, data)
    print(json.dumps(resp.to_dict(), ensure_ascii=False, indent=2))
    return 0 if resp.success else 1


def cmd_mcp(args: argparse.Namespace) -> int:
    return run_stdio(storage_dir=_storage_dir(args))


def cmd_init(args: argparse.Namespace) -> int:
    return _run_intent(args, "init_project", {})


def cmd_create(args: argparse.Namespace) -> int:
    return _run_intent(
        args,
        "create_task",
        {
            "title": args.title,
            "project": args.project,
            "priority": args.priority,
            "owner": args.owner,
            "depends_on": args.depends_on,
            "tags": args.tags,
            "due": args.due,
            "description": args.description,
        },
    )


def cmd_show(args: argparse.Namespace) -> int:
    return _run_intent(args, "get_task", {"id": args.task_id})


def cmd_next(args: argparse.Namespace) -> int:
    return _run_intent(
        args,
        "get_next_task",
        {"owner": args.owner, "project": args.project, "include_blocked": args.include_blocked, "limit": args.limit},
    )


def cmd_list(args: argparse.Namespace) -> int:
    return _run_intent(
        args,
        "list_tasks",
        {
            "project": args.project,
            "owner": args.owner,
            "status": args.status,
            "priority": args.priority,
            "tag": args.tag,
            "include_archived": args.archived,
        },
    )


def cmd_import(args: argparse.Namespace) -> int:
    if args.source == "-":
        payload = {"source": sys.stdin.read(), "source_type": "content"}
    else:
        payload = {"source": args.source, "source_type": "file"}
    payload.update(
        {
            "project": args.project,
            "default_priority": args.priority,
            "phase": args.phase,
            "dry_run": args.dry_run,
        }
    )
    return _run_intent(args, "import_tasks", payload)


def cmd_backlog(args: argparse.Namespace) -> int:
    return _run_intent(args, "list_backlog", {"priority": args.priority, "include_promoted": not args.pending})


def cmd_promote(args: argparse.Namespace) -> int:
    return _run_intent(
        args,
        "promote_task",
        {"id": args.task_id, "owner": args.owner, "priority": args.priority, "depends_on": args.depends_on, "due": args.due},
    )


def cmd_archive(args: argparse.Namespace) -> int:
    return _run_intent(args, "archive_task", {"id": args.task_id, "force": args.force})


def cmd_unarchive(args: argparse.Namespace) -> int:
    return _run_intent(args, "unarchive_task", {"id": args.task_id})


def cmd_lint(args: argparse.Namespace) -> int:
    return _run_intent(args, "lint_tasks", {"fix": args.fix, "strict": args.strict})


def cmd_sync_index(args: argparse.Namespace) -> int:
    return _run_intent(args, "sync_todo_index", {"format": args.format})


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="project-tasks",
        description="File-backed task tracking: backlog, active and archive tiers under .project/",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--root", help="project root holding .project/ (default: $PROJECT_TASKS_ROOT, git toplevel, cwd)")
    sub = parser.add_subparsers(dest="command")

    mcp_p = sub.add_parser(
        "mcp",
        help="MCP stdio server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog='Client config example:\n  {"mcpServers": {"tasks": {"command": "project-tasks", "args": ["mcp"]}}}',
    )
    mcp_p.set_defaults(func=cmd_mcp)

    init_p = sub.add_parser("init", help="create the .project/ tree")
    init_p.set_defaults(func=cmd_init)

    cp = sub.add_parser("create", help="create an active task")
    cp.add_argument("title")
    cp.add_argument("--project", "-p", required=True)
    cp.add_argument("--priority", choices=["P0", "P1", "P2", "P3"])
    cp.add_argument("--owner")
    cp.add_argument("--depends-on", dest="depends_on", help="comma-separated ids")
    cp.add_argument("--tags", help="comma-separated tags")
    cp.add_argument("--due", help="YYYY-MM-DD")
    cp.add_argument("--description", "-d")
    cp.set_defaults(func=cmd_create)

    sp = sub.add_parser("show", help="show one task")
    sp.add_argument("task_id")
    sp.set_defaults(func=cmd_show)

    np = sub.add_parser("next", help="ranked ready tasks")
    np.add_argument("--owner")
    np.add_argument("--project", "-p")
    np.add_argument("--include-blocked", dest="include_blocked", action="store_true")
    np.add_argument("--limit", "-n", type=int)
    np.set_defaults(func=cmd_next)

    lp = sub.add_parser("list", help="active tasks grouped by status")
    lp.add_argument("--project", "-p")
    lp.add_argument("--owner")
    lp.add_argument("--status")
    lp.add_argument("--priority")
    lp.add_argument("--tag")
    lp.add_argument("--archived", action="store_true", help="include archived tasks")
    lp.set_defaults(func=cmd_list)

    ip = sub.add_parser("import", help="extract tasks from a planning document into the backlog")
    ip.add_argument("source", help="file path, or - for stdin")
    ip.add_argument("--project", "-p", required=True)
    ip.add_argument("--priority", choices=["P0", "P1", "P2", "P3"], help="priority when no keyword matches")
    ip.add_argument("--phase", help="only headings containing this text")
    ip.add_argument("--dry-run", dest="dry_run", action="store_true")
    ip.set_defaults(func=cmd_import)

    bp = sub.add_parser("backlog", help="list backlog entries")
    bp.add_argument("--priority")
    bp.add_argument("--pending", action="store_true", help="hide promoted entries")
    bp.set_defaults(func=cmd_backlog)

    pp = sub.add_parser("promote", help="promote a backlog entry to active")
    pp.add_argument("task_id")
    pp.add_argument("--owner")
    pp.add_argument("--priority", choices=["P0", "P1", "P2", "P3"])
    pp.add_argument("--depends-on", dest="depends_on")
    pp.add_argument("--due")
    pp.set_defaults(func=cmd_promote)

    ap = sub.add_parser("archive", help="archive a done task")
    ap.add_argument("task_id")
    ap.add_argument("--force", action="store_true", help="archive regardless of status")
    ap.set_defaults(func=cmd_archive)

    up = sub.add_parser("unarchive", help="restore an archived task")
    up.add_argument("task_id")
    up.set_defaults(func=cmd_unarchive)

    lint_p = sub.add_parser("lint", help="audit task files")
    lint_p.add_argument("--fix", action="store_true")
    lint_p.add_argument("--strict", action="store_true")
    lint_p.set_defaults(func=cmd_lint)

    sync_p = sub.add_parser("sync-index", help="regenerate .project/TODO.md")
    sync_p.add_argument("--format", choices=["dashboard", "table", "kanban"], default="dashboard")
    sync_p.set_defaults(func=cmd_sync_index)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, "func", None):
        parser.print_help()
        return 2
    configure_logging(_storage_dir(args))
    return int(args.func(args))


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
