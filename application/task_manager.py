"""Operation facade over one project workspace.

TaskManager wires the workspace, allocator and lifecycle controller together
with the user/project settings, and implements the read-side operations
(next/list/backlog) and the import pipeline. Adapters (intent API, CLI) talk
only to this class.
"""

import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import config
from core import (
    STATUS_ORDER,
    Candidate,
    NotFoundError,
    ValidationError,
    extract,
    select_next,
    sort_for_listing,
)
from core.candidate_extractor import filter_by_phase
from core.scheduler import make_filter
from core.task_record import normalize_project, normalize_task_id, validate_priority, validate_status
from application.dashboard import sync_todo_index
from application.id_allocator import IdentifierAllocator
from application.lifecycle import LifecycleController, TransitionResult
from application.linting import LintReport, lint_workspace
from infrastructure.workspace import ProjectWorkspace

logger = logging.getLogger("project_tasks.manager")

SOURCE_CONTENT = "content"
SOURCE_FILE = "file"


class TaskManager:
    def __init__(
        self,
        storage_dir: Path,
        *,
        clock: Optional[Callable[[], str]] = None,
        workspace: Optional[ProjectWorkspace] = None,
    ):
        self.storage_dir = Path(storage_dir)
        self.workspace = workspace or ProjectWorkspace(self.storage_dir, clock=clock)
        self.allocator = IdentifierAllocator(self.workspace)
        self.default_priority = config.get_default_priority(self.storage_dir)
        self.subtask_indent = config.get_subtask_indent(self.storage_dir)
        self.next_limit = config.get_next_task_limit(self.storage_dir)
        self.controller = LifecycleController(
            self.workspace,
            allocator=self.allocator,
            clock=clock,
            strict_dependencies=config.get_strict_dependencies(self.storage_dir),
            default_owner=config.get_default_owner(self.storage_dir),
            default_priority=self.default_priority,
        )

    def refresh(self) -> None:
        self.workspace.refresh()

    def create_task(self, title: str, project: str, **fields: Any) -> TransitionResult:
        return self.controller.create(title, project, **fields)

    def update_task(self, task_id: str, fields: Dict[str, Any]) -> TransitionResult:
        return self.controller.update(task_id, fields)

    def get_task(self, task_id: str):
        return self.controller.get(task_id)

    def promote_task(self, task_id: str, **fields: Any) -> TransitionResult:
        return self.controller.promote(task_id, **fields)

    def archive_task(self, task_id: str, *, force: bool = False) -> TransitionResult:
        return self.controller.archive(task_id, force=force)

    def unarchive_task(self, task_id: str) -> TransitionResult:
        return self.controller.unarchive(task_id)

    def next_tasks(
        self,
        *,
        owner: Optional[str] = None,
        project: Optional[str] = None,
        include_blocked: bool = False,
        limit: Optional[int] = None,
    ):
        if project:
            project = normalize_project(project)
        limit = self.next_limit if limit is None else int(limit)
        if limit < 0:
            raise ValidationError("limit must be zero or positive")
        return select_next(
            self.workspace.active.list(),
            self.workspace.statuses(),
            owner=owner or None,
            project=project,
            include_blocked=include_blocked,
            limit=limit,
        )

    def list_tasks(
        self,
        *,
        project: Optional[str] = None,
        owner: Optional[str] = None,
        status: Optional[str] = None,
        priority: Optional[str] = None,
        tag: Optional[str] = None,
        include_archived: bool = False,
    ) -> Dict[str, Any]:
        if status:
            status = validate_status(status)
        if priority:
            priority = validate_priority(priority)
        if project:
            project = normalize_project(project)
        predicate = make_filter(project=project, owner=owner, status=status, priority=priority, tag=tag)
        tasks = self.workspace.active.list(predicate)
        archived = self.workspace.archive.list(predicate) if include_archived else []
        ordered = sort_for_listing(tasks)
        counts = {name: 0 for name in STATUS_ORDER}
        groups: Dict[str, List] = {name: [] for name in STATUS_ORDER}
        for task in ordered:
            counts[task.status] = counts.get(task.status, 0) + 1
            groups.setdefault(task.status, []).append(task)
        return {
            "total": len(ordered),
            "counts": counts,
            "groups": {k: v for k, v in groups.items() if v},
            "tasks": ordered,
            "archived": sort_for_listing(archived),
        }

    def read_source(self, source: str, source_type: str = SOURCE_CONTENT) -> str:
        if source_type == SOURCE_CONTENT:
            return source or ""
        if source_type != SOURCE_FILE:
            raise ValidationError(f"source_type must be '{SOURCE_CONTENT}' or '{SOURCE_FILE}'")
        path = Path(source).expanduser()
        if not path.is_absolute():
            path = self.workspace.project_root / path
        if not path.is_file():
            raise NotFoundError(f"Source file not found: {source}", details={"path": str(path)})
        return path.read_text(encoding="utf-8")

    def import_tasks(
        self,
        source: str,
        project: str,
        *,
        source_type: str = SOURCE_CONTENT,
        default_priority: Optional[str] = None,
        phase: Optional[str] = None,
        dry_run: bool = False,
    ) -> Dict[str, Any]:
        """Extract candidates and (unless dry_run) insert them into the backlog."""
        project = normalize_project(project)
        text = self.read_source(source, source_type)
        candidates = extract(
            text,
            project,
            default_priority or self.default_priority,
            indent_threshold=self.subtask_indent,
        )
        candidates = filter_by_phase(candidates, phase)
        if dry_run or not candidates:
            return {"dry_run": dry_run, "candidates": candidates, "inserted": 0, "ids": []}

        ids = self.allocator.allocate_batch(project, len(candidates))
        for candidate, task_id in zip(candidates, ids):
            candidate.id = task_id
        inserted = self.workspace.backlog.insert(candidates)
        for candidate in inserted:
            self.workspace.commit_id(candidate.id)
        logger.info("Imported %d candidate(s) into the %s backlog", len(inserted), project)
        return {"dry_run": False, "candidates": inserted, "inserted": len(inserted), "ids": [c.id for c in inserted]}

    def list_backlog(self, *, priority: Optional[str] = None, include_promoted: bool = True) -> List[Candidate]:
        return self.workspace.backlog.entries(priority=priority, include_promoted=include_promoted)

    def update_backlog_item(self, task_id: str, fields: Dict[str, Any]) -> Candidate:
        return self.workspace.backlog.update(normalize_task_id(task_id), fields)

    def remove_backlog_item(self, task_id: str) -> Candidate:
        return self.workspace.backlog.remove(normalize_task_id(task_id))

    def lint(self, *, fix: bool = False, strict: bool = False) -> LintReport:
        return lint_workspace(self.workspace, fix=fix, strict=strict)

    def sync_index(self, fmt: str = "dashboard") -> Dict[str, Any]:
        return sync_todo_index(self.workspace, fmt, limit=self.next_limit)

    def init_project(self) -> List[str]:
        return self.workspace.initialize()
