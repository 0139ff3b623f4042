import logging
from datetime import date, datetime
from pathlib import Path
from typing import Any, List, Optional

import yaml

from core import SubTask, TaskRecord
from core.task_record import BODY_SECTIONS, dedupe

logger = logging.getLogger("project_tasks.parser")


class TaskFileParseError(ValueError):
    """Raised by ``parse_strict`` when a record file cannot be understood."""


def split_front_matter(content: str) -> Optional[tuple]:
    """Return (yaml_text, body) for a document opening with a ``---`` block."""
    lines = content.splitlines()
    if not lines or lines[0].strip() != "---":
        return None
    for idx in range(1, len(lines)):
        if lines[idx].strip() == "---":
            return "\n".join(lines[1:idx]), "\n".join(lines[idx + 1:])
    return None


class TaskFileParser:
    @staticmethod
    def _coerce_timestamp(value: Any) -> str:
        """Normalize YAML dates to a YYYY-MM-DD string.

        YAML loaders parse unquoted ISO dates into date/datetime objects; keep
        the in-memory model stable by storing them as strings.
        """
        if value is None:
            return ""
        if isinstance(value, datetime):
            return value.date().isoformat()
        if isinstance(value, date):
            return value.isoformat()
        return str(value).strip()

    @classmethod
    def _coerce_timestamp_opt(cls, value: Any) -> Optional[str]:
        raw = cls._coerce_timestamp(value)
        return raw if raw else None

    @staticmethod
    def _str_list(value: Any) -> List[str]:
        if value is None:
            return []
        if isinstance(value, (list, tuple)):
            return [str(v).strip() for v in value if v is not None and str(v).strip()]
        text = str(value).strip()
        if not text:
            return []
        return [part.strip() for part in text.split(",") if part.strip()]

    @classmethod
    def parse(cls, filepath: Path) -> Optional[TaskRecord]:
        """Parse a record file; None for missing or unparseable files."""
        try:
            return cls.parse_strict(filepath)
        except FileNotFoundError:
            return None
        except TaskFileParseError as exc:
            logger.warning("Skipping unparseable task file %s: %s", filepath, exc)
            return None

    @classmethod
    def parse_strict(cls, filepath: Path) -> TaskRecord:
        content = filepath.read_text(encoding="utf-8")
        record = cls.parse_content(content, default_id=filepath.stem)
        record._source_path = str(filepath.resolve())
        return record

    @classmethod
    def parse_content(cls, content: str, *, default_id: str = "") -> TaskRecord:
        parts = split_front_matter(content)
        if parts is None:
            raise TaskFileParseError("missing front matter block")
        try:
            metadata = yaml.safe_load(parts[0]) or {}
        except yaml.YAMLError as exc:
            raise TaskFileParseError(f"invalid front matter: {exc}") from None
        if not isinstance(metadata, dict):
            raise TaskFileParseError("front matter is not a mapping")
        body = parts[1].strip()

        raw_id = str(metadata.get("id", "") or default_id or "").strip()
        task = TaskRecord(
            id=raw_id,
            title=str(metadata.get("title", "") or ""),
            project=str(metadata.get("project", "") or ""),
            priority=str(metadata.get("priority", "") or ""),
            status=str(metadata.get("status", "") or ""),
            owner=str(metadata.get("owner", "") or ""),
            depends_on=cls._str_list(metadata.get("depends_on")),
            blocked_by=cls._str_list(metadata.get("blocked_by")),
            tags=dedupe(cls._str_list(metadata.get("tags"))),
            estimate=str(metadata.get("estimate", "") or ""),
            due=cls._coerce_timestamp_opt(metadata.get("due")),
            phase=str(metadata.get("phase", "") or ""),
            created=cls._coerce_timestamp(metadata.get("created")),
            updated=cls._coerce_timestamp(metadata.get("updated")),
            completed=cls._coerce_timestamp_opt(metadata.get("completed")),
            archived=cls._coerce_timestamp_opt(metadata.get("archived")),
        )

        section = None
        buffer: List[str] = []

        def flush():
            if section is None:
                return
            cls._save_section(task, section, buffer.copy())

        # Only the fixed headings open a section; other "## " lines are text.
        for line in body.splitlines():
            if line.startswith("## ") and line[3:].strip() in BODY_SECTIONS:
                flush()
                section = line[3:].strip()
                buffer = []
            elif line.startswith("# ") and section is None:
                continue
            else:
                buffer.append(line)
        flush()
        return task

    @staticmethod
    def _save_section(task: TaskRecord, section: str, lines: List[str]) -> None:
        content = "\n".join(lines).strip()
        if section == "Description":
            task.description = content
        elif section == "Subtasks":
            for line in lines:
                subtask = SubTask.from_markdown(line)
                if subtask:
                    task.subtasks.append(subtask)
        elif section == "Notes":
            task.notes = content
