from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

USER_CONFIG_PATH = Path.home() / ".project_tasks.yaml"
PROJECT_CONFIG_FILENAME = "config.yaml"
LOG_LEVEL_ENV = "PROJECT_TASKS_LOG_LEVEL"

DEFAULTS: Dict[str, Any] = {
    "default_owner": "unassigned",
    "default_priority": "P2",
    "subtask_indent": 2,
    "strict_dependencies": True,
    "next_task_limit": 5,
    "log_level": "WARNING",
}

logger = logging.getLogger("project_tasks.config")


def _read_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as exc:
        logger.warning("Ignoring unreadable config %s: %s", path, exc)
        return {}
    return data if isinstance(data, dict) else {}


def _load_config(storage_dir: Optional[Path] = None) -> Dict[str, Any]:
    """User config overlaid by the project's ``.project/config.yaml``."""
    data = dict(_read_yaml(USER_CONFIG_PATH))
    if storage_dir is not None:
        data.update(_read_yaml(Path(storage_dir) / PROJECT_CONFIG_FILENAME))
    return data


def _get(key: str, storage_dir: Optional[Path]) -> Any:
    value = _load_config(storage_dir).get(key)
    return DEFAULTS[key] if value is None or value == "" else value


def _as_int(key: str, value: Any) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        logger.warning("Config %s=%r is not an integer; using %s", key, value, DEFAULTS[key])
        return DEFAULTS[key]
    return number if number >= 0 else DEFAULTS[key]


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() not in {"0", "false", "no", "off"}
    return bool(value)


def get_default_owner(storage_dir: Optional[Path] = None) -> str:
    return str(_get("default_owner", storage_dir)).strip()


def get_default_priority(storage_dir: Optional[Path] = None) -> str:
    return str(_get("default_priority", storage_dir)).strip().upper()


def get_subtask_indent(storage_dir: Optional[Path] = None) -> int:
    return _as_int("subtask_indent", _get("subtask_indent", storage_dir))


def get_strict_dependencies(storage_dir: Optional[Path] = None) -> bool:
    return _as_bool(_get("strict_dependencies", storage_dir))


def get_next_task_limit(storage_dir: Optional[Path] = None) -> int:
    return _as_int("next_task_limit", _get("next_task_limit", storage_dir))


def get_log_level(storage_dir: Optional[Path] = None) -> str:
    env_level = os.environ.get(LOG_LEVEL_ENV, "").strip()
    if env_level:
        return env_level.upper()
    return str(_get("log_level", storage_dir)).strip().upper()
