from pathlib import Path
import os
import subprocess

from infrastructure.workspace import STORAGE_DIRNAME

PROJECT_ROOT_ENV = "PROJECT_TASKS_ROOT"


def resolve_project_root(project_root: Path | None = None) -> Path:
    """Resolve project root.

    Priority:
    1. Explicit project_root if provided.
    2. PROJECT_TASKS_ROOT env variable.
    3. git toplevel of the current directory.
    4. Current working directory.
    """
    if project_root:
        return Path(project_root).expanduser().resolve()

    env_root = os.environ.get(PROJECT_ROOT_ENV)
    if env_root:
        return Path(env_root).expanduser().resolve()

    try:
        result = subprocess.run(
            ["git", "rev-parse", "--show-toplevel"],
            capture_output=True,
            text=True,
            check=True,
        )
        root = Path(result.stdout.strip())
        if root.exists():
            return root.resolve()
    except (OSError, subprocess.CalledProcessError):
        pass

    return Path.cwd().resolve()


def get_storage_dir(project_root: Path | None = None) -> Path:
    """``<project root>/.project``; not created here."""
    return resolve_project_root(project_root) / STORAGE_DIRNAME


__all__ = ["PROJECT_ROOT_ENV", "resolve_project_root", "get_storage_dir"]
