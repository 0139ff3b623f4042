import pytest

import config
from application.task_manager import TaskManager
from infrastructure.workspace import ProjectWorkspace

TODAY = "2026-01-15"


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path_factory, monkeypatch):
    """Keep the developer's ~/.project_tasks.yaml and env out of the tests."""
    monkeypatch.setattr(config, "USER_CONFIG_PATH", tmp_path_factory.mktemp("home") / ".project_tasks.yaml")
    monkeypatch.delenv(config.LOG_LEVEL_ENV, raising=False)
    monkeypatch.delenv("PROJECT_TASKS_ROOT", raising=False)


@pytest.fixture
def clock():
    return lambda: TODAY


@pytest.fixture
def storage_dir(tmp_path):
    return tmp_path / ".project"


@pytest.fixture
def workspace(storage_dir, clock):
    ws = ProjectWorkspace(storage_dir, clock=clock)
    ws.initialize()
    return ws


@pytest.fixture
def manager(storage_dir, clock):
    m = TaskManager(storage_dir, clock=clock)
    m.init_project()
    return m
