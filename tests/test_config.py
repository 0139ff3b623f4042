import config


def test_defaults_without_files(storage_dir):
    assert config.get_default_owner(storage_dir) == "unassigned"
    assert config.get_default_priority(storage_dir) == "P2"
    assert config.get_subtask_indent(storage_dir) == 2
    assert config.get_strict_dependencies(storage_dir) is True
    assert config.get_next_task_limit() == 5
    assert config.get_log_level() == "WARNING"


def test_project_config_overrides_user_config(storage_dir):
    config.USER_CONFIG_PATH.write_text("default_owner: ana\ndefault_priority: p1\nnext_task_limit: 3\n", encoding="utf-8")
    storage_dir.mkdir(parents=True)
    (storage_dir / "config.yaml").write_text("default_owner: bo\nstrict_dependencies: 'off'\n", encoding="utf-8")

    assert config.get_default_owner(storage_dir) == "bo"
    assert config.get_default_owner() == "ana"
    assert config.get_default_priority(storage_dir) == "P1"
    assert config.get_next_task_limit(storage_dir) == 3
    assert config.get_strict_dependencies(storage_dir) is False


def test_bad_values_fall_back(storage_dir):
    storage_dir.mkdir(parents=True)
    (storage_dir / "config.yaml").write_text("subtask_indent: wide\nnext_task_limit: -4\n", encoding="utf-8")
    assert config.get_subtask_indent(storage_dir) == 2
    assert config.get_next_task_limit(storage_dir) == 5


def test_unreadable_config_is_ignored(storage_dir):
    storage_dir.mkdir(parents=True)
    (storage_dir / "config.yaml").write_text("default_owner: [oops\n", encoding="utf-8")
    assert config.get_default_owner(storage_dir) == "unassigned"


def test_log_level_env_wins(storage_dir, monkeypatch):
    storage_dir.mkdir(parents=True)
    (storage_dir / "config.yaml").write_text("log_level: info\n", encoding="utf-8")
    assert config.get_log_level(storage_dir) == "INFO"
    monkeypatch.setenv(config.LOG_LEVEL_ENV, "debug")
    assert config.get_log_level(storage_dir) == "DEBUG"
