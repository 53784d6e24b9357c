"""Tests for directory-based configuration."""

import json
import logging
from pathlib import Path
from unittest.mock import patch

import pytest

from backlog_tasks.tasks_config import (
    ConfigurationError,
    TasksContext,
    create_project_config,
    find_project_config,
    get_context_help_message,
    resolve_context,
    validate_context,
)

ENV_VARS = [
    "BACKLOG_API_KEY",
    "BACKLOG_API_KEY_WORK",
    "BACKLOG_BASE_URL",
    "BACKLOG_PROJECT_KEY",
    "BACKLOG_TASKS_DIR",
    "TASKS_DIR",
    "BACKLOG_IGNORE_ISSUE_TYPES",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path: Path):
    """Isolate tests from the real environment and user config."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    with patch("backlog_tasks.tasks_config.USER_CONFIG_FILE", tmp_path / "user" / "config.json"):
        yield


def _write_json(path: Path, data: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data))


class TestResolveContext:
    """Tests for resolve_context."""

    def test_nothing_configured(self, tmp_path: Path):
        context = resolve_context(tmp_path)

        assert context.config_source == "none"
        assert not context.is_configured()
        assert context.get_tasks_path() == (tmp_path / ".tasks").resolve()

    def test_project_config_in_parent(self, tmp_path: Path, monkeypatch):
        _write_json(tmp_path / ".backlog" / "config.json", {
            "backlog": {"base_url": "https://team.backlog.com", "project_key": "A"},
            "tasks": {"dir": "work/tasks", "ignore_issue_types": ["Epic"]},
            "create": {"default_issue_type": "Task"},
        })
        monkeypatch.setenv("BACKLOG_API_KEY", "secret")
        nested = tmp_path / "src" / "app"
        nested.mkdir(parents=True)

        context = resolve_context(nested)

        assert context.config_source == "parent"
        assert context.base_url == "https://team.backlog.com"
        assert context.project_key == "A"
        assert context.api_key == "secret"
        assert context.ignore_issue_types == ["Epic"]
        assert context.default_issue_type == "Task"
        assert context.get_tasks_path() == (tmp_path / "work" / "tasks").resolve()
        assert find_project_config(nested) == (tmp_path / ".backlog" / "config.json").resolve()

    def test_custom_api_key_env_takes_precedence(self, tmp_path: Path, monkeypatch):
        _write_json(tmp_path / ".backlog" / "config.json", {
            "backlog": {"base_url": "https://team.backlog.com", "project_key": "A", "api_key": "from-file"},
            "auth": {"api_key_env": "BACKLOG_API_KEY_WORK"},
        })
        monkeypatch.setenv("BACKLOG_API_KEY_WORK", "from-env")

        context = resolve_context(tmp_path)

        assert context.config_source == "directory"
        assert context.api_key == "from-env"

    def test_legacy_flat_config(self, tmp_path: Path):
        _write_json(tmp_path / "config.json", {
            "apiKey": "legacy-key",
            "baseUrl": "https://old.backlog.jp",
            "projectKey": "OLD",
            "tasksDir": "tasks",
            "ignoreIssueTypes": "Epic, Story",
        })

        context = resolve_context(tmp_path)

        assert context.config_source == "legacy"
        assert context.api_key == "legacy-key"
        assert context.project_key == "OLD"
        assert context.tasks_dir == "tasks"
        assert context.ignore_issue_types == ["Epic", "Story"]

    def test_broken_legacy_config_falls_back_to_env(self, tmp_path: Path, monkeypatch):
        (tmp_path / "config.json").write_text("{not json")
        monkeypatch.setenv("BACKLOG_BASE_URL", "https://env.backlog.com")

        context = resolve_context(tmp_path)

        assert context.config_source == "none"
        assert context.base_url == "https://env.backlog.com"

    def test_malformed_project_config_falls_back(self, tmp_path: Path, monkeypatch, caplog):
        (tmp_path / ".backlog").mkdir()
        (tmp_path / ".backlog" / "config.json").write_text("{not json")
        monkeypatch.setenv("BACKLOG_BASE_URL", "https://env.backlog.com")

        with caplog.at_level(logging.WARNING, logger="backlog_tasks.tasks_config"):
            context = resolve_context(tmp_path)

        assert context.config_source == "none"
        assert context.base_url == "https://env.backlog.com"
        assert "Failed to load" in caplog.text

    def test_user_config(self, tmp_path: Path):
        _write_json(tmp_path / "user" / "config.json", {
            "backlog": {"base_url": "https://user.backlog.com", "project_key": "U"},
        })
        workdir = tmp_path / "work"
        workdir.mkdir()

        context = resolve_context(workdir)

        assert context.config_source == "user"
        assert context.project_key == "U"

    def test_environment_only(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("BACKLOG_API_KEY", "k")
        monkeypatch.setenv("BACKLOG_BASE_URL", "https://env.backlog.com")
        monkeypatch.setenv("BACKLOG_PROJECT_KEY", "ENV")
        monkeypatch.setenv("TASKS_DIR", "my-tasks")
        monkeypatch.setenv("BACKLOG_IGNORE_ISSUE_TYPES", "Epic,Bug")

        context = resolve_context(tmp_path)

        assert context.is_configured()
        assert context.tasks_dir == "my-tasks"
        assert context.ignore_issue_types == ["Epic", "Bug"]


class TestValidateContext:
    """Tests for validate_context."""

    def test_missing_fields(self):
        with pytest.raises(ConfigurationError) as exc_info:
            validate_context(TasksContext(base_url="https://team.backlog.com"))

        assert "api_key" in str(exc_info.value)
        assert "project_key" in str(exc_info.value)
        assert exc_info.value.suggestions

    def test_invalid_url(self):
        with pytest.raises(ConfigurationError):
            validate_context(TasksContext(api_key="k", base_url="team.backlog.com", project_key="A"))

    def test_non_backlog_domain_warns(self, caplog):
        context = TasksContext(api_key="k", base_url="https://issues.example.com", project_key="A")

        with caplog.at_level(logging.WARNING, logger="backlog_tasks.tasks_config"):
            validate_context(context)

        assert "does not appear to be a Backlog domain" in caplog.text


class TestCreateProjectConfig:
    """Tests for create_project_config."""

    def test_round_trip(self, tmp_path: Path):
        config_path = create_project_config(
            tmp_path,
            base_url="https://team.backlog.com",
            project_key="A",
            ignore_issue_types=["Epic"],
            api_key_env="BACKLOG_API_KEY_WORK",
        )

        assert config_path == tmp_path / ".backlog" / "config.json"
        data = json.loads(config_path.read_text())
        assert "api_key" not in data["backlog"]

        context = resolve_context(tmp_path)
        assert context.project_key == "A"
        assert context.ignore_issue_types == ["Epic"]
        assert context.api_key_env == "BACKLOG_API_KEY_WORK"

    def test_help_message(self, tmp_path: Path):
        assert "No Backlog configuration found" in get_context_help_message(resolve_context(tmp_path))
