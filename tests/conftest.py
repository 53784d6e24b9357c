"""Shared fixtures for the backlog_tasks tests."""

from pathlib import Path
from typing import Callable, Optional

import pytest

from backlog_tasks.models import Issue, NamedRef
from backlog_tasks.task_files import TaskFileStore

BASE_URL = "https://example.backlog.com"


def _make_issue(
    issue_id: int,
    key: str,
    summary: Optional[str] = None,
    description: str = "",
    parent_id: Optional[int] = None,
    issue_type: str = "Task",
) -> Issue:
    return Issue(
        id=issue_id,
        issue_key=key,
        summary=summary if summary is not None else f"Summary of {key}",
        description=description,
        issue_type=NamedRef(1, issue_type),
        priority=NamedRef(3, "Normal"),
        status=NamedRef(1, "Open"),
        parent_issue_id=parent_id,
    )


@pytest.fixture
def make_issue() -> Callable[..., Issue]:
    """Factory for Issue objects with sensible defaults."""
    return _make_issue


@pytest.fixture
def tasks_dir(tmp_path: Path) -> Path:
    """An initialized, empty task directory."""
    root = tmp_path / ".tasks"
    TaskFileStore(root).initialize()
    return root.resolve()


@pytest.fixture
def store(tasks_dir: Path) -> TaskFileStore:
    return TaskFileStore(tasks_dir)


def api_issue(issue_id: int, key: str, summary: str = "", description: str = "", parent_id=None) -> dict:
    """A Backlog API issue payload."""
    return {
        "id": issue_id,
        "projectId": 10,
        "issueKey": key,
        "summary": summary or f"Summary of {key}",
        "description": description,
        "issueType": {"id": 1, "name": "Task"},
        "priority": {"id": 3, "name": "Normal"},
        "status": {"id": 1, "name": "Open"},
        "parentIssueId": parent_id,
        "assignee": {"name": "Jane"},
        "category": [{"name": "Backend"}],
        "versions": [],
        "milestone": [{"name": "v1"}],
        "created": "2025-01-01T00:00:00Z",
        "updated": "2025-01-02T00:00:00Z",
    }
