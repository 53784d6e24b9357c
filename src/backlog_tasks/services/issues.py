"""Single-issue lookups, connection checks and task file listing."""

from __future__ import annotations

import json
from dataclasses import asdict

from ..backlog_client import BacklogAPIError, BacklogClient
from ..task_files import TaskFileStore
from .results import ToolResult


def get_issue(client: BacklogClient, issue_key: str) -> ToolResult:
    """Return the full issue as JSON text."""
    try:
        issue = client.get_issue(issue_key)
    except BacklogAPIError as e:
        return ToolResult.error(f"Error getting issue: {e}")

    payload = issue.raw or asdict(issue)
    return ToolResult.ok(json.dumps(payload, indent=2, ensure_ascii=False, default=str))


def check_connection(client: BacklogClient) -> ToolResult:
    """Test the connection and describe the configured project."""
    if not client.test_connection():
        return ToolResult.error("❌ Failed to connect to Backlog. Please check your credentials.")

    try:
        project = client.get_project()
    except BacklogAPIError as e:
        return ToolResult.error(f"❌ Connection test failed: {e}")

    return ToolResult.ok(
        f"✅ Successfully connected to Backlog!\n"
        f"Project: {project.get('name')} ({project.get('projectKey')})"
    )


def list_task_files(store: TaskFileStore) -> ToolResult:
    try:
        task_files = store.list_task_files()
    except OSError as e:
        return ToolResult.error(f"Error listing task files: {e}")

    if not task_files:
        return ToolResult.ok(f"No task files found in {store.tasks_dir}")

    listing = "\n".join(f"- {name}" for name in task_files)
    return ToolResult.ok(f"Found {len(task_files)} task files in {store.tasks_dir}:\n{listing}")
