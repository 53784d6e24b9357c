"""Shared service layer for CLI and MCP."""

from .context import (
    resolve_context_info,
    get_client_for_context,
    get_client_for_path,
    get_task_store,
)
from .results import ToolResult
from .sync import sync_issues
from .issues import get_issue, check_connection, list_task_files
from .updates import IssueUpdatePlan, plan_issue_update, update_issues
from .bulk_create import bulk_create_tasks, resolve_creation_defaults

__all__ = [
    "resolve_context_info",
    "get_client_for_context",
    "get_client_for_path",
    "get_task_store",
    "ToolResult",
    "sync_issues",
    "get_issue",
    "check_connection",
    "list_task_files",
    "IssueUpdatePlan",
    "plan_issue_update",
    "update_issues",
    "bulk_create_tasks",
    "resolve_creation_defaults",
]
