"""Context and client resolution helpers shared by CLI and MCP."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from ..backlog_client import BacklogClient, BacklogConfig
from ..task_files import TaskFileStore
from ..tasks_config import (
    TasksContext,
    get_context_help_message,
    resolve_context,
    validate_context,
)


def resolve_context_info(path: Optional[Path] = None) -> dict:
    """Return context info and help text if not configured."""
    context = resolve_context(path)
    return {
        "config_source": context.config_source,
        "config_path": str(context.config_path) if context.config_path else None,
        "base_url": context.base_url,
        "project_key": context.project_key,
        "tasks_dir": str(context.get_tasks_path()),
        "ignore_issue_types": context.ignore_issue_types,
        "api_key_configured": context.api_key is not None,
        "api_key_env": context.api_key_env,
        "help": get_context_help_message(context) if not context.is_configured() else None,
    }


def get_client_for_context(context: TasksContext) -> BacklogClient:
    """Return a Backlog client for a validated context.

    Raises:
        ConfigurationError: If the context is incomplete or invalid
    """
    validate_context(context)
    return BacklogClient(BacklogConfig.from_context(context))


def get_client_for_path(path: Optional[Path] = None) -> tuple[BacklogClient, TasksContext]:
    """Return Backlog client + resolved context for a path."""
    context = resolve_context(path)
    return get_client_for_context(context), context


def get_task_store(context: TasksContext) -> TaskFileStore:
    return TaskFileStore(context.get_tasks_path())
