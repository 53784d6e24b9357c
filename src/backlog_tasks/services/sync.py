"""Issue sync: Backlog -> task directory."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from ..backlog_client import BacklogAPIError, BacklogClient
from ..models import Issue
from ..reconcile import Reconciler, ReconcileReport
from ..sync_state import SyncState, SyncStateStore, parse_timestamp, utc_timestamp
from ..task_files import TaskFileStore
from ..tasks_config import TasksContext
from .results import ToolResult

logger = logging.getLogger(__name__)


def _fetch_issues(client: BacklogClient, state: SyncState) -> tuple[list[Issue], str]:
    """Fetch all issues on a first sync, else those updated since the last one."""
    if state.is_first_sync:
        issues = client.get_issues()
        return issues, f"Synced {len(issues)} issues (full sync - first time)"

    try:
        since = parse_timestamp(state.timestamp)
    except ValueError:
        logger.warning("Unreadable last sync timestamp %r; fetching all issues", state.timestamp)
        issues = client.get_issues()
        return issues, f"Synced {len(issues)} issues (last sync time unreadable, fetched all)"

    issues = client.get_issues_updated_since(since)
    return issues, f"Synced {len(issues)} issues updated since {state.timestamp}"


def _format_sync_message(
    sync_message: str,
    report: ReconcileReport,
    context: TasksContext,
    store: TaskFileStore,
    next_sync: str,
) -> str:
    lines = [f"✅ {sync_message}", f"Files: {report.summary()}"]
    if context.ignore_issue_types:
        lines.append(f"Ignored issue types: {', '.join(context.ignore_issue_types)}")
    if report.failed:
        lines.append("Failed:")
        lines.extend(f"  ❌ {key}: {error}" for key, error in report.failed.items())
    lines.append(f"Saved to: {store.tasks_dir}")
    lines.append(f"Next sync will check for updates since: {next_sync}")
    return "\n".join(lines)


def sync_issues(
    client: BacklogClient,
    store: TaskFileStore,
    context: TasksContext,
    now: Optional[datetime] = None,
) -> ToolResult:
    """Sync Backlog issues into the task directory.

    The first sync fetches every issue and removes task files of issues
    that no longer exist; later syncs fetch only issues updated since the
    previous one and never delete files.
    """
    if not client.test_connection():
        return ToolResult.error("Failed to connect to Backlog. Please check your API key and base URL.")

    state_store = SyncStateStore(store.tasks_dir)
    current_sync_time = utc_timestamp(now)

    try:
        store.initialize()
        state = state_store.load()
        issues, sync_message = _fetch_issues(client, state)
        report = Reconciler(store, state_store).reconcile(
            issues,
            context.base_url or "",
            context.ignore_issue_types,
            state=state,
        )
    except BacklogAPIError as e:
        return ToolResult.error(f"Error syncing issues: {e}")
    except (OSError, UnicodeDecodeError) as e:
        logger.error("Sync failed: %s", e)
        return ToolResult.error(f"Error syncing issues: {e}")

    message = _format_sync_message(sync_message, report, context, store, current_sync_time)

    try:
        state_store.save(current_sync_time, issues)
    except OSError as e:
        logger.error("Failed to save last sync time: %s", e)
        return ToolResult.error(f"{message}\n❌ Failed to save sync state: {e}")

    return ToolResult.ok(message)
