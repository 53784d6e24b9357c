"""Push local task file edits (title and description) back to Backlog."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence

from ..backlog_client import BacklogAPIError, BacklogClient
from ..models import Issue
from ..task_files import TaskContent, TaskFileStore
from .results import ToolResult

logger = logging.getLogger(__name__)

SKIPPED_EMPTY_DESCRIPTION = "Description update skipped (would remove existing content)"


@dataclass
class IssueUpdatePlan:
    """Fields to push for one issue, plus a note per detected change."""

    summary: Optional[str] = None
    description: Optional[str] = None
    notes: list[str] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return self.summary is not None or self.description is not None


def plan_issue_update(local: TaskContent, remote: Issue) -> IssueUpdatePlan:
    """Compare a task file with its issue and decide what to push.

    An empty local description never replaces a non-empty remote one: the
    change is reported as skipped instead.
    """
    plan = IssueUpdatePlan()

    if local.title and local.title != remote.summary:
        plan.summary = local.title
        plan.notes.append("Title updated")

    local_desc = (local.description or "").strip()
    remote_desc = (remote.description or "").strip()
    if local_desc != remote_desc:
        if not local_desc:
            plan.notes.append(SKIPPED_EMPTY_DESCRIPTION)
        else:
            plan.description = local_desc
            plan.notes.append("Description updated" if remote_desc else "Description added")

    return plan


def update_issues(
    client: BacklogClient,
    store: TaskFileStore,
    issue_keys: Sequence[str],
) -> ToolResult:
    """Update Backlog issues from their local task files.

    Each key is handled on its own; a failure is reported in its line and
    the remaining keys are still processed.
    """
    if not issue_keys:
        return ToolResult.error("❌ No issue keys provided. Please specify at least one issue key.")

    results = []
    success_count = 0
    error_count = 0

    for issue_key in issue_keys:
        local = store.read_task(issue_key)
        if local is None:
            results.append(f"❌ {issue_key}: Local task file not found")
            error_count += 1
            continue

        try:
            remote = client.get_issue(issue_key)
        except BacklogAPIError as e:
            logger.error("Failed to fetch %s: %s", issue_key, e)
            results.append(f"❌ {issue_key}: Failed to fetch from Backlog")
            error_count += 1
            continue

        plan = plan_issue_update(local, remote)
        if not plan.has_changes:
            detail = ", ".join(plan.notes) if plan.notes else "No changes detected"
            results.append(f"⏭️  {issue_key}: {detail}")
            continue

        try:
            client.update_issue(issue_key, summary=plan.summary, description=plan.description)
        except (BacklogAPIError, ValueError) as e:
            results.append(f"❌ {issue_key}: Update failed - {e}")
            error_count += 1
            continue

        results.append(f"✅ {issue_key}: {', '.join(plan.notes)}")
        success_count += 1

    skipped_count = len(issue_keys) - success_count - error_count
    summary = f"📊 Summary: {success_count} updated, {error_count} errors, {skipped_count} skipped"
    text = f"{summary}\n\n" + "\n".join(results)

    if error_count == len(issue_keys):
        return ToolResult.error(text)
    return ToolResult.ok(text)
