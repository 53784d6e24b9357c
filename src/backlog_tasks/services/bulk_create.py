"""Create Backlog issues from temporary task files in parent folders.

A parent folder is a top-level folder named after an issue (`SBK-2`, or a
renamed `SBK-2-login`). Temporary files in it are named `SBK-2-1.md`,
`SBK-2-2.md`, ... Each one becomes a child issue of `SBK-2`; the file is
then renamed to the new issue key.
"""

from __future__ import annotations

import logging
from typing import Optional

from ..backlog_client import BacklogAPIError, BacklogClient
from ..task_files import TaskFileStore, parent_key_for_folder
from ..tasks_config import TasksContext
from .results import ToolResult

logger = logging.getLogger(__name__)

FALLBACK_PRIORITY_NAME = "Normal"


def _pick_named(items: list[dict], name: Optional[str]) -> Optional[dict]:
    if not name:
        return None
    wanted = name.casefold()
    return next((item for item in items if str(item.get("name", "")).casefold() == wanted), None)


def resolve_creation_defaults(client: BacklogClient, context: TasksContext) -> tuple[int, int]:
    """Resolve the issue type and priority ids used for new issues.

    Configured names win; otherwise the first issue type of the project and
    the `Normal` priority (or the middle one) are used.

    Raises:
        BacklogAPIError: If the project defines no issue types or priorities
    """
    issue_types = client.get_issue_types()
    if not issue_types:
        raise BacklogAPIError("Project has no issue types")
    issue_type = _pick_named(issue_types, context.default_issue_type)
    if issue_type is None:
        if context.default_issue_type:
            logger.warning("Issue type %r not found; using %r", context.default_issue_type, issue_types[0].get("name"))
        issue_type = issue_types[0]

    priorities = client.get_priorities()
    if not priorities:
        raise BacklogAPIError("Space has no priorities")
    priority = _pick_named(priorities, context.default_priority)
    if priority is None:
        if context.default_priority:
            logger.warning("Priority %r not found; using default", context.default_priority)
        priority = _pick_named(priorities, FALLBACK_PRIORITY_NAME) or priorities[len(priorities) // 2]

    return issue_type["id"], priority["id"]


def bulk_create_tasks(
    client: BacklogClient,
    store: TaskFileStore,
    context: TasksContext,
) -> ToolResult:
    """Create issues for every temporary task file in every parent folder."""
    if not client.test_connection():
        return ToolResult.error("Failed to connect to Backlog. Please check your API key and base URL.")

    try:
        store.initialize()
        parent_folders = store.find_parent_task_folders()
    except OSError as e:
        return ToolResult.error(f"❌ Failed to bulk create tasks: {e}")

    if not parent_folders:
        return ToolResult.ok(
            "No parent task folders found. Parent folders should follow the pattern "
            "PARENT-{number} (e.g., SBK-2)."
        )

    try:
        issue_type_id, priority_id = resolve_creation_defaults(client, context)
    except BacklogAPIError as e:
        return ToolResult.error(f"❌ Failed to bulk create tasks: {e}")

    results = []
    total_created = 0
    total_errors = 0

    for folder in parent_folders:
        results.append(f"\n📁 Processing parent folder: {folder}")

        try:
            temp_files = store.find_temporary_task_files(folder)
        except OSError as e:
            results.append(f"  ❌ Could not read {folder}: {e}")
            total_errors += 1
            continue

        if not temp_files:
            results.append(f"  ⏭️  No temporary task files found in {folder}")
            continue
        results.append(f"  📄 Found {len(temp_files)} temporary task files")

        parent_key = parent_key_for_folder(folder)
        parent_issue_id = None
        try:
            parent = client.get_issue(parent_key)
            parent_issue_id = parent.id
            results.append(f"  🔗 Found parent issue: {parent.summary} (ID: {parent_issue_id})")
        except BacklogAPIError:
            results.append(f"  ⚠️  Parent issue {parent_key} not found in Backlog, creating as standalone issues")

        for temp_file in temp_files:
            title = temp_file.content.title
            description = temp_file.content.description
            try:
                created = client.create_issue(
                    summary=title or f"Task from {temp_file.file_name}",
                    issue_type_id=issue_type_id,
                    priority_id=priority_id,
                    description=description,
                    parent_issue_id=parent_issue_id,
                )
                new_path = store.rename_task_file(temp_file.path, created.issue_key)
                store.write_task(new_path, title or created.summary, description or created.description)
            except (BacklogAPIError, OSError) as e:
                logger.error("Failed to create issue for %s: %s", temp_file.file_name, e)
                results.append(f"  ❌ Failed to create issue for {temp_file.file_name}: {e}")
                total_errors += 1
                continue

            results.append(f"  ✅ Created {created.issue_key}: {created.summary}")
            total_created += 1

    summary = f"📊 Summary: {total_created} issues created, {total_errors} errors"
    return ToolResult.ok(f"🚀 Bulk Create Tasks Complete\n{summary}\n" + "\n".join(results))
