"""MCP Server for Backlog Tasks - Backlog issue sync to markdown task files.

This MCP server exposes the task sync to AI assistants so they can pull
Backlog issues into a local task tree, edit them as markdown and push the
changes back.

Supports directory-based configuration via .backlog/config.json files.
"""

import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import Optional

from mcp.server.fastmcp import Context, FastMCP
from mcp.server.fastmcp.exceptions import ToolError

from .backlog_client import BacklogClient
from .services.context import get_client_for_context, get_task_store
from .services.results import ToolResult
from .services.sync import sync_issues as svc_sync_issues
from .services.issues import (
    check_connection as svc_check_connection,
    get_issue as svc_get_issue,
    list_task_files as svc_list_task_files,
)
from .services.updates import update_issues as svc_update_issues
from .services.bulk_create import bulk_create_tasks as svc_bulk_create_tasks
from .tasks_config import (
    ConfigurationError,
    TasksContext,
    get_context_help_message,
    resolve_context,
    validate_context,
)

logger = logging.getLogger(__name__)

# ============================================================================
# Client CWD Detection via MCP Roots
# ============================================================================
# The server's cwd is wherever it was launched from, not the client's
# workspace. list_roots() tells us the workspace of the connected client.

_client_cwd: Optional[Path] = None
_roots_initialized: bool = False
_roots_lock: Optional[asyncio.Lock] = None


def _get_roots_lock() -> asyncio.Lock:
    global _roots_lock
    if _roots_lock is None:
        _roots_lock = asyncio.Lock()
    return _roots_lock


async def _ensure_roots_initialized(ctx: Context) -> None:
    """Fetch and cache the client's first workspace root on the first tool call."""
    global _client_cwd, _roots_initialized

    if _roots_initialized:
        return

    async with _get_roots_lock():
        if _roots_initialized:
            return

        try:
            result = await ctx.session.list_roots()
            if result.roots:
                uri = str(result.roots[0].uri)
                if uri.startswith("file://"):
                    _client_cwd = Path(uri.replace("file://", ""))
                elif uri.startswith("/"):
                    _client_cwd = Path(uri)
        except Exception as e:
            # Not every client supports roots
            logger.debug("list_roots unavailable, using server cwd: %s", e)
        finally:
            _roots_initialized = True


def _get_effective_path() -> Optional[Path]:
    return _client_cwd


# Create the MCP server
mcp = FastMCP(
    "backlog-tasks",
    instructions="""Backlog Tasks - Backlog issues as markdown task files

## Quick Reference

| Goal | Tool |
|------|------|
| Pull issues into the task tree | `sync-issues` |
| Read one issue from Backlog | `get-issue` |
| Check credentials | `test-connection` |
| Push edited task files back | `update-issues` |
| See what is on disk | `list-task-files` |
| Create issues from draft files | `bulk-create-tasks` |

## Task Tree

- Every issue is one `KEY.md` file: `# Title`, blank line, description.
- Parents with children get a `KEY/` folder holding the parent and its children.
- Issues with no relationships live in `others/`.
- Folders you create or rename yourself are kept: files in them are never moved.

## Drafting New Issues

Put `PARENT-1.md`, `PARENT-2.md`, ... into a `PARENT/` folder (or a renamed
`PARENT-topic/` folder) and call `bulk-create-tasks`. Each draft becomes a
child issue of PARENT and is renamed to its new key.

## Config
- Uses `.backlog/config.json` per directory, or BACKLOG_* environment variables""",
)


def _get_context() -> TasksContext:
    return resolve_context(_get_effective_path())


def _get_client_safe() -> tuple[Optional[BacklogClient], Optional[TasksContext], Optional[str]]:
    """Get client with proper error handling."""
    context = _get_context()
    try:
        return get_client_for_context(context), context, None
    except ConfigurationError as e:
        lines = [f"❌ {e}"]
        lines.extend(f"  - {suggestion}" for suggestion in e.suggestions)
        return None, context, "\n".join(lines)


def _respond(result: ToolResult) -> str:
    if result.is_error:
        raise ToolError(result.text)
    return result.text


@mcp.tool(
    name="sync-issues",
    description=(
        "Sync Backlog issues to local task files. The first sync fetches all issues; "
        "later syncs fetch only issues updated since the previous sync."
    ),
)
async def sync_issues(ctx: Context) -> str:
    await _ensure_roots_initialized(ctx)

    client, context, error = _get_client_safe()
    if error:
        raise ToolError(error)

    return _respond(svc_sync_issues(client, get_task_store(context), context))


@mcp.tool(name="get-issue", description="Get a specific issue from Backlog by its key (e.g. PROJ-123).")
async def get_issue(ctx: Context, issueKey: str) -> str:  # noqa: N803
    await _ensure_roots_initialized(ctx)

    client, _context, error = _get_client_safe()
    if error:
        raise ToolError(error)

    return _respond(svc_get_issue(client, issueKey))


@mcp.tool(name="test-connection", description="Test the connection to Backlog with the configured credentials.")
async def check_connection(ctx: Context) -> str:
    await _ensure_roots_initialized(ctx)

    client, _context, error = _get_client_safe()
    if error:
        raise ToolError(error)

    return _respond(svc_check_connection(client))


@mcp.tool(
    name="update-issues",
    description=(
        "Update Backlog issues from their local task files. Pushes the title and "
        "description; an empty local description never clears a remote one."
    ),
)
async def update_issues(ctx: Context, issueKeys: list[str]) -> str:  # noqa: N803
    await _ensure_roots_initialized(ctx)

    client, context, error = _get_client_safe()
    if error:
        raise ToolError(error)

    return _respond(svc_update_issues(client, get_task_store(context), issueKeys))


@mcp.tool(name="list-task-files", description="List all task files in the local task directory.")
async def list_task_files(ctx: Context) -> str:
    await _ensure_roots_initialized(ctx)

    context = _get_context()
    return _respond(svc_list_task_files(get_task_store(context)))


@mcp.tool(
    name="bulk-create-tasks",
    description=(
        "Create Backlog issues from temporary task files (PARENT-1.md, PARENT-2.md, ...) "
        "inside parent folders, then rename each file to its new issue key."
    ),
)
async def bulk_create_tasks(ctx: Context) -> str:
    await _ensure_roots_initialized(ctx)

    client, context, error = _get_client_safe()
    if error:
        raise ToolError(error)

    return _respond(svc_bulk_create_tasks(client, get_task_store(context), context))


def configure_logging(verbose: bool = False) -> None:
    """Send log output to stderr; stdout carries the MCP protocol."""
    level = logging.DEBUG if verbose or os.environ.get("BACKLOG_TASKS_DEBUG") else logging.INFO
    logging.basicConfig(level=level, format="%(name)s %(message)s", stream=sys.stderr)


def main():
    """Run the MCP server."""
    configure_logging()

    context = resolve_context()
    try:
        validate_context(context)
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        for suggestion in e.suggestions:
            print(f"  - {suggestion}", file=sys.stderr)
        print(get_context_help_message(context), file=sys.stderr)
        sys.exit(1)

    logger.info("Backlog Tasks MCP server starting (project %s)", context.project_key)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
