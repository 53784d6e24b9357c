"""Main CLI for Backlog Tasks."""

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from .backlog_client import BacklogClient
from .mcp_server import configure_logging, main as run_server
from .services import resolve_context_info
from .services.context import get_client_for_path, get_task_store
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
    PROJECT_CONFIG_DIR,
    PROJECT_CONFIG_FILE,
    ConfigurationError,
    TasksContext,
    create_project_config,
    resolve_context,
)

app = typer.Typer(
    name="backlog-tasks",
    help="Backlog Tasks - sync Backlog issues to markdown task files",
)
console = Console()


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
):
    """Sync Backlog issues to markdown task files and back."""
    configure_logging(verbose)


def get_client(path: Optional[Path] = None) -> tuple[BacklogClient, TasksContext]:
    """Get configured Backlog client or exit with error.

    Args:
        path: Optional path for directory-based context detection
    """
    try:
        return get_client_for_path(path)
    except ConfigurationError as e:
        console.print(f"[red]Configuration Error:[/red] {escape(str(e))}")
        for suggestion in e.suggestions:
            console.print(f"  [cyan]{escape(suggestion)}[/cyan]")
        raise typer.Exit(1)


def _print_result(result: ToolResult) -> None:
    if result.is_error:
        console.print(result.text, style="red", markup=False)
        raise typer.Exit(1)
    console.print(result.text, markup=False)


# ============================================================================
# Server
# ============================================================================


@app.command("serve")
def serve():
    """Run the MCP server over stdio."""
    run_server()


# ============================================================================
# Context Commands
# ============================================================================


@app.command("context")
def show_context(
    path: Optional[Path] = typer.Option(None, "--path", "-p", help="Path to check context for"),
):
    """Show the detected configuration for the current or specified directory.

    Displays:
    - Config source (directory, parent, legacy, user, none)
    - Backlog space and project
    - Task directory and ignored issue types
    """
    info = resolve_context_info(path or Path.cwd())

    table = Table(show_header=False, box=None)
    table.add_column(style="dim")
    table.add_column()
    table.add_row("Config source", info["config_source"])
    table.add_row("Config path", info["config_path"] or "-")
    table.add_row("Base URL", info["base_url"] or "[red]Not configured[/red]")
    table.add_row("Project", info["project_key"] or "[red]Not configured[/red]")
    table.add_row("Tasks dir", info["tasks_dir"])
    table.add_row("Ignored types", ", ".join(info["ignore_issue_types"]) or "-")
    api_key_status = "[green]✓[/green]" if info["api_key_configured"] else "[red]✗[/red]"
    table.add_row("API key", f"{api_key_status} ({info['api_key_env']})")
    console.print(table)

    if info["help"]:
        console.print("")
        console.print(info["help"], markup=False)


@app.command("init")
def init_config(
    path: Optional[Path] = typer.Option(None, "--path", "-p", help="Directory to initialize"),
    base_url: str = typer.Option(..., "--base-url", prompt=True, help="Backlog space URL"),
    project_key: str = typer.Option(..., "--project", prompt=True, help="Backlog project key"),
    tasks_dir: Optional[str] = typer.Option(None, "--tasks-dir", help="Task directory (default: .tasks)"),
    ignore_issue_types: Optional[list[str]] = typer.Option(
        None, "--ignore-type", help="Issue type to leave out of the task tree (repeatable)"
    ),
    api_key_env: Optional[str] = typer.Option(None, "--api-key-env", help="Environment variable for API key"),
):
    """Initialize .backlog/config.json in current or specified directory."""
    target_path = Path(path) if path else Path.cwd()

    if not target_path.exists():
        console.print(f"[red]Error:[/red] Directory not found: {target_path}")
        raise typer.Exit(1)

    existing_config = target_path / PROJECT_CONFIG_DIR / PROJECT_CONFIG_FILE
    if existing_config.exists():
        if not typer.confirm(f"Config already exists at {existing_config}. Overwrite?"):
            raise typer.Exit(0)

    config_path = create_project_config(
        target_path,
        base_url=base_url.rstrip("/"),
        project_key=project_key,
        tasks_dir=tasks_dir,
        ignore_issue_types=ignore_issue_types,
        api_key_env=api_key_env,
    )

    console.print(f"\n[green]Created:[/green] {config_path}")
    console.print("\n[dim]Config contents:[/dim]")
    console.print(config_path.read_text(encoding="utf-8"), markup=False)
    env_name = api_key_env or "BACKLOG_API_KEY"
    console.print(f"\n[dim]Make sure {env_name} is set in your environment.[/dim]")


# ============================================================================
# Sync Commands
# ============================================================================


@app.command("sync")
def sync(
    path: Optional[Path] = typer.Option(None, "--path", "-p", help="Path for context detection"),
):
    """Sync Backlog issues into the task directory."""
    client, context = get_client(path)

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    ) as progress:
        progress.add_task(f"Syncing {context.project_key}...", total=None)
        result = svc_sync_issues(client, get_task_store(context), context)

    _print_result(result)


@app.command("list")
def list_files(
    path: Optional[Path] = typer.Option(None, "--path", "-p", help="Path for context detection"),
):
    """List task files in the task directory."""
    context = resolve_context(path)
    _print_result(svc_list_task_files(get_task_store(context)))


@app.command("get")
def get_issue(
    issue_key: str = typer.Argument(..., help="Backlog issue key (e.g., PROJ-123)"),
    path: Optional[Path] = typer.Option(None, "--path", "-p", help="Path for context detection"),
):
    """Get issue details from Backlog as JSON."""
    client, _context = get_client(path)
    _print_result(svc_get_issue(client, issue_key))


@app.command("update")
def update(
    issue_keys: list[str] = typer.Argument(..., help="Issue keys whose task files should be pushed"),
    path: Optional[Path] = typer.Option(None, "--path", "-p", help="Path for context detection"),
):
    """Push local title and description edits back to Backlog."""
    client, context = get_client(path)
    _print_result(svc_update_issues(client, get_task_store(context), issue_keys))


@app.command("bulk-create")
def bulk_create(
    path: Optional[Path] = typer.Option(None, "--path", "-p", help="Path for context detection"),
):
    """Create issues from temporary task files in parent folders."""
    client, context = get_client(path)
    _print_result(svc_bulk_create_tasks(client, get_task_store(context), context))


@app.command("test-connection")
def connection(
    path: Optional[Path] = typer.Option(None, "--path", "-p", help="Path for context detection"),
):
    """Check that the configured credentials can reach Backlog."""
    client, _context = get_client(path)
    _print_result(svc_check_connection(client))


def main():
    app()


if __name__ == "__main__":
    main()
