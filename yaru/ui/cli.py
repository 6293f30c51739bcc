"""Main CLI entry point - every task command is one daemon request."""

from typing import Any, Dict, List, Optional

import typer

from yaru.core.configs import get_settings
from yaru.core.types import short_id
from yaru.daemon.client import DaemonClient, IPCError, RemoteError
from yaru.daemon.manager import (
    AlreadyRunningError,
    DaemonError,
    DaemonManager,
    NotRunningError,
)

EXIT_ERROR = 1
EXIT_CONNECTION_ERROR = 3

app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    help="yaru - a simple task manager.",
)
sub_app = typer.Typer(no_args_is_help=True, help="Manage subtasks.")
app.add_typer(sub_app, name="sub")


# ============================================================================
# Shared helpers
# ============================================================================

def _request(method: str, params: Optional[Dict[str, Any]] = None) -> Any:
    """Send one request to the daemon. Exits on error."""
    try:
        settings = get_settings()
    except ValueError as e:
        typer.echo(f"Error loading configuration: {e}", err=True)
        raise typer.Exit(EXIT_ERROR)

    clean = {k: v for k, v in (params or {}).items() if v is not None}
    try:
        return DaemonClient(settings.socket_path, timeout=settings.timeout).call(method, clean)
    except IPCError as e:
        typer.echo(f"Cannot reach daemon ({e.code}). Run 'yaru start' first.", err=True)
        raise typer.Exit(EXIT_CONNECTION_ERROR)
    except RemoteError as e:
        typer.echo(f"Error: {e.message}", err=True)
        raise typer.Exit(EXIT_ERROR)


def _line(task: Dict[str, Any]) -> str:
    return f"{short_id(task['id'])} [{task['priority']}] {task['status']} {task['title']}"


def _echo_tasks(tasks: List[Dict[str, Any]]) -> None:
    for task in tasks:
        typer.echo(_line(task))
    typer.echo(f"Total: {len(tasks)} task(s)")


# ============================================================================
# Daemon lifecycle
# ============================================================================

@app.command()
def start() -> None:
    """Start the background daemon."""
    try:
        info = DaemonManager().start()
    except AlreadyRunningError as e:
        typer.echo(f"Daemon already running (pid {e.pid})")
        return
    except (DaemonError, ValueError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(EXIT_ERROR)
    typer.echo(f"Daemon started (pid {info.pid})")


@app.command()
def stop() -> None:
    """Stop the background daemon."""
    try:
        DaemonManager().stop()
    except NotRunningError:
        typer.echo("Daemon is not running")
        return
    except (DaemonError, ValueError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(EXIT_ERROR)
    typer.echo("Daemon stopped")


@app.command()
def status() -> None:
    """Show whether the daemon is running."""
    try:
        current = DaemonManager().status()
    except ValueError as e:
        typer.echo(f"Error loading configuration: {e}", err=True)
        raise typer.Exit(EXIT_ERROR)
    if not current.running:
        typer.echo("Daemon is not running")
        return
    typer.echo(f"Daemon running (pid {current.info.pid}, socket {current.info.socket_path})")


# ============================================================================
# Tasks
# ============================================================================

@app.command()
def add(
    title: str = typer.Argument(..., help="Task title"),
    description: Optional[str] = typer.Option(None, "--description", "-d"),
    priority: Optional[str] = typer.Option(None, "--priority", "-p", help="low, medium or high"),
) -> None:
    """Create a task."""
    task = _request("task.create", {
        "title": title, "description": description, "priority": priority,
    })
    typer.echo(f"Created {_line(task)}")


@app.command("list")
def list_tasks(
    status_filter: Optional[str] = typer.Option(None, "--status", "-s"),
    priority: Optional[str] = typer.Option(None, "--priority", "-p"),
    sort_by: Optional[str] = typer.Option(None, "--sort"),
    sort_order: Optional[str] = typer.Option(None, "--order", help="asc or desc"),
) -> None:
    """List tasks, optionally filtered and sorted."""
    _echo_tasks(_request("task.list", {
        "status": status_filter,
        "priority": priority,
        "sortBy": sort_by,
        "sortOrder": sort_order,
    }))


@app.command()
def show(task_id: str = typer.Argument(..., help="Task id or prefix")) -> None:
    """Show one task."""
    task = _request("task.get", {"id": task_id})
    for key, value in task.items():
        typer.echo(f"{key}: {value}")


@app.command()
def edit(
    task_id: str = typer.Argument(..., help="Task id or prefix"),
    title: Optional[str] = typer.Option(None, "--title", "-t"),
    description: Optional[str] = typer.Option(None, "--description", "-d"),
    priority: Optional[str] = typer.Option(None, "--priority", "-p"),
) -> None:
    """Change a task's title, description or priority."""
    task = _request("task.update", {
        "id": task_id, "title": title, "description": description, "priority": priority,
    })
    typer.echo(f"Updated {_line(task)}")


@app.command("set-status")
def set_status(
    task_id: str = typer.Argument(..., help="Task id or prefix"),
    new_status: str = typer.Argument(..., help="pending, in_progress or completed"),
) -> None:
    """Move a task to a new status."""
    task = _request("task.updateStatus", {"id": task_id, "status": new_status})
    typer.echo(f"Updated {_line(task)}")
    if task.get("allSubtasksCompleted"):
        typer.echo("All subtasks of the parent are completed")


@app.command()
def delete(task_id: str = typer.Argument(..., help="Task id or prefix")) -> None:
    """Delete a task and its subtasks."""
    _request("task.delete", {"id": task_id})
    typer.echo(f"Deleted {task_id}")


@app.command()
def search(query: str = typer.Argument(..., help="Text to look for")) -> None:
    """Search titles and descriptions."""
    _echo_tasks(_request("task.search", {"query": query}))


# ============================================================================
# Subtasks
# ============================================================================

@sub_app.command("add")
def sub_add(
    parent_id: str = typer.Argument(..., help="Parent id or prefix"),
    title: str = typer.Argument(..., help="Subtask title"),
    description: Optional[str] = typer.Option(None, "--description", "-d"),
    priority: Optional[str] = typer.Option(None, "--priority", "-p"),
) -> None:
    """Create a subtask."""
    task = _request("subtask.create", {
        "parentId": parent_id, "title": title,
        "description": description, "priority": priority,
    })
    typer.echo(f"Created {_line(task)}")


@sub_app.command("list")
def sub_list(parent_id: str = typer.Argument(..., help="Parent id or prefix")) -> None:
    """List a task's subtasks."""
    _echo_tasks(_request("subtask.list", {"parentId": parent_id}))


@sub_app.command("progress")
def sub_progress(parent_id: str = typer.Argument(..., help="Parent id or prefix")) -> None:
    """Show subtask completion."""
    progress = _request("subtask.progress", {"parentId": parent_id})
    typer.echo(f"{progress['completed']}/{progress['total']} ({progress['percentage']}%)")


def run() -> None:
    """Entry point for console script mapping."""
    app()


if __name__ == "__main__":
    run()
