"""CLI commands for the project registry.

Provides `taskflow projects import|list` subcommands.
"""

from __future__ import annotations

import sqlite3

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from taskflow.commands.sync_commands import report_error
from taskflow.settings import get_settings
from taskflow.sync.errors import StorageError, SyncInterrupted, TaskflowError

projects_app = typer.Typer(help="Manage project metadata.")
console = Console()

PROJECT_STATUS_COLORS: dict[str, str] = {
    "active": "green",
    "paused": "yellow",
    "done": "dim",
}


@projects_app.command("import")
def projects_import() -> None:
    """Apply PROJECTS.md names, descriptions and statuses to the database."""
    from taskflow.registry import apply_registry, load_registry
    from taskflow.sync.engine import SyncEngine

    settings = get_settings()
    engine = SyncEngine(settings)
    try:
        engine.preflight()
        registry = load_registry(settings.projects_file)
        if not registry:
            console.print(
                f"[yellow]No projects found in {escape(str(settings.projects_file))}[/yellow]"
            )
            return
        with engine.lease("projects-import").hold():
            result = apply_registry(engine.store, registry)
    except SyncInterrupted as e:
        report_error(e)
        raise typer.Exit(e.exit_code)
    except TaskflowError as e:
        report_error(e)
        raise typer.Exit(1)
    except (sqlite3.Error, OSError) as e:
        report_error(StorageError.from_exception(e))
        raise typer.Exit(1)

    console.print(
        f"[green]Registry imported:[/green] "
        f"{len(result.created)} created, {len(result.updated)} updated"
    )


@projects_app.command("list")
def projects_list() -> None:
    """List projects known to the database."""
    from taskflow.sync.store import TaskStore

    store = TaskStore(get_settings().db_path)
    try:
        store.check_schema()
    except TaskflowError as e:
        report_error(e)
        raise typer.Exit(1)

    projects = store.list_projects()
    if not projects:
        console.print("[dim]No projects found.[/dim]")
        return

    table = Table(title="Projects")
    table.add_column("ID", style="bold", no_wrap=True)
    table.add_column("Name")
    table.add_column("Status")
    table.add_column("Description", max_width=50)

    for p in projects:
        color = PROJECT_STATUS_COLORS.get(p.status, "white")
        table.add_row(
            p.id,
            p.name,
            f"[{color}]{p.status}[/{color}]",
            p.description or "[dim]-[/dim]",
        )

    console.print(table)
