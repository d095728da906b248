import json
import os
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from taskflow.commands.project_commands import projects_app
from taskflow.commands.sync_commands import report_error, sync_app
from taskflow.sync.errors import TaskflowError

app = typer.Typer(no_args_is_help=True)
app.add_typer(sync_app, name="sync")
app.add_typer(projects_app, name="projects")

console = Console()

# Status → Rich color mapping
STATUS_COLORS: dict[str, str] = {
    "in_progress": "cyan",
    "pending_validation": "magenta",
    "blocked": "red",
    "backlog": "dim",
    "done": "green",
}


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """
    TaskFlow: keep Markdown task files and the task database in sync.
    """
    from dotenv import load_dotenv

    from taskflow.logging import configure_from_env, new_run_id
    from taskflow.settings import get_settings, reset_settings

    # Explicitly load .env from current working directory
    load_dotenv(os.path.join(os.getcwd(), ".env"))
    reset_settings()
    settings = get_settings()

    configure_from_env("DEBUG" if verbose else settings.log_level)
    new_run_id()


def _open_store():
    """Open the store after checking the schema, exiting on failure."""
    from taskflow.settings import get_settings
    from taskflow.sync.store import TaskStore

    store = TaskStore(get_settings().db_path)
    try:
        store.check_schema()
    except TaskflowError as e:
        report_error(e)
        raise typer.Exit(1)
    return store


@app.command()
def init() -> None:
    """Create or upgrade the task database schema."""
    import sqlite3

    from taskflow.settings import get_settings
    from taskflow.sync.schema import init_db

    db_path = get_settings().db_path
    try:
        report = init_db(db_path)
    except sqlite3.Error as e:
        console.print(f"[red]Schema bootstrap failed: {escape(str(e))}[/red]")
        raise typer.Exit(1)

    if report.created_directory:
        console.print(f"[dim]Created {escape(str(db_path.parent))}[/dim]")
    for label in report.skipped:
        console.print(f"[yellow]skipped {escape(label)}[/yellow]")

    if not report.healthy:
        missing = ", ".join(report.missing_tables) or "sync_state row"
        console.print(f"[red]Schema verification failed, missing: {missing}[/red]")
        raise typer.Exit(1)

    console.print(
        f"[green]Database ready:[/green] {escape(str(db_path))} "
        f"[dim]({len(report.executed)} statements)[/dim]"
    )


@app.command()
def status() -> None:
    """Show per-project task counts and the sync state."""
    from taskflow.overview import progress_pct
    from taskflow.sync.lease import lease_status
    from taskflow.sync.models import STATUS_HEADINGS, STATUS_ORDER

    store = _open_store()
    counts = store.task_counts()
    projects = store.list_projects()

    if not projects:
        console.print("[dim]No projects found.[/dim]")
    else:
        table = Table(title="Projects")
        table.add_column("Project", style="bold", no_wrap=True)
        for s in STATUS_ORDER:
            color = STATUS_COLORS.get(s, "white")
            table.add_column(f"[{color}]{STATUS_HEADINGS[s]}[/{color}]", justify="right")
        table.add_column("Progress", justify="right")

        for p in projects:
            per_status = counts.get(p.id, {})
            row = {s: per_status.get(s, 0) for s in STATUS_ORDER}
            table.add_row(
                p.name,
                *(str(row[s]) for s in STATUS_ORDER),
                f"{progress_pct(row):.0f}%",
            )
        console.print(table)

    state = store.get_sync_state()
    console.print(f"Last sync:   {state.last_sync_at or '[dim]never[/dim]'}")
    console.print(f"Last result: {escape(state.last_result or '-')}")
    console.print(f"Lease:       {escape(lease_status(state))}")


@app.command()
def export(
    output: Optional[str] = typer.Option(
        None, "--output", "-o", help="Write JSON to a file instead of stdout"
    ),
    recent: int = typer.Option(20, "--recent", help="Number of recent transitions"),
) -> None:
    """Export a JSON overview of projects and recent transitions."""
    from taskflow.overview import build_overview

    data = build_overview(_open_store(), recent=recent)
    json_output = json.dumps(data, indent=2)

    if output:
        Path(output).write_text(json_output + "\n")
        console.print(f"[green]Exported to {escape(output)}[/green]")
    else:
        typer.echo(json_output)


@app.command("log")
def task_log(
    task_id: str = typer.Argument(..., help="Task ID, e.g. dashboard-003"),
) -> None:
    """Show the status history of a task."""
    store = _open_store()
    task = store.get_task(task_id)
    entries = store.get_transitions(task_id)

    if task is None and not entries:
        console.print(f"[red]Task not found: {escape(task_id)}[/red]")
        raise typer.Exit(1)
    if not entries:
        console.print(f"[dim]No transitions for {escape(task_id)}[/dim]")
        return

    title = f"History: {task_id}" if task is None else f"History: {task_id} ({task.title})"
    table = Table(title=escape(title))
    table.add_column("At", no_wrap=True)
    table.add_column("From")
    table.add_column("To")
    table.add_column("By")
    table.add_column("Reason")

    for e in entries:
        to_color = STATUS_COLORS.get(e.to_status, "white")
        if e.from_status:
            from_color = STATUS_COLORS.get(e.from_status, "white")
            from_cell = f"[{from_color}]{e.from_status}[/{from_color}]"
        else:
            from_cell = "[dim]-[/dim]"
        by = e.actor if not e.sub_actor else f"{e.actor}/{e.sub_actor}"
        table.add_row(
            e.at[:19],
            from_cell,
            f"[{to_color}]{e.to_status}[/{to_color}]",
            escape(by),
            escape(e.reason) if e.reason else "[dim]-[/dim]",
        )

    console.print(table)


@app.command()
def notes() -> None:
    """Publish the status summary to Apple Notes (macOS only)."""
    from taskflow.notes import export_to_notes
    from taskflow.settings import get_settings

    try:
        result = export_to_notes(get_settings())
    except TaskflowError as e:
        report_error(e)
        raise typer.Exit(1)

    if result.skipped:
        console.print("[yellow]Apple Notes export is only available on macOS.[/yellow]")
        return
    verb = "Created" if result.created else "Updated"
    console.print(f"[green]{verb} note[/green] {escape(result.note_id or '')}")


if __name__ == "__main__":
    app()
