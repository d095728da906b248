"""CLI commands for the Markdown <-> SQLite sync.

Provides `taskflow sync check|files-to-db|db-to-files` subcommands.
Exit status: 0 on success or no drift, 1 on drift or any diagnosed failure,
128+signal when interrupted while holding the lease.
"""

from __future__ import annotations

import sqlite3
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape

from taskflow.settings import get_settings
from taskflow.sync.errors import (
    ParseAnomaly,
    StorageError,
    SyncInterrupted,
    TaskflowError,
)

sync_app = typer.Typer(help="Synchronize task files with the task database.")
console = Console()


def report_error(error: TaskflowError) -> None:
    """Print the one-line diagnosis and its remediation hint."""
    console.print(f"[red]{escape(str(error))}[/red]")
    if error.hint:
        console.print(f"[dim]{escape(error.hint)}[/dim]")


def report_anomalies(anomalies: list[ParseAnomaly]) -> None:
    for anomaly in anomalies:
        console.print(f"[yellow]skipped {escape(str(anomaly))}[/yellow]")


def _engine(actor: Optional[str] = None, sub_actor: Optional[str] = None):
    from taskflow.sync.engine import SyncEngine

    return SyncEngine(get_settings(), actor=actor, sub_actor=sub_actor)


@sync_app.command("check")
def sync_check() -> None:
    """Report drift between task files and the database (read-only)."""
    try:
        report, parsed = _engine().check()
    except TaskflowError as e:
        report_error(e)
        raise typer.Exit(1)
    except (sqlite3.Error, OSError) as e:
        report_error(StorageError.from_exception(e))
        raise typer.Exit(1)

    report_anomalies(parsed.anomalies)

    if report.in_sync:
        console.print(
            f"[green]In sync:[/green] {report.file_task_count} tasks "
            f"[dim](fingerprint {report.files_fingerprint})[/dim]"
        )
        return

    for line in report.lines():
        console.print(f"  {escape(line)}")
    console.print(
        f"[yellow]Drift detected:[/yellow] {len(report.diff)} difference(s) "
        f"[dim](files {report.files_fingerprint}, db {report.store_fingerprint})[/dim]"
    )
    raise typer.Exit(1)


@sync_app.command("files-to-db")
def sync_files_to_db(
    actor: Optional[str] = typer.Option(
        None, "--actor", "-a", help="Actor recorded on transitions"
    ),
    sub_actor: Optional[str] = typer.Option(
        None, "--sub-actor", help="Sub-actor recorded on transitions"
    ),
) -> None:
    """Apply the task files to the database."""
    try:
        outcome = _engine(actor, sub_actor).files_to_db()
    except SyncInterrupted as e:
        report_error(e)
        raise typer.Exit(e.exit_code)
    except TaskflowError as e:
        report_error(e)
        raise typer.Exit(1)
    except (sqlite3.Error, OSError) as e:
        report_error(StorageError.from_exception(e))
        raise typer.Exit(1)

    report_anomalies(outcome.parse.anomalies)
    merge = outcome.merge
    if merge is None:
        return
    if not merge.changed_anything:
        console.print(f"[green]Nothing to apply[/green] [dim]({merge.files_fingerprint})[/dim]")
        return

    console.print(
        f"[green]Applied:[/green] "
        f"{len(merge.added)} added, "
        f"{len(merge.updated)} updated, "
        f"{len(merge.notes_enriched)} notes enriched, "
        f"{merge.transitions_written} transition(s)"
    )
    if merge.projects_created:
        console.print(f"[dim]New projects: {', '.join(merge.projects_created)}[/dim]")
    if merge.preserved:
        console.print(
            f"[dim]{len(merge.preserved)} task(s) only in the database were kept[/dim]"
        )


@sync_app.command("db-to-files")
def sync_db_to_files() -> None:
    """Rewrite every task file from the database."""
    try:
        outcome = _engine().db_to_files()
    except SyncInterrupted as e:
        report_error(e)
        raise typer.Exit(e.exit_code)
    except TaskflowError as e:
        report_error(e)
        raise typer.Exit(1)
    except (sqlite3.Error, OSError) as e:
        report_error(StorageError.from_exception(e))
        raise typer.Exit(1)

    projection = outcome.projection
    if projection is None:
        return
    console.print(
        f"[green]Wrote[/green] {projection.tasks_written} tasks "
        f"to {len(projection.files_written)} file(s)"
    )
