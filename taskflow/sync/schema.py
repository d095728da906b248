"""TaskFlow SQLite schema and idempotent bootstrap.

Every statement uses IF NOT EXISTS / OR IGNORE so ``init_db`` is safe to
re-run against an existing database.
"""

from __future__ import annotations

import logging
import re
import sqlite3
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

EXPECTED_TABLES: tuple[str, ...] = (
    "projects",
    "tasks",
    "task_transitions",
    "sync_state",
)

SCHEMA_STATEMENTS: tuple[str, ...] = (
    "PRAGMA journal_mode = WAL",
    "PRAGMA foreign_keys = ON",
    """
    CREATE TABLE IF NOT EXISTS projects (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        description TEXT NOT NULL DEFAULT '',
        status TEXT NOT NULL DEFAULT 'active'
            CHECK(status IN ('active', 'paused', 'done')),
        updated_at TEXT NOT NULL
            DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS tasks (
        id TEXT PRIMARY KEY,
        project_id TEXT NOT NULL,
        title TEXT NOT NULL,
        status TEXT NOT NULL
            CHECK(status IN (
                'backlog', 'in_progress', 'pending_validation',
                'done', 'blocked'
            )),
        priority TEXT NOT NULL DEFAULT 'P2'
            CHECK(priority IN ('P0', 'P1', 'P2', 'P3', 'P9')),
        owner TEXT,
        note TEXT,
        source TEXT NOT NULL,
        created_at TEXT NOT NULL
            DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now')),
        updated_at TEXT NOT NULL
            DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now')),
        FOREIGN KEY (project_id) REFERENCES projects(id)
            ON UPDATE CASCADE ON DELETE RESTRICT
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_tasks_project_status
    ON tasks(project_id, status, priority)
    """,
    """
    CREATE TABLE IF NOT EXISTS task_transitions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        task_id TEXT NOT NULL,
        from_status TEXT,
        to_status TEXT NOT NULL,
        reason TEXT,
        actor TEXT NOT NULL DEFAULT 'sync',
        sub_actor TEXT,
        at TEXT NOT NULL
            DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now')),
        FOREIGN KEY (task_id) REFERENCES tasks(id)
            ON UPDATE CASCADE ON DELETE RESTRICT
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_transitions_task_id
    ON task_transitions(task_id, at DESC)
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_transitions_at
    ON task_transitions(at DESC)
    """,
    """
    CREATE TRIGGER IF NOT EXISTS task_transitions_no_update
    BEFORE UPDATE ON task_transitions
    BEGIN
        SELECT RAISE(ABORT, 'task_transitions is append-only');
    END
    """,
    """
    CREATE TRIGGER IF NOT EXISTS task_transitions_no_delete
    BEFORE DELETE ON task_transitions
    BEGIN
        SELECT RAISE(ABORT, 'task_transitions is append-only');
    END
    """,
    """
    CREATE TABLE IF NOT EXISTS sync_state (
        id INTEGER PRIMARY KEY CHECK(id = 1),
        files_fingerprint TEXT,
        store_fingerprint TEXT,
        lease_owner TEXT,
        lease_expiry TEXT,
        last_sync_at TEXT,
        last_result TEXT
    )
    """,
    "INSERT OR IGNORE INTO sync_state (id) VALUES (1)",
)


@dataclass
class BootstrapReport:
    """Outcome of running the schema against a database."""

    db_path: Path
    created_directory: bool = False
    executed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    missing_tables: list[str] = field(default_factory=list)
    singleton_present: bool = False

    @property
    def healthy(self) -> bool:
        return not self.missing_tables and self.singleton_present


def describe_statement(statement: str) -> str:
    """Short human-readable label for a DDL statement."""
    text = " ".join(statement.split())
    match = re.match(
        r"(CREATE (?:TABLE|INDEX|TRIGGER) IF NOT EXISTS)\s+(\S+)", text, re.IGNORECASE
    )
    if match:
        return f"{match.group(1)} {match.group(2)}"
    match = re.match(r"(INSERT OR IGNORE INTO)\s+(\S+)", text, re.IGNORECASE)
    if match:
        return f"{match.group(1)} {match.group(2)}"
    if text.upper().startswith("PRAGMA"):
        return text
    return " ".join(text.split()[:3])


def missing_tables(conn: sqlite3.Connection) -> list[str]:
    """Expected tables that are absent from the database."""
    rows = conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'").fetchall()
    existing = {row[0] for row in rows}
    return [t for t in EXPECTED_TABLES if t not in existing]


def init_db(db_path: Path) -> BootstrapReport:
    """Create or upgrade the TaskFlow database in place.

    Args:
        db_path: Location of the SQLite file; its directory is created.

    Returns:
        BootstrapReport describing every statement and the verification.

    Raises:
        sqlite3.Error: If a non-PRAGMA statement fails.
    """
    report = BootstrapReport(db_path=db_path)
    if not db_path.parent.exists():
        db_path.parent.mkdir(parents=True, exist_ok=True)
        report.created_directory = True
        logger.info("Created directory: %s", db_path.parent)

    conn = sqlite3.connect(str(db_path))
    try:
        for statement in SCHEMA_STATEMENTS:
            label = describe_statement(statement)
            try:
                conn.execute(statement)
            except sqlite3.Error as e:
                if statement.lstrip().upper().startswith("PRAGMA"):
                    logger.warning("Skipped %s: %s", label, e)
                    report.skipped.append(label)
                    continue
                logger.error("Failed: %s: %s", label, e)
                raise
            logger.debug("Executed %s", label)
            report.executed.append(label)
        conn.commit()

        report.missing_tables = missing_tables(conn)
        report.singleton_present = (
            conn.execute("SELECT id FROM sync_state WHERE id = 1").fetchone() is not None
            if "sync_state" not in report.missing_tables
            else False
        )
    finally:
        conn.close()

    if report.healthy:
        logger.info(
            "init-db complete: %d statement(s) executed, %d skipped",
            len(report.executed),
            len(report.skipped),
        )
    else:
        logger.error("init-db incomplete, missing tables: %s", report.missing_tables)
    return report


__all__ = [
    "BootstrapReport",
    "EXPECTED_TABLES",
    "SCHEMA_STATEMENTS",
    "describe_statement",
    "init_db",
    "missing_tables",
]
