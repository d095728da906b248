"""SQLite-backed task index.

The store is the derived side of the sync: tasks, projects, the append-only
transition log and the ``sync_state`` singleton. It assumes the schema from
``taskflow.sync.schema`` already exists; ``check_schema`` reports when it
does not.
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional

from taskflow.sync.errors import StartupError
from taskflow.sync.models import (
    Project,
    SyncState,
    Task,
    Transition,
)
from taskflow.sync.schema import missing_tables

logger = logging.getLogger(__name__)

TASK_COLUMNS = (
    "id, project_id, title, status, priority, owner, note, source, "
    "created_at, updated_at"
)


class TaskStore:
    """Read/write access to the TaskFlow SQLite database."""

    def __init__(
        self,
        db_path: Path,
        *,
        busy_timeout: float = 5.0,
        lease_timeout: float = 0.25,
    ) -> None:
        """Initialize the store.

        Args:
            db_path: Path to an existing SQLite database file.
            busy_timeout: Seconds to wait on a locked database.
            lease_timeout: Seconds a lease attempt waits on a locked database
                before it counts as contention.
        """
        self.db_path = Path(db_path)
        self.busy_timeout = busy_timeout
        self.lease_timeout = lease_timeout
        self._active: Optional[sqlite3.Connection] = None

    @contextmanager
    def _get_connection(
        self, timeout: Optional[float] = None
    ) -> Generator[sqlite3.Connection, None, None]:
        """Get a connection with row factory and FK enforcement.

        Inside ``transaction()`` the open transaction's connection is reused
        and committing is left to the outermost block.
        """
        if self._active is not None:
            yield self._active
            return

        conn = sqlite3.connect(
            str(self.db_path),
            timeout=self.busy_timeout if timeout is None else timeout,
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
            conn.commit()
        except BaseException:
            conn.rollback()
            raise
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Generator[TaskStore, None, None]:
        """Run every store call in the block as one all-or-nothing unit."""
        if self._active is not None:
            yield self
            return

        with self._get_connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            self._active = conn
            try:
                yield self
            finally:
                self._active = None

    def check_schema(self) -> None:
        """Raise StartupError unless the database and schema are present."""
        if not self.db_path.exists():
            raise StartupError(
                f"Database file not found: {self.db_path}",
                hint="Run `taskflow init` first to create the database schema.",
            )
        with self._get_connection() as conn:
            missing = missing_tables(conn)
            if missing:
                raise StartupError(
                    f"Database schema incomplete, missing: {', '.join(missing)}",
                    hint="Run `taskflow init` to create the missing tables.",
                )
            row = conn.execute("SELECT id FROM sync_state WHERE id = 1").fetchone()
            if row is None:
                raise StartupError(
                    "sync_state singleton row is missing",
                    hint="Run `taskflow init` to restore it.",
                )

    # ------------------------------------------------------------------
    # Row conversion
    # ------------------------------------------------------------------

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> Task:
        return Task(
            id=row["id"],
            project_id=row["project_id"],
            title=row["title"],
            status=row["status"],
            priority=row["priority"],
            owner=row["owner"],
            note=row["note"],
            source=row["source"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _row_to_transition(row: sqlite3.Row) -> Transition:
        return Transition(
            id=row["id"],
            task_id=row["task_id"],
            from_status=row["from_status"],
            to_status=row["to_status"],
            actor=row["actor"],
            at=row["at"],
            reason=row["reason"],
            sub_actor=row["sub_actor"],
        )

    @staticmethod
    def _row_to_sync_state(row: Optional[sqlite3.Row]) -> SyncState:
        if row is None:
            return SyncState()
        return SyncState(
            files_fingerprint=row["files_fingerprint"],
            store_fingerprint=row["store_fingerprint"],
            lease_owner=row["lease_owner"],
            lease_expiry=row["lease_expiry"],
            last_sync_at=row["last_sync_at"],
            last_result=row["last_result"],
        )

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    def list_tasks(self, *, project: Optional[str] = None) -> list[Task]:
        """List tasks ordered by id, optionally for one project."""
        sql = f"SELECT {TASK_COLUMNS} FROM tasks"
        params: list[object] = []
        if project:
            sql += " WHERE project_id = ?"
            params.append(project)
        sql += " ORDER BY id"

        with self._get_connection() as conn:
            rows = conn.execute(sql, params).fetchall()
            return [self._row_to_task(row) for row in rows]

    def get_task(self, task_id: str) -> Optional[Task]:
        with self._get_connection() as conn:
            row = conn.execute(
                f"SELECT {TASK_COLUMNS} FROM tasks WHERE id = ?", (task_id,)
            ).fetchone()
            return self._row_to_task(row) if row else None

    def insert_task(self, task: Task, now: str) -> None:
        """Insert a new task with created/updated timestamps set to ``now``."""
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO tasks (
                    id, project_id, title, status, priority, owner, note,
                    source, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    task.id,
                    task.project_id,
                    task.title,
                    task.status,
                    task.priority,
                    task.owner,
                    task.note or None,
                    task.source,
                    now,
                    now,
                ),
            )

    def update_task(self, task: Task, now: str) -> None:
        """Overwrite the mutable fields of a task and advance ``updated_at``.

        The note is left alone; see ``enrich_note``.

        Raises:
            ValueError: If the task does not exist.
        """
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                UPDATE tasks
                SET title = ?, status = ?, priority = ?, owner = ?,
                    source = ?, updated_at = ?
                WHERE id = ?
                """,
                (
                    task.title,
                    task.status,
                    task.priority,
                    task.owner,
                    task.source,
                    now,
                    task.id,
                ),
            )
            if cursor.rowcount == 0:
                raise ValueError(f"Task not found: {task.id}")

    def enrich_note(self, task_id: str, note: Optional[str]) -> bool:
        """Replace a stored note with a non-empty incoming one.

        An empty, blank or missing note never erases what is stored.

        Returns:
            True if the stored note changed.
        """
        if not note or not note.strip():
            return False
        with self._get_connection() as conn:
            cursor = conn.execute(
                "UPDATE tasks SET note = ? WHERE id = ? AND note IS NOT ?",
                (note, task_id, note),
            )
            return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def append_transition(
        self,
        task_id: str,
        from_status: Optional[str],
        to_status: str,
        *,
        actor: str,
        at: str,
        reason: Optional[str] = None,
        sub_actor: Optional[str] = None,
    ) -> int:
        """Append an audit record; returns its generated id."""
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO task_transitions
                    (task_id, from_status, to_status, reason, actor, sub_actor, at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (task_id, from_status, to_status, reason, actor, sub_actor, at),
            )
            return int(cursor.lastrowid)

    def get_transitions(self, task_id: str) -> list[Transition]:
        """Audit log for one task, oldest first."""
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM task_transitions WHERE task_id = ? ORDER BY id ASC",
                (task_id,),
            ).fetchall()
            return [self._row_to_transition(row) for row in rows]

    def recent_transitions(self, limit: int = 20) -> list[Transition]:
        """The newest ``limit`` transitions, returned oldest first."""
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM task_transitions ORDER BY id DESC LIMIT ?",
                (limit,),
            ).fetchall()
            return [self._row_to_transition(row) for row in reversed(rows)]

    def count_transitions(self) -> int:
        with self._get_connection() as conn:
            return conn.execute("SELECT COUNT(*) FROM task_transitions").fetchone()[0]

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    def list_projects(self) -> list[Project]:
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT id, name, description, status FROM projects ORDER BY id"
            ).fetchall()
            return [
                Project(
                    id=row["id"],
                    name=row["name"],
                    description=row["description"],
                    status=row["status"],
                )
                for row in rows
            ]

    def ensure_project(self, project: Project) -> bool:
        """Insert a project unless it exists; returns True when created."""
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                INSERT OR IGNORE INTO projects (id, name, description, status)
                VALUES (?, ?, ?, ?)
                """,
                (project.id, project.name, project.description, project.status),
            )
            return cursor.rowcount > 0

    def upsert_project(self, project: Project, now: str) -> bool:
        """Insert or overwrite a project's metadata.

        Returns:
            True if the project was newly created.
        """
        with self._get_connection() as conn:
            existing = conn.execute(
                "SELECT id FROM projects WHERE id = ?", (project.id,)
            ).fetchone()
            conn.execute(
                """
                INSERT INTO projects (id, name, description, status, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name = excluded.name,
                    description = excluded.description,
                    status = excluded.status,
                    updated_at = excluded.updated_at
                """,
                (project.id, project.name, project.description, project.status, now),
            )
            return existing is None

    def task_counts(self) -> dict[str, dict[str, int]]:
        """``{project_id: {status: count}}`` over all tasks."""
        with self._get_connection() as conn:
            rows = conn.execute(
                """
                SELECT project_id, status, COUNT(*) AS cnt
                FROM tasks
                GROUP BY project_id, status
                """
            ).fetchall()
        counts: dict[str, dict[str, int]] = {}
        for row in rows:
            counts.setdefault(row["project_id"], {})[row["status"]] = row["cnt"]
        return counts

    # ------------------------------------------------------------------
    # Sync state singleton
    # ------------------------------------------------------------------

    def get_sync_state(self) -> SyncState:
        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM sync_state WHERE id = 1").fetchone()
            return self._row_to_sync_state(row)

    def try_acquire_lease(self, owner: str, expiry: str, now: str) -> bool:
        """Single conditional UPDATE: take the lease if free or expired.

        A database write-locked by another process for longer than
        ``lease_timeout`` counts as contention.
        """
        try:
            with self._get_connection(timeout=self.lease_timeout) as conn:
                cursor = conn.execute(
                    """
                    UPDATE sync_state
                    SET lease_owner = ?, lease_expiry = ?
                    WHERE id = 1
                      AND (lease_owner IS NULL
                           OR lease_expiry IS NULL
                           OR lease_expiry < ?)
                    """,
                    (owner, expiry, now),
                )
                return cursor.rowcount == 1
        except sqlite3.OperationalError as e:
            if "locked" not in str(e):
                raise
            logger.debug("Lease attempt by %s hit a locked database", owner)
            return False

    def release_lease(self, owner: str, result: str, at: str) -> None:
        """Clear the lease if ``owner`` still holds it; always record the outcome."""
        with self._get_connection() as conn:
            conn.execute(
                """
                UPDATE sync_state
                SET lease_owner = CASE WHEN lease_owner = ? THEN NULL
                                       ELSE lease_owner END,
                    lease_expiry = CASE WHEN lease_owner = ? THEN NULL
                                        ELSE lease_expiry END,
                    last_sync_at = ?,
                    last_result = ?
                WHERE id = 1
                """,
                (owner, owner, at, result),
            )

    def save_fingerprints(self, files_fingerprint: str, store_fingerprint: str) -> None:
        with self._get_connection() as conn:
            conn.execute(
                """
                UPDATE sync_state
                SET files_fingerprint = ?, store_fingerprint = ?
                WHERE id = 1
                """,
                (files_fingerprint, store_fingerprint),
            )


__all__ = ["TaskStore"]
