"""Sync engine: start-up checks and the three sync modes.

``check`` is read-only and never touches the lease. ``files_to_db`` and
``db_to_files`` run inside the lease and record their outcome on release.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from taskflow.settings import TaskflowSettings
from taskflow.sync.diff import diff_tasks
from taskflow.sync.drift import DriftReport, check_drift
from taskflow.sync.errors import StartupError
from taskflow.sync.lease import LeaseLock, default_owner
from taskflow.sync.merge import MergeResult, apply_diff
from taskflow.sync.models import utc_now
from taskflow.sync.parser import ParseResult, parse_task_dir
from taskflow.sync.projector import ProjectionResult, project_store
from taskflow.sync.store import TaskStore

logger = logging.getLogger(__name__)

MODES = ("check", "files-to-db", "db-to-files")


@dataclass
class ApplyOutcome:
    """What a mutating run did, plus any lines the parser skipped."""

    parse: ParseResult
    merge: Optional[MergeResult] = None
    projection: Optional[ProjectionResult] = None


class SyncEngine:
    """Runs the sync modes against one workspace."""

    def __init__(
        self,
        settings: TaskflowSettings,
        *,
        actor: Optional[str] = None,
        sub_actor: Optional[str] = None,
        owner: Optional[str] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the engine.

        Args:
            settings: Resolved workspace settings.
            actor: Actor recorded on transitions (defaults to settings).
            sub_actor: Optional sub-actor recorded on transitions.
            owner: Lease owner tag (defaults to host/pid based).
            clock: Source of the current time.
        """
        self.settings = settings
        self.actor = actor or settings.sync.actor
        self.sub_actor = sub_actor
        self.owner = owner
        self.clock = clock
        self.store = TaskStore(settings.db_path)

    def preflight(self) -> None:
        """Fail before any lease attempt when the workspace is incomplete.

        Raises:
            StartupError: Missing workspace, tasks directory, database or schema.
        """
        workspace = self.settings.workspace
        if not workspace.is_dir():
            raise StartupError(
                f"Workspace directory not found: {workspace}",
                hint="Set TASKFLOW_WORKSPACE to your workspace root and try again.",
            )
        tasks_dir = self.settings.tasks_dir
        if not tasks_dir.is_dir():
            raise StartupError(
                f"Tasks directory not found: {tasks_dir}",
                hint=f'Create it with: mkdir -p "{tasks_dir}"',
            )
        self.store.check_schema()

    def lease(self, mode: str) -> LeaseLock:
        return LeaseLock(
            self.store,
            self.owner or default_owner(mode),
            ttl_seconds=self.settings.sync.lease_ttl_seconds,
            clock=self.clock,
        )

    def parse_files(self) -> ParseResult:
        return parse_task_dir(self.settings.tasks_dir)

    def check(self) -> tuple[DriftReport, ParseResult]:
        """Report drift without writing anything."""
        self.preflight()
        parsed = self.parse_files()
        report = check_drift(parsed.tasks, self.store.list_tasks())
        if report.in_sync:
            logger.info(
                "In sync: %d tasks (fingerprint %s)",
                report.file_task_count,
                report.files_fingerprint,
            )
        else:
            logger.info("Drift detected: %d differences", len(report.diff))
        return report, parsed

    def files_to_db(self) -> ApplyOutcome:
        """Apply the task files to the store under the lease."""
        self.preflight()
        with self.lease("files-to-db").hold():
            parsed = self.parse_files()
            diff = diff_tasks(parsed.tasks, self.store.list_tasks())
            merge = apply_diff(
                self.store,
                parsed.tasks,
                diff,
                actor=self.actor,
                sub_actor=self.sub_actor,
                clock=self.clock,
            )
        return ApplyOutcome(parse=parsed, merge=merge)

    def db_to_files(self) -> ApplyOutcome:
        """Rewrite every task file from the store under the lease."""
        self.preflight()
        with self.lease("db-to-files").hold():
            projection = project_store(self.store, self.settings.tasks_dir)
        return ApplyOutcome(parse=ParseResult(), projection=projection)


__all__ = ["ApplyOutcome", "MODES", "SyncEngine"]
