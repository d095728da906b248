"""Record types shared by the sync engine.

Tasks, transitions and projects mirror the rows of the SQLite index; the
``SyncState`` singleton is passed around explicitly so lease and fingerprint
operations never reach for hidden global state.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Optional

# Valid task statuses
VALID_STATUSES = frozenset(
    {"backlog", "in_progress", "pending_validation", "blocked", "done"}
)

# Valid task priorities, most urgent first
VALID_PRIORITIES = frozenset({"P0", "P1", "P2", "P3", "P9"})
DEFAULT_PRIORITY = "P2"

# Valid project lifecycle states
VALID_PROJECT_STATUSES = frozenset({"active", "paused", "done"})

# Canonical section order for rendered task files
STATUS_ORDER: tuple[str, ...] = (
    "in_progress",
    "pending_validation",
    "blocked",
    "backlog",
    "done",
)

STATUS_HEADINGS: dict[str, str] = {
    "in_progress": "In Progress",
    "pending_validation": "Pending Validation",
    "blocked": "Blocked",
    "backlog": "Backlog",
    "done": "Done",
}

# Lower-cased heading text -> status
HEADING_STATUSES: dict[str, str] = {
    heading.lower(): status for status, heading in STATUS_HEADINGS.items()
}

TASK_FILE_SUFFIX = "-tasks.md"


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def format_timestamp(moment: datetime) -> str:
    """Render a datetime as ``YYYY-MM-DDTHH:MM:SS.mmmZ``.

    The fixed width keeps stored timestamps comparable as plain strings,
    which the lease expiry check relies on.
    """
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def slug_from_filename(filename: str) -> str:
    """``dashboard-tasks.md`` -> ``dashboard``."""
    if filename.endswith(TASK_FILE_SUFFIX):
        return filename[: -len(TASK_FILE_SUFFIX)]
    return filename


def task_source(slug: str) -> str:
    """Workspace-relative location of a project's task file."""
    return f"tasks/{slug}{TASK_FILE_SUFFIX}"


def project_name_from_slug(slug: str) -> str:
    """Derive a display name for a synthesized project."""
    return " ".join(word.capitalize() for word in slug.replace("_", "-").split("-") if word)


@dataclass(frozen=True)
class Task:
    """A task as seen by either side of the sync."""

    id: str
    project_id: str
    title: str
    status: str
    priority: str = DEFAULT_PRIORITY
    owner: Optional[str] = None
    note: Optional[str] = None
    source: str = ""
    created_at: str = ""
    updated_at: str = ""

    def with_changes(self, **changes: object) -> Task:
        return replace(self, **changes)


@dataclass(frozen=True)
class Transition:
    """An audit log entry for a task status change."""

    id: int
    task_id: str
    from_status: Optional[str]
    to_status: str
    actor: str
    at: str
    reason: Optional[str] = None
    sub_actor: Optional[str] = None


@dataclass(frozen=True)
class Project:
    """A project that owns a task file."""

    id: str
    name: str
    description: str = ""
    status: str = "active"


@dataclass(frozen=True)
class SyncState:
    """Snapshot of the ``sync_state`` singleton row."""

    files_fingerprint: Optional[str] = None
    store_fingerprint: Optional[str] = None
    lease_owner: Optional[str] = None
    lease_expiry: Optional[str] = None
    last_sync_at: Optional[str] = None
    last_result: Optional[str] = None

    @property
    def is_leased(self) -> bool:
        return self.lease_owner is not None

    def lease_active_at(self, now: str) -> bool:
        """True if a lease is recorded and has not expired at ``now``."""
        if self.lease_owner is None:
            return False
        return self.lease_expiry is not None and self.lease_expiry >= now


__all__ = [
    "DEFAULT_PRIORITY",
    "HEADING_STATUSES",
    "Project",
    "STATUS_HEADINGS",
    "STATUS_ORDER",
    "SyncState",
    "TASK_FILE_SUFFIX",
    "Task",
    "Transition",
    "VALID_PRIORITIES",
    "VALID_PROJECT_STATUSES",
    "VALID_STATUSES",
    "format_timestamp",
    "project_name_from_slug",
    "slug_from_filename",
    "task_source",
    "utc_now",
]
