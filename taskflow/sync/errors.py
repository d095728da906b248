"""Error taxonomy for the sync engine.

Every error carries a short remediation ``hint`` that the CLI prints below
the one-line diagnosis.
"""

from __future__ import annotations

import sqlite3
from typing import Optional


class TaskflowError(Exception):
    """Base class for all expected taskflow failures."""

    hint: str = ""

    def __init__(self, message: str, *, hint: Optional[str] = None) -> None:
        super().__init__(message)
        if hint is not None:
            self.hint = hint


class StartupError(TaskflowError):
    """Workspace, tasks directory, database or schema is missing."""


class LeaseContention(TaskflowError):
    """Another invocation currently holds the sync lease."""

    hint = "Wait for the other sync to finish or for the lease to expire, then retry."

    def __init__(self, owner: Optional[str], expiry: Optional[str]) -> None:
        until = f" until {expiry}" if expiry else ""
        super().__init__(f"Sync locked by {owner}{until}")
        self.owner = owner
        self.expiry = expiry


class ParseAnomaly(TaskflowError):
    """A line looks like a task but does not fully match the grammar."""

    hint = "Fix the task line so it reads: - [ ] (task:<id>) [P2] [owner] Title"

    def __init__(
        self,
        message: str,
        *,
        source: str = "",
        line_number: int = 0,
        line: str = "",
    ) -> None:
        super().__init__(message)
        self.source = source
        self.line_number = line_number
        self.line = line

    def __str__(self) -> str:
        base = super().__str__()
        if self.source and self.line_number:
            return f"{self.source}:{self.line_number}: {base}"
        if self.source:
            return f"{self.source}: {base}"
        return base


class ConstraintViolation(TaskflowError):
    """A value outside an enumeration or a referential integrity failure."""

    hint = "Correct the offending task in its file; nothing was written."


class StorageError(TaskflowError):
    """The database or a task file could not be read or written."""

    hint = "Check that the workspace files are readable and writable, then retry."

    @classmethod
    def from_exception(cls, error: BaseException) -> StorageError:
        """Wrap a low-level sqlite3 or OS error with a remediation hint."""
        hint = None
        if isinstance(error, sqlite3.OperationalError) and "locked" in str(error):
            hint = "Another process is writing the database; retry once it finishes."
        elif isinstance(error, sqlite3.DatabaseError) and "malformed" in str(error):
            hint = "The database file is damaged; restore it or rebuild with `taskflow init`."
        return cls(f"{type(error).__name__}: {error}", hint=hint)


class SyncInterrupted(TaskflowError):
    """A termination signal arrived while the lease was held."""

    hint = "The lease was released; rerun the sync when ready."

    def __init__(self, signal_name: str, exit_code: int) -> None:
        super().__init__(f"Interrupted by {signal_name}")
        self.signal_name = signal_name
        self.exit_code = exit_code


__all__ = [
    "ConstraintViolation",
    "LeaseContention",
    "ParseAnomaly",
    "StartupError",
    "StorageError",
    "SyncInterrupted",
    "TaskflowError",
]
