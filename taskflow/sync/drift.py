"""Read-only drift check between task files and the store."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from taskflow.sync.diff import TaskDiff, diff_tasks
from taskflow.sync.fingerprint import fingerprint
from taskflow.sync.models import Task


@dataclass
class DriftReport:
    """Diff plus both fingerprints; ``in_sync`` when the diff is empty."""

    diff: TaskDiff
    files_fingerprint: str
    store_fingerprint: str
    file_task_count: int = 0
    store_task_count: int = 0

    @property
    def in_sync(self) -> bool:
        return self.diff.is_empty

    def lines(self) -> list[str]:
        """One line per discrepancy, grouped by class."""
        out = [f"+ {t.id} (in files, not store)" for t in self.diff.added]
        out += [f"- {t.id} (in store, not files)" for t in self.diff.removed]
        out += [f"~ {c.id}: {', '.join(c.changes)}" for c in self.diff.changed]
        return out


def check_drift(file_tasks: Sequence[Task], store_tasks: Sequence[Task]) -> DriftReport:
    """Compare both sides without touching either of them or the lease."""
    return DriftReport(
        diff=diff_tasks(file_tasks, store_tasks),
        files_fingerprint=fingerprint(file_tasks),
        store_fingerprint=fingerprint(store_tasks),
        file_task_count=len(file_tasks),
        store_task_count=len(store_tasks),
    )


__all__ = ["DriftReport", "check_drift"]
