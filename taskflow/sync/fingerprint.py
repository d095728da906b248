"""Canonical digest of a task set, used to detect drift cheaply."""

from __future__ import annotations

import hashlib
from typing import Iterable, Optional

from taskflow.sync.models import Task

FINGERPRINT_LENGTH = 16


def _field(value: Optional[str]) -> str:
    # Escape the delimiter so "a|b" + "c" and "a" + "b|c" stay distinct
    return (value or "").replace("\\", "\\\\").replace("|", "\\|")


def canonical_line(task: Task) -> str:
    """Fixed-order field projection of a single task."""
    return "|".join(
        _field(value)
        for value in (
            task.id,
            task.status,
            task.priority,
            task.owner,
            task.title,
            task.note,
        )
    )


def fingerprint(tasks: Iterable[Task]) -> str:
    """Order-independent SHA-256 fingerprint, truncated to 16 hex chars."""
    data = "\n".join(canonical_line(t) for t in sorted(tasks, key=lambda t: t.id))
    return hashlib.sha256(data.encode("utf-8")).hexdigest()[:FINGERPRINT_LENGTH]


__all__ = ["FINGERPRINT_LENGTH", "canonical_line", "fingerprint"]
