"""Classify tasks into added / changed / removed between files and store."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable

from taskflow.sync.models import Task

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChangedTask:
    """A task present on both sides with differing compared fields."""

    incoming: Task
    stored: Task
    changes: tuple[str, ...]

    @property
    def id(self) -> str:
        return self.incoming.id

    @property
    def status_changed(self) -> bool:
        return self.incoming.status != self.stored.status


@dataclass
class TaskDiff:
    """Result of comparing file-derived tasks with store-derived tasks."""

    added: list[Task] = field(default_factory=list)
    changed: list[ChangedTask] = field(default_factory=list)
    removed: list[Task] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.changed or self.removed)

    def __len__(self) -> int:
        return len(self.added) + len(self.changed) + len(self.removed)


def index_tasks(tasks: Iterable[Task]) -> dict[str, Task]:
    """Key tasks by id; a duplicate id keeps the last occurrence."""
    indexed: dict[str, Task] = {}
    for task in tasks:
        if task.id in indexed:
            logger.warning(
                "Duplicate task id %s in %s and %s; keeping the latter",
                task.id,
                indexed[task.id].source,
                task.source,
            )
        indexed[task.id] = task
    return indexed


def compare_fields(incoming: Task, stored: Task) -> list[str]:
    """Describe differences in status, priority, owner and title.

    Notes and timestamps are deliberately not compared.
    """
    changes: list[str] = []
    if incoming.status != stored.status:
        changes.append(f"status: {stored.status} -> {incoming.status}")
    if incoming.priority != stored.priority:
        changes.append(f"priority: {stored.priority} -> {incoming.priority}")
    if (incoming.owner or None) != (stored.owner or None):
        changes.append(f"owner: {stored.owner} -> {incoming.owner}")
    if incoming.title != stored.title:
        changes.append("title changed")
    return changes


def diff_tasks(file_tasks: Iterable[Task], store_tasks: Iterable[Task]) -> TaskDiff:
    """Compare both sides keyed by task id."""
    files = index_tasks(file_tasks)
    stored = index_tasks(store_tasks)
    diff = TaskDiff()

    for task_id, incoming in files.items():
        existing = stored.get(task_id)
        if existing is None:
            diff.added.append(incoming)
            continue
        changes = compare_fields(incoming, existing)
        if changes:
            diff.changed.append(ChangedTask(incoming, existing, tuple(changes)))

    for task_id, existing in stored.items():
        if task_id not in files:
            diff.removed.append(existing)

    return diff


__all__ = ["ChangedTask", "TaskDiff", "compare_fields", "diff_tasks", "index_tasks"]
