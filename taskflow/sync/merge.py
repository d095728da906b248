"""Apply a files-to-store diff.

The whole batch runs in one transaction: either every insert, update,
transition and fingerprint lands, or none does. Tasks that exist only in
the store are never deleted, and notes only ever flow in one direction
(a non-empty incoming note wins, an absent one never erases).
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional, Sequence

from taskflow.sync.diff import TaskDiff, index_tasks
from taskflow.sync.errors import ConstraintViolation
from taskflow.sync.fingerprint import fingerprint
from taskflow.sync.models import (
    VALID_PRIORITIES,
    VALID_STATUSES,
    Project,
    Task,
    format_timestamp,
    project_name_from_slug,
    utc_now,
)
from taskflow.sync.store import TaskStore

logger = logging.getLogger(__name__)

DEFAULT_ACTOR = "sync"
ADDED_REASON = "added via file sync"


@dataclass
class MergeResult:
    """Summary of a files-to-store apply."""

    added: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    notes_enriched: list[str] = field(default_factory=list)
    preserved: list[str] = field(default_factory=list)
    projects_created: list[str] = field(default_factory=list)
    transitions_written: int = 0
    files_fingerprint: str = ""
    store_fingerprint: str = ""

    @property
    def changed_anything(self) -> bool:
        return bool(
            self.added or self.updated or self.notes_enriched or self.projects_created
        )


def validate_task(task: Task) -> None:
    """Reject values outside the status and priority enumerations.

    Raises:
        ConstraintViolation: On an unknown status or priority.
    """
    if task.status not in VALID_STATUSES:
        raise ConstraintViolation(f"Task {task.id}: invalid status {task.status!r}")
    if task.priority not in VALID_PRIORITIES:
        raise ConstraintViolation(f"Task {task.id}: invalid priority {task.priority!r}")


def synthesize_projects(store: TaskStore, tasks: Sequence[Task]) -> list[str]:
    """Create minimal project rows for slugs the store does not know yet."""
    known = {p.id for p in store.list_projects()}
    created: list[str] = []
    for task in tasks:
        slug = task.project_id
        if slug in known:
            continue
        known.add(slug)
        name = project_name_from_slug(slug)
        if store.ensure_project(Project(id=slug, name=name)):
            created.append(slug)
            logger.info("Auto-created missing project: %s (%r)", slug, name)
    return created


def apply_diff(
    store: TaskStore,
    file_tasks: Sequence[Task],
    diff: TaskDiff,
    *,
    actor: str = DEFAULT_ACTOR,
    sub_actor: Optional[str] = None,
    clock: Callable[[], datetime] = utc_now,
) -> MergeResult:
    """Write ``diff`` into the store as a single transaction.

    Args:
        store: Target store.
        file_tasks: Every task parsed from the files (for note enrichment
            and the files fingerprint).
        diff: Diff of ``file_tasks`` against the current store contents.
        actor: Actor recorded on transitions.
        sub_actor: Optional sub-actor (e.g. a model tag) on transitions.
        clock: Source of the current time.

    Returns:
        MergeResult with per-class ids and the persisted fingerprints.

    Raises:
        ConstraintViolation: If any record violates the schema; nothing is
            written in that case.
    """
    for task in file_tasks:
        validate_task(task)

    result = MergeResult(preserved=[t.id for t in diff.removed])
    now = format_timestamp(clock())
    incoming = index_tasks(file_tasks)

    try:
        with store.transaction():
            result.projects_created = synthesize_projects(store, list(incoming.values()))

            for task in diff.added:
                store.insert_task(task, now)
                store.append_transition(
                    task.id,
                    None,
                    task.status,
                    actor=actor,
                    sub_actor=sub_actor,
                    at=now,
                    reason=ADDED_REASON,
                )
                result.transitions_written += 1
                result.added.append(task.id)

            for change in diff.changed:
                store.update_task(change.incoming, now)
                if change.status_changed:
                    store.append_transition(
                        change.id,
                        change.stored.status,
                        change.incoming.status,
                        actor=actor,
                        sub_actor=sub_actor,
                        at=now,
                        reason=f"file sync: {', '.join(change.changes)}",
                    )
                    result.transitions_written += 1
                result.updated.append(change.id)

            added_ids = set(result.added)
            for task in incoming.values():
                if task.id in added_ids:
                    continue
                if store.enrich_note(task.id, task.note):
                    result.notes_enriched.append(task.id)

            result.files_fingerprint = fingerprint(incoming.values())
            result.store_fingerprint = fingerprint(store.list_tasks())
            store.save_fingerprints(result.files_fingerprint, result.store_fingerprint)
    except sqlite3.IntegrityError as e:
        raise ConstraintViolation(f"Store rejected the batch: {e}") from e

    logger.info(
        "Applied files -> store: %d added, %d updated, %d notes enriched, "
        "%d store-only preserved",
        len(result.added),
        len(result.updated),
        len(result.notes_enriched),
        len(result.preserved),
    )
    return result


__all__ = [
    "ADDED_REASON",
    "DEFAULT_ACTOR",
    "MergeResult",
    "apply_diff",
    "synthesize_projects",
    "validate_task",
]
