"""Regenerate canonical task files from the store.

Projection is store-authoritative: every project file is rewritten in
full, so it must not run while the files hold edits that have not been
synced into the store.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional

from taskflow.sync.errors import StorageError
from taskflow.sync.models import (
    HEADING_STATUSES,
    STATUS_HEADINGS,
    STATUS_ORDER,
    TASK_FILE_SUFFIX,
    Task,
)
from taskflow.sync.parser import HEADING_RE
from taskflow.sync.store import TaskStore

logger = logging.getLogger(__name__)


@dataclass
class ProjectionResult:
    """Files written by a store-to-files projection."""

    files_written: list[Path] = field(default_factory=list)
    tasks_written: int = 0


def extract_preamble(text: str) -> str:
    """Everything before the first recognized status heading."""
    kept: list[str] = []
    for line in text.splitlines():
        heading = HEADING_RE.match(line)
        if heading and heading.group(1).strip().lower() in HEADING_STATUSES:
            break
        kept.append(line)
    return "\n".join(kept).rstrip()


def default_preamble(slug: str) -> str:
    return f"# Tasks: {slug}"


def render_task(task: Task) -> str:
    checkbox = "[x]" if task.status == "done" else "[ ]"
    owner = f" [{task.owner}]" if task.owner else ""
    line = f"- {checkbox} (task:{task.id}) [{task.priority}]{owner} {task.title}\n"
    if task.note:
        line += f"  - note: {task.note}\n"
    return line


def render_project(slug: str, tasks: Iterable[Task], preamble: Optional[str] = None) -> str:
    """Render one project's canonical Markdown.

    Args:
        slug: Project slug.
        tasks: Tasks belonging to the project (any order).
        preamble: Free-form text kept above the first section; a minimal
            title line is used when empty.

    Returns:
        The complete file content.
    """
    by_status: dict[str, list[Task]] = {status: [] for status in STATUS_ORDER}
    for task in tasks:
        by_status.setdefault(task.status, []).append(task)

    parts = [(preamble or default_preamble(slug)) + "\n\n"]
    for status in STATUS_ORDER:
        parts.append(f"## {STATUS_HEADINGS[status]}\n")
        for task in sorted(by_status[status], key=lambda t: (t.priority, t.id)):
            parts.append(render_task(task))
        parts.append("\n")
    return "".join(parts)


def project_store(store: TaskStore, tasks_dir: Path) -> ProjectionResult:
    """Rewrite ``<slug>-tasks.md`` for every project in the store."""
    result = ProjectionResult()
    tasks_by_project: dict[str, list[Task]] = {}
    for task in store.list_tasks():
        tasks_by_project.setdefault(task.project_id, []).append(task)

    for project in store.list_projects():
        path = tasks_dir / f"{project.id}{TASK_FILE_SUFFIX}"
        preamble = None
        if path.exists():
            try:
                preamble = extract_preamble(path.read_text(encoding="utf-8"))
            except UnicodeDecodeError as e:
                raise StorageError(
                    f"Cannot read existing {path.name}: not valid UTF-8",
                    hint="Re-save the file as UTF-8 before projecting; it was left untouched.",
                ) from e

        tasks = tasks_by_project.get(project.id, [])
        path.write_text(render_project(project.id, tasks, preamble), encoding="utf-8")
        result.files_written.append(path)
        result.tasks_written += len(tasks)
        logger.debug("Projected %d tasks into %s", len(tasks), path)

    logger.info(
        "Projected store -> files: %d files, %d tasks",
        len(result.files_written),
        result.tasks_written,
    )
    return result


__all__ = [
    "ProjectionResult",
    "default_preamble",
    "extract_preamble",
    "project_store",
    "render_project",
    "render_task",
]
