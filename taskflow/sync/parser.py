"""Markdown task file parser.

Task files live under ``tasks/<slug>-tasks.md``. The status of a task comes
from the ``## <Heading>`` section it sits in; the checkbox is display only.

    ## In Progress
    - [ ] (task:dashboard-003) [P1] [claude] Wire up retries
      - note: blocked on the API token
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Sequence

from taskflow.sync.errors import ParseAnomaly
from taskflow.sync.models import (
    DEFAULT_PRIORITY,
    HEADING_STATUSES,
    TASK_FILE_SUFFIX,
    VALID_PRIORITIES,
    Task,
    slug_from_filename,
    task_source,
)

logger = logging.getLogger(__name__)

HEADING_RE = re.compile(r"^##\s+(.+?)\s*$")
CHECKBOX_RE = re.compile(r"^\s*-\s+\[[ xX]\]")
TASK_RE = re.compile(
    r"^- \[[ xX]\] \(task:(?P<id>[A-Za-z0-9][A-Za-z0-9._-]*)\)"
    r"\s*(?:\[(?P<tag1>[^\]]*)\])?"
    r"\s*(?:\[(?P<tag2>[^\]]*)\])?"
    r"\s*(?P<title>\S.*?)\s*$"
)
NOTE_RE = re.compile(r"^\s+- note:\s*(?P<note>\S.*?)\s*$")
PRIORITY_RE = re.compile(r"^P\d$")


@dataclass
class ParseResult:
    """Tasks extracted from one or more sources plus skipped lines."""

    tasks: list[Task] = field(default_factory=list)
    anomalies: list[ParseAnomaly] = field(default_factory=list)

    def extend(self, other: ParseResult) -> None:
        self.tasks.extend(other.tasks)
        self.anomalies.extend(other.anomalies)


def classify_tags(tags: Sequence[str]) -> tuple[str, Optional[str]]:
    """Split bracket tags into ``(priority, owner)``.

    A single tag is a priority when it matches the priority pattern and an
    owner otherwise. With two tags exactly one must be a priority.

    Raises:
        ParseAnomaly: If both or neither of two tags look like a priority,
            or the priority is not one of the known levels.
    """
    tags = [t.strip() for t in tags if t is not None and t.strip()]
    if len(tags) > 2:
        raise ParseAnomaly(f"Too many tags: {tags}")

    priorities = [t for t in tags if PRIORITY_RE.match(t)]
    owners = [t for t in tags if not PRIORITY_RE.match(t)]

    if len(tags) == 2 and len(priorities) != 1:
        kind = "priorities" if priorities else "owners"
        raise ParseAnomaly(f"Ambiguous tags {tags}: both look like {kind}")

    priority = priorities[0] if priorities else DEFAULT_PRIORITY
    if priority not in VALID_PRIORITIES:
        raise ParseAnomaly(
            f"Unknown priority {priority!r} (expected one of "
            f"{', '.join(sorted(VALID_PRIORITIES))})"
        )
    owner = owners[0] if owners else None
    return priority, owner


def parse_task_text(content: str, slug: str, source: Optional[str] = None) -> ParseResult:
    """Parse the text of one task file.

    Args:
        content: Raw Markdown.
        slug: Project slug the tasks belong to.
        source: Workspace-relative location recorded on each task.

    Returns:
        ParseResult with tasks in file order and any skipped lines.
    """
    source = source or task_source(slug)
    result = ParseResult()
    lines = content.splitlines()
    current_status: Optional[str] = None

    for index, line in enumerate(lines):
        heading = HEADING_RE.match(line)
        if heading:
            current_status = HEADING_STATUSES.get(heading.group(1).strip().lower())
            continue

        if current_status is None or not CHECKBOX_RE.match(line):
            continue

        match = TASK_RE.match(line)
        try:
            if not match:
                raise ParseAnomaly("Task line does not match the task grammar")
            priority, owner = classify_tags([match.group("tag1"), match.group("tag2")])
        except ParseAnomaly as anomaly:
            anomaly.source = source
            anomaly.line_number = index + 1
            anomaly.line = line
            logger.warning("Skipping task line: %s", anomaly)
            result.anomalies.append(anomaly)
            continue

        note = None
        if index + 1 < len(lines):
            note_match = NOTE_RE.match(lines[index + 1])
            if note_match:
                note = note_match.group("note")

        result.tasks.append(
            Task(
                id=match.group("id"),
                project_id=slug,
                title=match.group("title"),
                status=current_status,
                priority=priority,
                owner=owner,
                note=note,
                source=source,
            )
        )

    return result


def parse_task_file(path: Path) -> ParseResult:
    """Parse a single ``<slug>-tasks.md`` file.

    A file that is not valid UTF-8 yields no tasks and one anomaly.
    """
    slug = slug_from_filename(path.name)
    source = task_source(slug)
    try:
        content = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        anomaly = ParseAnomaly(
            f"File is not valid UTF-8 (byte {e.start}); skipped", source=source
        )
        anomaly.hint = "Re-save the task file as UTF-8."
        logger.warning("Skipping task file: %s", anomaly)
        return ParseResult(anomalies=[anomaly])
    return parse_task_text(content, slug, source)


def list_task_files(tasks_dir: Path) -> list[Path]:
    """Task files in a directory, sorted by name."""
    return sorted(p for p in tasks_dir.glob(f"*{TASK_FILE_SUFFIX}") if p.is_file())


def parse_task_dir(tasks_dir: Path) -> ParseResult:
    """Parse every task file under ``tasks_dir``."""
    result = ParseResult()
    for path in list_task_files(tasks_dir):
        result.extend(parse_task_file(path))
    logger.debug(
        "Parsed %d tasks from %s (%d anomalies)",
        len(result.tasks),
        tasks_dir,
        len(result.anomalies),
    )
    return result


__all__ = [
    "ParseResult",
    "classify_tags",
    "list_task_files",
    "parse_task_dir",
    "parse_task_file",
    "parse_task_text",
]
