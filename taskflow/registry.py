"""Project registry: project metadata kept in ``PROJECTS.md``.

    ## dashboard
    - Name: Ops Dashboard
    - Description: Internal metrics board
    - Status: active

Synthesized project rows (created when a task file names an unknown slug)
get a placeholder name; importing the registry is how those get corrected.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

from taskflow.sync.models import VALID_PROJECT_STATUSES, Project, format_timestamp, utc_now
from taskflow.sync.store import TaskStore

logger = logging.getLogger(__name__)

SLUG_RE = re.compile(r"^##\s+(?P<slug>\S.*?)\s*$")
FIELD_RE = re.compile(r"^-\s+(?P<key>Name|Description|Status):\s*(?P<value>.*?)\s*$", re.IGNORECASE)


@dataclass
class ProjectInfo:
    """A project entry from the registry."""

    slug: str
    name: str
    description: str = ""
    status: str = "active"

    def to_project(self) -> Project:
        return Project(
            id=self.slug, name=self.name, description=self.description, status=self.status
        )


@dataclass
class RegistryImport:
    """Result of applying the registry to the store."""

    created: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)


def parse_registry(text: str) -> dict[str, ProjectInfo]:
    """Parse registry Markdown into ``{slug: ProjectInfo}``.

    Unknown status values are logged and fall back to ``active``.
    """
    projects: dict[str, ProjectInfo] = {}
    current: ProjectInfo | None = None

    for line in text.splitlines():
        heading = SLUG_RE.match(line)
        if heading:
            slug = heading.group("slug")
            current = ProjectInfo(slug=slug, name=slug)
            projects[slug] = current
            continue
        if current is None:
            continue

        match = FIELD_RE.match(line)
        if not match:
            continue
        key = match.group("key").lower()
        value = match.group("value")
        if key == "name" and value:
            current.name = value
        elif key == "description":
            current.description = value
        elif key == "status":
            status = value.lower()
            if status in VALID_PROJECT_STATUSES:
                current.status = status
            else:
                logger.warning("Project %s: ignoring unknown status %r", current.slug, value)

    return projects


def load_registry(path: Path) -> dict[str, ProjectInfo]:
    """Parse the registry file, or return ``{}`` when it does not exist."""
    if not path.exists():
        return {}
    return parse_registry(path.read_text(encoding="utf-8"))


def apply_registry(store: TaskStore, registry: dict[str, ProjectInfo]) -> RegistryImport:
    """Upsert every registry entry into the store in one transaction."""
    result = RegistryImport()
    now = format_timestamp(utc_now())
    with store.transaction():
        for slug in sorted(registry):
            if store.upsert_project(registry[slug].to_project(), now):
                result.created.append(slug)
            else:
                result.updated.append(slug)
    logger.info(
        "Registry import: %d created, %d updated", len(result.created), len(result.updated)
    )
    return result


__all__ = [
    "ProjectInfo",
    "RegistryImport",
    "apply_registry",
    "load_registry",
    "parse_registry",
]
