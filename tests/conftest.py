"""Shared fixtures for taskflow tests."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable

import pytest

from taskflow.settings import TaskflowSettings, reset_settings
from taskflow.sync.schema import init_db
from taskflow.sync.store import TaskStore

SAMPLE_TASKS_MD = """\
# Tasks: dashboard

Internal metrics board.

## In Progress
- [ ] (task:dashboard-001) [P1] [claude] Wire up retries
  - note: waiting on API token

## Backlog
- [ ] (task:dashboard-002) Add dark mode
- [ ] (task:dashboard-003) [P3] [codex] Export CSV

## Done
- [x] (task:dashboard-000) [P0] Bootstrap repo
"""


class FrozenClock:
    """Manually advanced clock for lease and timestamp tests."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 2, 20, 15, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture(autouse=True)
def _isolate_globals():
    """Reset cached settings and drop log handlers installed by the CLI."""
    reset_settings()
    root = logging.getLogger()
    level = root.level
    yield
    reset_settings()
    root.setLevel(level)
    for handler in root.handlers[:]:
        if getattr(handler, "_taskflow", False):
            root.removeHandler(handler)
            handler.close()


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """A workspace with an empty tasks/ directory and a bootstrapped database."""
    ws = tmp_path / "workspace"
    (ws / "tasks").mkdir(parents=True)
    init_db(ws / "memory" / "taskflow.sqlite")
    return ws


@pytest.fixture
def settings(workspace: Path) -> TaskflowSettings:
    return TaskflowSettings(workspace=workspace)


@pytest.fixture
def store(settings: TaskflowSettings) -> TaskStore:
    return TaskStore(settings.db_path)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def sample_tasks_md() -> str:
    return SAMPLE_TASKS_MD


@pytest.fixture
def write_tasks(workspace: Path) -> Callable[[str, str], Path]:
    """Write ``tasks/<slug>-tasks.md`` and return its path."""

    def _write(slug: str, content: str) -> Path:
        path = workspace / "tasks" / f"{slug}-tasks.md"
        path.write_text(content, encoding="utf-8")
        return path

    return _write
