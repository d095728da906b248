"""Markdown <-> SQLite task synchronization engine."""

from taskflow.sync.diff import ChangedTask, TaskDiff, diff_tasks
from taskflow.sync.drift import DriftReport, check_drift
from taskflow.sync.engine import SyncEngine
from taskflow.sync.errors import (
    ConstraintViolation,
    LeaseContention,
    ParseAnomaly,
    StartupError,
    SyncInterrupted,
    TaskflowError,
)
from taskflow.sync.fingerprint import fingerprint
from taskflow.sync.lease import LeaseLock
from taskflow.sync.merge import MergeResult, apply_diff
from taskflow.sync.models import Project, SyncState, Task, Transition
from taskflow.sync.parser import ParseResult, parse_task_dir, parse_task_text
from taskflow.sync.projector import ProjectionResult, project_store, render_project
from taskflow.sync.store import TaskStore

__all__ = [
    "ChangedTask",
    "ConstraintViolation",
    "DriftReport",
    "LeaseContention",
    "LeaseLock",
    "MergeResult",
    "ParseAnomaly",
    "ParseResult",
    "Project",
    "ProjectionResult",
    "StartupError",
    "SyncEngine",
    "SyncInterrupted",
    "SyncState",
    "Task",
    "TaskDiff",
    "TaskStore",
    "TaskflowError",
    "Transition",
    "apply_diff",
    "check_drift",
    "diff_tasks",
    "fingerprint",
    "parse_task_dir",
    "parse_task_text",
    "project_store",
    "render_project",
]
