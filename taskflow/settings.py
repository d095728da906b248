"""Unified configuration for taskflow.

Loads settings from (in order of precedence, highest first):
1. Environment variables (TASKFLOW_* preferred, OPENCLAW_* legacy)
2. Project-local config (.taskflow.yml in cwd)
3. User config (~/.taskflow/config.yml)
4. Built-in defaults
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

logger = logging.getLogger(__name__)


@dataclass
class SyncSettings:
    """Sync engine configuration."""

    lease_ttl_seconds: int = 60
    actor: str = "sync"


@dataclass
class NotesSettings:
    """Apple Notes export configuration."""

    folder: str = "Notes"
    title: str = "TaskFlow - Project Status"
    timezone: str = "America/Chicago"


@dataclass
class TaskflowSettings:
    """Root configuration container."""

    workspace: Path = field(default_factory=Path.cwd)
    log_level: str = "INFO"
    sync: SyncSettings = field(default_factory=SyncSettings)
    notes: NotesSettings = field(default_factory=NotesSettings)

    @property
    def db_path(self) -> Path:
        return self.workspace / "memory" / "taskflow.sqlite"

    @property
    def tasks_dir(self) -> Path:
        return self.workspace / "tasks"

    @property
    def projects_file(self) -> Path:
        return self.workspace / "PROJECTS.md"

    @property
    def notes_config_path(self) -> Path:
        return self.workspace / "taskflow.config.json"


def load_yaml_config(path: Path) -> dict:
    """Read one YAML layer; a missing, unreadable or non-mapping file is empty."""
    if not path.is_file():
        return {}
    try:
        data = yaml.safe_load(path.read_text())
    except (OSError, yaml.YAMLError) as e:
        logger.warning("Ignoring config %s: %s", path, e)
        return {}
    return data if isinstance(data, dict) else {}


def _apply_dict_to_sync(settings: SyncSettings, data: dict) -> None:
    if "lease_ttl_seconds" in data:
        settings.lease_ttl_seconds = int(data["lease_ttl_seconds"])
    if "actor" in data:
        settings.actor = str(data["actor"])


def _apply_dict_to_notes(settings: NotesSettings, data: dict) -> None:
    for key in ("folder", "title", "timezone"):
        if key in data:
            setattr(settings, key, str(data[key]))


def _apply_dict(settings: TaskflowSettings, data: dict) -> None:
    if "workspace" in data:
        settings.workspace = Path(str(data["workspace"])).expanduser()
    if "log_level" in data:
        settings.log_level = str(data["log_level"])
    if isinstance(data.get("sync"), dict):
        _apply_dict_to_sync(settings.sync, data["sync"])
    if isinstance(data.get("notes"), dict):
        _apply_dict_to_notes(settings.notes, data["notes"])


def _apply_env_overrides(settings: TaskflowSettings) -> None:
    """Overlay TASKFLOW_* variables, falling back to OPENCLAW_WORKSPACE."""
    env = os.environ
    workspace = env.get("TASKFLOW_WORKSPACE") or env.get("OPENCLAW_WORKSPACE")
    if workspace:
        settings.workspace = Path(workspace).expanduser()
    if env.get("TASKFLOW_LOG_LEVEL"):
        settings.log_level = env["TASKFLOW_LOG_LEVEL"]
    if env.get("TASKFLOW_LEASE_TTL"):
        settings.sync.lease_ttl_seconds = int(env["TASKFLOW_LEASE_TTL"])
    if env.get("TASKFLOW_ACTOR"):
        settings.sync.actor = env["TASKFLOW_ACTOR"]
    if env.get("TASKFLOW_NOTES_TITLE"):
        settings.notes.title = env["TASKFLOW_NOTES_TITLE"]


def load_settings(
    user_config_path: Optional[Path] = None,
    project_config_path: Optional[Path] = None,
) -> TaskflowSettings:
    """Resolve settings by layering defaults, YAML files and the environment.

    Args:
        user_config_path: User config file, default ``~/.taskflow/config.yml``.
        project_config_path: Project config file, default ``./.taskflow.yml``.

    Returns:
        TaskflowSettings with every layer applied.
    """
    settings = TaskflowSettings()
    layers = (
        user_config_path or Path.home() / ".taskflow" / "config.yml",
        project_config_path or Path.cwd() / ".taskflow.yml",
    )
    for path in layers:
        _apply_dict(settings, load_yaml_config(path))
    _apply_env_overrides(settings)
    return settings


_settings: Optional[TaskflowSettings] = None


def get_settings() -> TaskflowSettings:
    """Return the process-wide settings, loading them on first use."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Forget the cached settings so the next call reloads them."""
    global _settings
    _settings = None
