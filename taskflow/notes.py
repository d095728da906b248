"""Apple Notes export of the project status summary.

Builds an HTML digest from the task files and writes it into a single
Apple Note through ``osascript``. The note id is persisted in
``taskflow.config.json`` so later runs update the same note. macOS only.
"""

from __future__ import annotations

import html
import json
import logging
import subprocess
import sys
import tempfile
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from taskflow.registry import load_registry
from taskflow.settings import TaskflowSettings
from taskflow.sync.errors import TaskflowError
from taskflow.sync.models import STATUS_ORDER, utc_now
from taskflow.sync.parser import parse_task_dir

logger = logging.getLogger(__name__)

OSASCRIPT = "/usr/bin/osascript"
MAX_ATTEMPTS = 3
RETRY_DELAY_SECONDS = 2.0


class NotesExportError(TaskflowError):
    """The note could not be created or updated."""

    hint = "Check that Notes.app is running and that automation access is allowed."


@dataclass
class NotesExportResult:
    """Outcome of an export run."""

    skipped: bool = False
    note_id: Optional[str] = None
    created: bool = False
    attempts: int = 0
    counts: dict[str, int] = field(default_factory=dict)


def read_notes_config(path: Path) -> dict:
    """Read the JSON config; missing or unparseable files give ``{}``."""
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("Ignoring unreadable %s: %s", path, e)
        return {}
    return data if isinstance(data, dict) else {}


def write_notes_config(path: Path, updates: dict) -> None:
    """Merge ``updates`` into the JSON config, keeping other keys."""
    merged = {**read_notes_config(path), **updates}
    path.write_text(json.dumps(merged, indent=2) + "\n", encoding="utf-8")


def collect_buckets(settings: TaskflowSettings) -> dict[str, list[str]]:
    """``{status: ["<Project name>: <title>", ...]}`` from the task files."""
    registry = load_registry(settings.projects_file)
    buckets: dict[str, list[str]] = {status: [] for status in STATUS_ORDER}
    if not settings.tasks_dir.is_dir():
        return buckets
    for task in parse_task_dir(settings.tasks_dir).tasks:
        info = registry.get(task.project_id)
        name = info.name if info else task.project_id
        buckets[task.status].append(f"{name}: {task.title}")
    return buckets


def _ul(items: list[str]) -> str:
    if not items:
        return '<ul><li><span style="color:#666;">None</span></li></ul>'
    return "<ul>" + "".join(f"<li>{html.escape(i)}</li>" for i in items) + "</ul>"


def generate_html(buckets: dict[str, list[str]], title: str, stamp: str) -> str:
    """Render the status digest as Notes-compatible HTML."""
    in_progress = buckets.get("in_progress", [])
    pending = buckets.get("pending_validation", [])
    backlog = buckets.get("backlog", [])
    done = buckets.get("done", [])
    blocked = buckets.get("blocked", [])

    top = (in_progress + pending)[:5]
    next_three = in_progress[:3] if in_progress else backlog[:3]

    return (
        '<div style="font-family:-apple-system,Helvetica,Arial,sans-serif; line-height:1.35;">\n'
        f"<h1>{html.escape(title)}</h1>\n"
        f"<h2>Top Priorities</h2>{_ul(top)}\n"
        f"<h2>In Progress ({len(in_progress)})</h2>{_ul(in_progress)}\n"
        f"<h2>Pending Validation ({len(pending)})</h2>{_ul(pending)}\n"
        f"<h2>Backlog (top 12)</h2>{_ul(backlog[:12])}\n"
        f"<h2>Recently Done</h2>{_ul(done[:10])}\n"
        f"<h2>Blockers</h2>{_ul(blocked)}\n"
        f"<h2>Next 3 Actions</h2>{_ul(next_three)}\n"
        '<p style="color:#888; font-size:0.85em;"><b>Updated:</b> '
        f"{html.escape(stamp)} &middot; Source: tasks/*.md</p>\n"
        "</div>"
    )


def format_stamp(moment: datetime, tz_name: str) -> str:
    """Local wall-clock stamp like ``02/20/2026, 09:15 AM CST``."""
    try:
        local = moment.astimezone(ZoneInfo(tz_name))
    except ZoneInfoNotFoundError:
        logger.warning("Unknown timezone %r, using UTC", tz_name)
        local = moment.astimezone(ZoneInfo("UTC"))
    return local.strftime("%m/%d/%Y, %I:%M %p ") + (local.tzname() or "")


def _as_string(value: str) -> str:
    """Quote a value as an AppleScript string literal."""
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


class AppleNotesClient:
    """Thin wrapper around ``osascript`` for the Notes application."""

    def __init__(self, timeout: int = 30) -> None:
        self.timeout = timeout

    def run(self, script: str) -> str:
        """Run an AppleScript and return its trimmed stdout.

        Raises:
            RuntimeError: If osascript exits non-zero.
        """
        proc = subprocess.run(
            [OSASCRIPT, "-"],
            input=script,
            capture_output=True,
            text=True,
            timeout=self.timeout,
        )
        if proc.returncode != 0:
            raise RuntimeError(
                f"osascript failed (rc={proc.returncode}): {proc.stderr.strip()}"
            )
        return proc.stdout.strip()

    def note_exists(self, note_id: str) -> bool:
        script = f"""
tell application "Notes"
  try
    set n to note id {_as_string(note_id)}
    return (name of n) as text
  on error
    return "NOT_FOUND"
  end try
end tell
"""
        try:
            return self.run(script) != "NOT_FOUND"
        except RuntimeError:
            return False

    def update_note(self, note_id: str, title: str, body_path: Path) -> str:
        script = f"""
set noteBody to read POSIX file {_as_string(str(body_path))} as «class utf8»
tell application "Notes"
  set targetNote to note id {_as_string(note_id)}
  set name of targetNote to {_as_string(title)}
  set body of targetNote to noteBody
  return (id of targetNote) as text
end tell
"""
        return self.run(script)

    def create_note(self, title: str, body_path: Path, folder: str) -> str:
        script = f"""
set noteBody to read POSIX file {_as_string(str(body_path))} as «class utf8»
tell application "Notes"
  launch
  set targetFolder to missing value
  try
    set targetFolder to folder {_as_string(folder)}
  end try
  if targetFolder is missing value then
    set newNote to make new note with properties {{name:{_as_string(title)}, body:noteBody}}
  else
    set newNote to make new note at targetFolder with properties {{name:{_as_string(title)}, body:noteBody}}
  end if
  return (id of newNote) as text
end tell
"""
        return self.run(script)


def export_to_notes(
    settings: TaskflowSettings,
    *,
    client: Optional[AppleNotesClient] = None,
    platform: str = sys.platform,
    sleep: Callable[[float], None] = time.sleep,
    now: Optional[datetime] = None,
) -> NotesExportResult:
    """Create or update the status note.

    Raises:
        NotesExportError: If every attempt fails.
    """
    if platform != "darwin":
        logger.info("Skipping Apple Notes export: macOS only")
        return NotesExportResult(skipped=True)

    client = client or AppleNotesClient()
    config_path = settings.notes_config_path
    config = read_notes_config(config_path)
    folder = config.get("appleNotesFolder") or settings.notes.folder
    title = config.get("appleNotesTitle") or settings.notes.title
    note_id = config.get("appleNotesId")

    buckets = collect_buckets(settings)
    stamp = format_stamp(now or utc_now(), settings.notes.timezone)
    body = generate_html(buckets, title, stamp)
    result = NotesExportResult(counts={k: len(v) for k, v in buckets.items()})

    with tempfile.TemporaryDirectory(prefix="taskflow-notes-") as tmp:
        body_path = Path(tmp) / "note.html"
        body_path.write_text(body, encoding="utf-8")

        for attempt in range(1, MAX_ATTEMPTS + 1):
            result.attempts = attempt
            try:
                if note_id and client.note_exists(note_id):
                    client.update_note(note_id, title, body_path)
                    logger.info("Updated note %s", note_id)
                    result.note_id = note_id
                    return result

                if note_id:
                    logger.info("Previous note not found, creating a new one")
                new_id = client.create_note(title, body_path, folder)
                if not new_id:
                    raise RuntimeError("osascript returned an empty note id")
                write_notes_config(
                    config_path,
                    {
                        "appleNotesId": new_id,
                        "appleNotesFolder": folder,
                        "appleNotesTitle": title,
                    },
                )
                logger.info("Created note %s in %r", new_id, folder)
                result.note_id = new_id
                result.created = True
                return result
            except (RuntimeError, OSError, subprocess.TimeoutExpired) as e:
                logger.warning("Notes export attempt %d failed: %s", attempt, e)
                if attempt < MAX_ATTEMPTS:
                    sleep(RETRY_DELAY_SECONDS)

    raise NotesExportError(f"Apple Notes export failed after {MAX_ATTEMPTS} attempts")


__all__ = [
    "AppleNotesClient",
    "NotesExportError",
    "NotesExportResult",
    "collect_buckets",
    "export_to_notes",
    "format_stamp",
    "generate_html",
    "read_notes_config",
    "write_notes_config",
]
