"""Log formatting and handler setup for taskflow commands.

Every CLI invocation gets a short run ID so the lines emitted by one sync
(lease, diff, apply, release) can be grouped after the fact. Console output
goes to stderr, keeping stdout free for ``taskflow export``.
"""

import json
import logging
import os
import sys
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

run_id: ContextVar[Optional[str]] = ContextVar("run_id", default=None)

# Attributes every LogRecord carries; anything else arrived via ``extra=``.
_RECORD_ATTRS = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", (), None).__dict__
) | {"message", "asctime"}

_HANDLER_FLAG = "_taskflow"

_LEVEL_TAGS = {
    logging.DEBUG: ("\033[36m", "D"),
    logging.INFO: ("\033[32m", "I"),
    logging.WARNING: ("\033[33m", "W"),
    logging.ERROR: ("\033[31m", "E"),
    logging.CRITICAL: ("\033[35m", "C"),
}
_RESET = "\033[0m"


def new_run_id() -> str:
    """Start a fresh run ID for this invocation and return it."""
    rid = uuid.uuid4().hex[:8]
    run_id.set(rid)
    return rid


def set_run_id(rid: str) -> None:
    run_id.set(rid)


def get_run_id() -> str:
    """Return the active run ID, starting one if none is set."""
    return run_id.get() or new_run_id()


def _extras(record: logging.LogRecord) -> Dict[str, Any]:
    fields: Dict[str, Any] = {}
    for key, value in record.__dict__.items():
        if key in _RECORD_ATTRS or key.startswith("_"):
            continue
        try:
            json.dumps(value)
        except (TypeError, ValueError):
            value = str(value)
        fields[key] = value
    return fields


class JSONFormatter(logging.Formatter):
    """One JSON object per line, for log files and automation."""

    def __init__(self, include_extras: bool = True):
        super().__init__()
        self.include_extras = include_extras

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "run_id": get_run_id(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.levelno >= logging.ERROR:
            entry["location"] = {
                "file": record.filename,
                "line": record.lineno,
                "function": record.funcName,
            }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        if self.include_extras:
            entry.update(_extras(record))
        return json.dumps(entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """Compact colored lines: ``[HH:MM:SS] L [run] logger: message``."""

    def format(self, record: logging.LogRecord) -> str:
        color, tag = _LEVEL_TAGS.get(record.levelno, ("", record.levelname[:1]))
        clock = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        line = (
            f"{color}[{clock}] {tag}{_RESET} [{get_run_id()}] "
            f"{record.name}: {record.getMessage()}"
        )
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def _install(root: logging.Logger, handler: logging.Handler, formatter: logging.Formatter) -> None:
    handler.setFormatter(formatter)
    setattr(handler, _HANDLER_FLAG, True)
    root.addHandler(handler)


def configure_logging(
    level: str = "INFO",
    json_output: bool = False,
    log_file: Optional[str] = None,
) -> None:
    """Install taskflow's handlers on the root logger.

    Calling this again replaces the handlers from the previous call and
    leaves any handlers installed by other code alone.

    Args:
        level: Level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        json_output: Emit JSON lines on stderr instead of colored text.
        log_file: Optional path that receives JSON lines as well.
    """
    root = logging.getLogger()
    resolved = getattr(logging, level.upper(), None)
    root.setLevel(resolved if isinstance(resolved, int) else logging.INFO)

    for handler in [h for h in root.handlers if getattr(h, _HANDLER_FLAG, False)]:
        root.removeHandler(handler)
        handler.close()

    _install(
        root,
        logging.StreamHandler(sys.stderr),
        JSONFormatter() if json_output else ConsoleFormatter(),
    )
    if log_file:
        _install(root, logging.FileHandler(log_file), JSONFormatter())


def configure_from_env(default_level: str = "INFO") -> None:
    """Configure logging from LOG_LEVEL, LOG_FORMAT and LOG_FILE."""
    configure_logging(
        level=os.environ.get("LOG_LEVEL", default_level),
        json_output=os.environ.get("LOG_FORMAT", "").lower() == "json",
        log_file=os.environ.get("LOG_FILE") or None,
    )


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
