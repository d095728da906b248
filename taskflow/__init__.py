"""taskflow: keep Markdown task files and a SQLite task index in sync."""

__version__ = "0.4.0"
