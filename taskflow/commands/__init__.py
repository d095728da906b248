"""Typer sub-applications for the taskflow CLI."""
