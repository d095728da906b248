"""Cross-project overview built from the store, for dashboards and exports."""

from __future__ import annotations

from typing import Any

from taskflow.sync.models import STATUS_ORDER, format_timestamp, utc_now
from taskflow.sync.store import TaskStore

RECENT_TRANSITIONS = 20


def progress_pct(task_counts: dict[str, int]) -> float:
    """Share of done tasks as a percentage with two decimals."""
    total = sum(task_counts.values())
    if total == 0:
        return 0.0
    return round(task_counts.get("done", 0) / total * 100, 2)


def build_overview(store: TaskStore, *, recent: int = RECENT_TRANSITIONS) -> dict[str, Any]:
    """Summarize projects, task counts and the newest transitions.

    Returns:
        Dict with ``exported_at``, ``projects`` and ``recent_transitions``
        (oldest first within the window).
    """
    counts = store.task_counts()
    projects = []
    for project in store.list_projects():
        per_status = counts.get(project.id, {})
        task_counts = {status: per_status.get(status, 0) for status in STATUS_ORDER}
        projects.append(
            {
                "id": project.id,
                "name": project.name,
                "description": project.description,
                "status": project.status,
                "task_counts": task_counts,
                "progress_pct": progress_pct(task_counts),
            }
        )

    transitions = [
        {
            "task_id": t.task_id,
            "from_status": t.from_status,
            "to_status": t.to_status,
            "reason": t.reason,
            "at": t.at,
        }
        for t in store.recent_transitions(recent)
    ]

    return {
        "exported_at": format_timestamp(utc_now()),
        "projects": projects,
        "recent_transitions": transitions,
    }


__all__ = ["RECENT_TRANSITIONS", "build_overview", "progress_pct"]
