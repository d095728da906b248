"""Tests for the PROJECTS.md registry."""

from __future__ import annotations

from pathlib import Path

from taskflow.registry import ProjectInfo, apply_registry, load_registry, parse_registry
from taskflow.sync.models import Project
from taskflow.sync.store import TaskStore

SAMPLE_REGISTRY = """\
# Projects

Some intro text.

## dashboard
- Name: Ops Dashboard
- Description: Internal metrics board
- Status: active

## legacy-api
- Name: Legacy API
- Status: Paused

## scratch
- Status: archived
"""


class TestParseRegistry:
    def test_parses_entries(self) -> None:
        registry = parse_registry(SAMPLE_REGISTRY)

        assert list(registry) == ["dashboard", "legacy-api", "scratch"]
        dashboard = registry["dashboard"]
        assert dashboard.name == "Ops Dashboard"
        assert dashboard.description == "Internal metrics board"
        assert dashboard.status == "active"

    def test_status_is_case_insensitive(self) -> None:
        assert parse_registry(SAMPLE_REGISTRY)["legacy-api"].status == "paused"

    def test_missing_name_defaults_to_slug(self) -> None:
        assert parse_registry(SAMPLE_REGISTRY)["scratch"].name == "scratch"

    def test_unknown_status_ignored(self, caplog) -> None:
        entry = parse_registry(SAMPLE_REGISTRY)["scratch"]
        assert entry.status == "active"
        assert "unknown status" in caplog.text

    def test_fields_before_first_heading_ignored(self) -> None:
        assert parse_registry("- Name: Orphan\n") == {}


class TestLoadRegistry:
    def test_missing_file(self, tmp_path: Path) -> None:
        assert load_registry(tmp_path / "PROJECTS.md") == {}

    def test_reads_file(self, tmp_path: Path) -> None:
        path = tmp_path / "PROJECTS.md"
        path.write_text(SAMPLE_REGISTRY)
        assert set(load_registry(path)) == {"dashboard", "legacy-api", "scratch"}


class TestApplyRegistry:
    def test_creates_and_updates(self, store: TaskStore) -> None:
        store.ensure_project(Project(id="dashboard", name="Dashboard"))

        result = apply_registry(store, parse_registry(SAMPLE_REGISTRY))

        assert result.created == ["legacy-api", "scratch"]
        assert result.updated == ["dashboard"]
        projects = {p.id: p for p in store.list_projects()}
        assert projects["dashboard"].name == "Ops Dashboard"
        assert projects["legacy-api"].status == "paused"

    def test_to_project(self) -> None:
        info = ProjectInfo(slug="a", name="Alpha", description="d", status="done")
        assert info.to_project() == Project(id="a", name="Alpha", description="d", status="done")
