"""Tests for the SQLite task store."""

from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from taskflow.sync.errors import StartupError
from taskflow.sync.models import Project, Task
from taskflow.sync.store import TaskStore

NOW = "2026-02-20T15:00:00.000Z"
LATER = "2026-02-20T16:00:00.000Z"


def _add_task(store: TaskStore, task_id: str = "a-1", **kwargs) -> Task:
    """Helper to insert a task (and its project) with sensible defaults."""
    defaults = {
        "project_id": "a",
        "title": "Test task",
        "status": "backlog",
        "source": "tasks/a-tasks.md",
    }
    defaults.update(kwargs)
    task = Task(id=task_id, **defaults)
    store.ensure_project(Project(id=task.project_id, name=task.project_id.upper()))
    store.insert_task(task, NOW)
    return task


class TestCheckSchema:
    def test_ok(self, store: TaskStore) -> None:
        store.check_schema()

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(StartupError, match="Database file not found") as exc:
            TaskStore(tmp_path / "nope.sqlite").check_schema()
        assert "taskflow init" in exc.value.hint

    def test_missing_tables(self, tmp_path: Path) -> None:
        db_path = tmp_path / "partial.sqlite"
        sqlite3.connect(str(db_path)).close()
        with pytest.raises(StartupError, match="missing: projects"):
            TaskStore(db_path).check_schema()

    def test_missing_singleton(self, store: TaskStore) -> None:
        with store._get_connection() as conn:
            conn.execute("DELETE FROM sync_state")
        with pytest.raises(StartupError, match="singleton"):
            store.check_schema()


class TestTasks:
    def test_insert_and_get(self, store: TaskStore) -> None:
        _add_task(store, owner="claude", note="hello", priority="P1")

        task = store.get_task("a-1")
        assert task is not None
        assert task.owner == "claude"
        assert task.note == "hello"
        assert task.priority == "P1"
        assert task.created_at == NOW
        assert task.updated_at == NOW

    def test_get_missing(self, store: TaskStore) -> None:
        assert store.get_task("nope") is None

    def test_list_ordered_by_id(self, store: TaskStore) -> None:
        _add_task(store, "a-2")
        _add_task(store, "a-1")
        _add_task(store, "b-1", project_id="b")

        assert [t.id for t in store.list_tasks()] == ["a-1", "a-2", "b-1"]
        assert [t.id for t in store.list_tasks(project="b")] == ["b-1"]

    def test_update_advances_updated_at_and_keeps_note(self, store: TaskStore) -> None:
        task = _add_task(store, note="keep me")
        store.update_task(task.with_changes(status="done", title="Renamed", note=None), LATER)

        updated = store.get_task("a-1")
        assert updated.status == "done"
        assert updated.title == "Renamed"
        assert updated.note == "keep me"
        assert updated.created_at == NOW
        assert updated.updated_at == LATER

    def test_update_missing_raises(self, store: TaskStore) -> None:
        ghost = Task(id="ghost", project_id="a", title="T", status="backlog")
        with pytest.raises(ValueError, match="Task not found"):
            store.update_task(ghost, NOW)

    def test_insert_with_unknown_project_fails(self, store: TaskStore) -> None:
        task = Task(id="x-1", project_id="x", title="T", status="backlog", source="s")
        with pytest.raises(sqlite3.IntegrityError):
            store.insert_task(task, NOW)


class TestEnrichNote:
    def test_sets_note(self, store: TaskStore) -> None:
        _add_task(store)
        assert store.enrich_note("a-1", "new note")
        assert store.get_task("a-1").note == "new note"

    def test_overwrites_existing(self, store: TaskStore) -> None:
        _add_task(store, note="old")
        assert store.enrich_note("a-1", "newer")
        assert store.get_task("a-1").note == "newer"

    def test_empty_never_erases(self, store: TaskStore) -> None:
        _add_task(store, note="precious")
        assert not store.enrich_note("a-1", None)
        assert not store.enrich_note("a-1", "")
        assert not store.enrich_note("a-1", "   ")
        assert store.get_task("a-1").note == "precious"

    def test_same_note_is_noop(self, store: TaskStore) -> None:
        _add_task(store, note="same")
        assert not store.enrich_note("a-1", "same")

    def test_does_not_touch_updated_at(self, store: TaskStore) -> None:
        _add_task(store)
        store.enrich_note("a-1", "note")
        assert store.get_task("a-1").updated_at == NOW


class TestTransitions:
    def test_append_and_read(self, store: TaskStore) -> None:
        _add_task(store)
        first = store.append_transition("a-1", None, "backlog", actor="sync", at=NOW)
        second = store.append_transition(
            "a-1",
            "backlog",
            "done",
            actor="sync",
            sub_actor="claude",
            at=LATER,
            reason="finished",
        )

        assert second > first
        entries = store.get_transitions("a-1")
        assert [(e.from_status, e.to_status) for e in entries] == [
            (None, "backlog"),
            ("backlog", "done"),
        ]
        assert entries[1].sub_actor == "claude"
        assert entries[1].reason == "finished"
        assert store.count_transitions() == 2

    def test_recent_is_oldest_first(self, store: TaskStore) -> None:
        _add_task(store)
        for status in ("in_progress", "blocked", "done"):
            store.append_transition("a-1", None, status, actor="sync", at=NOW)

        recent = store.recent_transitions(2)
        assert [t.to_status for t in recent] == ["blocked", "done"]

    def test_unknown_task_rejected(self, store: TaskStore) -> None:
        with pytest.raises(sqlite3.IntegrityError):
            store.append_transition("ghost", None, "backlog", actor="sync", at=NOW)

    def test_task_with_history_cannot_be_deleted(self, store: TaskStore) -> None:
        _add_task(store)
        store.append_transition("a-1", None, "backlog", actor="sync", at=NOW)
        with pytest.raises(sqlite3.IntegrityError):
            with store._get_connection() as conn:
                conn.execute("DELETE FROM tasks WHERE id = 'a-1'")


class TestProjects:
    def test_ensure_project_only_creates_once(self, store: TaskStore) -> None:
        assert store.ensure_project(Project(id="a", name="A"))
        assert not store.ensure_project(Project(id="a", name="Other"))
        assert store.list_projects()[0].name == "A"

    def test_upsert_overwrites(self, store: TaskStore) -> None:
        assert store.upsert_project(Project(id="a", name="A"), NOW)
        assert not store.upsert_project(
            Project(id="a", name="Alpha", description="desc", status="paused"), NOW
        )
        project = store.list_projects()[0]
        assert (project.name, project.description, project.status) == (
            "Alpha",
            "desc",
            "paused",
        )

    def test_task_counts(self, store: TaskStore) -> None:
        _add_task(store, "a-1")
        _add_task(store, "a-2", status="done")
        _add_task(store, "b-1", project_id="b", status="done")

        assert store.task_counts() == {
            "a": {"backlog": 1, "done": 1},
            "b": {"done": 1},
        }


class TestTransaction:
    def test_commits_as_a_unit(self, store: TaskStore) -> None:
        with store.transaction():
            _add_task(store, "a-1")
            _add_task(store, "a-2")
        assert len(store.list_tasks()) == 2

    def test_rolls_back_on_error(self, store: TaskStore) -> None:
        with pytest.raises(RuntimeError):
            with store.transaction():
                _add_task(store, "a-1")
                raise RuntimeError("boom")
        assert store.list_tasks() == []
        assert store.list_projects() == []

    def test_nested_reuses_outer(self, store: TaskStore) -> None:
        with pytest.raises(RuntimeError):
            with store.transaction():
                with store.transaction():
                    _add_task(store, "a-1")
                raise RuntimeError("boom")
        assert store.list_tasks() == []


class TestSyncState:
    def test_initial_state(self, store: TaskStore) -> None:
        state = store.get_sync_state()
        assert not state.is_leased
        assert state.last_result is None

    def test_acquire_when_free(self, store: TaskStore) -> None:
        assert store.try_acquire_lease("me", LATER, NOW)
        state = store.get_sync_state()
        assert state.lease_owner == "me"
        assert state.lease_expiry == LATER

    def test_acquire_blocked_by_live_lease(self, store: TaskStore) -> None:
        store.try_acquire_lease("first", LATER, NOW)
        assert not store.try_acquire_lease("second", LATER, NOW)
        assert store.get_sync_state().lease_owner == "first"

    def test_acquire_takes_over_expired_lease(self, store: TaskStore) -> None:
        store.try_acquire_lease("first", NOW, NOW)
        assert store.try_acquire_lease("second", "2026-02-20T17:00:00.000Z", LATER)
        assert store.get_sync_state().lease_owner == "second"

    def test_release_by_owner(self, store: TaskStore) -> None:
        store.try_acquire_lease("me", LATER, NOW)
        store.release_lease("me", "ok", NOW)

        state = store.get_sync_state()
        assert state.lease_owner is None
        assert state.lease_expiry is None
        assert state.last_result == "ok"
        assert state.last_sync_at == NOW

    def test_release_by_other_keeps_lease(self, store: TaskStore) -> None:
        store.try_acquire_lease("holder", LATER, NOW)
        store.release_lease("someone-else", "failed: late", NOW)

        state = store.get_sync_state()
        assert state.lease_owner == "holder"
        assert state.lease_expiry == LATER
        assert state.last_result == "failed: late"

    def test_save_fingerprints(self, store: TaskStore) -> None:
        store.save_fingerprints("aaaa", "bbbb")
        state = store.get_sync_state()
        assert (state.files_fingerprint, state.store_fingerprint) == ("aaaa", "bbbb")
