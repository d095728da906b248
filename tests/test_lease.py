"""Tests for the TTL lease lock."""

from __future__ import annotations

import os
import signal
import sqlite3
import time

import pytest

from taskflow.sync.errors import LeaseContention, SyncInterrupted
from taskflow.sync.lease import LeaseLock, default_owner, lease_status
from taskflow.sync.models import SyncState
from taskflow.sync.store import TaskStore


@pytest.fixture
def lease(store: TaskStore, clock) -> LeaseLock:
    return LeaseLock(store, "runner-a", ttl_seconds=60, clock=clock)


class TestAcquire:
    def test_records_owner_and_expiry(self, lease: LeaseLock) -> None:
        state = lease.acquire()
        assert state.lease_owner == "runner-a"
        assert state.lease_expiry == "2026-02-20T15:01:00.000Z"
        assert lease.held

    def test_contention_reports_holder(self, store: TaskStore, clock, lease) -> None:
        lease.acquire()
        other = LeaseLock(store, "runner-b", clock=clock)

        with pytest.raises(LeaseContention) as exc:
            other.acquire()

        assert exc.value.owner == "runner-a"
        assert exc.value.expiry == "2026-02-20T15:01:00.000Z"
        assert str(exc.value) == "Sync locked by runner-a until 2026-02-20T15:01:00.000Z"

    def test_exactly_one_of_two_wins(self, store: TaskStore, clock) -> None:
        first = LeaseLock(store, "one", clock=clock)
        second = LeaseLock(store, "two", clock=clock)

        results = []
        for lock in (first, second):
            try:
                lock.acquire()
                results.append(lock.owner)
            except LeaseContention:
                pass

        assert results == ["one"]

    def test_expired_lease_taken_over(self, store: TaskStore, clock, lease) -> None:
        lease.acquire()
        clock.advance(61)

        other = LeaseLock(store, "runner-b", clock=clock)
        state = other.acquire()
        assert state.lease_owner == "runner-b"

    def test_not_expired_at_ttl_boundary(self, store: TaskStore, clock, lease) -> None:
        lease.acquire()
        clock.advance(59)

        with pytest.raises(LeaseContention):
            LeaseLock(store, "runner-b", clock=clock).acquire()

    def test_contention_records_nothing(self, store: TaskStore, clock, lease) -> None:
        lease.acquire()
        with pytest.raises(LeaseContention):
            LeaseLock(store, "runner-b", clock=clock).acquire()
        assert store.get_sync_state().last_result is None

    def test_write_locked_database_is_quick_contention(self, settings, clock) -> None:
        holder = sqlite3.connect(str(settings.db_path), isolation_level=None)
        holder.execute("BEGIN IMMEDIATE")
        store = TaskStore(settings.db_path, lease_timeout=0.05)
        started = time.monotonic()
        try:
            with pytest.raises(LeaseContention, match="another database writer"):
                LeaseLock(store, "runner-b", clock=clock).acquire()
        finally:
            holder.execute("ROLLBACK")
            holder.close()

        assert time.monotonic() - started < store.busy_timeout
        assert not store.get_sync_state().is_leased


class TestRelease:
    def test_release_clears_and_records(self, store: TaskStore, clock, lease) -> None:
        lease.acquire()
        clock.advance(5)
        state = lease.release("ok")

        assert not state.is_leased
        assert state.last_result == "ok"
        assert state.last_sync_at == "2026-02-20T15:00:05.000Z"
        assert not lease.held


class TestHold:
    def test_success_records_ok(self, store: TaskStore, lease: LeaseLock) -> None:
        with lease.hold() as state:
            assert state.lease_owner == "runner-a"

        state = store.get_sync_state()
        assert not state.is_leased
        assert state.last_result == "ok"

    def test_failure_records_message(self, store: TaskStore, lease: LeaseLock) -> None:
        with pytest.raises(RuntimeError):
            with lease.hold():
                raise RuntimeError("disk full")

        state = store.get_sync_state()
        assert not state.is_leased
        assert state.last_result == "failed: disk full"

    def test_failure_without_message_uses_type(self, store: TaskStore, lease) -> None:
        with pytest.raises(KeyError):
            with lease.hold():
                raise KeyError()
        assert store.get_sync_state().last_result == "failed: KeyError"

    def test_signal_interrupts_and_releases(self, store: TaskStore, lease) -> None:
        with pytest.raises(SyncInterrupted) as exc:
            with lease.hold():
                os.kill(os.getpid(), signal.SIGTERM)

        assert exc.value.signal_name == "SIGTERM"
        assert exc.value.exit_code == 128 + signal.SIGTERM
        state = store.get_sync_state()
        assert not state.is_leased
        assert state.last_result == "interrupted: SIGTERM"

    def test_restores_signal_handlers(self, lease: LeaseLock) -> None:
        before = signal.getsignal(signal.SIGINT)
        with lease.hold():
            assert signal.getsignal(signal.SIGINT) is not before
        assert signal.getsignal(signal.SIGINT) is before

    def test_contention_does_not_release_holder(self, store, clock, lease) -> None:
        lease.acquire()
        other = LeaseLock(store, "runner-b", clock=clock)

        with pytest.raises(LeaseContention):
            with other.hold():
                pytest.fail("should not enter")

        assert store.get_sync_state().lease_owner == "runner-a"


class TestHelpers:
    def test_default_owner_format(self) -> None:
        owner = default_owner("files-to-db")
        assert owner.startswith("task-sync:files-to-db:")
        assert owner.endswith(f":{os.getpid()}")

    def test_lease_status_free(self) -> None:
        assert lease_status(SyncState()) == "free"

    def test_lease_status_held(self, clock) -> None:
        state = SyncState(lease_owner="x", lease_expiry="2026-02-20T15:01:00.000Z")
        assert lease_status(state, clock()) == "held by x until 2026-02-20T15:01:00.000Z"

    def test_lease_status_expired(self, clock) -> None:
        state = SyncState(lease_owner="x", lease_expiry="2026-02-20T14:00:00.000Z")
        assert lease_status(state, clock()) == "expired (last held by x)"
