"""TTL lease guarding the mutating sync directions.

The store arbitrates: acquisition is one conditional UPDATE on the
``sync_state`` row, so two processes racing for the lease cannot both win.
Contention is reported immediately; there is no waiting or retrying here.
An unclean exit leaves the lease held until it expires on its own.
"""

from __future__ import annotations

import logging
import os
import signal
import socket
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Callable, Generator, Optional

from taskflow.sync.errors import LeaseContention, SyncInterrupted
from taskflow.sync.models import SyncState, format_timestamp, utc_now
from taskflow.sync.store import TaskStore

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 60

# Signals that trigger a best-effort release
HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def default_owner(mode: str) -> str:
    """Lease owner tag identifying this invocation."""
    return f"task-sync:{mode}:{socket.gethostname()}:{os.getpid()}"


class LeaseLock:
    """Time-bounded mutual exclusion stored on the sync_state singleton."""

    def __init__(
        self,
        store: TaskStore,
        owner: str,
        *,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the lease.

        Args:
            store: Store holding the sync_state row.
            owner: Identifier recorded as the lease holder.
            ttl_seconds: Lease lifetime from the moment of acquisition.
            clock: Source of the current time (injectable for tests).
        """
        self.store = store
        self.owner = owner
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self.held = False

    def acquire(self) -> SyncState:
        """Take the lease or fail fast.

        Returns:
            The sync state as recorded after acquisition.

        Raises:
            LeaseContention: If an unexpired lease is held by someone else.
        """
        now = self.clock()
        expiry = format_timestamp(now + timedelta(seconds=self.ttl_seconds))
        if not self.store.try_acquire_lease(self.owner, expiry, format_timestamp(now)):
            state = self.store.get_sync_state()
            holder, until = state.lease_owner, state.lease_expiry
            if not state.lease_active_at(format_timestamp(now)):
                # Lost on a write lock, not to a recorded lease
                holder, until = "another database writer", None
            logger.warning("Lease contention: held by %s until %s", holder, until)
            raise LeaseContention(holder, until)

        self.held = True
        logger.info("Lease acquired by %s until %s", self.owner, expiry)
        return self.store.get_sync_state()

    def release(self, result: str) -> SyncState:
        """Clear the lease and record ``result`` with the current time."""
        self.store.release_lease(self.owner, result, format_timestamp(self.clock()))
        self.held = False
        logger.info("Lease released by %s (%s)", self.owner, result)
        return self.store.get_sync_state()

    def _release_quietly(self, result: str) -> None:
        try:
            self.release(result)
        except Exception:
            logger.exception("Failed to release lease held by %s", self.owner)

    @contextmanager
    def hold(self) -> Generator[SyncState, None, None]:
        """Hold the lease for the duration of the block.

        SIGINT/SIGTERM inside the block raise ``SyncInterrupted`` so open
        transactions roll back before the lease is released. The outcome
        recorded on release is ``ok``, ``failed: <error>`` or
        ``interrupted: <SIGNAL>``.
        """
        state = self.acquire()
        previous = _install_signal_handlers()
        try:
            yield state
        except SyncInterrupted as e:
            self._release_quietly(f"interrupted: {e.signal_name}")
            raise
        except BaseException as e:
            self._release_quietly(f"failed: {e}" if str(e) else f"failed: {type(e).__name__}")
            raise
        else:
            self.release("ok")
        finally:
            _restore_signal_handlers(previous)


def _raise_interrupted(signum: int, frame: object) -> None:
    name = signal.Signals(signum).name
    raise SyncInterrupted(name, 128 + signum)


def _install_signal_handlers() -> dict[int, object]:
    previous: dict[int, object] = {}
    for sig in HANDLED_SIGNALS:
        try:
            previous[sig] = signal.signal(sig, _raise_interrupted)
        except ValueError:
            # Not the main thread; signals stay with their current handlers
            logger.debug("Cannot install handler for %s outside main thread", sig)
    return previous


def _restore_signal_handlers(previous: dict[int, object]) -> None:
    for sig, handler in previous.items():
        signal.signal(sig, handler)  # type: ignore[arg-type]


def lease_status(state: SyncState, now: Optional[datetime] = None) -> str:
    """Human-readable description of the lease recorded in ``state``."""
    if not state.is_leased:
        return "free"
    stamp = format_timestamp(now or utc_now())
    if state.lease_active_at(stamp):
        return f"held by {state.lease_owner} until {state.lease_expiry}"
    return f"expired (last held by {state.lease_owner})"


__all__ = [
    "DEFAULT_TTL_SECONDS",
    "LeaseLock",
    "default_owner",
    "lease_status",
]
