"""
Pessimistic aggregate locks

Optional alternative to optimistic concurrency for hot aggregates: hold an
exclusive in-process lock on one aggregate id for the whole
load-mutate-save cycle. Waits are always bounded; running out of time
raises LockTimeout, which callers treat as retryable.
"""

import threading
from collections.abc import Iterator
from contextlib import contextmanager

from aggregate_ledger.kernel.errors import LockTimeout
from aggregate_ledger.kernel.logging import get_logger

logger = get_logger(__name__)


class AggregateLockManager:
    """Per-aggregate-id locks; different ids never contend"""

    def __init__(self, default_timeout_seconds: float = 5.0) -> None:
        if default_timeout_seconds <= 0:
            raise ValueError("Lock timeout must be positive")
        self.default_timeout_seconds = default_timeout_seconds
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}
        self._holders: dict[str, int] = {}

    def _checkout(self, aggregate_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.setdefault(aggregate_id, threading.Lock())
            self._holders[aggregate_id] = self._holders.get(aggregate_id, 0) + 1
            return lock

    def _checkin(self, aggregate_id: str) -> None:
        with self._guard:
            remaining = self._holders[aggregate_id] - 1
            if remaining:
                self._holders[aggregate_id] = remaining
            else:
                # Nobody waits on this id any more
                del self._holders[aggregate_id]
                del self._locks[aggregate_id]

    @contextmanager
    def hold(self, aggregate_id: str, timeout: float | None = None) -> Iterator[None]:
        """
        Hold the exclusive lock for one aggregate id

        Raises:
            LockTimeout: If the lock was not acquired within the timeout
        """
        wait = self.default_timeout_seconds if timeout is None else timeout
        lock = self._checkout(aggregate_id)
        try:
            if not lock.acquire(timeout=wait):
                logger.warning(
                    "Aggregate lock wait timed out",
                    aggregate_id=aggregate_id,
                    timeout_seconds=wait,
                )
                raise LockTimeout(aggregate_id, wait)
            try:
                yield
            finally:
                lock.release()
        finally:
            self._checkin(aggregate_id)

    def is_locked(self, aggregate_id: str) -> bool:
        with self._guard:
            lock = self._locks.get(aggregate_id)
        return lock is not None and lock.locked()
