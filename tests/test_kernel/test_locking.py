"""Tests for per-aggregate pessimistic locks"""

import threading

import pytest

from aggregate_ledger.kernel.errors import LockTimeout
from aggregate_ledger.kernel.locking import AggregateLockManager


def test_hold_marks_aggregate_locked() -> None:
    locks = AggregateLockManager()

    with locks.hold("a"):
        assert locks.is_locked("a")

    assert not locks.is_locked("a")


def test_different_ids_do_not_contend() -> None:
    locks = AggregateLockManager(default_timeout_seconds=0.05)

    with locks.hold("a"):
        with locks.hold("b"):
            assert locks.is_locked("b")


def test_contended_lock_times_out() -> None:
    locks = AggregateLockManager(default_timeout_seconds=0.05)
    outcome: list[str] = []

    def contender() -> None:
        try:
            with locks.hold("a"):
                outcome.append("acquired")
        except LockTimeout:
            outcome.append("timeout")

    with locks.hold("a"):
        thread = threading.Thread(target=contender)
        thread.start()
        thread.join()

    assert outcome == ["timeout"]
    assert not locks.is_locked("a")


def test_lock_released_on_exception() -> None:
    locks = AggregateLockManager(default_timeout_seconds=0.05)

    with pytest.raises(RuntimeError):
        with locks.hold("a"):
            raise RuntimeError("boom")

    with locks.hold("a"):
        pass


def test_non_positive_timeout_rejected() -> None:
    with pytest.raises(ValueError):
        AggregateLockManager(default_timeout_seconds=0)
