"""
Pytest configuration and shared fixtures

Every store shares one temporary SQLite file per test, the way a Ledger
does in production.
"""

import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

import pytest

from aggregate_ledger.kernel.event_store import SQLiteEventStore
from aggregate_ledger.kernel.policy import LedgerPolicy
from aggregate_ledger.kernel.projection_store import SQLiteProjectionStore
from aggregate_ledger.kernel.snapshot_store import InMemorySnapshotStore, SQLiteSnapshotStore
from aggregate_ledger.kernel.time import TestTimeProvider
from aggregate_ledger.kernel.tracker import SQLitePublishedMessageTracker
from aggregate_ledger.ledger import Ledger


@pytest.fixture
def temp_db() -> Iterator[Path]:
    """Provide a temporary database file that's cleaned up after test"""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = Path(f.name)

    yield db_path

    # WAL mode leaves -wal and -shm companions next to the database
    for path in (db_path, Path(f"{db_path}-wal"), Path(f"{db_path}-shm")):
        if path.exists():
            path.unlink()


@pytest.fixture
def event_store(temp_db: Path) -> SQLiteEventStore:
    """Provide a fresh event store for each test"""
    return SQLiteEventStore(temp_db)


@pytest.fixture
def projection_store(temp_db: Path) -> SQLiteProjectionStore:
    return SQLiteProjectionStore(temp_db)


@pytest.fixture
def snapshot_store(temp_db: Path) -> SQLiteSnapshotStore:
    return SQLiteSnapshotStore(temp_db)


@pytest.fixture
def memory_snapshots() -> InMemorySnapshotStore:
    return InMemorySnapshotStore()


@pytest.fixture
def tracker(temp_db: Path) -> SQLitePublishedMessageTracker:
    return SQLitePublishedMessageTracker(temp_db)


@pytest.fixture
def test_time() -> TestTimeProvider:
    """
    Provide a controllable time provider for deterministic tests

    Default time: 2025-01-15 12:00:00 UTC
    """
    return TestTimeProvider(datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def policy() -> LedgerPolicy:
    return LedgerPolicy()


@pytest.fixture
def ledger(temp_db: Path, test_time: TestTimeProvider) -> Ledger:
    """Fully wired ledger on a temporary database"""
    return Ledger(temp_db, time_provider=test_time)
