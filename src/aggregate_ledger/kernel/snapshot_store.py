"""
Snapshot Store - cached aggregate state to bound replay cost

A snapshot at version V is only meaningful together with the events
after V. Snapshots are a pure optimisation: losing all of them only makes
loads slower, never wrong.
"""

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, Protocol

from pydantic import BaseModel, Field

from aggregate_ledger.kernel.errors import SnapshotIntegrityError, StoreUnavailable
from aggregate_ledger.kernel.logging import get_logger

logger = get_logger(__name__)


class Snapshot(BaseModel):
    """Serialized aggregate state valid after `version`"""

    aggregate_id: str
    aggregate_type: str
    version: int = Field(..., ge=1)
    state: dict[str, Any]
    taken_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = {"frozen": True}

    def state_json(self) -> str:
        """Canonical JSON used for storage and for identical-content checks"""
        return json.dumps(self.state, sort_keys=True, separators=(",", ":"))


class SnapshotStore(Protocol):
    """Port implemented by every snapshot backend"""

    def latest_snapshot(self, aggregate_id: str) -> Snapshot | None:
        """Most recent snapshot for an aggregate, or None"""
        ...

    def save(self, snapshot: Snapshot) -> None:
        """Persist a snapshot (idempotent for identical content)"""
        ...


class InMemorySnapshotStore:
    """Dict-backed snapshot store for tests and local development"""

    def __init__(self) -> None:
        self._snapshots: dict[str, dict[int, Snapshot]] = {}

    def latest_snapshot(self, aggregate_id: str) -> Snapshot | None:
        versions = self._snapshots.get(aggregate_id)
        if not versions:
            return None
        return versions[max(versions)]

    def save(self, snapshot: Snapshot) -> None:
        versions = self._snapshots.setdefault(snapshot.aggregate_id, {})
        existing = versions.get(snapshot.version)
        if existing is not None:
            if existing.state_json() != snapshot.state_json():
                raise SnapshotIntegrityError(snapshot.aggregate_id, snapshot.version)
            return
        versions[snapshot.version] = snapshot

    def prune(self, aggregate_id: str, keep: int = 1) -> int:
        versions = self._snapshots.get(aggregate_id, {})
        doomed = sorted(versions)[:-keep] if keep > 0 else sorted(versions)
        for version in doomed:
            del versions[version]
        return len(doomed)

    def count(self, aggregate_id: str) -> int:
        return len(self._snapshots.get(aggregate_id, {}))


class SQLiteSnapshotStore:
    """
    SQLite-based snapshot store

    Schema:
    - snapshots table keyed by (aggregate_id, version); state stored as
      canonical JSON text
    """

    def __init__(self, db_path: str | Path, *, timeout_seconds: float = 5.0) -> None:
        """
        Args:
            db_path: Path to SQLite database file (can be same as event store)
            timeout_seconds: SQLite busy timeout
        """
        self.db_path = Path(db_path)
        self.timeout_seconds = timeout_seconds
        self._initialize_schema()

    def _initialize_schema(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS snapshots (
                    aggregate_id TEXT NOT NULL,
                    aggregate_type TEXT NOT NULL,
                    version INTEGER NOT NULL,
                    state_json TEXT NOT NULL,
                    taken_at TEXT NOT NULL,

                    PRIMARY KEY (aggregate_id, version)
                )
            """)
            conn.commit()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(str(self.db_path), timeout=self.timeout_seconds)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def latest_snapshot(self, aggregate_id: str) -> Snapshot | None:
        """
        Load the highest-version snapshot for an aggregate

        Raises:
            StoreUnavailable: If the snapshot table cannot be read
        """
        try:
            with self._connect() as conn:
                row = conn.execute(
                    """
                    SELECT aggregate_id, aggregate_type, version, state_json, taken_at
                    FROM snapshots
                    WHERE aggregate_id = ?
                    ORDER BY version DESC
                    LIMIT 1
                    """,
                    (aggregate_id,),
                ).fetchone()
        except sqlite3.Error as e:
            raise StoreUnavailable("latest_snapshot", e) from e

        if not row:
            return None
        return Snapshot(
            aggregate_id=row["aggregate_id"],
            aggregate_type=row["aggregate_type"],
            version=row["version"],
            state=json.loads(row["state_json"]),
            taken_at=datetime.fromisoformat(row["taken_at"]),
        )

    def save(self, snapshot: Snapshot) -> None:
        """
        Persist a snapshot

        Rewriting the same (aggregate_id, version) with identical state is a
        no-op; different state at the same key is rejected.

        Raises:
            SnapshotIntegrityError: On conflicting content at the same version
            StoreUnavailable: On database failure
        """
        state_json = snapshot.state_json()
        try:
            with self._connect() as conn:
                existing = conn.execute(
                    "SELECT state_json FROM snapshots WHERE aggregate_id = ? AND version = ?",
                    (snapshot.aggregate_id, snapshot.version),
                ).fetchone()
                if existing is not None:
                    if existing["state_json"] != state_json:
                        raise SnapshotIntegrityError(snapshot.aggregate_id, snapshot.version)
                    return

                conn.execute(
                    """
                    INSERT INTO snapshots (aggregate_id, aggregate_type, version, state_json, taken_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (
                        snapshot.aggregate_id,
                        snapshot.aggregate_type,
                        snapshot.version,
                        state_json,
                        snapshot.taken_at.isoformat(),
                    ),
                )
                conn.commit()
        except sqlite3.IntegrityError:
            # Lost a race with a writer saving the same snapshot
            return self._verify_identical(snapshot, state_json)
        except sqlite3.Error as e:
            raise StoreUnavailable("save_snapshot", e) from e

        logger.debug(
            "Snapshot saved",
            aggregate_id=snapshot.aggregate_id,
            version=snapshot.version,
        )

    def _verify_identical(self, snapshot: Snapshot, state_json: str) -> None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT state_json FROM snapshots WHERE aggregate_id = ? AND version = ?",
                (snapshot.aggregate_id, snapshot.version),
            ).fetchone()
        if row is None or row["state_json"] != state_json:
            raise SnapshotIntegrityError(snapshot.aggregate_id, snapshot.version)

    def prune(self, aggregate_id: str, keep: int = 1) -> int:
        """
        Delete all but the newest `keep` snapshots of an aggregate

        Returns:
            Number of snapshots deleted
        """
        with self._connect() as conn:
            cursor = conn.execute(
                """
                DELETE FROM snapshots
                WHERE aggregate_id = ? AND version NOT IN (
                    SELECT version FROM snapshots WHERE aggregate_id = ?
                    ORDER BY version DESC LIMIT ?
                )
                """,
                (aggregate_id, aggregate_id, keep),
            )
            conn.commit()
            return cursor.rowcount

    def count(self, aggregate_id: str) -> int:
        with self._connect() as conn:
            return conn.execute(
                "SELECT COUNT(*) FROM snapshots WHERE aggregate_id = ?", (aggregate_id,)
            ).fetchone()[0]
