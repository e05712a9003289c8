"""
Projection Store - persisted read-model checkpoints

A read model is disposable: it can always be rebuilt from the event log.
Checkpointing it here just saves the replay on restart. Each row holds the
read-model state, the per-aggregate versions already applied, and the
global position the checkpoint corresponds to.
"""

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator

from pydantic import BaseModel, Field


class ProjectionState(BaseModel):
    """Checkpoint of one projection"""

    name: str
    position: int = 0
    state: dict[str, Any]
    applied_versions: dict[str, int] = Field(default_factory=dict)
    updated_at: datetime


class SQLiteProjectionStore:
    """
    SQLite-based projection checkpoint store

    Schema:
    - projections table: name, position, state_json, applied_json, updated_at
    """

    def __init__(self, db_path: str | Path) -> None:
        """
        Args:
            db_path: Path to SQLite database file (can be same as event store)
        """
        self.db_path = Path(db_path)
        self._initialize_schema()

    def _initialize_schema(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS projections (
                    name TEXT PRIMARY KEY,
                    position INTEGER NOT NULL DEFAULT 0,
                    state_json TEXT NOT NULL,
                    applied_json TEXT NOT NULL DEFAULT '{}',
                    updated_at TEXT NOT NULL
                )
            """)
            conn.commit()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def save(
        self,
        name: str,
        state: dict[str, Any],
        position: int = 0,
        applied_versions: dict[str, int] | None = None,
    ) -> None:
        """
        Save or replace a projection checkpoint

        Args:
            name: Projection name (e.g., "wish_board")
            state: Read-model state (must be JSON-serializable)
            position: Global position the state reflects
            applied_versions: Highest applied version per aggregate id
        """
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO projections (name, position, state_json, applied_json, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(name) DO UPDATE SET
                    position = excluded.position,
                    state_json = excluded.state_json,
                    applied_json = excluded.applied_json,
                    updated_at = excluded.updated_at
            """,
                (
                    name,
                    position,
                    json.dumps(state),
                    json.dumps(applied_versions or {}),
                    datetime.now(timezone.utc).isoformat(),
                ),
            )
            conn.commit()

    def load(self, name: str) -> ProjectionState | None:
        """Load a projection checkpoint by name"""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT name, position, state_json, applied_json, updated_at "
                "FROM projections WHERE name = ?",
                (name,),
            ).fetchone()

        if not row:
            return None

        return ProjectionState(
            name=row["name"],
            position=row["position"],
            state=json.loads(row["state_json"]),
            applied_versions=json.loads(row["applied_json"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    def delete(self, name: str) -> None:
        """Delete a projection checkpoint (before rebuilding)"""
        with self._connect() as conn:
            conn.execute("DELETE FROM projections WHERE name = ?", (name,))
            conn.commit()

    def list_projections(self) -> list[str]:
        with self._connect() as conn:
            cursor = conn.execute("SELECT name FROM projections ORDER BY name")
            return [row["name"] for row in cursor.fetchall()]
