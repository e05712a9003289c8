"""
Published Message Tracker - durable per-channel publishing cursor

One row per outbound channel: the global position of the last event the
channel acknowledged. The cursor only moves forward, and only after a
confirmed delivery, so a crash can cause redelivery but never loss.
"""

import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

from pydantic import BaseModel

from aggregate_ledger.kernel.errors import StoreUnavailable
from aggregate_ledger.kernel.logging import get_logger
from aggregate_ledger.kernel.metrics import channel_cursor_position

logger = get_logger(__name__)


class TrackedChannel(BaseModel):
    """Cursor row for one channel"""

    channel_id: str
    last_position: int
    updated_at: datetime


class SQLitePublishedMessageTracker:
    """
    SQLite-based channel cursor store

    Schema:
    - published_messages table: channel_id, last_position, updated_at
    """

    def __init__(self, db_path: str | Path, *, timeout_seconds: float = 5.0) -> None:
        self.db_path = Path(db_path)
        self.timeout_seconds = timeout_seconds
        self._initialize_schema()

    def _initialize_schema(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS published_messages (
                    channel_id TEXT PRIMARY KEY,
                    last_position INTEGER NOT NULL,
                    updated_at TEXT NOT NULL
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

    def last_position(self, channel_id: str) -> int:
        """Last acknowledged position (0 for untracked channels)"""
        try:
            with self._connect() as conn:
                row = conn.execute(
                    "SELECT last_position FROM published_messages WHERE channel_id = ?",
                    (channel_id,),
                ).fetchone()
        except sqlite3.Error as e:
            raise StoreUnavailable("tracker_read", e) from e
        return row["last_position"] if row else 0

    def advance(self, channel_id: str, position: int) -> bool:
        """
        Move a channel's cursor forward

        Compare-and-set: a position at or behind the stored cursor leaves it
        untouched, so a slower publishing run can never rewind a faster one.

        Returns:
            True if the cursor moved
        """
        try:
            with self._connect() as conn:
                cursor = conn.execute(
                    """
                    INSERT INTO published_messages (channel_id, last_position, updated_at)
                    VALUES (?, ?, ?)
                    ON CONFLICT(channel_id) DO UPDATE SET
                        last_position = excluded.last_position,
                        updated_at = excluded.updated_at
                    WHERE published_messages.last_position < excluded.last_position
                    """,
                    (channel_id, position, datetime.now(timezone.utc).isoformat()),
                )
                conn.commit()
                moved = cursor.rowcount > 0
        except sqlite3.Error as e:
            raise StoreUnavailable("tracker_advance", e) from e

        if moved:
            channel_cursor_position.labels(channel=channel_id).set(position)
        else:
            logger.debug("Cursor already past position", channel_id=channel_id, position=position)
        return moved

    def reset(self, channel_id: str) -> None:
        """Forget a channel's cursor (used before rebuilding a read model)"""
        with self._connect() as conn:
            conn.execute("DELETE FROM published_messages WHERE channel_id = ?", (channel_id,))
            conn.commit()
        channel_cursor_position.labels(channel=channel_id).set(0)
        logger.info("Channel cursor reset", channel_id=channel_id)

    def channels(self) -> list[TrackedChannel]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT channel_id, last_position, updated_at FROM published_messages "
                "ORDER BY channel_id"
            ).fetchall()
        return [
            TrackedChannel(
                channel_id=row["channel_id"],
                last_position=row["last_position"],
                updated_at=datetime.fromisoformat(row["updated_at"]),
            )
            for row in rows
        ]
