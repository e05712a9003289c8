"""
SQLite Event Store - Append-only event log with optimistic concurrency

The event store is the single source of truth. It provides:
- Append-only semantics (events never modified or deleted)
- Optimistic locking via per-aggregate stream versions
- Idempotency via command_id (a retried command returns its original events)
- A global commit position for publishing in commit order

Writes take SQLite's write lock only for the duration of one append
transaction; there is no application-level lock spanning aggregates.
"""

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Iterator

from aggregate_ledger.kernel.errors import (
    CommandIdReused,
    ConcurrencyConflict,
    EventStoreError,
    StoreUnavailable,
)
from aggregate_ledger.kernel.events import DomainEvent
from aggregate_ledger.kernel.logging import get_logger
from aggregate_ledger.kernel.metrics import (
    events_appended_total,
    idempotent_appends_total,
    stream_version_conflicts_total,
)
from aggregate_ledger.kernel.retry import retry_on_sqlite_lock

logger = get_logger(__name__)

_COLUMNS = """
    position, event_id, aggregate_id, aggregate_type, version, command_id,
    event_type, occurred_at, actor_id, payload_version, payload_json
"""


def _same_content(recorded: list[DomainEvent], pending: list[DomainEvent]) -> bool:
    """Whether a resubmitted batch matches what its command recorded (versions aside)"""
    if len(recorded) != len(pending):
        return False
    return all(
        old.event_type == new.event_type
        and old.payload_version == new.payload_version
        and old.payload == json.loads(json.dumps(new.payload))
        for old, new in zip(recorded, pending)
    )


class SQLiteEventStore:
    """
    SQLite-based event store with append-only semantics

    Uses WAL mode so readers never block the writer and vice versa.

    Schema:
    - events table: append-only event log, `position` is the global
      commit order (AUTOINCREMENT, never reused)
    - Unique constraints: (aggregate_id, version), event_id
    - Indices: (aggregate_id, command_id), event_type, aggregate_type
    """

    def __init__(
        self,
        db_path: str | Path,
        *,
        timeout_seconds: float = 5.0,
        fetch_size: int = 256,
    ) -> None:
        """
        Initialize event store with SQLite database

        Args:
            db_path: Path to SQLite database file
            timeout_seconds: Busy timeout while waiting for the write lock
            fetch_size: Rows fetched per round-trip by the lazy readers
        """
        self.db_path = Path(db_path)
        self.timeout_seconds = timeout_seconds
        self.fetch_size = fetch_size
        self._initialize_schema()

    def _initialize_schema(self) -> None:
        """Create tables and indices if they don't exist"""
        try:
            with self._connect() as conn:
                conn.execute("PRAGMA journal_mode=WAL")
                conn.execute("PRAGMA synchronous=NORMAL")

                conn.execute("""
                    CREATE TABLE IF NOT EXISTS events (
                        position INTEGER PRIMARY KEY AUTOINCREMENT,
                        event_id TEXT NOT NULL UNIQUE,
                        aggregate_id TEXT NOT NULL,
                        aggregate_type TEXT NOT NULL,
                        version INTEGER NOT NULL,
                        command_id TEXT NOT NULL,
                        event_type TEXT NOT NULL,
                        occurred_at TEXT NOT NULL,
                        actor_id TEXT,
                        payload_version INTEGER NOT NULL DEFAULT 1,
                        payload_json TEXT NOT NULL,

                        UNIQUE(aggregate_id, version)
                    )
                """)
                conn.execute(
                    "CREATE INDEX IF NOT EXISTS idx_events_command "
                    "ON events(aggregate_id, command_id)"
                )
                conn.execute(
                    "CREATE INDEX IF NOT EXISTS idx_events_type ON events(event_type)"
                )
                conn.execute(
                    "CREATE INDEX IF NOT EXISTS idx_events_aggregate_type "
                    "ON events(aggregate_type)"
                )
        except sqlite3.Error as e:
            raise StoreUnavailable("initialize_schema", e) from e

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """
        Open a connection in autocommit mode

        Transactions are opened explicitly with BEGIN IMMEDIATE so the
        version check and the inserts happen under one write lock.
        """
        conn = sqlite3.connect(
            str(self.db_path),
            timeout=self.timeout_seconds,
            isolation_level=None,
        )
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    # ========== Write side ==========

    def append(
        self,
        aggregate_id: str,
        expected_version: int,
        events: list[DomainEvent],
    ) -> list[DomainEvent]:
        """
        Append events to a stream with optimistic locking

        All events are written in one transaction or none are. Versions must
        run expected_version+1 .. expected_version+len(events).

        Args:
            aggregate_id: Stream to append to
            expected_version: Stream version the caller based its decision on
            events: New events, in order

        Returns:
            The persisted events with their global positions. If the
            command_id of the batch was already recorded for this stream,
            the originally persisted events are returned and nothing is written.

        Raises:
            ValueError: If events don't belong to the stream or skip versions
            ConcurrencyConflict: If the stream moved past expected_version
            StoreUnavailable: If SQLite stayed locked or failed
        """
        if not events:
            return []

        self._validate_batch(aggregate_id, expected_version, events)

        try:
            return self._append_transaction(aggregate_id, expected_version, events)
        except sqlite3.Error as e:
            logger.error(
                "Event append failed",
                aggregate_id=aggregate_id,
                expected_version=expected_version,
                error=str(e),
            )
            raise StoreUnavailable("append", e) from e

    def _validate_batch(
        self, aggregate_id: str, expected_version: int, events: list[DomainEvent]
    ) -> None:
        if expected_version < 0:
            raise ValueError("expected_version cannot be negative")
        for offset, event in enumerate(events, start=1):
            if event.aggregate_id != aggregate_id:
                raise ValueError(
                    f"Event {event.event_id} belongs to {event.aggregate_id}, "
                    f"not {aggregate_id}"
                )
            if event.version != expected_version + offset:
                raise ValueError(
                    f"Event {event.event_id} has version {event.version}, "
                    f"expected {expected_version + offset}"
                )

    @retry_on_sqlite_lock()
    def _append_transaction(
        self,
        aggregate_id: str,
        expected_version: int,
        events: list[DomainEvent],
    ) -> list[DomainEvent]:
        aggregate_type = events[0].aggregate_type
        command_id = events[0].command_id

        with self._connect() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                existing = self._select_by_command(conn, aggregate_id, command_id)
                if existing:
                    conn.rollback()
                    if not _same_content(existing, events):
                        logger.warning(
                            "Command id reused for different events",
                            aggregate_id=aggregate_id,
                            command_id=command_id,
                        )
                        raise CommandIdReused(aggregate_id, command_id)
                    idempotent_appends_total.labels(aggregate_type=aggregate_type).inc()
                    logger.info(
                        "Command already recorded, returning original events",
                        aggregate_id=aggregate_id,
                        command_id=command_id,
                        event_count=len(existing),
                    )
                    return existing

                current_version = self._get_stream_version(conn, aggregate_id)
                if current_version != expected_version:
                    raise ConcurrencyConflict(
                        aggregate_id, expected_version, current_version
                    )

                persisted: list[DomainEvent] = []
                for event in events:
                    cursor = conn.execute(
                        """
                        INSERT INTO events (
                            event_id, aggregate_id, aggregate_type, version,
                            command_id, event_type, occurred_at, actor_id,
                            payload_version, payload_json
                        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                        """,
                        (
                            event.event_id,
                            event.aggregate_id,
                            event.aggregate_type,
                            event.version,
                            event.command_id,
                            event.event_type,
                            event.occurred_at.isoformat(),
                            event.actor_id,
                            event.payload_version,
                            json.dumps(event.payload),
                        ),
                    )
                    persisted.append(event.with_position(cursor.lastrowid))

                conn.commit()

            except ConcurrencyConflict:
                conn.rollback()
                stream_version_conflicts_total.labels(aggregate_type=aggregate_type).inc()
                logger.warning(
                    "Stream version conflict",
                    aggregate_id=aggregate_id,
                    expected_version=expected_version,
                )
                raise

            except sqlite3.IntegrityError as e:
                conn.rollback()
                error_msg = str(e).lower()
                if "aggregate_id" in error_msg and "version" in error_msg:
                    stream_version_conflicts_total.labels(
                        aggregate_type=aggregate_type
                    ).inc()
                    current = self._get_stream_version(conn, aggregate_id)
                    raise ConcurrencyConflict(aggregate_id, expected_version, current) from e
                raise EventStoreError(f"Failed to append events: {e}") from e

            except BaseException:
                if conn.in_transaction:
                    conn.rollback()
                raise

        for event in persisted:
            events_appended_total.labels(
                aggregate_type=event.aggregate_type,
                event_type=event.event_type,
            ).inc()
        logger.debug(
            "Events appended",
            aggregate_id=aggregate_id,
            from_version=expected_version + 1,
            to_version=persisted[-1].version,
            last_position=persisted[-1].position,
        )
        return persisted

    # ========== Read side ==========

    def read_stream(
        self, aggregate_id: str, since_version: int = 0
    ) -> Iterator[DomainEvent]:
        """
        Lazily read one aggregate's events with version > since_version

        Each call starts a fresh read. Unknown aggregates yield nothing.
        """
        return self._iterate(
            f"SELECT {_COLUMNS} FROM events "
            "WHERE aggregate_id = ? AND version > ? ORDER BY version ASC",
            (aggregate_id, since_version),
            operation="read_stream",
        )

    def read_all(
        self, since_position: int = 0, limit: int | None = None
    ) -> Iterator[DomainEvent]:
        """
        Lazily read every event with position > since_position in commit order

        Args:
            since_position: Exclusive global cursor (0 = beginning)
            limit: Maximum number of events, or None for all
        """
        query = f"SELECT {_COLUMNS} FROM events WHERE position > ? ORDER BY position ASC"
        params: tuple[Any, ...] = (since_position,)
        if limit is not None:
            query += " LIMIT ?"
            params = (since_position, limit)
        return self._iterate(query, params, operation="read_all")

    def load_stream(self, aggregate_id: str) -> list[DomainEvent]:
        """Eagerly load a whole stream (convenience for tests and tools)"""
        return list(self.read_stream(aggregate_id))

    def find_by_command(self, aggregate_id: str, command_id: str) -> list[DomainEvent]:
        """Events a command produced in one stream (empty if it never committed)"""
        try:
            with self._connect() as conn:
                return self._select_by_command(conn, aggregate_id, command_id)
        except sqlite3.Error as e:
            raise StoreUnavailable("find_by_command", e) from e

    def query_events(
        self,
        *,
        aggregate_type: str | None = None,
        event_type: str | None = None,
        limit: int | None = None,
    ) -> list[DomainEvent]:
        """
        Query events by type criteria, in commit order

        Args:
            aggregate_type: Filter by aggregate type (e.g., "user")
            event_type: Filter by event type (e.g., "WishMade")
            limit: Maximum number of events to return
        """
        conditions = []
        params: list[Any] = []

        if aggregate_type:
            conditions.append("aggregate_type = ?")
            params.append(aggregate_type)

        if event_type:
            conditions.append("event_type = ?")
            params.append(event_type)

        where_clause = " AND ".join(conditions) if conditions else "1=1"
        query = f"SELECT {_COLUMNS} FROM events WHERE {where_clause} ORDER BY position ASC"
        if limit:
            query += " LIMIT ?"
            params.append(limit)

        return list(self._iterate(query, tuple(params), operation="query_events"))

    def get_stream_version(self, aggregate_id: str) -> int:
        """Current version of a stream (0 if it doesn't exist)"""
        try:
            with self._connect() as conn:
                return self._get_stream_version(conn, aggregate_id)
        except sqlite3.Error as e:
            raise StoreUnavailable("get_stream_version", e) from e

    def last_position(self) -> int:
        """Highest committed global position (0 for an empty store)"""
        return self._scalar("SELECT MAX(position) FROM events", "last_position") or 0

    def count_events(self) -> int:
        """Get total number of events in store"""
        return self._scalar("SELECT COUNT(*) FROM events", "count_events")

    def count_streams(self) -> int:
        """Get total number of distinct streams"""
        return self._scalar(
            "SELECT COUNT(DISTINCT aggregate_id) FROM events", "count_streams"
        )

    # ========== Internals ==========

    def _iterate(
        self, query: str, params: tuple[Any, ...], *, operation: str
    ) -> Iterator[DomainEvent]:
        """Run a SELECT inside one read snapshot and yield rows in batches"""
        try:
            with self._connect() as conn:
                cursor = conn.execute(query, params)
                while True:
                    rows = cursor.fetchmany(self.fetch_size)
                    if not rows:
                        break
                    for row in rows:
                        yield self._row_to_event(row)
        except sqlite3.Error as e:
            raise StoreUnavailable(operation, e) from e

    def _scalar(self, query: str, operation: str) -> int:
        try:
            with self._connect() as conn:
                return conn.execute(query).fetchone()[0]
        except sqlite3.Error as e:
            raise StoreUnavailable(operation, e) from e

    def _get_stream_version(self, conn: sqlite3.Connection, aggregate_id: str) -> int:
        row = conn.execute(
            "SELECT MAX(version) FROM events WHERE aggregate_id = ?",
            (aggregate_id,),
        ).fetchone()
        return row[0] if row[0] is not None else 0

    def _select_by_command(
        self, conn: sqlite3.Connection, aggregate_id: str, command_id: str
    ) -> list[DomainEvent]:
        cursor = conn.execute(
            f"SELECT {_COLUMNS} FROM events "
            "WHERE aggregate_id = ? AND command_id = ? ORDER BY version ASC",
            (aggregate_id, command_id),
        )
        return [self._row_to_event(row) for row in cursor.fetchall()]

    def _row_to_event(self, row: sqlite3.Row) -> DomainEvent:
        return DomainEvent(
            event_id=row["event_id"],
            aggregate_id=row["aggregate_id"],
            aggregate_type=row["aggregate_type"],
            event_type=row["event_type"],
            version=row["version"],
            occurred_at=datetime.fromisoformat(row["occurred_at"]),
            payload=json.loads(row["payload_json"]),
            payload_version=row["payload_version"],
            command_id=row["command_id"],
            actor_id=row["actor_id"],
            position=row["position"],
        )
