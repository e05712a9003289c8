"""
Health check and event feed HTTP server

Liveness and readiness probes for orchestration, a detailed health page,
and the REST pull feed of committed events:

    GET /events?since=<position>&limit=<n>

returns the persistence envelopes of events with position > since, in
commit order. An empty array means the caller is caught up.
"""

import sqlite3
from pathlib import Path
from typing import Any

from flask import Flask, jsonify, request

from aggregate_ledger.kernel.codec import EventCodec
from aggregate_ledger.kernel.errors import StoreUnavailable
from aggregate_ledger.kernel.event_store import SQLiteEventStore
from aggregate_ledger.kernel.logging import generate_correlation_id, get_logger, set_correlation_id

logger = get_logger(__name__)

app = Flask(__name__)

MAX_EVENTS_PER_REQUEST = 1000

# Global state - will be set by initialize_health_server()
_db_path: Path | None = None
_ledger: Any = None  # Ledger instance for detailed health checks
_codec = EventCodec()


def initialize_health_server(db_path: str | Path, ledger: Any = None) -> None:
    """
    Initialize the server with a database path and optional Ledger instance

    Args:
        db_path: Path to SQLite database
        ledger: Optional Ledger for projection and channel details
    """
    global _db_path, _ledger
    _db_path = Path(db_path)
    _ledger = ledger
    logger.info("Health server initialized", db_path=str(_db_path))


@app.before_request
def _bind_correlation_id() -> None:
    set_correlation_id(request.headers.get("X-Correlation-ID") or generate_correlation_id())


@app.route("/health/live", methods=["GET"])
def liveness() -> tuple[Any, int]:
    """Liveness probe - the process is running"""
    return jsonify({"status": "alive", "service": "aggregate-ledger"}), 200


@app.route("/health/ready", methods=["GET"])
def readiness() -> tuple[Any, int]:
    """
    Readiness probe - the event store can be queried

    Returns:
        200 if ready, 503 otherwise
    """
    if _db_path is None:
        logger.error("Readiness check failed: DB path not initialized")
        return jsonify({"status": "not_ready", "reason": "database_path_not_initialized"}), 503

    if not _db_path.exists():
        logger.error("Readiness check failed: DB file does not exist", db_path=str(_db_path))
        return (
            jsonify(
                {
                    "status": "not_ready",
                    "reason": "database_file_not_found",
                    "db_path": str(_db_path),
                }
            ),
            503,
        )

    try:
        conn = sqlite3.connect(str(_db_path), timeout=1.0)
        try:
            event_count = conn.execute("SELECT COUNT(*) FROM events").fetchone()[0]
        finally:
            conn.close()
    except sqlite3.Error as e:
        logger.error("Readiness check failed: DB error", error=str(e))
        return (
            jsonify(
                {
                    "status": "not_ready",
                    "reason": "database_operational_error",
                    "error": str(e),
                }
            ),
            503,
        )

    logger.debug("Readiness check passed", event_count=event_count)
    return jsonify({"status": "ready", "database": "accessible", "event_count": event_count}), 200


@app.route("/health", methods=["GET"])
def detailed_health() -> tuple[Any, int]:
    """Detailed health: store size plus channel lag when a Ledger is attached"""
    health_data: dict[str, Any] = {
        "status": "healthy",
        "service": "aggregate-ledger",
        "version": "0.1.0",
    }

    if _db_path and _db_path.exists():
        try:
            conn = sqlite3.connect(str(_db_path), timeout=1.0)
            try:
                event_count = conn.execute("SELECT COUNT(*) FROM events").fetchone()[0]
                stream_count = conn.execute(
                    "SELECT COUNT(DISTINCT aggregate_id) FROM events"
                ).fetchone()[0]
                page_count = conn.execute("PRAGMA page_count").fetchone()[0]
                page_size = conn.execute("PRAGMA page_size").fetchone()[0]
            finally:
                conn.close()

            health_data["database"] = {
                "status": "healthy",
                "path": str(_db_path),
                "event_count": event_count,
                "stream_count": stream_count,
                "size_mb": round((page_count * page_size) / (1024 * 1024), 2),
            }
        except sqlite3.Error as e:
            logger.error("Database health check failed", error=str(e))
            health_data["database"] = {"status": "unhealthy", "error": str(e)}
            health_data["status"] = "degraded"
    else:
        health_data["database"] = {"status": "not_initialized"}
        health_data["status"] = "degraded"

    if _ledger is not None:
        try:
            stats = _ledger.stats()
        except StoreUnavailable as e:
            logger.warning("Could not compute ledger stats", error=str(e))
            health_data["ledger"] = {"status": "unavailable", "error": str(e)}
        else:
            health_data["ledger"] = {
                "projection_position": stats["projection_position"],
                "channels": stats["channels"],
            }

    status_code = 200 if health_data["status"] == "healthy" else 503
    return jsonify(health_data), status_code


def _int_arg(name: str, default: int) -> int:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    return int(raw)


@app.route("/events", methods=["GET"])
def events_since() -> tuple[Any, int]:
    """
    Pull feed of committed events

    Query parameters:
        since: Exclusive global position, default 0
        limit: Maximum events, 1..1000, default 100

    Returns:
        200 with a JSON array of envelopes, 400 on bad parameters,
        503 if the store cannot be read
    """
    try:
        since = _int_arg("since", 0)
        limit = _int_arg("limit", 100)
    except ValueError:
        return jsonify({"error": "since and limit must be integers"}), 400

    if since < 0:
        return jsonify({"error": "since must be >= 0"}), 400
    if not 1 <= limit <= MAX_EVENTS_PER_REQUEST:
        return jsonify({"error": f"limit must be between 1 and {MAX_EVENTS_PER_REQUEST}"}), 400

    if _ledger is not None:
        event_store = _ledger.event_store
    elif _db_path is not None:
        event_store = SQLiteEventStore(_db_path)
    else:
        return jsonify({"error": "event store not initialized"}), 503

    try:
        envelopes = [_codec.encode_dict(event) for event in event_store.read_all(since, limit=limit)]
    except StoreUnavailable as e:
        logger.error("Event feed read failed", since=since, error=str(e))
        return jsonify({"error": "event store unavailable"}), 503

    logger.debug("Event feed served", since=since, returned=len(envelopes))
    return jsonify(envelopes), 200


def run_health_server(port: int = 8080, debug: bool = False) -> None:
    """
    Run the HTTP server

    Args:
        port: Port to listen on (default: 8080)
        debug: Enable Flask debug mode (default: False)
    """
    logger.info("Starting health check server", port=port)
    app.run(host="0.0.0.0", port=port, debug=debug)


if __name__ == "__main__":
    # For testing: python -m aggregate_ledger.health_server
    initialize_health_server("/tmp/ledger-test.db")
    run_health_server(port=8080, debug=True)
