"""
Prometheus metrics for Aggregate Ledger.

Counters and histograms for the write path (appends, conflicts, snapshots),
the publish path (deliveries, failures) and the read side (projections).
"""

import time
from collections.abc import Callable
from functools import wraps
from typing import ParamSpec, TypeVar

from prometheus_client import Counter, Gauge, Histogram, start_http_server

# ============================================================================
# Event Store Metrics
# ============================================================================

events_appended_total = Counter(
    "ledger_events_appended_total",
    "Total number of events appended to the event store",
    ["aggregate_type", "event_type"],
)

events_loaded_total = Counter(
    "ledger_events_loaded_total",
    "Total number of events replayed onto aggregates",
    ["aggregate_type"],
)

stream_version_conflicts_total = Counter(
    "ledger_stream_version_conflicts_total",
    "Total number of optimistic locking version conflicts",
    ["aggregate_type"],
)

idempotent_appends_total = Counter(
    "ledger_idempotent_appends_total",
    "Appends answered from an already-recorded command_id",
    ["aggregate_type"],
)

# ============================================================================
# Snapshot Metrics
# ============================================================================

snapshots_taken_total = Counter(
    "ledger_snapshots_taken_total",
    "Total number of aggregate snapshots written",
    ["aggregate_type"],
)

snapshot_read_failures_total = Counter(
    "ledger_snapshot_read_failures_total",
    "Snapshot reads that failed and fell back to full replay",
    ["aggregate_type"],
)

aggregate_load_duration_seconds = Histogram(
    "ledger_aggregate_load_duration_seconds",
    "Duration of aggregate load (snapshot + replay)",
    ["aggregate_type"],
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0),
)

# ============================================================================
# Publishing Metrics
# ============================================================================

events_published_total = Counter(
    "ledger_events_published_total",
    "Total number of events acknowledged by a channel",
    ["channel"],
)

delivery_failures_total = Counter(
    "ledger_delivery_failures_total",
    "Total number of failed channel deliveries",
    ["channel"],
)

channel_cursor_position = Gauge(
    "ledger_channel_cursor_position",
    "Last acknowledged global position per channel",
    ["channel"],
)

projection_events_applied_total = Counter(
    "ledger_projection_events_applied_total",
    "Events applied to read models",
    ["projection", "event_type"],
)

projection_rebuild_duration_seconds = Histogram(
    "ledger_projection_rebuild_duration_seconds",
    "Duration of projection rebuild in seconds",
    ["projection"],
    buckets=(0.01, 0.1, 0.5, 1.0, 5.0, 10.0, 30.0, 60.0),
)

# ============================================================================
# Use Case Metrics
# ============================================================================

use_case_duration_seconds = Histogram(
    "ledger_use_case_duration_seconds",
    "Duration of use case execution in seconds",
    ["use_case"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)

use_cases_total = Counter(
    "ledger_use_cases_total",
    "Total number of use cases executed",
    ["use_case", "status"],  # status: success, failure
)

use_case_retries_total = Counter(
    "ledger_use_case_retries_total",
    "Reload-and-retry rounds after optimistic lock failures",
    ["use_case"],
)

# ============================================================================
# Helper Functions
# ============================================================================

P = ParamSpec("P")
R = TypeVar("R")


def track_use_case_duration(use_case: str) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """
    Decorator to track use case duration and outcome.

    Args:
        use_case: Name of the use case (e.g. "MakeWish")
    """

    def decorator(func: Callable[P, R]) -> Callable[P, R]:
        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            start = time.perf_counter()
            status = "success"
            try:
                return func(*args, **kwargs)
            except Exception:
                status = "failure"
                raise
            finally:
                duration = time.perf_counter() - start
                use_case_duration_seconds.labels(use_case=use_case).observe(duration)
                use_cases_total.labels(use_case=use_case, status=status).inc()

        return wrapper

    return decorator


def start_metrics_server(port: int = 9090) -> None:
    """Start Prometheus metrics HTTP server."""
    start_http_server(port)
