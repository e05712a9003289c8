"""
Retry policies for transient store failures.

SQLite reports lock contention as "database is locked" OperationalErrors;
those are retried with exponential backoff. Optimistic lock failures are
NOT retried here: they need the business decision to be re-run, which
happens in EventSourcedRepository.update().
"""

import sqlite3
from collections.abc import Callable
from typing import TypeVar

from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from aggregate_ledger.kernel.errors import StoreUnavailable
from aggregate_ledger.kernel.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def _log_before_sleep(message: str) -> Callable:
    def _before_sleep(retry_state) -> None:  # type: ignore[no-untyped-def]
        logger.warning(
            message,
            attempt=retry_state.attempt_number,
            exception=str(retry_state.outcome.exception()) if retry_state.outcome else None,
        )

    return _before_sleep


def retry_on_sqlite_lock(
    max_attempts: int = 3,
    min_wait_ms: int = 50,
    max_wait_ms: int = 1000,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Retry decorator for SQLite lock contention (OperationalError).

    Args:
        max_attempts: Maximum number of attempts (default: 3)
        min_wait_ms: Minimum wait time in milliseconds
        max_wait_ms: Maximum wait time in milliseconds

    Example:
        @retry_on_sqlite_lock()
        def _insert(conn, ...):
            conn.execute(...)
    """
    return retry(
        retry=retry_if_exception_type(sqlite3.OperationalError),
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(
            multiplier=1,
            min=min_wait_ms / 1000.0,
            max=max_wait_ms / 1000.0,
        ),
        before_sleep=_log_before_sleep("SQLite lock detected, retrying"),
        reraise=True,
    )


def retry_on_store_unavailable(
    max_attempts: int = 3,
    min_wait_ms: int = 100,
    max_wait_ms: int = 2000,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Retry decorator for callers that want to ride out StoreUnavailable.

    Use it around whole use cases, never inside the store itself: a store
    that retried forever would hide outages from its callers.

    Example:
        @retry_on_store_unavailable(max_attempts=5)
        def nightly_publish(ledger):
            ledger.publish_pending()
    """
    return retry(
        retry=retry_if_exception_type(StoreUnavailable),
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(
            multiplier=1,
            min=min_wait_ms / 1000.0,
            max=max_wait_ms / 1000.0,
        ),
        before_sleep=_log_before_sleep("Store unavailable, retrying"),
        reraise=True,
    )


def retry_projection_rebuild(
    max_attempts: int = 3,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Retry decorator for projection rebuilds.

    Rebuilds read the whole log and can hit lock contention or I/O hiccups.
    """
    return retry(
        retry=retry_if_exception_type((StoreUnavailable, sqlite3.OperationalError, OSError)),
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=1, min=0.5, max=5.0),
        before_sleep=_log_before_sleep("Projection rebuild failed, retrying"),
        reraise=True,
    )
