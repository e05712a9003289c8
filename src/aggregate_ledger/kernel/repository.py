"""
Event-sourced Repository

The only component that talks to the event store and snapshot store on
behalf of application code. Loads aggregates from (snapshot + tail
events), saves their uncommitted events with an expected-version check,
and writes snapshots on the configured cadence.
"""

import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import ClassVar, Generic, TypeVar

from tenacity import Retrying, retry_if_exception_type, stop_after_attempt

from aggregate_ledger.kernel.aggregate import AggregateRoot
from aggregate_ledger.kernel.errors import (
    AggregateNotFound,
    ConcurrencyConflict,
    OptimisticLockException,
)
from aggregate_ledger.kernel.event_store import SQLiteEventStore
from aggregate_ledger.kernel.events import DomainEvent
from aggregate_ledger.kernel.locking import AggregateLockManager
from aggregate_ledger.kernel.logging import get_logger
from aggregate_ledger.kernel.metrics import (
    aggregate_load_duration_seconds,
    events_loaded_total,
    snapshot_read_failures_total,
    snapshots_taken_total,
    use_case_retries_total,
)
from aggregate_ledger.kernel.policy import LedgerPolicy
from aggregate_ledger.kernel.snapshot_store import Snapshot, SnapshotStore
from aggregate_ledger.kernel.time import RealTimeProvider, TimeProvider

logger = get_logger(__name__)

A = TypeVar("A", bound=AggregateRoot)
R = TypeVar("R")

CommitListener = Callable[[list[DomainEvent]], None]


class EventSourcedRepository(Generic[A]):
    """
    Generic repository for one aggregate type

    Subclasses set `aggregate_class`:

        class IdeaRepository(EventSourcedRepository[Idea]):
            aggregate_class = Idea

        idea = repo.load("idea-1")
        idea.add_rating(5)
        repo.save(idea)
    """

    aggregate_class: ClassVar[type[AggregateRoot]]

    def __init__(
        self,
        event_store: SQLiteEventStore,
        snapshot_store: SnapshotStore | None = None,
        *,
        policy: LedgerPolicy | None = None,
        time_provider: TimeProvider | None = None,
        lock_manager: AggregateLockManager | None = None,
        on_committed: CommitListener | None = None,
    ) -> None:
        """
        Args:
            event_store: Source of truth
            snapshot_store: Optional snapshot cache (None disables snapshots)
            policy: Snapshot cadence and lock timeouts
            time_provider: Clock handed to aggregates
            lock_manager: Shared lock manager for pessimistic mode
            on_committed: Called with the persisted events after each save
        """
        self.event_store = event_store
        self.snapshot_store = snapshot_store
        self.policy = policy or LedgerPolicy()
        self.time_provider = time_provider or RealTimeProvider()
        self.lock_manager = lock_manager or AggregateLockManager(
            self.policy.lock_timeout_seconds
        )
        self._listeners: list[CommitListener] = [on_committed] if on_committed else []

    @property
    def aggregate_type(self) -> str:
        return self.aggregate_class.aggregate_type

    def add_commit_listener(self, listener: CommitListener) -> None:
        self._listeners.append(listener)

    # ========== Loading ==========

    def new(self, aggregate_id: str) -> A:
        """Fresh, non-existent aggregate ready to record its creation event"""
        return self.aggregate_class(aggregate_id, time_provider=self.time_provider)  # type: ignore[return-value]

    def load(self, aggregate_id: str) -> A:
        """
        Rebuild an aggregate from its latest snapshot plus newer events

        Raises:
            AggregateNotFound: If the aggregate has no events and no snapshot
            StoreUnavailable: If the event store cannot be read
        """
        start = time.perf_counter()
        aggregate = self._from_snapshot(aggregate_id)
        snapshot_version = aggregate.version

        replayed = aggregate.apply_history(
            self.event_store.read_stream(aggregate_id, since_version=snapshot_version)
        )
        aggregate_load_duration_seconds.labels(aggregate_type=self.aggregate_type).observe(
            time.perf_counter() - start
        )

        if not aggregate.exists:
            raise AggregateNotFound(self.aggregate_type, aggregate_id)

        events_loaded_total.labels(aggregate_type=self.aggregate_type).inc(replayed)
        logger.debug(
            "Aggregate loaded",
            aggregate_type=self.aggregate_type,
            aggregate_id=aggregate_id,
            snapshot_version=snapshot_version,
            replayed=replayed,
            version=aggregate.version,
        )
        return aggregate

    def get(self, aggregate_id: str) -> A | None:
        """Like load(), but returns None for unknown aggregates"""
        try:
            return self.load(aggregate_id)
        except AggregateNotFound:
            return None

    def exists(self, aggregate_id: str) -> bool:
        return self.event_store.get_stream_version(aggregate_id) > 0

    def _from_snapshot(self, aggregate_id: str) -> A:
        aggregate = self.new(aggregate_id)
        snapshot = self._read_snapshot(aggregate_id)
        if snapshot is None:
            return aggregate
        try:
            aggregate.restore_snapshot(snapshot)
        except (KeyError, TypeError, ValueError) as e:
            snapshot_read_failures_total.labels(aggregate_type=self.aggregate_type).inc()
            logger.warning(
                "Snapshot could not be restored, replaying full history",
                aggregate_id=aggregate_id,
                snapshot_version=snapshot.version,
                error=str(e),
            )
            return self.new(aggregate_id)
        return aggregate

    def _read_snapshot(self, aggregate_id: str) -> Snapshot | None:
        if self.snapshot_store is None or not self.aggregate_class.supports_snapshots():
            return None
        try:
            snapshot = self.snapshot_store.latest_snapshot(aggregate_id)
        except Exception as e:
            # Snapshots are an optimisation; the event store alone is enough
            snapshot_read_failures_total.labels(aggregate_type=self.aggregate_type).inc()
            logger.warning(
                "Snapshot read failed, replaying full history",
                aggregate_id=aggregate_id,
                error=str(e),
            )
            return None
        if snapshot is not None and snapshot.aggregate_type != self.aggregate_type:
            logger.warning(
                "Ignoring snapshot of another aggregate type",
                aggregate_id=aggregate_id,
                snapshot_type=snapshot.aggregate_type,
            )
            return None
        return snapshot

    # ========== Saving ==========

    def save(self, aggregate: A) -> list[DomainEvent]:
        """
        Persist the aggregate's uncommitted events

        Returns:
            The persisted events (empty if there was nothing to save)

        Raises:
            OptimisticLockException: If another writer committed first. The
                aggregate instance is stale and must be discarded.
            CommandIdReused: If the command id already recorded different events
            StoreUnavailable: If the outcome could not be established
        """
        pending = list(aggregate.uncommitted_events())
        if not pending:
            return []

        expected_version = aggregate.committed_version
        try:
            persisted = self.event_store.append(
                aggregate.aggregate_id, expected_version, pending
            )
        except ConcurrencyConflict as e:
            logger.info(
                "Optimistic lock failed",
                aggregate_type=self.aggregate_type,
                aggregate_id=aggregate.aggregate_id,
                expected_version=e.expected_version,
                actual_version=e.actual_version,
            )
            raise OptimisticLockException(
                e.aggregate_id, e.expected_version, e.actual_version
            ) from e

        aggregate.mark_committed()

        if persisted[0].event_id != pending[0].event_id:
            # Command already committed by an earlier attempt
            logger.info(
                "Save resolved to previously committed events",
                aggregate_id=aggregate.aggregate_id,
                command_id=pending[0].command_id,
            )
            return persisted

        self._maybe_snapshot(aggregate, expected_version)
        self._notify(persisted)
        return persisted

    def _maybe_snapshot(self, aggregate: A, previous_version: int) -> None:
        if (
            self.snapshot_store is None
            or not self.policy.snapshot_enabled
            or not self.aggregate_class.supports_snapshots()
        ):
            return

        every = self.policy.snapshot_every
        if aggregate.version // every <= previous_version // every:
            return

        try:
            self.snapshot_store.save(aggregate.take_snapshot())
        except Exception as e:
            logger.warning(
                "Snapshot write failed",
                aggregate_id=aggregate.aggregate_id,
                version=aggregate.version,
                error=str(e),
            )
            return
        snapshots_taken_total.labels(aggregate_type=self.aggregate_type).inc()
        logger.info(
            "Snapshot taken",
            aggregate_type=self.aggregate_type,
            aggregate_id=aggregate.aggregate_id,
            version=aggregate.version,
        )

    def _notify(self, persisted: list[DomainEvent]) -> None:
        for listener in self._listeners:
            try:
                listener(persisted)
            except Exception as e:
                # The events are durable; publishing catches up on the next run
                logger.error(
                    "Commit listener failed",
                    aggregate_id=persisted[0].aggregate_id,
                    error=str(e),
                    exc_info=True,
                )

    # ========== Unknown outcomes and concurrency helpers ==========

    def was_committed(self, aggregate_id: str, command_id: str) -> bool:
        """Whether a command's events are in the store (resolves timed-out saves)"""
        return bool(self.event_store.find_by_command(aggregate_id, command_id))

    @contextmanager
    def locked(self, aggregate_id: str, timeout: float | None = None) -> Iterator[None]:
        """Pessimistic mode: exclusive in-process lock for load-mutate-save"""
        with self.lock_manager.hold(aggregate_id, timeout):
            yield

    def update(
        self,
        aggregate_id: str,
        decide: Callable[[A], R],
        *,
        retry_attempts: int | None = None,
        create_missing: bool = False,
        use_case: str = "update",
    ) -> R:
        """
        Load, run a business decision, save - reloading on lost races

        On OptimisticLockException the whole cycle runs again against a
        freshly loaded aggregate, so the decision sees the winner's state.

        Args:
            aggregate_id: Aggregate to modify
            decide: Business method call; its return value is returned
            retry_attempts: Extra rounds after a conflict (policy default)
            create_missing: Start a fresh aggregate instead of raising AggregateNotFound
            use_case: Label for logs and metrics
        """
        attempts = (
            self.policy.conflict_retry_attempts if retry_attempts is None else retry_attempts
        )

        def _before_retry(retry_state) -> None:  # type: ignore[no-untyped-def]
            use_case_retries_total.labels(use_case=use_case).inc()
            logger.info(
                "Reloading after optimistic lock failure",
                use_case=use_case,
                aggregate_id=aggregate_id,
                attempt=retry_state.attempt_number,
            )

        for attempt in Retrying(
            retry=retry_if_exception_type(OptimisticLockException),
            stop=stop_after_attempt(attempts + 1),
            before_sleep=_before_retry,
            reraise=True,
        ):
            with attempt:
                if create_missing:
                    aggregate = self.get(aggregate_id) or self.new(aggregate_id)
                else:
                    aggregate = self.load(aggregate_id)
                result = decide(aggregate)
                self.save(aggregate)
        return result
