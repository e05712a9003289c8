"""
Tests for the event-sourced Repository

Covers loading (with and without snapshots), optimistic concurrency on
save, the reload-and-retry helper and the pessimistic lock mode.
"""

import threading

import pytest

from aggregate_ledger.kernel.errors import (
    AggregateNotFound,
    CommandIdReused,
    LockTimeout,
    OptimisticLockException,
)
from aggregate_ledger.kernel.policy import LedgerPolicy
from aggregate_ledger.kernel.repository import EventSourcedRepository
from aggregate_ledger.kernel.snapshot_store import Snapshot
from tests.helpers import BASE_TIME, Counter, Journal


class CounterRepository(EventSourcedRepository[Counter]):
    aggregate_class = Counter


class JournalRepository(EventSourcedRepository[Journal]):
    aggregate_class = Journal


@pytest.fixture
def repo(event_store, memory_snapshots, test_time) -> CounterRepository:
    return CounterRepository(
        event_store,
        memory_snapshots,
        policy=LedgerPolicy(snapshot_every=100),
        time_provider=test_time,
    )


def spy_on_reads(monkeypatch, event_store) -> list[int]:
    """Record the since_version of every read_stream call"""
    calls: list[int] = []
    original = event_store.read_stream

    def read_stream(aggregate_id, since_version=0):
        calls.append(since_version)
        return original(aggregate_id, since_version=since_version)

    monkeypatch.setattr(event_store, "read_stream", read_stream)
    return calls


def test_save_then_load_roundtrip(repo) -> None:
    counter = repo.new("c-1")
    counter.increment(3)
    counter.increment(4)

    persisted = repo.save(counter)
    loaded = repo.load("c-1")

    assert [e.position for e in persisted] == [1, 2]
    assert loaded.total == 7
    assert loaded.version == 2
    assert loaded.uncommitted_events() == ()


def test_save_without_changes_is_noop(repo, event_store) -> None:
    assert repo.save(repo.new("c-1")) == []
    assert event_store.count_events() == 0


def test_load_unknown_aggregate_raises(repo) -> None:
    with pytest.raises(AggregateNotFound):
        repo.load("missing")

    assert repo.get("missing") is None
    assert not repo.exists("missing")


class TestOptimisticConcurrency:
    """Two writers loaded at the same version: exactly one wins"""

    def test_second_writer_is_rejected(self, repo) -> None:
        counter = repo.new("c-1")
        counter.increment()
        repo.save(counter)

        writer_a = repo.load("c-1")
        writer_b = repo.load("c-1")
        writer_a.increment(10)
        writer_b.increment(20)

        repo.save(writer_a)
        with pytest.raises(OptimisticLockException) as exc:
            repo.save(writer_b)

        assert exc.value.expected_version == 1
        assert exc.value.actual_version == 2
        assert repo.load("c-1").total == 11

    def test_reload_then_retry_succeeds(self, repo) -> None:
        counter = repo.new("c-1")
        counter.increment()
        repo.save(counter)

        stale = repo.load("c-1")
        winner = repo.load("c-1")
        winner.increment(10)
        repo.save(winner)
        stale.increment(20)
        with pytest.raises(OptimisticLockException):
            repo.save(stale)

        fresh = repo.load("c-1")
        fresh.increment(20)
        repo.save(fresh)

        reloaded = repo.load("c-1")
        assert reloaded.version == 3
        assert reloaded.total == 31

    def test_update_reloads_after_conflict(self, repo) -> None:
        counter = repo.new("c-1")
        counter.increment()
        repo.save(counter)
        seen_totals: list[int] = []

        def decide(aggregate: Counter) -> int:
            seen_totals.append(aggregate.total)
            if len(seen_totals) == 1:
                # Another writer sneaks in between load and save
                rival = repo.load("c-1")
                rival.increment(100)
                repo.save(rival)
            aggregate.increment(5)
            return aggregate.total

        result = repo.update("c-1", decide)

        assert seen_totals == [1, 101]
        assert result == 106
        assert repo.load("c-1").version == 3

    def test_update_gives_up_after_configured_attempts(self, repo) -> None:
        counter = repo.new("c-1")
        counter.increment()
        repo.save(counter)

        def always_lose(aggregate: Counter) -> None:
            rival = repo.load("c-1")
            rival.increment()
            repo.save(rival)
            aggregate.increment()

        with pytest.raises(OptimisticLockException):
            repo.update("c-1", always_lose, retry_attempts=2)

    def test_update_can_create_missing_aggregate(self, repo) -> None:
        repo.update("c-new", lambda c: c.increment(2), create_missing=True)

        assert repo.load("c-new").total == 2

    def test_update_without_create_missing_raises(self, repo) -> None:
        with pytest.raises(AggregateNotFound):
            repo.update("c-new", lambda c: c.increment())


class TestSnapshots:
    """Snapshots bound replay length without changing loaded state"""

    def test_long_stream_replays_only_the_tail(
        self, repo, event_store, memory_snapshots, monkeypatch
    ) -> None:
        counter = repo.new("c-1")
        for _ in range(25):
            for _ in range(10):
                counter.increment()
            repo.save(counter)

        assert memory_snapshots.latest_snapshot("c-1").version == 200

        calls = spy_on_reads(monkeypatch, event_store)
        loaded = repo.load("c-1")

        assert calls == [200]
        assert loaded.version == 250
        assert loaded.total == 250
        assert 250 - calls[0] <= 99

    def test_snapshot_taken_when_batch_crosses_boundary(self, repo, memory_snapshots) -> None:
        counter = repo.new("c-1")
        for _ in range(95):
            counter.increment()
        repo.save(counter)
        assert memory_snapshots.latest_snapshot("c-1") is None

        for _ in range(10):
            counter.increment()
        repo.save(counter)

        assert memory_snapshots.latest_snapshot("c-1").version == 105

    def test_loaded_state_is_identical_with_and_without_snapshots(
        self, event_store, memory_snapshots, test_time
    ) -> None:
        with_snapshots = CounterRepository(
            event_store, memory_snapshots, policy=LedgerPolicy(snapshot_every=3),
            time_provider=test_time,
        )
        without_snapshots = CounterRepository(event_store, None, time_provider=test_time)

        counter = with_snapshots.new("c-1")
        for by in range(1, 11):
            counter.increment(by)
            with_snapshots.save(counter)

        a = with_snapshots.load("c-1")
        b = without_snapshots.load("c-1")
        assert (a.version, a.total) == (b.version, b.total) == (10, 55)

    def test_unreadable_snapshot_falls_back_to_full_replay(
        self, repo, memory_snapshots
    ) -> None:
        counter = repo.new("c-1")
        for _ in range(5):
            counter.increment()
        repo.save(counter)
        memory_snapshots.save(
            Snapshot(
                aggregate_id="c-1",
                aggregate_type="counter",
                version=5,
                state={"unexpected": True},
                taken_at=BASE_TIME,
            )
        )

        loaded = repo.load("c-1")

        assert loaded.total == 5
        assert loaded.version == 5

    def test_snapshot_disabled_by_policy(self, event_store, memory_snapshots) -> None:
        repo = CounterRepository(
            event_store,
            memory_snapshots,
            policy=LedgerPolicy(snapshot_every=1, snapshot_enabled=False),
        )
        counter = repo.new("c-1")
        counter.increment()
        repo.save(counter)

        assert memory_snapshots.count("c-1") == 0

    def test_aggregates_without_snapshot_support_are_never_snapshotted(
        self, event_store, memory_snapshots
    ) -> None:
        repo = JournalRepository(
            event_store, memory_snapshots, policy=LedgerPolicy(snapshot_every=1)
        )
        journal = repo.new("j-1")
        journal.write("hello")
        repo.save(journal)

        assert memory_snapshots.count("j-1") == 0
        assert repo.load("j-1").lines == ["hello"]


class TestCommitOutcome:
    """Resolving saves whose outcome was not observed"""

    def test_was_committed_finds_command(self, repo) -> None:
        counter = repo.new("c-1")
        counter.increment(command_id="cmd-1")
        repo.save(counter)

        assert repo.was_committed("c-1", "cmd-1")
        assert not repo.was_committed("c-1", "cmd-2")

    def test_resaving_same_command_returns_original_events(self, repo, event_store) -> None:
        first = repo.new("c-1")
        first.increment(command_id="cmd-1")
        original = repo.save(first)

        retry = repo.new("c-1")
        retry.increment(command_id="cmd-1")
        resolved = repo.save(retry)

        assert [e.event_id for e in resolved] == [e.event_id for e in original]
        assert event_store.count_events() == 1

    def test_reusing_command_id_for_new_content_raises(self, repo, event_store) -> None:
        counter = repo.new("c-1")
        counter.increment(by=1, command_id="cmd-1")
        repo.save(counter)

        counter.increment(by=3, command_id="cmd-1")
        with pytest.raises(CommandIdReused):
            repo.save(counter)

        assert len(counter.uncommitted_events()) == 1
        assert repo.load("c-1").total == 1
        assert event_store.count_events() == 1

    def test_commit_listener_receives_persisted_events(self, repo) -> None:
        received = []
        repo.add_commit_listener(received.append)
        counter = repo.new("c-1")
        counter.increment()

        repo.save(counter)

        assert len(received) == 1
        assert received[0][0].position == 1

    def test_failing_listener_does_not_undo_commit(self, repo, event_store) -> None:
        def broken(events):
            raise RuntimeError("broker down")

        repo.add_commit_listener(broken)
        counter = repo.new("c-1")
        counter.increment()

        repo.save(counter)

        assert event_store.count_events() == 1


class TestPessimisticMode:
    def test_locked_serializes_writers(self, repo) -> None:
        counter = repo.new("c-1")
        counter.increment()
        repo.save(counter)

        def add_one() -> None:
            with repo.locked("c-1"):
                current = repo.load("c-1")
                current.increment()
                repo.save(current)

        threads = [threading.Thread(target=add_one) for _ in range(5)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert repo.load("c-1").total == 6

    def test_lock_wait_is_bounded(self, repo) -> None:
        with repo.locked("c-1"):
            acquired = threading.Event()
            errors: list[Exception] = []

            def contender() -> None:
                try:
                    with repo.locked("c-1", timeout=0.05):
                        acquired.set()
                except LockTimeout as e:
                    errors.append(e)

            thread = threading.Thread(target=contender)
            thread.start()
            thread.join()

        assert not acquired.is_set()
        assert len(errors) == 1
        assert errors[0].aggregate_id == "c-1"
