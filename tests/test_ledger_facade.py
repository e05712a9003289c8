"""
Tests for the Ledger façade

End-to-end over one SQLite file: commands, auto-published read models,
the pull feed, outbound channels and projection recovery across restarts.
"""

import threading

import pytest

from aggregate_ledger import Ledger
from aggregate_ledger.kernel.errors import (
    AggregateNotFound,
    ForumClosed,
    WishLimitExceeded,
)
from aggregate_ledger.kernel.policy import LedgerPolicy
from aggregate_ledger.kernel.publisher import InMemoryBrokerAdapter
from aggregate_ledger.wishes.commands import MakeWish


def test_wishes_flow_into_wish_board(ledger) -> None:
    ledger.make_wish("alice", "bob@example.com", "a kite", wish_id="w1")
    ledger.make_wish("alice", "carol@example.com", "a book", wish_id="w2")
    ledger.grant_wish("alice", "w1")

    entries = ledger.wishes_of("alice")

    assert [(e.wish_id, e.status) for e in entries] == [
        ("w1", "GRANTED"),
        ("w2", "OUTSTANDING"),
    ]
    assert ledger.get_user("alice").version == 3


def test_fourth_wish_rejected(ledger) -> None:
    for n in range(3):
        ledger.make_wish("alice", f"friend{n}@example.com", f"wish {n}")

    with pytest.raises(WishLimitExceeded):
        ledger.make_wish("alice", "friend3@example.com", "one too many")

    assert ledger.event_store.get_stream_version("alice") == 3
    assert len(ledger.wishes_of("alice")) == 3


def test_resubmitting_command_through_execute_is_idempotent(ledger) -> None:
    command = MakeWish(user_id="alice", wish_id="w1", address="b@example.com", content="x")

    ledger.execute(command)
    ledger.execute(command)

    assert ledger.event_store.count_events() == 1


def test_ideas_and_ranking(ledger) -> None:
    bikes = ledger.propose_idea("Bike lanes", author="alice")
    buses = ledger.propose_idea("Night buses", author="bob")
    ledger.rate_idea(bikes.idea_id, 3)
    ledger.rate_idea(buses.idea_id, 5)

    ranking = ledger.idea_ranking()

    assert [s.title for s in ranking] == ["Night buses", "Bike lanes"]
    assert ledger.get_idea(bikes.idea_id).rating_count == 1


def test_rating_unknown_idea(ledger) -> None:
    with pytest.raises(AggregateNotFound):
        ledger.rate_idea("missing", 3)


def test_forum_timeline(ledger) -> None:
    forum = ledger.open_forum("Town square", moderator="mod")
    post = ledger.draft_post(forum.forum_id, "alice", "Hello all")
    ledger.publish_post(post.post_id)

    timeline = ledger.forum_timeline(forum.forum_id)

    assert [(e.author, e.body) for e in timeline] == [("alice", "Hello all")]


def test_closed_forum_refuses_publication(ledger) -> None:
    forum = ledger.open_forum("Town square", moderator="mod")
    post = ledger.draft_post(forum.forum_id, "alice", "Hello all")
    ledger.close_forum(forum.forum_id, reason="archived")

    with pytest.raises(ForumClosed):
        ledger.publish_post(post.post_id)
    assert ledger.forum_timeline(forum.forum_id) == []


class TestEventFeed:
    def test_events_since_returns_envelopes_in_order(self, ledger) -> None:
        ledger.make_wish("alice", "b@example.com", "x", wish_id="w1")
        ledger.propose_idea("Bike lanes", author="alice")

        feed = ledger.events_since(0)

        assert [e["position"] for e in feed] == [1, 2]
        assert feed[0]["eventType"] == "WishMade"
        assert feed[0]["aggregateId"] == "alice"
        assert ledger.events_since(2) == []

    def test_events_since_respects_limit(self, ledger) -> None:
        for n in range(5):
            ledger.propose_idea(f"Idea {n}", author="alice")

        assert [e["position"] for e in ledger.events_since(1, limit=2)] == [2, 3]

    def test_negative_cursor_rejected(self, ledger) -> None:
        with pytest.raises(ValueError):
            ledger.events_since(-1)


class TestChannels:
    def test_new_channel_receives_full_history(self, ledger) -> None:
        ledger.make_wish("alice", "b@example.com", "x")
        broker = InMemoryBrokerAdapter()
        ledger.register_channel("broker", broker)

        results = ledger.publish_pending("broker")

        assert results[0].delivered == 1
        assert broker.delivered_types == ["WishMade"]

    def test_auto_publish_reaches_registered_channels(self, ledger) -> None:
        broker = InMemoryBrokerAdapter()
        ledger.register_channel("broker", broker)

        ledger.propose_idea("Bike lanes", author="alice")

        assert broker.delivered_types == ["IdeaProposed"]
        assert ledger.stats()["channels"]["broker"] == {"cursor": 1, "lag": 0}

    def test_manual_publishing_when_auto_publish_disabled(self, temp_db, test_time) -> None:
        ledger = Ledger(temp_db, time_provider=test_time, auto_publish=False)
        ledger.make_wish("alice", "b@example.com", "x")
        assert ledger.wishes_of("alice") == []
        assert ledger.stats()["channels"]["projections"]["lag"] == 1

        ledger.publish_pending()

        assert len(ledger.wishes_of("alice")) == 1


class TestProjectionRecovery:
    def test_restart_restores_read_models(self, temp_db, test_time) -> None:
        first = Ledger(temp_db, time_provider=test_time)
        first.make_wish("alice", "b@example.com", "x", wish_id="w1")
        first.publish_pending()

        second = Ledger(temp_db, time_provider=test_time)

        assert [e.wish_id for e in second.wishes_of("alice")] == ["w1"]
        assert second.projections.position == 1

    def test_restart_replays_events_after_checkpoint(self, temp_db, test_time) -> None:
        first = Ledger(temp_db, time_provider=test_time)
        first.make_wish("alice", "b@example.com", "x", wish_id="w1")
        first.publish_pending()
        # Committed, but the process dies before the next checkpoint
        first.make_wish("alice", "c@example.com", "y", wish_id="w2")

        second = Ledger(temp_db, time_provider=test_time)

        assert [e.wish_id for e in second.wishes_of("alice")] == ["w1", "w2"]

    def test_second_instance_catches_up_with_writes_of_the_first(
        self, temp_db, test_time
    ) -> None:
        writer = Ledger(temp_db, time_provider=test_time)
        reader = Ledger(temp_db, time_provider=test_time)

        writer.make_wish("u1", "a@example.com", "hi", wish_id="w1")
        reader.publish_pending()

        assert [e.wish_id for e in writer.wishes_of("u1")] == ["w1"]
        assert [e.wish_id for e in reader.wishes_of("u1")] == ["w1"]
        assert reader.stats()["channels"]["projections"] == {"cursor": 1, "lag": 0}

    def test_instances_keep_separate_projection_cursors(self, temp_db, test_time) -> None:
        first = Ledger(temp_db, time_provider=test_time, auto_publish=False)
        second = Ledger(temp_db, time_provider=test_time, auto_publish=False)
        first.make_wish("u1", "a@example.com", "hi")
        second.make_wish("u2", "b@example.com", "yo")

        first.publish_pending()

        assert second.stats()["channels"]["projections"] == {"cursor": 0, "lag": 2}
        second.publish_pending()
        assert second.wish_board.totals() == first.wish_board.totals()
        assert second.projections.position == first.projections.position == 2

    def test_rebuild_matches_incremental_state(self, ledger) -> None:
        ledger.make_wish("alice", "b@example.com", "x", wish_id="w1")
        ledger.grant_wish("alice", "w1")
        idea = ledger.propose_idea("Bike lanes", author="alice")
        ledger.rate_idea(idea.idea_id, 4)
        before = ledger.projections.state()

        applied = ledger.rebuild_projections()

        assert applied == 4
        assert ledger.projections.state() == before


def test_snapshots_written_on_cadence(temp_db, test_time) -> None:
    ledger = Ledger(temp_db, policy=LedgerPolicy(snapshot_every=5), time_provider=test_time)
    idea = ledger.propose_idea("Bike lanes", author="alice")
    for _ in range(6):
        ledger.rate_idea(idea.idea_id, 4)

    assert ledger.snapshot_store.latest_snapshot(idea.idea_id).version == 5
    assert ledger.get_idea(idea.idea_id).rating_count == 6


def test_stats(ledger) -> None:
    ledger.make_wish("alice", "b@example.com", "x")
    ledger.make_wish("bob", "c@example.com", "y")

    data = ledger.stats()

    assert data["events"] == 2
    assert data["streams"] == 2
    assert data["last_position"] == 2
    assert data["projection_position"] == 2
    assert data["wish_board"] == {"users": 2, "wishes": 2, "granted": 0}


def test_concurrent_use_cases_publish_every_event_once(ledger) -> None:
    ideas = [ledger.propose_idea(f"Idea {n}", author="alice").idea_id for n in range(8)]
    errors: list[BaseException] = []

    def rate(idea_id: str) -> None:
        try:
            for n in range(15):
                ledger.rate_idea(idea_id, n % 5 + 1)
        except BaseException as e:
            errors.append(e)

    threads = [threading.Thread(target=rate, args=(idea_id,)) for idea_id in ideas]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    ranking = ledger.idea_ranking()
    assert len(ranking) == 8
    assert all(score.rating_count == 15 for score in ranking)
    assert all(score.average_rating == 3.0 for score in ranking)
    last_position = ledger.event_store.last_position()
    assert last_position == 8 + 8 * 15
    assert ledger.projections.position == last_position
    assert ledger.stats()["channels"]["projections"]["lag"] == 0
