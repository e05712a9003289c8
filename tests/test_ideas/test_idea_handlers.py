"""Tests for the idea use cases and the IdeaRanking read model"""

import pytest

from aggregate_ledger.ideas.commands import ProposeIdea, RateIdea
from aggregate_ledger.ideas.handlers import IdeaCommandHandlers, IdeaRepository
from aggregate_ledger.ideas.projections import IdeaRanking
from aggregate_ledger.kernel.errors import AggregateAlreadyExists, RatingOutOfRange
from aggregate_ledger.kernel.policy import LedgerPolicy
from aggregate_ledger.kernel.projections import ProjectionEngine


@pytest.fixture
def handlers(event_store) -> IdeaCommandHandlers:
    policy = LedgerPolicy(min_rating=1, max_rating=5)
    return IdeaCommandHandlers(IdeaRepository(event_store, policy=policy), policy)


def test_propose_idea(handlers) -> None:
    summary = handlers.handle_propose_idea(
        ProposeIdea(idea_id="idea-1", title="Night buses", author="alice")
    )

    assert summary.idea_id == "idea-1"
    assert summary.version == 1


def test_propose_existing_id_rejected(handlers) -> None:
    handlers.handle_propose_idea(ProposeIdea(idea_id="idea-1", title="A", author="alice"))

    with pytest.raises(AggregateAlreadyExists):
        handlers.handle_propose_idea(ProposeIdea(idea_id="idea-1", title="B", author="bob"))


def test_resubmitted_proposal_returns_original(handlers, event_store) -> None:
    command = ProposeIdea(idea_id="idea-1", title="Night buses", author="alice")

    handlers.handle_propose_idea(command)
    again = handlers.handle_propose_idea(command)

    assert again.title == "Night buses"
    assert event_store.count_events() == 1


def test_rate_idea_uses_policy_range(handlers) -> None:
    handlers.handle_propose_idea(ProposeIdea(idea_id="idea-1", title="A", author="alice"))

    summary = handlers.handle_rate_idea(RateIdea(idea_id="idea-1", rating=5))

    assert summary.rating_count == 1
    with pytest.raises(RatingOutOfRange):
        handlers.handle_rate_idea(RateIdea(idea_id="idea-1", rating=6))


def test_resubmitted_rating_counts_once(handlers) -> None:
    handlers.handle_propose_idea(ProposeIdea(idea_id="idea-1", title="A", author="alice"))
    command = RateIdea(idea_id="idea-1", rating=3)

    handlers.handle_rate_idea(command)
    summary = handlers.handle_rate_idea(command)

    assert summary.rating_count == 1


def test_ranking_orders_by_average_then_count(handlers, event_store) -> None:
    for idea_id, title in (("a", "Parks"), ("b", "Buses"), ("c", "Trams")):
        handlers.handle_propose_idea(ProposeIdea(idea_id=idea_id, title=title, author="x"))
    for idea_id, rating in (("a", 4), ("b", 5), ("c", 5), ("c", 5)):
        handlers.handle_rate_idea(RateIdea(idea_id=idea_id, rating=rating))

    ranking = IdeaRanking()
    engine = ProjectionEngine()
    engine.add_read_model(ranking)
    engine.apply_all(event_store.read_all())

    assert [s.idea_id for s in ranking.ranking()] == ["c", "b", "a"]
    assert [s.idea_id for s in ranking.ranking(limit=1)] == ["c"]
    assert ranking.ranking()[2].average_rating == 4.0
