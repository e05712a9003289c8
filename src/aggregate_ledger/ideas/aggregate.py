"""
Idea aggregate

Keeps only the running count and total of its ratings, so a snapshot
stays the same size however many ratings the idea collects.
"""

from datetime import datetime
from typing import Any

from aggregate_ledger.ideas.events import (
    IDEA_AGGREGATE,
    IDEA_PROPOSED,
    IDEA_RATED,
    IdeaProposed,
    IdeaRated,
)
from aggregate_ledger.ideas.invariants import validate_rating
from aggregate_ledger.ideas.models import IdeaSummary
from aggregate_ledger.kernel.aggregate import AggregateRoot, applies
from aggregate_ledger.kernel.errors import AggregateAlreadyExists, AggregateNotFound
from aggregate_ledger.kernel.events import DomainEvent
from aggregate_ledger.kernel.time import TimeProvider


class Idea(AggregateRoot):
    """An idea that collects ratings"""

    aggregate_type = IDEA_AGGREGATE

    def __init__(self, aggregate_id: str, *, time_provider: TimeProvider | None = None) -> None:
        super().__init__(aggregate_id, time_provider=time_provider)
        self.title = ""
        self.author = ""
        self.proposed_at: datetime | None = None
        self.rating_count = 0
        self.rating_total = 0

    @property
    def average_rating(self) -> float:
        return self.rating_total / self.rating_count if self.rating_count else 0.0

    def propose(
        self,
        title: str,
        author: str,
        *,
        command_id: str | None = None,
        actor_id: str | None = None,
    ) -> None:
        """
        Raises:
            AggregateAlreadyExists: If this idea was proposed before
        """
        if self.exists:
            raise AggregateAlreadyExists(self.aggregate_type, self.aggregate_id)
        self.record_and_apply(
            IDEA_PROPOSED,
            IdeaProposed(title=title, author=author).model_dump(mode="json"),
            command_id=command_id,
            actor_id=actor_id or author,
        )

    def add_rating(
        self,
        rating: int,
        *,
        minimum: int = 1,
        maximum: int = 5,
        command_id: str | None = None,
        actor_id: str | None = None,
    ) -> None:
        """
        Raises:
            AggregateNotFound: If the idea was never proposed
            RatingOutOfRange: If the rating is outside [minimum, maximum]
        """
        if not self.exists:
            raise AggregateNotFound(self.aggregate_type, self.aggregate_id)
        validate_rating(rating, minimum, maximum)
        self.record_and_apply(
            IDEA_RATED,
            IdeaRated(rating=rating).model_dump(mode="json"),
            command_id=command_id,
            actor_id=actor_id,
        )

    def summary(self) -> IdeaSummary:
        return IdeaSummary(
            idea_id=self.aggregate_id,
            title=self.title,
            author=self.author,
            rating_count=self.rating_count,
            rating_total=self.rating_total,
            version=self.version,
            proposed_at=self.proposed_at,
        )

    @applies(IDEA_PROPOSED)
    def _on_proposed(self, event: DomainEvent) -> None:
        self.title = event.payload["title"]
        self.author = event.payload["author"]
        self.proposed_at = event.occurred_at

    @applies(IDEA_RATED)
    def _on_rated(self, event: DomainEvent) -> None:
        self.rating_count += 1
        self.rating_total += event.payload["rating"]

    def snapshot_state(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "author": self.author,
            "proposed_at": self.proposed_at.isoformat() if self.proposed_at else None,
            "rating_count": self.rating_count,
            "rating_total": self.rating_total,
        }

    def restore_state(self, state: dict[str, Any]) -> None:
        self.title = state["title"]
        self.author = state["author"]
        proposed_at = state["proposed_at"]
        self.proposed_at = datetime.fromisoformat(proposed_at) if proposed_at else None
        self.rating_count = state["rating_count"]
        self.rating_total = state["rating_total"]
