"""
Ideas Module Projections
"""

from typing import Any

from aggregate_ledger.ideas.events import IDEA_PROPOSED, IDEA_RATED
from aggregate_ledger.ideas.models import IdeaScore
from aggregate_ledger.kernel.events import DomainEvent
from aggregate_ledger.kernel.projections import EventHandler, ReadModel


class IdeaRanking(ReadModel):
    """
    Projection: ideas ordered by average rating

    Ties are broken by number of ratings, then title.
    """

    name = "idea_ranking"

    def reset(self) -> None:
        self.ideas: dict[str, dict[str, Any]] = {}

    def handlers(self) -> dict[str, EventHandler]:
        return {IDEA_PROPOSED: self._on_proposed, IDEA_RATED: self._on_rated}

    def _on_proposed(self, event: DomainEvent) -> None:
        self.ideas[event.aggregate_id] = {
            "idea_id": event.aggregate_id,
            "title": event.payload["title"],
            "author": event.payload["author"],
            "rating_count": 0,
            "rating_total": 0,
        }

    def _on_rated(self, event: DomainEvent) -> None:
        row = self.ideas.get(event.aggregate_id)
        if row is not None:
            row["rating_count"] += 1
            row["rating_total"] += event.payload["rating"]

    def ranking(self, limit: int | None = None) -> list[IdeaScore]:
        scores = [
            IdeaScore(
                idea_id=row["idea_id"],
                title=row["title"],
                author=row["author"],
                rating_count=row["rating_count"],
                average_rating=(
                    round(row["rating_total"] / row["rating_count"], 3)
                    if row["rating_count"]
                    else 0.0
                ),
            )
            for row in self.ideas.values()
        ]
        scores.sort(key=lambda s: (-s.average_rating, -s.rating_count, s.title))
        return scores[:limit] if limit is not None else scores

    def to_dict(self) -> dict[str, Any]:
        return {"ideas": self.ideas}

    def load_dict(self, state: dict[str, Any]) -> None:
        self.ideas = state.get("ideas", {})
