"""
Ideas Domain Models
"""

from datetime import datetime

from pydantic import BaseModel
from sqlmodel import SQLModel


class IdeaSummary(BaseModel):
    """Read-only view of an Idea aggregate returned by use cases"""

    idea_id: str
    title: str
    author: str
    rating_count: int
    rating_total: int
    version: int
    proposed_at: datetime | None = None

    @property
    def average_rating(self) -> float:
        return self.rating_total / self.rating_count if self.rating_count else 0.0


class IdeaScore(SQLModel):
    """IdeaRanking row"""

    idea_id: str
    title: str
    author: str
    rating_count: int = 0
    average_rating: float = 0.0
