"""
Ideas Module Commands
"""

from pydantic import Field

from aggregate_ledger.kernel.commands import Command
from aggregate_ledger.kernel.ids import generate_id


class ProposeIdea(Command):
    """Put forward a new idea"""

    idea_id: str = Field(default_factory=generate_id)
    title: str = Field(..., min_length=1, max_length=200)
    author: str = Field(..., min_length=1)


class RateIdea(Command):
    """Rate an idea; the range is checked by the aggregate against policy"""

    idea_id: str = Field(..., min_length=1)
    rating: int
