"""
Ideas Module Events
"""

from pydantic import BaseModel

IDEA_AGGREGATE = "idea"

IDEA_PROPOSED = "IdeaProposed"
IDEA_RATED = "IdeaRated"


class IdeaProposed(BaseModel):
    """An idea was put forward"""

    title: str
    author: str


class IdeaRated(BaseModel):
    """Someone rated an idea"""

    rating: int
