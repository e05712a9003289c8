"""
Wishes Module Events - payloads recorded on the user stream

Events are named in past tense: they are facts that already happened.
"""

from pydantic import BaseModel

USER_AGGREGATE = "user"

WISH_MADE = "WishMade"
WISH_GRANTED = "WishGranted"
WISH_REMOVED = "WishRemoved"


class WishMade(BaseModel):
    """A user made a new wish (the first one creates the user)"""

    wish_id: str
    address: str
    content: str


class WishGranted(BaseModel):
    """An outstanding wish was granted"""

    wish_id: str


class WishRemoved(BaseModel):
    """A wish was withdrawn from the user's collection"""

    wish_id: str
    reason: str | None = None
