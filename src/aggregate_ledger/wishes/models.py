"""
Wishes Domain Models

Wish is a value held inside the User aggregate: it has an identity within
the user but no stream of its own. WishBoardEntry is the row shape served
by the WishBoard read model.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel
from sqlmodel import SQLModel


class WishStatus(str, Enum):
    """Wish lifecycle: OUTSTANDING -> GRANTED (removal drops the wish)"""

    OUTSTANDING = "OUTSTANDING"
    GRANTED = "GRANTED"


class Wish(BaseModel):
    """
    A wish inside a user's collection

    Attributes:
        wish_id: Identifier, unique within the user
        user_id: Owning user
        address: E-mail address the wish is sent to
        content: What is wished for
        status: Lifecycle state
        made_at: When the wish was made
        granted_at: When it was granted (None while outstanding)
    """

    wish_id: str
    user_id: str
    address: str
    content: str
    status: WishStatus = WishStatus.OUTSTANDING
    made_at: datetime
    granted_at: datetime | None = None

    model_config = {"frozen": True}

    @property
    def is_outstanding(self) -> bool:
        return self.status == WishStatus.OUTSTANDING


class UserWishes(BaseModel):
    """Read-only view of a User aggregate returned by use cases"""

    user_id: str
    version: int
    wishes: list[Wish]

    @property
    def outstanding(self) -> list[Wish]:
        return [w for w in self.wishes if w.is_outstanding]


class WishBoardEntry(SQLModel):
    """
    WishBoard row (denormalized, one per wish)

    Kept as a SQLModel so a deployment can map it to a table later.
    """

    user_id: str
    wish_id: str
    address: str
    content: str
    status: str
    made_at: datetime
    granted_at: datetime | None = None
