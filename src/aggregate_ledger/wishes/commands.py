"""
Wishes Module Commands

Each command addresses exactly one user; the wish id is chosen by the
caller so a resubmitted command refers to the same wish.
"""

from pydantic import Field

from aggregate_ledger.kernel.commands import Command
from aggregate_ledger.kernel.ids import generate_id


class MakeWish(Command):
    """Add a wish to a user's collection, creating the user if needed"""

    user_id: str = Field(..., min_length=1)
    wish_id: str = Field(default_factory=generate_id)
    address: str = Field(..., min_length=3, max_length=320)
    content: str = Field(..., min_length=1, max_length=2000)


class GrantWish(Command):
    """Mark an outstanding wish as granted"""

    user_id: str = Field(..., min_length=1)
    wish_id: str = Field(..., min_length=1)


class RemoveWish(Command):
    """Withdraw a wish"""

    user_id: str = Field(..., min_length=1)
    wish_id: str = Field(..., min_length=1)
    reason: str | None = None
