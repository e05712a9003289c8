"""
Wishes Module - users and the wishes they make

The User aggregate owns its wishes as a child collection, so the
"limited number of outstanding wishes" rule is checked and enforced in a
single transaction. A user's stream begins with the first wish it makes.
"""

from aggregate_ledger.wishes.aggregate import User
from aggregate_ledger.wishes.models import Wish, WishBoardEntry, WishStatus

__all__ = [
    "User",
    "Wish",
    "WishStatus",
    "WishBoardEntry",
]
