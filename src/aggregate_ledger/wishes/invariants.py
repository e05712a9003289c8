"""
Wishes Module Invariants

Pure functions over current aggregate state. They run before anything is
recorded, so a violation leaves the stream untouched.
"""

import re

from aggregate_ledger.kernel.errors import (
    InvalidEmail,
    WishAlreadyGranted,
    WishLimitExceeded,
    WishNotFound,
)
from aggregate_ledger.wishes.models import Wish

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def validate_email(address: str) -> None:
    """
    Raises:
        InvalidEmail: If the address is not of the form local@domain.tld
    """
    if not EMAIL_PATTERN.match(address):
        raise InvalidEmail(address)


def validate_wish_limit(user_id: str, outstanding: int, limit: int) -> None:
    """
    A user may hold at most `limit` outstanding wishes

    Granted wishes no longer count against the limit.

    Raises:
        WishLimitExceeded: If one more wish would exceed the limit
    """
    if outstanding >= limit:
        raise WishLimitExceeded(user_id, limit)


def require_wish(user_id: str, wishes: dict[str, Wish], wish_id: str) -> Wish:
    """
    Raises:
        WishNotFound: If the user has no such wish
    """
    wish = wishes.get(wish_id)
    if wish is None:
        raise WishNotFound(user_id, wish_id)
    return wish


def validate_grantable(wish: Wish) -> None:
    """
    Raises:
        WishAlreadyGranted: If the wish was granted before
    """
    if not wish.is_outstanding:
        raise WishAlreadyGranted(wish.wish_id)
