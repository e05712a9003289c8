"""
Ideas Module Invariants
"""

from aggregate_ledger.kernel.errors import RatingOutOfRange


def validate_rating(rating: int, minimum: int = 1, maximum: int = 5) -> None:
    """
    Raises:
        RatingOutOfRange: If the rating is outside [minimum, maximum]
    """
    if not minimum <= rating <= maximum:
        raise RatingOutOfRange(rating, minimum, maximum)
