"""
Forum Module Invariants

Cross-aggregate checks take the other aggregate as a read-only argument.
"""

from typing import TYPE_CHECKING

from aggregate_ledger.kernel.errors import ForumClosed

if TYPE_CHECKING:
    from aggregate_ledger.forum.aggregate import Forum


def validate_forum_open(forum: "Forum") -> None:
    """
    Raises:
        ForumClosed: If the forum no longer accepts posts
    """
    if not forum.is_open:
        raise ForumClosed(forum.aggregate_id)


def validate_forum_reference(forum: "Forum", forum_id: str) -> None:
    """
    Raises:
        ValueError: If the caller loaded a different forum than the one referenced
    """
    if forum.aggregate_id != forum_id:
        raise ValueError(f"Post belongs to forum {forum_id}, got {forum.aggregate_id}")
