"""
Forum Module - forums and the posts published in them

Forum and Post are separate aggregates that refer to each other by id
only. Publishing a post reads the forum's current state but changes only
the post, keeping to one aggregate per transaction.
"""

from aggregate_ledger.forum.aggregate import Forum, Post
from aggregate_ledger.forum.models import ForumView, PostStatus, PostView, TimelineEntry

__all__ = ["Forum", "Post", "ForumView", "PostView", "PostStatus", "TimelineEntry"]
