"""
Ideas Module - proposals that collect ratings

An Idea is a small aggregate whose stream grows with every rating, which
makes it the natural candidate for snapshots.
"""

from aggregate_ledger.ideas.aggregate import Idea
from aggregate_ledger.ideas.models import IdeaScore, IdeaSummary

__all__ = ["Idea", "IdeaScore", "IdeaSummary"]
