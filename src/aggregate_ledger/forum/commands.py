"""
Forum Module Commands
"""

from pydantic import Field

from aggregate_ledger.kernel.commands import Command
from aggregate_ledger.kernel.ids import generate_id


class OpenForum(Command):
    forum_id: str = Field(default_factory=generate_id)
    title: str = Field(..., min_length=1, max_length=200)
    moderator: str = Field(..., min_length=1)


class CloseForum(Command):
    forum_id: str = Field(..., min_length=1)
    reason: str | None = None


class DraftPost(Command):
    post_id: str = Field(default_factory=generate_id)
    forum_id: str = Field(..., min_length=1)
    author: str = Field(..., min_length=1)
    body: str = Field(..., min_length=1, max_length=10000)


class PublishPost(Command):
    post_id: str = Field(..., min_length=1)
