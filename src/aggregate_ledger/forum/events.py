"""
Forum Module Events
"""

from pydantic import BaseModel

FORUM_AGGREGATE = "forum"
POST_AGGREGATE = "post"

FORUM_OPENED = "ForumOpened"
FORUM_CLOSED = "ForumClosed"
POST_DRAFTED = "PostDrafted"
POST_PUBLISHED = "PostPublished"


class ForumOpened(BaseModel):
    title: str
    moderator: str


class ForumClosed(BaseModel):
    reason: str | None = None


class PostDrafted(BaseModel):
    """A post was written for a forum (referenced by id only)"""

    forum_id: str
    author: str
    body: str


class PostPublished(BaseModel):
    forum_id: str
