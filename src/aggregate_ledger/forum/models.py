"""
Forum Domain Models
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel
from sqlmodel import SQLModel


class PostStatus(str, Enum):
    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"


class ForumView(BaseModel):
    """Read-only view of a Forum aggregate"""

    forum_id: str
    title: str
    moderator: str
    is_open: bool
    version: int


class PostView(BaseModel):
    """Read-only view of a Post aggregate"""

    post_id: str
    forum_id: str
    author: str
    body: str
    status: PostStatus
    published_at: datetime | None = None
    version: int


class TimelineEntry(SQLModel):
    """ForumTimeline row: one published post"""

    forum_id: str
    post_id: str
    author: str
    body: str
    published_at: datetime
