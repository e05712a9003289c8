"""
Forum and Post aggregates - reference-by-id configuration

A Post stores only the id of its forum. Checks that need the forum's
state receive a Forum loaded by the caller; the Forum is never modified
in the same transaction.
"""

from datetime import datetime

from aggregate_ledger.forum.events import (
    FORUM_AGGREGATE,
    FORUM_CLOSED,
    FORUM_OPENED,
    POST_AGGREGATE,
    POST_DRAFTED,
    POST_PUBLISHED,
    ForumClosed,
    ForumOpened,
    PostDrafted,
    PostPublished,
)
from aggregate_ledger.forum.invariants import validate_forum_open, validate_forum_reference
from aggregate_ledger.forum.models import ForumView, PostStatus, PostView
from aggregate_ledger.kernel import errors
from aggregate_ledger.kernel.aggregate import AggregateRoot, applies
from aggregate_ledger.kernel.events import DomainEvent
from aggregate_ledger.kernel.time import TimeProvider


class Forum(AggregateRoot):
    aggregate_type = FORUM_AGGREGATE

    def __init__(self, aggregate_id: str, *, time_provider: TimeProvider | None = None) -> None:
        super().__init__(aggregate_id, time_provider=time_provider)
        self.title = ""
        self.moderator = ""
        self.is_open = False

    def open(
        self,
        title: str,
        moderator: str,
        *,
        command_id: str | None = None,
        actor_id: str | None = None,
    ) -> None:
        """
        Raises:
            AggregateAlreadyExists: If the forum was opened before
        """
        if self.exists:
            raise errors.AggregateAlreadyExists(self.aggregate_type, self.aggregate_id)
        self.record_and_apply(
            FORUM_OPENED,
            ForumOpened(title=title, moderator=moderator).model_dump(mode="json"),
            command_id=command_id,
            actor_id=actor_id or moderator,
        )

    def close(
        self,
        reason: str | None = None,
        *,
        command_id: str | None = None,
        actor_id: str | None = None,
    ) -> None:
        """
        Raises:
            ForumClosed: If the forum is already closed
        """
        validate_forum_open(self)
        self.record_and_apply(
            FORUM_CLOSED,
            ForumClosed(reason=reason).model_dump(mode="json"),
            command_id=command_id,
            actor_id=actor_id,
        )

    def view(self) -> ForumView:
        return ForumView(
            forum_id=self.aggregate_id,
            title=self.title,
            moderator=self.moderator,
            is_open=self.is_open,
            version=self.version,
        )

    @applies(FORUM_OPENED)
    def _on_opened(self, event: DomainEvent) -> None:
        self.title = event.payload["title"]
        self.moderator = event.payload["moderator"]
        self.is_open = True

    @applies(FORUM_CLOSED)
    def _on_closed(self, event: DomainEvent) -> None:
        self.is_open = False


class Post(AggregateRoot):
    aggregate_type = POST_AGGREGATE

    def __init__(self, aggregate_id: str, *, time_provider: TimeProvider | None = None) -> None:
        super().__init__(aggregate_id, time_provider=time_provider)
        self.forum_id = ""
        self.author = ""
        self.body = ""
        self.status = PostStatus.DRAFT
        self.published_at: datetime | None = None

    def draft(
        self,
        forum: Forum,
        author: str,
        body: str,
        *,
        command_id: str | None = None,
        actor_id: str | None = None,
    ) -> None:
        """
        Raises:
            AggregateAlreadyExists: If the post was drafted before
            ForumClosed: If the forum does not accept posts
        """
        if self.exists:
            raise errors.AggregateAlreadyExists(self.aggregate_type, self.aggregate_id)
        validate_forum_open(forum)
        self.record_and_apply(
            POST_DRAFTED,
            PostDrafted(forum_id=forum.aggregate_id, author=author, body=body).model_dump(
                mode="json"
            ),
            command_id=command_id,
            actor_id=actor_id or author,
        )

    def publish(
        self,
        forum: Forum,
        *,
        command_id: str | None = None,
        actor_id: str | None = None,
    ) -> None:
        """
        Raises:
            AggregateNotFound: If the post was never drafted
            PostAlreadyPublished: If it is already public
            ForumClosed: If its forum was closed meanwhile
        """
        if not self.exists:
            raise errors.AggregateNotFound(self.aggregate_type, self.aggregate_id)
        if self.status == PostStatus.PUBLISHED:
            raise errors.PostAlreadyPublished(self.aggregate_id)
        validate_forum_reference(forum, self.forum_id)
        validate_forum_open(forum)
        self.record_and_apply(
            POST_PUBLISHED,
            PostPublished(forum_id=self.forum_id).model_dump(mode="json"),
            command_id=command_id,
            actor_id=actor_id,
        )

    def view(self) -> PostView:
        return PostView(
            post_id=self.aggregate_id,
            forum_id=self.forum_id,
            author=self.author,
            body=self.body,
            status=self.status,
            published_at=self.published_at,
            version=self.version,
        )

    @applies(POST_DRAFTED)
    def _on_drafted(self, event: DomainEvent) -> None:
        self.forum_id = event.payload["forum_id"]
        self.author = event.payload["author"]
        self.body = event.payload["body"]

    @applies(POST_PUBLISHED)
    def _on_published(self, event: DomainEvent) -> None:
        self.status = PostStatus.PUBLISHED
        self.published_at = event.occurred_at
