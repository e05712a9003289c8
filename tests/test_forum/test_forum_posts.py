"""
Tests for the Forum and Post aggregates (reference-by-id configuration)

A post holds only its forum's id. Publishing reads the forum's current
state from the forum's own stream and never writes to it.
"""

import pytest

from aggregate_ledger.forum.aggregate import Forum, Post
from aggregate_ledger.forum.commands import CloseForum, DraftPost, OpenForum, PublishPost
from aggregate_ledger.forum.handlers import ForumCommandHandlers, ForumRepository, PostRepository
from aggregate_ledger.forum.models import PostStatus
from aggregate_ledger.forum.projections import ForumTimeline
from aggregate_ledger.kernel.errors import (
    AggregateAlreadyExists,
    AggregateNotFound,
    ForumClosed,
    PostAlreadyPublished,
)
from aggregate_ledger.kernel.projections import ProjectionEngine


@pytest.fixture
def handlers(event_store, test_time) -> ForumCommandHandlers:
    return ForumCommandHandlers(
        ForumRepository(event_store, time_provider=test_time),
        PostRepository(event_store, time_provider=test_time),
    )


def open_forum(forum_id: str = "f-1") -> Forum:
    forum = Forum(forum_id)
    forum.open("Town square", "mod")
    forum.mark_committed()
    return forum


class TestAggregates:
    def test_draft_stores_forum_reference(self) -> None:
        post = Post("p-1")

        post.draft(open_forum(), "alice", "Hello")

        assert post.forum_id == "f-1"
        assert post.status == PostStatus.DRAFT

    def test_draft_in_closed_forum_rejected(self) -> None:
        forum = open_forum()
        forum.close("spam")

        with pytest.raises(ForumClosed):
            Post("p-1").draft(forum, "alice", "Hello")

    def test_publish_against_other_forum_rejected(self) -> None:
        post = Post("p-1")
        post.draft(open_forum("f-1"), "alice", "Hello")

        with pytest.raises(ValueError):
            post.publish(open_forum("f-2"))

    def test_publish_twice_rejected(self) -> None:
        forum = open_forum()
        post = Post("p-1")
        post.draft(forum, "alice", "Hello")
        post.publish(forum)

        with pytest.raises(PostAlreadyPublished):
            post.publish(forum)

    def test_publish_undrafted_post_rejected(self) -> None:
        with pytest.raises(AggregateNotFound):
            Post("p-1").publish(open_forum())

    def test_close_twice_rejected(self) -> None:
        forum = open_forum()
        forum.close()

        with pytest.raises(ForumClosed):
            forum.close()

    def test_open_twice_rejected(self) -> None:
        with pytest.raises(AggregateAlreadyExists):
            open_forum().open("Again", "mod")


class TestHandlers:
    def test_draft_and_publish_touch_only_the_post(self, handlers, event_store) -> None:
        handlers.handle_open_forum(OpenForum(forum_id="f-1", title="Town square", moderator="mod"))
        handlers.handle_draft_post(
            DraftPost(post_id="p-1", forum_id="f-1", author="alice", body="Hello")
        )

        view = handlers.handle_publish_post(PublishPost(post_id="p-1"))

        assert view.status == PostStatus.PUBLISHED
        assert event_store.get_stream_version("f-1") == 1
        assert event_store.get_stream_version("p-1") == 2

    def test_publish_after_forum_closed_rejected(self, handlers) -> None:
        handlers.handle_open_forum(OpenForum(forum_id="f-1", title="Town square", moderator="mod"))
        handlers.handle_draft_post(
            DraftPost(post_id="p-1", forum_id="f-1", author="alice", body="Hello")
        )
        handlers.handle_close_forum(CloseForum(forum_id="f-1", reason="archived"))

        with pytest.raises(ForumClosed):
            handlers.handle_publish_post(PublishPost(post_id="p-1"))

    def test_draft_in_unknown_forum_rejected(self, handlers) -> None:
        with pytest.raises(AggregateNotFound):
            handlers.handle_draft_post(
                DraftPost(post_id="p-1", forum_id="nowhere", author="alice", body="Hi")
            )

    def test_resubmitted_open_returns_forum(self, handlers, event_store) -> None:
        command = OpenForum(forum_id="f-1", title="Town square", moderator="mod")

        handlers.handle_open_forum(command)
        view = handlers.handle_open_forum(command)

        assert view.is_open
        assert event_store.count_events() == 1

    def test_opening_existing_forum_with_new_command_rejected(self, handlers) -> None:
        handlers.handle_open_forum(OpenForum(forum_id="f-1", title="A", moderator="mod"))

        with pytest.raises(AggregateAlreadyExists):
            handlers.handle_open_forum(OpenForum(forum_id="f-1", title="B", moderator="mod"))


def test_timeline_lists_published_posts_only(handlers, event_store) -> None:
    handlers.handle_open_forum(OpenForum(forum_id="f-1", title="Town square", moderator="mod"))
    for post_id in ("p-1", "p-2", "p-3"):
        handlers.handle_draft_post(
            DraftPost(post_id=post_id, forum_id="f-1", author="alice", body=post_id)
        )
    handlers.handle_publish_post(PublishPost(post_id="p-2"))
    handlers.handle_publish_post(PublishPost(post_id="p-1"))

    timeline = ForumTimeline()
    engine = ProjectionEngine()
    engine.add_read_model(timeline)
    engine.apply_all(event_store.read_all())

    assert [entry.post_id for entry in timeline.timeline("f-1")] == ["p-2", "p-1"]
    assert [forum["forum_id"] for forum in timeline.open_forums()] == ["f-1"]
