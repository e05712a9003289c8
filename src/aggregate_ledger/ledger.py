"""
Ledger - Main façade class

Wires the event store, snapshot store, repositories, publisher and
projections of one application context, and exposes the use cases as
plain methods. Nothing here is process-wide: two Ledger instances on two
database files are fully independent.

Example:
    >>> from aggregate_ledger import Ledger
    >>> ledger = Ledger("ledger.db")
    >>> ledger.make_wish("user-1", "a@b.com", "hi")
    >>> idea = ledger.propose_idea("Bike lanes", author="alice")
    >>> ledger.rate_idea(idea.idea_id, 5)
    >>> ledger.idea_ranking()
    >>> ledger.events_since(0, limit=100)
"""

from pathlib import Path
from typing import Any

from aggregate_ledger.forum.commands import CloseForum, DraftPost, OpenForum, PublishPost
from aggregate_ledger.forum.handlers import ForumCommandHandlers, ForumRepository, PostRepository
from aggregate_ledger.forum.models import ForumView, PostView, TimelineEntry
from aggregate_ledger.forum.projections import ForumTimeline
from aggregate_ledger.ideas.commands import ProposeIdea, RateIdea
from aggregate_ledger.ideas.handlers import IdeaCommandHandlers, IdeaRepository
from aggregate_ledger.ideas.models import IdeaScore, IdeaSummary
from aggregate_ledger.ideas.projections import IdeaRanking
from aggregate_ledger.kernel.bus import CommandBus
from aggregate_ledger.kernel.codec import EventCodec
from aggregate_ledger.kernel.commands import Command
from aggregate_ledger.kernel.event_store import SQLiteEventStore
from aggregate_ledger.kernel.locking import AggregateLockManager
from aggregate_ledger.kernel.logging import get_logger
from aggregate_ledger.kernel.policy import LedgerPolicy
from aggregate_ledger.kernel.projection_store import SQLiteProjectionStore
from aggregate_ledger.kernel.projections import ProjectionChannel, ProjectionEngine
from aggregate_ledger.kernel.publisher import ChannelAdapter, Publisher, PublishResult
from aggregate_ledger.kernel.retry import retry_on_store_unavailable, retry_projection_rebuild
from aggregate_ledger.kernel.snapshot_store import SQLiteSnapshotStore
from aggregate_ledger.kernel.time import RealTimeProvider, TimeProvider
from aggregate_ledger.kernel.tracker import SQLitePublishedMessageTracker
from aggregate_ledger.wishes.commands import GrantWish, MakeWish, RemoveWish
from aggregate_ledger.wishes.handlers import UserRepository, WishCommandHandlers
from aggregate_ledger.wishes.models import UserWishes, Wish, WishBoardEntry
from aggregate_ledger.wishes.projections import WishBoard

logger = get_logger(__name__)

PROJECTION_CHANNEL = "projections"


def _given(**fields: Any) -> dict[str, Any]:
    """Drop unset optional ids so the command's default factory applies"""
    return {name: value for name, value in fields.items() if value is not None}


class Ledger:
    """
    Aggregate Ledger main façade

    Provides a unified API for:
    - Wishes (User aggregate with a child collection)
    - Ideas and their ratings
    - Forums and posts (aggregates linked by id)
    - Publishing, projections and the event pull feed
    """

    def __init__(
        self,
        sqlite_path: str | Path,
        policy: LedgerPolicy | None = None,
        time_provider: TimeProvider | None = None,
        auto_publish: bool | None = None,
    ) -> None:
        """
        Initialize the ledger

        Args:
            sqlite_path: Path to SQLite database (created if missing)
            policy: Engine configuration (defaults if None)
            time_provider: Clock for event timestamps (real time if None)
            auto_publish: Publish right after each save (policy default if None)
        """
        self.sqlite_path = Path(sqlite_path)
        self.policy = policy or LedgerPolicy()
        self.time_provider = time_provider or RealTimeProvider()
        timeout = self.policy.sqlite_timeout_seconds

        # Storage
        self.event_store = SQLiteEventStore(self.sqlite_path, timeout_seconds=timeout)
        self.snapshot_store = SQLiteSnapshotStore(self.sqlite_path, timeout_seconds=timeout)
        self.tracker = SQLitePublishedMessageTracker(self.sqlite_path, timeout_seconds=timeout)
        self.projection_store = SQLiteProjectionStore(self.sqlite_path)
        self.codec = EventCodec()

        # Publishing
        self.publisher = Publisher(
            self.event_store,
            self.tracker,
            self.codec,
            batch_size=self.policy.publish_batch_size,
            auto_publish=self.policy.auto_publish if auto_publish is None else auto_publish,
        )

        # Repositories share one lock manager and the publisher hook
        self.lock_manager = AggregateLockManager(self.policy.lock_timeout_seconds)
        repository_options: dict[str, Any] = {
            "policy": self.policy,
            "time_provider": self.time_provider,
            "lock_manager": self.lock_manager,
            "on_committed": self.publisher.notify_committed,
        }
        self.users = UserRepository(self.event_store, self.snapshot_store, **repository_options)
        self.ideas = IdeaRepository(self.event_store, self.snapshot_store, **repository_options)
        self.forums = ForumRepository(self.event_store, self.snapshot_store, **repository_options)
        self.posts = PostRepository(self.event_store, self.snapshot_store, **repository_options)

        # Projections
        self.wish_board = WishBoard()
        self.idea_ranking_projection = IdeaRanking()
        self.forum_timeline_projection = ForumTimeline()
        self.projections = ProjectionEngine(PROJECTION_CHANNEL)
        for read_model in (
            self.wish_board,
            self.idea_ranking_projection,
            self.forum_timeline_projection,
        ):
            self.projections.add_read_model(read_model)
        projection_channel = ProjectionChannel(self.projections, self.codec)
        self.publisher.register_channel(
            PROJECTION_CHANNEL, projection_channel, cursor=projection_channel
        )

        # Use cases
        self.wish_handlers = WishCommandHandlers(self.users, self.policy)
        self.idea_handlers = IdeaCommandHandlers(self.ideas, self.policy)
        self.forum_handlers = ForumCommandHandlers(self.forums, self.posts)
        self.bus = CommandBus()
        self.bus.register(MakeWish, self.wish_handlers.handle_make_wish)
        self.bus.register(GrantWish, self.wish_handlers.handle_grant_wish)
        self.bus.register(RemoveWish, self.wish_handlers.handle_remove_wish)
        self.bus.register(ProposeIdea, self.idea_handlers.handle_propose_idea)
        self.bus.register(RateIdea, self.idea_handlers.handle_rate_idea)
        self.bus.register(OpenForum, self.forum_handlers.handle_open_forum)
        self.bus.register(CloseForum, self.forum_handlers.handle_close_forum)
        self.bus.register(DraftPost, self.forum_handlers.handle_draft_post)
        self.bus.register(PublishPost, self.forum_handlers.handle_publish_post)

        self._catch_up_projections()

    def _catch_up_projections(self) -> None:
        """
        Resume projections from their checkpoint and replay newer events

        The projection cursor is the engine position restored from the
        checkpoint, since events applied after the last checkpoint are lost
        with the process. It is private to this instance: other processes
        on the same database keep their own.
        """
        restored = self.projections.restore(self.projection_store)

        delivered = self._drain(PROJECTION_CHANNEL).delivered
        self.projections.checkpoint(self.projection_store)
        logger.info(
            "Projections ready",
            restored_checkpoint=restored,
            replayed=delivered,
            position=self.projections.position,
        )

    def _drain(self, channel_id: str) -> PublishResult:
        """Publish batch after batch until the channel is caught up or fails"""
        total = self.publisher.publish_pending(channel_id)
        result = total
        while result.succeeded and result.delivered:
            result = self.publisher.publish_pending(channel_id)
            total = total.model_copy(
                update={
                    "delivered": total.delivered + result.delivered,
                    "last_position": result.last_position,
                    "failed_position": result.failed_position,
                    "error": result.error,
                }
            )
        return total

    def execute(self, command: Command) -> Any:
        """Run any command through the bus (use for idempotent resubmission)"""
        return self.bus.execute(command)

    # Wishes

    def make_wish(
        self,
        user_id: str,
        address: str,
        content: str,
        wish_id: str | None = None,
        actor_id: str | None = None,
    ) -> Wish:
        """
        Make a wish; a user's first wish creates the user

        Raises:
            InvalidEmail: If the address is malformed
            WishLimitExceeded: If the user holds policy.max_wishes_per_user outstanding wishes
        """
        return self.execute(
            MakeWish(
                user_id=user_id,
                address=address,
                content=content,
                **_given(wish_id=wish_id, actor_id=actor_id or user_id),
            )
        )

    def grant_wish(self, user_id: str, wish_id: str, actor_id: str | None = None) -> Wish:
        return self.execute(GrantWish(user_id=user_id, wish_id=wish_id, actor_id=actor_id))

    def remove_wish(
        self,
        user_id: str,
        wish_id: str,
        reason: str | None = None,
        actor_id: str | None = None,
    ) -> UserWishes:
        return self.execute(
            RemoveWish(
                user_id=user_id,
                wish_id=wish_id,
                reason=reason,
                actor_id=actor_id or user_id,
            )
        )

    def get_user(self, user_id: str) -> UserWishes:
        """Current state straight from the event stream"""
        return self.users.load(user_id).view()

    def wishes_of(self, user_id: str) -> list[WishBoardEntry]:
        """Wishes of a user from the WishBoard read model"""
        return self.wish_board.wishes_of(user_id)

    # Ideas

    def propose_idea(
        self,
        title: str,
        author: str,
        idea_id: str | None = None,
    ) -> IdeaSummary:
        return self.execute(
            ProposeIdea(title=title, author=author, **_given(idea_id=idea_id, actor_id=author))
        )

    def rate_idea(self, idea_id: str, rating: int, actor_id: str | None = None) -> IdeaSummary:
        """
        Raises:
            RatingOutOfRange: If the rating is outside the policy range
            AggregateNotFound: If the idea does not exist
        """
        return self.execute(RateIdea(idea_id=idea_id, rating=rating, actor_id=actor_id))

    def get_idea(self, idea_id: str) -> IdeaSummary:
        return self.ideas.load(idea_id).summary()

    def idea_ranking(self, limit: int | None = None) -> list[IdeaScore]:
        return self.idea_ranking_projection.ranking(limit)

    # Forum

    def open_forum(self, title: str, moderator: str, forum_id: str | None = None) -> ForumView:
        return self.execute(
            OpenForum(
                title=title, moderator=moderator, **_given(forum_id=forum_id, actor_id=moderator)
            )
        )

    def close_forum(
        self,
        forum_id: str,
        reason: str | None = None,
        actor_id: str | None = None,
    ) -> ForumView:
        return self.execute(CloseForum(forum_id=forum_id, reason=reason, actor_id=actor_id))

    def draft_post(
        self,
        forum_id: str,
        author: str,
        body: str,
        post_id: str | None = None,
    ) -> PostView:
        return self.execute(
            DraftPost(
                forum_id=forum_id,
                author=author,
                body=body,
                **_given(post_id=post_id, actor_id=author),
            )
        )

    def publish_post(self, post_id: str, actor_id: str | None = None) -> PostView:
        """
        Raises:
            ForumClosed: If the post's forum was closed
            PostAlreadyPublished: If the post is already public
        """
        return self.execute(PublishPost(post_id=post_id, actor_id=actor_id))

    def forum_timeline(self, forum_id: str) -> list[TimelineEntry]:
        return self.forum_timeline_projection.timeline(forum_id)

    # Publishing and projections

    def register_channel(self, channel_id: str, adapter: ChannelAdapter) -> None:
        """
        Add an outbound channel; it starts at its stored cursor (0 if new)

        Raises:
            ValueError: If the channel id is already registered
        """
        self.publisher.register_channel(channel_id, adapter)

    @retry_on_store_unavailable()
    def publish_pending(self, channel_id: str | None = None) -> list[PublishResult]:
        """
        Deliver pending events to one channel, or to all of them

        Each channel is drained batch by batch until it is caught up or a
        delivery fails. The projection checkpoint is saved afterwards.
        """
        channel_ids = [channel_id] if channel_id else self.publisher.channel_ids()
        results = [self._drain(current) for current in channel_ids]
        self.projections.checkpoint(self.projection_store)
        return results

    @retry_projection_rebuild()
    def rebuild_projections(self) -> int:
        """
        Discard every read model and replay the full event log

        Returns:
            Number of events applied
        """
        with self.publisher.channel_lock(PROJECTION_CHANNEL):
            applied = self.projections.rebuild(self.event_store.read_all(0))
            self.projections.checkpoint(self.projection_store)
        return applied

    def events_since(self, cursor: int = 0, limit: int | None = 100) -> list[dict[str, Any]]:
        """
        Committed events after a global position, as persistence envelopes

        Args:
            cursor: Exclusive lower bound (0 = from the beginning)
            limit: Maximum number of events (None = all)

        Raises:
            ValueError: If cursor or limit is negative
        """
        if cursor < 0:
            raise ValueError(f"cursor must be >= 0, got {cursor}")
        if limit is not None and limit < 0:
            raise ValueError(f"limit must be >= 0, got {limit}")
        return [
            self.codec.encode_dict(event)
            for event in self.event_store.read_all(cursor, limit=limit)
        ]

    def stats(self) -> dict[str, Any]:
        """Store size, channel cursors and projection lag"""
        last_position = self.event_store.last_position()
        cursors = {
            channel_id: self.publisher.last_position(channel_id)
            for channel_id in self.publisher.channel_ids()
        }
        return {
            "events": self.event_store.count_events(),
            "streams": self.event_store.count_streams(),
            "last_position": last_position,
            "channels": {
                channel_id: {
                    "cursor": cursor,
                    "lag": last_position - cursor,
                }
                for channel_id, cursor in cursors.items()
            },
            "projection_position": self.projections.position,
            "wish_board": self.wish_board.totals(),
        }
