"""
Forum Module Handlers

Drafting and publishing read the forum from its own repository - the
authoritative event stream, never a projection - and save only the post.
"""

from aggregate_ledger.forum.aggregate import Forum, Post
from aggregate_ledger.forum.commands import CloseForum, DraftPost, OpenForum, PublishPost
from aggregate_ledger.forum.models import ForumView, PostView
from aggregate_ledger.kernel.errors import AggregateAlreadyExists
from aggregate_ledger.kernel.repository import EventSourcedRepository
from aggregate_ledger.kernel.unit_of_work import UnitOfWork


class ForumRepository(EventSourcedRepository[Forum]):
    aggregate_class = Forum


class PostRepository(EventSourcedRepository[Post]):
    aggregate_class = Post


class ForumCommandHandlers:
    """Command handlers for the forum module"""

    def __init__(self, forums: ForumRepository, posts: PostRepository) -> None:
        self.forums = forums
        self.posts = posts

    def handle_open_forum(self, command: OpenForum) -> ForumView:
        if self.forums.was_committed(command.forum_id, command.command_id):
            return self.forums.load(command.forum_id).view()
        if self.forums.exists(command.forum_id):
            raise AggregateAlreadyExists(Forum.aggregate_type, command.forum_id)

        with UnitOfWork() as uow:
            forum = uow.create(self.forums, command.forum_id)
            forum.open(
                command.title,
                command.moderator,
                command_id=command.command_id,
                actor_id=command.actor_id,
            )
        return forum.view()

    def handle_close_forum(self, command: CloseForum) -> ForumView:
        if not self.forums.was_committed(command.forum_id, command.command_id):
            self.forums.update(
                command.forum_id,
                lambda forum: forum.close(
                    command.reason, command_id=command.command_id, actor_id=command.actor_id
                ),
                use_case="CloseForum",
            )
        return self.forums.load(command.forum_id).view()

    def handle_draft_post(self, command: DraftPost) -> PostView:
        if self.posts.was_committed(command.post_id, command.command_id):
            return self.posts.load(command.post_id).view()
        if self.posts.exists(command.post_id):
            raise AggregateAlreadyExists(Post.aggregate_type, command.post_id)

        forum = self.forums.load(command.forum_id)
        with UnitOfWork() as uow:
            post = uow.create(self.posts, command.post_id)
            post.draft(
                forum,
                command.author,
                command.body,
                command_id=command.command_id,
                actor_id=command.actor_id,
            )
        return post.view()

    def handle_publish_post(self, command: PublishPost) -> PostView:
        """
        Raises:
            AggregateNotFound: If the post or its forum does not exist
            ForumClosed: If the forum was closed after the post was drafted
        """

        def decide(post: Post) -> PostView:
            forum = self.forums.load(post.forum_id)
            post.publish(forum, command_id=command.command_id, actor_id=command.actor_id)
            return post.view()

        if self.posts.was_committed(command.post_id, command.command_id):
            return self.posts.load(command.post_id).view()
        return self.posts.update(command.post_id, decide, use_case="PublishPost")
