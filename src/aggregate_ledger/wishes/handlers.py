"""
Wishes Module Handlers - use cases for the User aggregate

Handlers are "almost boring": load the user, call one business method,
save. Conflicts with concurrent writers are resolved by reloading and
deciding again, so the wish limit is checked against the winner's state.
"""

from aggregate_ledger.kernel.policy import LedgerPolicy
from aggregate_ledger.kernel.repository import EventSourcedRepository
from aggregate_ledger.wishes.aggregate import User
from aggregate_ledger.wishes.commands import GrantWish, MakeWish, RemoveWish
from aggregate_ledger.wishes.models import UserWishes, Wish


class UserRepository(EventSourcedRepository[User]):
    aggregate_class = User


class WishCommandHandlers:
    """
    Command handlers for the wishes module

    Args:
        repository: Repository of User aggregates
        policy: Supplies the wish limit and retry budget
    """

    def __init__(self, repository: UserRepository, policy: LedgerPolicy) -> None:
        self.repository = repository
        self.policy = policy

    def handle_make_wish(self, command: MakeWish) -> Wish:
        """Add a wish; the user's first wish creates the user"""

        def decide(user: User) -> Wish:
            return user.make_wish(
                command.wish_id,
                command.address,
                command.content,
                limit=self.policy.max_wishes_per_user,
                command_id=command.command_id,
                actor_id=command.actor_id,
            )

        if self.repository.was_committed(command.user_id, command.command_id):
            return self.repository.load(command.user_id).wish(command.wish_id)
        return self.repository.update(
            command.user_id, decide, create_missing=True, use_case="MakeWish"
        )

    def handle_grant_wish(self, command: GrantWish) -> Wish:
        if self.repository.was_committed(command.user_id, command.command_id):
            return self.repository.load(command.user_id).wish(command.wish_id)
        return self.repository.update(
            command.user_id,
            lambda user: user.grant_wish(
                command.wish_id, command_id=command.command_id, actor_id=command.actor_id
            ),
            use_case="GrantWish",
        )

    def handle_remove_wish(self, command: RemoveWish) -> UserWishes:
        def decide(user: User) -> None:
            user.remove_wish(
                command.wish_id,
                reason=command.reason,
                command_id=command.command_id,
                actor_id=command.actor_id,
            )

        if not self.repository.was_committed(command.user_id, command.command_id):
            self.repository.update(command.user_id, decide, use_case="RemoveWish")
        return self.repository.load(command.user_id).view()
