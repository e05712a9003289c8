"""
User aggregate - child-collection configuration

The wishes live inside the user, stored by id. Every business method
checks its invariants against the whole collection and only then records
an event, so the wish limit holds even under concurrent requests: two
racing make_wish calls both expect the same version and one of them
loses at save time.

Example:
    user = repository.get("user-1") or repository.new("user-1")
    user.make_wish("wish-1", "a@b.com", "hi", limit=3)
    repository.save(user)
"""

from typing import Any

from aggregate_ledger.kernel.aggregate import AggregateRoot, applies
from aggregate_ledger.kernel.errors import AggregateAlreadyExists, AggregateNotFound
from aggregate_ledger.kernel.events import DomainEvent
from aggregate_ledger.kernel.time import TimeProvider
from aggregate_ledger.wishes.events import (
    USER_AGGREGATE,
    WISH_GRANTED,
    WISH_MADE,
    WISH_REMOVED,
    WishGranted,
    WishMade,
    WishRemoved,
)
from aggregate_ledger.wishes.invariants import (
    require_wish,
    validate_email,
    validate_grantable,
    validate_wish_limit,
)
from aggregate_ledger.wishes.models import UserWishes, Wish, WishStatus

DEFAULT_WISH_LIMIT = 3


class User(AggregateRoot):
    """A user and the wishes it has made"""

    aggregate_type = USER_AGGREGATE

    def __init__(self, aggregate_id: str, *, time_provider: TimeProvider | None = None) -> None:
        super().__init__(aggregate_id, time_provider=time_provider)
        self.wishes: dict[str, Wish] = {}

    @property
    def outstanding_wishes(self) -> list[Wish]:
        return [wish for wish in self.wishes.values() if wish.is_outstanding]

    def wish(self, wish_id: str) -> Wish:
        return require_wish(self.aggregate_id, self.wishes, wish_id)

    # ========== Business methods ==========

    def make_wish(
        self,
        wish_id: str,
        address: str,
        content: str,
        *,
        limit: int = DEFAULT_WISH_LIMIT,
        command_id: str | None = None,
        actor_id: str | None = None,
    ) -> Wish:
        """
        Add a wish to the collection

        On a user that does not exist yet this records the user's first
        event (version 1).

        Raises:
            InvalidEmail: If the address is malformed
            WishLimitExceeded: If the user already holds `limit` outstanding wishes
            AggregateAlreadyExists: If the wish id is taken within this user
        """
        validate_email(address)
        validate_wish_limit(self.aggregate_id, len(self.outstanding_wishes), limit)
        if wish_id in self.wishes:
            raise AggregateAlreadyExists("wish", wish_id)

        self.record_and_apply(
            WISH_MADE,
            WishMade(wish_id=wish_id, address=address, content=content).model_dump(mode="json"),
            command_id=command_id,
            actor_id=actor_id,
        )
        return self.wishes[wish_id]

    def grant_wish(
        self,
        wish_id: str,
        *,
        command_id: str | None = None,
        actor_id: str | None = None,
    ) -> Wish:
        """
        Raises:
            WishNotFound: If the user has no such wish
            WishAlreadyGranted: If the wish was granted before
        """
        self._require_exists()
        validate_grantable(self.wish(wish_id))
        self.record_and_apply(
            WISH_GRANTED,
            WishGranted(wish_id=wish_id).model_dump(mode="json"),
            command_id=command_id,
            actor_id=actor_id,
        )
        return self.wishes[wish_id]

    def remove_wish(
        self,
        wish_id: str,
        *,
        reason: str | None = None,
        command_id: str | None = None,
        actor_id: str | None = None,
    ) -> None:
        """
        Raises:
            WishNotFound: If the user has no such wish
        """
        self._require_exists()
        self.wish(wish_id)
        self.record_and_apply(
            WISH_REMOVED,
            WishRemoved(wish_id=wish_id, reason=reason).model_dump(mode="json"),
            command_id=command_id,
            actor_id=actor_id,
        )

    def view(self) -> UserWishes:
        return UserWishes(
            user_id=self.aggregate_id,
            version=self.version,
            wishes=sorted(self.wishes.values(), key=lambda w: (w.made_at, w.wish_id)),
        )

    def _require_exists(self) -> None:
        if not self.exists:
            raise AggregateNotFound(self.aggregate_type, self.aggregate_id)

    # ========== Apply methods ==========

    @applies(WISH_MADE)
    def _on_wish_made(self, event: DomainEvent) -> None:
        payload = WishMade.model_validate(event.payload)
        self.wishes[payload.wish_id] = Wish(
            wish_id=payload.wish_id,
            user_id=self.aggregate_id,
            address=payload.address,
            content=payload.content,
            made_at=event.occurred_at,
        )

    @applies(WISH_GRANTED)
    def _on_wish_granted(self, event: DomainEvent) -> None:
        wish_id = event.payload["wish_id"]
        self.wishes[wish_id] = self.wishes[wish_id].model_copy(
            update={"status": WishStatus.GRANTED, "granted_at": event.occurred_at}
        )

    @applies(WISH_REMOVED)
    def _on_wish_removed(self, event: DomainEvent) -> None:
        self.wishes.pop(event.payload["wish_id"], None)

    # ========== Snapshots ==========

    def snapshot_state(self) -> dict[str, Any]:
        return {"wishes": [wish.model_dump(mode="json") for wish in self.wishes.values()]}

    def restore_state(self, state: dict[str, Any]) -> None:
        self.wishes = {
            wish.wish_id: wish
            for wish in (Wish.model_validate(raw) for raw in state["wishes"])
        }
