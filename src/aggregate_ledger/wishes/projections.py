"""
Wishes Module Projections

WishBoard answers "which wishes does this user have" without loading the
aggregate. It is fed by the publisher and can be rebuilt from the log at
any time.
"""

from typing import Any

from aggregate_ledger.kernel.events import DomainEvent
from aggregate_ledger.kernel.projections import EventHandler, ReadModel
from aggregate_ledger.wishes.events import WISH_GRANTED, WISH_MADE, WISH_REMOVED
from aggregate_ledger.wishes.models import WishBoardEntry, WishStatus


class WishBoard(ReadModel):
    """
    Projection: wishes per user

    State layout: {user_id: {wish_id: row}}
    """

    name = "wish_board"

    def reset(self) -> None:
        self.users: dict[str, dict[str, dict[str, Any]]] = {}

    def handlers(self) -> dict[str, EventHandler]:
        return {
            WISH_MADE: self._on_wish_made,
            WISH_GRANTED: self._on_wish_granted,
            WISH_REMOVED: self._on_wish_removed,
        }

    def _on_wish_made(self, event: DomainEvent) -> None:
        self.users.setdefault(event.aggregate_id, {})[event.payload["wish_id"]] = {
            "user_id": event.aggregate_id,
            "wish_id": event.payload["wish_id"],
            "address": event.payload["address"],
            "content": event.payload["content"],
            "status": WishStatus.OUTSTANDING.value,
            "made_at": event.occurred_at.isoformat(),
            "granted_at": None,
        }

    def _on_wish_granted(self, event: DomainEvent) -> None:
        row = self.users.get(event.aggregate_id, {}).get(event.payload["wish_id"])
        if row is not None:
            row["status"] = WishStatus.GRANTED.value
            row["granted_at"] = event.occurred_at.isoformat()

    def _on_wish_removed(self, event: DomainEvent) -> None:
        self.users.get(event.aggregate_id, {}).pop(event.payload["wish_id"], None)

    # ========== Queries ==========

    def wishes_of(self, user_id: str) -> list[WishBoardEntry]:
        rows = self.users.get(user_id, {}).values()
        entries = [WishBoardEntry.model_validate(row) for row in rows]
        return sorted(entries, key=lambda e: (e.made_at, e.wish_id))

    def outstanding_count(self, user_id: str) -> int:
        return sum(
            1
            for row in self.users.get(user_id, {}).values()
            if row["status"] == WishStatus.OUTSTANDING.value
        )

    def totals(self) -> dict[str, int]:
        rows = [row for wishes in self.users.values() for row in wishes.values()]
        return {
            "users": len(self.users),
            "wishes": len(rows),
            "granted": sum(1 for row in rows if row["status"] == WishStatus.GRANTED.value),
        }

    def to_dict(self) -> dict[str, Any]:
        return {"users": self.users}

    def load_dict(self, state: dict[str, Any]) -> None:
        self.users = state.get("users", {})
