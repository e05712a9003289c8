"""
Forum Module Projections
"""

from typing import Any

from aggregate_ledger.forum.events import (
    FORUM_CLOSED,
    FORUM_OPENED,
    POST_DRAFTED,
    POST_PUBLISHED,
)
from aggregate_ledger.forum.models import TimelineEntry
from aggregate_ledger.kernel.events import DomainEvent
from aggregate_ledger.kernel.projections import EventHandler, ReadModel


class ForumTimeline(ReadModel):
    """
    Projection: published posts per forum, oldest first

    Drafts are remembered so the PostPublished event, which carries only
    the forum id, can be joined with the author and body.
    """

    name = "forum_timeline"

    def reset(self) -> None:
        self.forums: dict[str, dict[str, Any]] = {}
        self.drafts: dict[str, dict[str, Any]] = {}
        self.timelines: dict[str, list[dict[str, Any]]] = {}

    def handlers(self) -> dict[str, EventHandler]:
        return {
            FORUM_OPENED: self._on_forum_opened,
            FORUM_CLOSED: self._on_forum_closed,
            POST_DRAFTED: self._on_post_drafted,
            POST_PUBLISHED: self._on_post_published,
        }

    def _on_forum_opened(self, event: DomainEvent) -> None:
        self.forums[event.aggregate_id] = {
            "forum_id": event.aggregate_id,
            "title": event.payload["title"],
            "is_open": True,
        }
        self.timelines.setdefault(event.aggregate_id, [])

    def _on_forum_closed(self, event: DomainEvent) -> None:
        if event.aggregate_id in self.forums:
            self.forums[event.aggregate_id]["is_open"] = False

    def _on_post_drafted(self, event: DomainEvent) -> None:
        self.drafts[event.aggregate_id] = {
            "forum_id": event.payload["forum_id"],
            "author": event.payload["author"],
            "body": event.payload["body"],
        }

    def _on_post_published(self, event: DomainEvent) -> None:
        draft = self.drafts.pop(event.aggregate_id, None)
        if draft is None:
            return
        self.timelines.setdefault(draft["forum_id"], []).append(
            {
                "forum_id": draft["forum_id"],
                "post_id": event.aggregate_id,
                "author": draft["author"],
                "body": draft["body"],
                "published_at": event.occurred_at.isoformat(),
            }
        )

    # ========== Queries ==========

    def timeline(self, forum_id: str) -> list[TimelineEntry]:
        return [TimelineEntry.model_validate(row) for row in self.timelines.get(forum_id, [])]

    def open_forums(self) -> list[dict[str, Any]]:
        return [forum for forum in self.forums.values() if forum["is_open"]]

    def to_dict(self) -> dict[str, Any]:
        return {"forums": self.forums, "drafts": self.drafts, "timelines": self.timelines}

    def load_dict(self, state: dict[str, Any]) -> None:
        self.forums = state.get("forums", {})
        self.drafts = state.get("drafts", {})
        self.timelines = state.get("timelines", {})
