"""
DomainEvent model

A domain event is an immutable record of something that already happened
to one aggregate. The event store assigns the global commit position when
the event becomes durable; everything else is fixed at creation time.
"""

from datetime import datetime

from pydantic import BaseModel, Field


class DomainEvent(BaseModel):
    """
    Base event record shared by every aggregate type

    Two events are the same occurrence when they share
    (aggregate_id, version). Consumers use that pair to deduplicate
    redelivered events.
    """

    event_id: str = Field(
        ...,
        description="Unique event identifier (UUIDv7 for time-ordering)",
    )

    aggregate_id: str = Field(
        ...,
        description="Identifier of the aggregate whose stream holds this event",
    )

    aggregate_type: str = Field(
        ...,
        description="Type of aggregate: 'user', 'idea', 'forum', 'post'",
    )

    event_type: str = Field(
        ...,
        description="Past-tense event name: 'WishMade', 'IdeaRated', etc.",
    )

    version: int = Field(
        ...,
        description="Aggregate revision produced by this event",
        ge=1,
    )

    occurred_at: datetime = Field(
        ...,
        description="UTC timestamp when the event occurred",
    )

    payload: dict = Field(
        default_factory=dict,
        description="Event-specific data (must be JSON-serializable)",
    )

    payload_version: int = Field(
        default=1,
        description="Schema version of the payload, independent of aggregate version",
        ge=1,
    )

    command_id: str = Field(
        ...,
        description="ID of the command that caused this event (idempotency key)",
    )

    actor_id: str | None = Field(
        default=None,
        description="ID of actor who triggered this event (None for system events)",
    )

    position: int | None = Field(
        default=None,
        description="Global commit position, assigned by the event store",
    )

    model_config = {
        "frozen": True,
        "json_schema_extra": {
            "examples": [
                {
                    "event_id": "01908e9a-3b87-7000-8000-123456789abc",
                    "aggregate_id": "user-001",
                    "aggregate_type": "user",
                    "event_type": "WishMade",
                    "version": 2,
                    "occurred_at": "2025-01-15T10:30:00Z",
                    "payload": {"wish_id": "w-1", "address": "a@b.com", "content": "hi"},
                    "payload_version": 1,
                    "command_id": "cmd-123",
                    "actor_id": "user-001",
                    "position": 42,
                }
            ]
        },
    }

    @property
    def identity(self) -> tuple[str, int]:
        """Deduplication key"""
        return (self.aggregate_id, self.version)

    @property
    def is_persisted(self) -> bool:
        return self.position is not None

    def with_position(self, position: int) -> "DomainEvent":
        """Return the durable copy of this event at a global position"""
        return self.model_copy(update={"position": position})


def create_event(
    *,
    event_id: str,
    aggregate_id: str,
    aggregate_type: str,
    event_type: str,
    version: int,
    occurred_at: datetime,
    command_id: str,
    actor_id: str | None = None,
    payload: dict | None = None,
    payload_version: int = 1,
) -> DomainEvent:
    """Build an unpersisted event with every required field named"""
    return DomainEvent(
        event_id=event_id,
        aggregate_id=aggregate_id,
        aggregate_type=aggregate_type,
        event_type=event_type,
        version=version,
        occurred_at=occurred_at,
        command_id=command_id,
        actor_id=actor_id,
        payload=payload or {},
        payload_version=payload_version,
    )
