"""
EventRecord codec - durable envelope for domain events

The envelope is the stable wire and storage shape of an event:

    {aggregateId, aggregateType, eventType, version, occurredAt,
     payloadVersion, payload, eventId, commandId, actorId, position}

The payload itself stays opaque to the store. Consumers that read older
payload shapes register upcasters keyed by (event_type, payload_version).
"""

from collections.abc import Callable
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from aggregate_ledger.kernel.events import DomainEvent
from aggregate_ledger.kernel.logging import get_logger

logger = get_logger(__name__)

Upcaster = Callable[[dict[str, Any]], dict[str, Any]]


class EventEnvelope(BaseModel):
    """Serialized form of a DomainEvent (camelCase on the wire)"""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    aggregate_id: str
    aggregate_type: str
    event_type: str
    version: int = Field(..., ge=1)
    occurred_at: datetime
    payload_version: int = Field(default=1, ge=1)
    payload: dict[str, Any] = Field(default_factory=dict)
    event_id: str
    command_id: str
    actor_id: str | None = None
    position: int | None = None


class MessageMetadata(BaseModel):
    """
    Metadata sent alongside each event to a broker

    `type` and `id` are mandatory: consumers deduplicate on id and pick
    a payload parser by type.
    """

    model_config = ConfigDict(frozen=True)

    type: str
    id: str
    timestamp: datetime
    aggregate_id: str
    version: int
    payload_version: int = 1
    position: int | None = None


class EventCodec:
    """
    Encode/decode DomainEvents to JSON envelopes, with payload upcasting

    Example:
        >>> codec = EventCodec()
        >>> codec.register_upcaster("WishMade", 1, lambda p: {**p, "channel": "web"})
        >>> event = codec.decode(codec.encode(old_event))
        >>> event.payload_version
        2
    """

    def __init__(self) -> None:
        self._upcasters: dict[tuple[str, int], Upcaster] = {}

    def register_upcaster(
        self, event_type: str, from_version: int, upcaster: Upcaster
    ) -> None:
        """
        Register a payload migration from `from_version` to `from_version + 1`

        Raises:
            ValueError: If an upcaster is already registered for that step
        """
        key = (event_type, from_version)
        if key in self._upcasters:
            raise ValueError(
                f"Upcaster already registered for {event_type} v{from_version}"
            )
        self._upcasters[key] = upcaster
        logger.debug(
            "Upcaster registered", event_type=event_type, from_version=from_version
        )

    def upcast(self, event: DomainEvent) -> DomainEvent:
        """Apply registered upcasters until the payload is at its latest known version"""
        payload = event.payload
        payload_version = event.payload_version
        while (event.event_type, payload_version) in self._upcasters:
            payload = self._upcasters[(event.event_type, payload_version)](dict(payload))
            payload_version += 1
        if payload_version == event.payload_version:
            return event
        return event.model_copy(
            update={"payload": payload, "payload_version": payload_version}
        )

    def to_envelope(self, event: DomainEvent) -> EventEnvelope:
        return EventEnvelope(
            aggregate_id=event.aggregate_id,
            aggregate_type=event.aggregate_type,
            event_type=event.event_type,
            version=event.version,
            occurred_at=event.occurred_at,
            payload_version=event.payload_version,
            payload=event.payload,
            event_id=event.event_id,
            command_id=event.command_id,
            actor_id=event.actor_id,
            position=event.position,
        )

    def from_envelope(self, envelope: EventEnvelope) -> DomainEvent:
        event = DomainEvent(
            event_id=envelope.event_id,
            aggregate_id=envelope.aggregate_id,
            aggregate_type=envelope.aggregate_type,
            event_type=envelope.event_type,
            version=envelope.version,
            occurred_at=envelope.occurred_at,
            payload=envelope.payload,
            payload_version=envelope.payload_version,
            command_id=envelope.command_id,
            actor_id=envelope.actor_id,
            position=envelope.position,
        )
        return self.upcast(event)

    def encode(self, event: DomainEvent) -> str:
        """Serialize an event to its JSON envelope"""
        return self.to_envelope(event).model_dump_json(by_alias=True)

    def encode_dict(self, event: DomainEvent) -> dict[str, Any]:
        """Envelope as a JSON-compatible dict (for HTTP responses)"""
        return self.to_envelope(event).model_dump(mode="json", by_alias=True)

    def decode(self, data: str | bytes) -> DomainEvent:
        """Deserialize a JSON envelope, upcasting the payload"""
        return self.from_envelope(EventEnvelope.model_validate_json(data))

    def message_metadata(self, event: DomainEvent) -> MessageMetadata:
        return MessageMetadata(
            type=event.event_type,
            id=event.event_id,
            timestamp=event.occurred_at,
            aggregate_id=event.aggregate_id,
            version=event.version,
            payload_version=event.payload_version,
            position=event.position,
        )
