"""Tests for the event envelope codec and payload upcasting"""

import json

import pytest

from aggregate_ledger.kernel.codec import EventCodec
from tests.helpers import make_event


def test_envelope_uses_camel_case_keys() -> None:
    event = make_event("w-1", 1, event_type="WishMade", payload={"wishId": "x"})

    data = json.loads(EventCodec().encode(event))

    assert data["aggregateId"] == "w-1"
    assert data["eventType"] == "WishMade"
    assert data["payloadVersion"] == 1
    assert data["commandId"] == event.command_id
    assert data["payload"] == {"wishId": "x"}


def test_decode_restores_event() -> None:
    codec = EventCodec()
    event = make_event("c-1", 4, payload={"by": 2})

    decoded = codec.decode(codec.encode(event))

    assert decoded == event


def test_decode_accepts_snake_case_fields() -> None:
    codec = EventCodec()
    raw = codec.encode_dict(make_event("c-1", 1))
    snake = {
        "aggregate_id": raw["aggregateId"],
        "aggregate_type": raw["aggregateType"],
        "event_type": raw["eventType"],
        "version": raw["version"],
        "occurred_at": raw["occurredAt"],
        "payload": raw["payload"],
        "event_id": raw["eventId"],
        "command_id": raw["commandId"],
    }

    assert codec.decode(json.dumps(snake)).aggregate_id == "c-1"


def test_upcasters_chain_to_latest_version() -> None:
    codec = EventCodec()
    codec.register_upcaster("CounterIncremented", 1, lambda p: {"amount": p["by"]})
    codec.register_upcaster("CounterIncremented", 2, lambda p: {**p, "unit": "each"})

    decoded = codec.decode(codec.encode(make_event("c-1", 1, payload={"by": 3})))

    assert decoded.payload_version == 3
    assert decoded.payload == {"amount": 3, "unit": "each"}


def test_events_without_upcasters_are_unchanged() -> None:
    codec = EventCodec()
    codec.register_upcaster("SomethingElse", 1, lambda p: {})
    event = make_event("c-1", 1)

    assert codec.upcast(event) is event


def test_duplicate_upcaster_rejected() -> None:
    codec = EventCodec()
    codec.register_upcaster("CounterIncremented", 1, lambda p: p)

    with pytest.raises(ValueError):
        codec.register_upcaster("CounterIncremented", 1, lambda p: p)


def test_message_metadata_identifies_event() -> None:
    event = make_event("c-1", 2)

    metadata = EventCodec().message_metadata(event)

    assert metadata.type == "CounterIncremented"
    assert metadata.id == event.event_id
    assert metadata.version == 2
