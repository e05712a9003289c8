"""
Test Helper Functions - event builders

Keep kernel tests independent of any domain module: these builders make
raw DomainEvents for an arbitrary "counter" aggregate.
"""

from datetime import datetime, timezone
from typing import Any

from aggregate_ledger.kernel.aggregate import AggregateRoot, applies
from aggregate_ledger.kernel.events import DomainEvent, create_event
from aggregate_ledger.kernel.ids import generate_id

BASE_TIME = datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


def make_event(
    aggregate_id: str,
    version: int,
    event_type: str = "CounterIncremented",
    payload: dict[str, Any] | None = None,
    command_id: str | None = None,
    aggregate_type: str = "counter",
) -> DomainEvent:
    """
    Builder for an unpersisted event

    Example:
        >>> event_store.append("c-1", 0, [make_event("c-1", 1)])
    """
    return create_event(
        event_id=generate_id(),
        aggregate_id=aggregate_id,
        aggregate_type=aggregate_type,
        event_type=event_type,
        version=version,
        occurred_at=BASE_TIME,
        command_id=command_id or generate_id(),
        payload=payload if payload is not None else {"by": 1},
    )


def make_events(
    aggregate_id: str,
    count: int,
    start_version: int = 1,
    command_id: str | None = None,
) -> list[DomainEvent]:
    """Consecutive CounterIncremented events sharing one command id"""
    command_id = command_id or generate_id()
    return [
        make_event(aggregate_id, version, command_id=command_id)
        for version in range(start_version, start_version + count)
    ]


class Counter(AggregateRoot):
    """Minimal snapshot-capable aggregate for kernel tests"""

    aggregate_type = "counter"

    def __init__(self, aggregate_id: str, **kwargs: Any) -> None:
        super().__init__(aggregate_id, **kwargs)
        self.total = 0

    def increment(self, by: int = 1, command_id: str | None = None) -> None:
        self.record_and_apply("CounterIncremented", {"by": by}, command_id=command_id)

    @applies("CounterIncremented")
    def _on_incremented(self, event: DomainEvent) -> None:
        self.total += event.payload["by"]

    def snapshot_state(self) -> dict[str, Any]:
        return {"total": self.total}

    def restore_state(self, state: dict[str, Any]) -> None:
        self.total = state["total"]


class Journal(AggregateRoot):
    """Aggregate without snapshot support"""

    aggregate_type = "journal"

    def __init__(self, aggregate_id: str, **kwargs: Any) -> None:
        super().__init__(aggregate_id, **kwargs)
        self.lines: list[str] = []

    def write(self, line: str) -> None:
        self.record_and_apply("LineWritten", {"line": line})

    @applies("LineWritten")
    def _on_line(self, event: DomainEvent) -> None:
        self.lines.append(event.payload["line"])
