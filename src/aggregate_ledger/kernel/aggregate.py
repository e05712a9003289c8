"""
Aggregate Root runtime

Every state change of an aggregate goes through an event: business
methods validate against current state, then call record_and_apply(),
which builds the event, applies it and queues it for persistence in the
same call. Reconstruction replays persisted events through the same
apply methods without recording them again.

Apply methods are registered explicitly per event type with @applies:

    class Idea(AggregateRoot):
        aggregate_type = "idea"

        @applies("IdeaRated")
        def _on_rated(self, event: DomainEvent) -> None:
            self.ratings.append(event.payload["rating"])

Apply methods must only mutate internal state. Anything with an outside
effect (notifications, emails) belongs to subscribers of the published
events, so replaying history never repeats it.
"""

from collections.abc import Callable, Iterable
from typing import Any, ClassVar, TypeVar

from aggregate_ledger.kernel.errors import UnknownEventType
from aggregate_ledger.kernel.events import DomainEvent, create_event
from aggregate_ledger.kernel.ids import generate_id
from aggregate_ledger.kernel.snapshot_store import Snapshot
from aggregate_ledger.kernel.time import RealTimeProvider, TimeProvider

A = TypeVar("A", bound="AggregateRoot")
ApplyMethod = Callable[[Any, DomainEvent], None]

_APPLIES_ATTR = "__applies_event_type__"


def applies(event_type: str) -> Callable[[ApplyMethod], ApplyMethod]:
    """Mark a method as the apply handler for one event type"""

    def decorator(method: ApplyMethod) -> ApplyMethod:
        setattr(method, _APPLIES_ATTR, event_type)
        return method

    return decorator


class AggregateRoot:
    """
    Base class for event-sourced aggregates

    Tracks two counters besides domain state:
    - version: version of the last applied event (0 = does not exist)
    - uncommitted events: recorded in this unit of work, not yet persisted
    """

    aggregate_type: ClassVar[str] = "aggregate"
    _appliers: ClassVar[dict[str, str]] = {}

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        table: dict[str, str] = dict(getattr(cls, "_appliers", {}))
        for name, attr in vars(cls).items():
            event_type = getattr(attr, _APPLIES_ATTR, None)
            if event_type is not None:
                table[event_type] = name
        cls._appliers = table

    def __init__(
        self,
        aggregate_id: str,
        *,
        time_provider: TimeProvider | None = None,
    ) -> None:
        self.aggregate_id = aggregate_id
        self._time_provider = time_provider or RealTimeProvider()
        self._version = 0
        self._uncommitted: list[DomainEvent] = []

    # ========== Counters ==========

    @property
    def version(self) -> int:
        return self._version

    @property
    def exists(self) -> bool:
        """An aggregate exists once its creation event has been applied"""
        return self._version > 0

    @property
    def committed_version(self) -> int:
        """Version the store held when this unit of work started"""
        return self._version - len(self._uncommitted)

    @classmethod
    def handled_event_types(cls) -> frozenset[str]:
        return frozenset(cls._appliers)

    # ========== Recording ==========

    def record_and_apply(
        self,
        event_type: str,
        payload: dict[str, Any],
        *,
        command_id: str | None = None,
        actor_id: str | None = None,
        payload_version: int = 1,
    ) -> DomainEvent:
        """
        Record a new event and apply it to current state

        The event gets version = current version + 1. It is applied before
        being queued, so a failing apply method leaves nothing recorded.
        """
        event = create_event(
            event_id=generate_id(),
            aggregate_id=self.aggregate_id,
            aggregate_type=self.aggregate_type,
            event_type=event_type,
            version=self._version + 1,
            occurred_at=self._time_provider.now(),
            command_id=command_id or generate_id(),
            actor_id=actor_id,
            payload=payload,
            payload_version=payload_version,
        )
        self._apply(event)
        self._uncommitted.append(event)
        self._version = event.version
        return event

    def uncommitted_events(self) -> tuple[DomainEvent, ...]:
        return tuple(self._uncommitted)

    def mark_committed(self) -> None:
        """Forget recorded events after the store accepted them"""
        self._uncommitted.clear()

    # ========== Reconstruction ==========

    def apply_history(self, events: Iterable[DomainEvent]) -> int:
        """
        Replay persisted events onto this aggregate

        Events must continue the current version without gaps. Nothing is
        recorded.

        Returns:
            Number of events applied

        Raises:
            ValueError: On foreign, out-of-order or gapped events, or when
                the aggregate still has uncommitted events
            UnknownEventType: When no apply method is registered
        """
        if self._uncommitted:
            raise ValueError("Cannot replay history onto an aggregate with uncommitted events")

        applied = 0
        for event in events:
            if event.aggregate_id != self.aggregate_id:
                raise ValueError(
                    f"Event {event.event_id} belongs to {event.aggregate_id}, "
                    f"not {self.aggregate_id}"
                )
            if event.version != self._version + 1:
                raise ValueError(
                    f"Event version {event.version} does not follow "
                    f"{self.aggregate_id} at version {self._version}"
                )
            self._apply(event)
            self._version = event.version
            applied += 1
        return applied

    def _apply(self, event: DomainEvent) -> None:
        method_name = self._appliers.get(event.event_type)
        if method_name is None:
            raise UnknownEventType(self.aggregate_type, event.event_type)
        getattr(self, method_name)(event)

    # ========== Snapshots ==========

    def snapshot_state(self) -> dict[str, Any]:
        """JSON-serialisable copy of domain state; override to enable snapshots"""
        raise NotImplementedError(f"{type(self).__name__} does not support snapshots")

    def restore_state(self, state: dict[str, Any]) -> None:
        """Inverse of snapshot_state()"""
        raise NotImplementedError(f"{type(self).__name__} does not support snapshots")

    @classmethod
    def supports_snapshots(cls) -> bool:
        return cls.snapshot_state is not AggregateRoot.snapshot_state

    def take_snapshot(self) -> Snapshot:
        """Snapshot of committed state at the current version"""
        if self._uncommitted:
            raise ValueError("Cannot snapshot an aggregate with uncommitted events")
        return Snapshot(
            aggregate_id=self.aggregate_id,
            aggregate_type=self.aggregate_type,
            version=self._version,
            state=self.snapshot_state(),
            taken_at=self._time_provider.now(),
        )

    def restore_snapshot(self, snapshot: Snapshot) -> None:
        if self._version != 0:
            raise ValueError("Snapshots can only be restored onto a fresh aggregate")
        self.restore_state(snapshot.state)
        self._version = snapshot.version

    def __repr__(self) -> str:
        return (
            f"<{type(self).__name__} {self.aggregate_id} v{self._version} "
            f"uncommitted={len(self._uncommitted)}>"
        )
