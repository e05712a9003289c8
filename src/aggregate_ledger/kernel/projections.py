"""
Projection engine - read models built from published events

Handlers are registered per event type. Events of unregistered types are
ignored. The engine remembers the highest version applied per aggregate,
so an event redelivered by the at-least-once publisher is skipped instead
of being applied twice.

Read models are disposable: rebuild() resets them and replays the full
history through the same handlers, which must yield the same state as
incremental application did.

Application, rebuilds and checkpoints share one lock, so an event is
checked and marked as applied in a single step.
"""

import threading
import time
from collections import defaultdict
from collections.abc import Callable, Iterable
from typing import Any, ClassVar

from aggregate_ledger.kernel.codec import EventCodec, MessageMetadata
from aggregate_ledger.kernel.events import DomainEvent
from aggregate_ledger.kernel.logging import get_logger
from aggregate_ledger.kernel.metrics import (
    projection_events_applied_total,
    projection_rebuild_duration_seconds,
)
from aggregate_ledger.kernel.projection_store import SQLiteProjectionStore

logger = get_logger(__name__)

EventHandler = Callable[[DomainEvent], None]


class ReadModel:
    """
    Base class for a denormalized view

    Subclasses set `name`, implement reset()/to_dict()/load_dict() and map
    event types to handler methods in handlers().
    """

    name: ClassVar[str] = "read_model"

    def __init__(self) -> None:
        self.reset()

    def reset(self) -> None:
        """Return to the empty state"""
        raise NotImplementedError

    def to_dict(self) -> dict[str, Any]:
        """JSON-serialisable state for checkpoints"""
        raise NotImplementedError

    def load_dict(self, state: dict[str, Any]) -> None:
        """Restore state produced by to_dict()"""
        raise NotImplementedError

    def handlers(self) -> dict[str, EventHandler]:
        raise NotImplementedError


class ProjectionEngine:
    """Dispatches events to per-type handlers, idempotently"""

    def __init__(self, name: str = "projections") -> None:
        self.name = name
        self._handlers: defaultdict[str, list[EventHandler]] = defaultdict(list)
        self._read_models: dict[str, ReadModel] = {}
        self._applied_versions: dict[str, int] = {}
        self._lock = threading.RLock()
        self.position = 0

    # ========== Registration ==========

    def register(self, event_type: str, handler: EventHandler) -> None:
        """Register a handler; several handlers per event type run in registration order"""
        self._handlers[event_type].append(handler)
        logger.debug(
            "Projection handler registered",
            projection=self.name,
            event_type=event_type,
            total_handlers=len(self._handlers[event_type]),
        )

    def add_read_model(self, read_model: ReadModel) -> ReadModel:
        """Register every handler of a read model and keep it for rebuilds/checkpoints"""
        if read_model.name in self._read_models:
            raise ValueError(f"Read model {read_model.name} is already registered")
        self._read_models[read_model.name] = read_model
        for event_type, handler in read_model.handlers().items():
            self.register(event_type, handler)
        return read_model

    def read_model(self, name: str) -> ReadModel:
        return self._read_models[name]

    @property
    def event_types(self) -> list[str]:
        return list(self._handlers)

    # ========== Application ==========

    def has_applied(self, event: DomainEvent) -> bool:
        return event.version <= self._applied_versions.get(event.aggregate_id, 0)

    def apply(self, event: DomainEvent) -> bool:
        """
        Apply one event to all handlers registered for its type

        Returns:
            True if handlers ran, False for duplicates and unhandled types
        """
        with self._lock:
            if self.has_applied(event):
                logger.debug(
                    "Skipping already applied event",
                    projection=self.name,
                    aggregate_id=event.aggregate_id,
                    version=event.version,
                )
                return False

            handlers = self._handlers.get(event.event_type, [])
            for handler in handlers:
                handler(event)

            # Marked only after every handler succeeded, so a failure is retried
            self._applied_versions[event.aggregate_id] = event.version
            if event.position is not None:
                self.position = max(self.position, event.position)

        if handlers:
            projection_events_applied_total.labels(
                projection=self.name, event_type=event.event_type
            ).inc()
        return bool(handlers)

    def apply_all(self, events: Iterable[DomainEvent]) -> int:
        return sum(1 for event in events if self.apply(event))

    def advance_to(self, position: int) -> bool:
        """Record that everything up to position was delivered"""
        with self._lock:
            if position <= self.position:
                return False
            self.position = position
            return True

    def reset(self) -> None:
        with self._lock:
            for read_model in self._read_models.values():
                read_model.reset()
            self._applied_versions.clear()
            self.position = 0

    def rebuild(self, events: Iterable[DomainEvent]) -> int:
        """Reset every read model and replay the given history in order"""
        start = time.perf_counter()
        with self._lock:
            self.reset()
            applied = self.apply_all(events)
        duration = time.perf_counter() - start
        projection_rebuild_duration_seconds.labels(projection=self.name).observe(duration)
        logger.info(
            "Projections rebuilt",
            projection=self.name,
            events_applied=applied,
            position=self.position,
            duration_ms=round(duration * 1000, 2),
        )
        return applied

    # ========== Checkpoints ==========

    def state(self) -> dict[str, Any]:
        with self._lock:
            return {name: model.to_dict() for name, model in self._read_models.items()}

    def checkpoint(self, store: SQLiteProjectionStore) -> None:
        """Persist read models together with the dedup marks and position"""
        with self._lock:
            store.save(
                self.name,
                self.state(),
                position=self.position,
                applied_versions=dict(self._applied_versions),
            )

    def restore(self, store: SQLiteProjectionStore) -> bool:
        """Load a checkpoint; returns False when there is none"""
        saved = store.load(self.name)
        if saved is None:
            return False
        with self._lock:
            self.reset()
            for name, model_state in saved.state.items():
                if name in self._read_models:
                    self._read_models[name].load_dict(model_state)
            self._applied_versions = dict(saved.applied_versions)
            self.position = saved.position
        return True


class ProjectionChannel:
    """
    Channel adapter feeding published events into a projection engine

    Also serves as the channel's cursor: the position lives in the engine
    and its checkpoint, never in the shared tracker, because the read
    models it stands for exist only in this process.
    """

    def __init__(self, engine: ProjectionEngine, codec: EventCodec | None = None) -> None:
        self.engine = engine
        self.codec = codec or EventCodec()

    def send(self, serialized_event: str, metadata: MessageMetadata) -> bool:
        self.engine.apply(self.codec.decode(serialized_event))
        return True

    def last_position(self, channel_id: str) -> int:
        return self.engine.position

    def advance(self, channel_id: str, position: int) -> bool:
        return self.engine.advance_to(position)
