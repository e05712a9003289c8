"""
Kernel - Event sourcing runtime shared by every domain module

Aggregates record events, repositories persist them through the event
store with an expected-version check, and the publisher forwards committed
events to projections and outbound channels with at-least-once delivery.

Fun fact: Event sourcing was inspired by accountants - they never erase
ledger entries, they add correcting entries.
"""

from aggregate_ledger.kernel.aggregate import AggregateRoot, applies
from aggregate_ledger.kernel.bus import CommandBus
from aggregate_ledger.kernel.codec import EventCodec, EventEnvelope, MessageMetadata
from aggregate_ledger.kernel.commands import Command
from aggregate_ledger.kernel.errors import (
    AggregateNotFound,
    CommandIdReused,
    ConcurrencyConflict,
    DeliveryFailure,
    EventStoreError,
    InvariantViolation,
    LedgerError,
    OptimisticLockException,
    StoreUnavailable,
)
from aggregate_ledger.kernel.event_store import SQLiteEventStore
from aggregate_ledger.kernel.events import DomainEvent, create_event
from aggregate_ledger.kernel.ids import generate_id
from aggregate_ledger.kernel.policy import LedgerPolicy
from aggregate_ledger.kernel.projections import ProjectionEngine, ReadModel
from aggregate_ledger.kernel.publisher import ChannelCursor, Publisher, PublishResult
from aggregate_ledger.kernel.repository import EventSourcedRepository
from aggregate_ledger.kernel.snapshot_store import (
    InMemorySnapshotStore,
    Snapshot,
    SQLiteSnapshotStore,
)
from aggregate_ledger.kernel.time import RealTimeProvider, TestTimeProvider, TimeProvider
from aggregate_ledger.kernel.tracker import SQLitePublishedMessageTracker
from aggregate_ledger.kernel.unit_of_work import UnitOfWork

__all__ = [
    # IDs & time
    "generate_id",
    "TimeProvider",
    "RealTimeProvider",
    "TestTimeProvider",
    # Events & commands
    "DomainEvent",
    "create_event",
    "Command",
    "CommandBus",
    # Aggregates & persistence
    "AggregateRoot",
    "applies",
    "SQLiteEventStore",
    "Snapshot",
    "InMemorySnapshotStore",
    "SQLiteSnapshotStore",
    "EventSourcedRepository",
    "UnitOfWork",
    "LedgerPolicy",
    # Publishing & projections
    "EventCodec",
    "EventEnvelope",
    "MessageMetadata",
    "Publisher",
    "PublishResult",
    "ChannelCursor",
    "SQLitePublishedMessageTracker",
    "ProjectionEngine",
    "ReadModel",
    # Errors
    "LedgerError",
    "EventStoreError",
    "ConcurrencyConflict",
    "StoreUnavailable",
    "CommandIdReused",
    "OptimisticLockException",
    "AggregateNotFound",
    "DeliveryFailure",
    "InvariantViolation",
]
