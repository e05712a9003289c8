"""
Aggregate Ledger - event-sourced aggregates with consistent boundaries

Aggregates guard their invariants and change only through events. An
append-only SQLite event store with optimistic concurrency keeps each
aggregate's history gapless, snapshots shortcut long replays, and a
publisher with durable per-channel cursors feeds projections and
outbound brokers at least once.
"""

from aggregate_ledger.ledger import Ledger

__version__ = "0.1.0"
__all__ = ["Ledger", "__version__"]
