"""
Ledger Policy - Tunable parameters of the storage engine

Snapshot cadence, publishing batch size, lock timeouts and the business
limits of the bundled aggregates are configuration, not code. Defaults
work for tests and local use; deployments override them via environment
variables.
"""

import os
from typing import Any

from pydantic import BaseModel, Field


class LedgerPolicy(BaseModel):
    """
    Engine configuration

    All values are validated on construction, so an invalid environment
    fails at startup rather than in the middle of a save.
    """

    policy_version: str = Field(
        default="1.0",
        description="Policy version for tracking changes over time",
    )

    # Snapshotting
    snapshot_enabled: bool = Field(
        default=True,
        description="Write snapshots after saves that cross the cadence boundary",
    )

    snapshot_every: int = Field(
        default=100,
        ge=1,
        description="Write a snapshot each time the version crosses a multiple of this",
    )

    # Publishing
    publish_batch_size: int = Field(
        default=500,
        ge=1,
        description="Maximum events a channel receives per publish_pending call",
    )

    auto_publish: bool = Field(
        default=True,
        description="Publish pending events to all channels right after each save",
    )

    # Concurrency
    lock_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Bounded wait for pessimistic aggregate locks",
    )

    conflict_retry_attempts: int = Field(
        default=1,
        ge=0,
        le=10,
        description="Reload-and-retry rounds after an optimistic lock failure",
    )

    sqlite_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="SQLite busy timeout for each connection",
    )

    # Business limits
    max_wishes_per_user: int = Field(
        default=3,
        ge=1,
        description="Maximum number of outstanding wishes a user may hold",
    )

    min_rating: int = Field(default=1, description="Lowest allowed idea rating")
    max_rating: int = Field(default=5, description="Highest allowed idea rating")

    model_config = {"frozen": True}

    @classmethod
    def from_env(cls, prefix: str = "LEDGER_") -> "LedgerPolicy":
        """
        Build a policy from environment variables

        Each field maps to PREFIX + FIELD_NAME in upper case, e.g.
        LEDGER_SNAPSHOT_EVERY=50. Missing variables keep their default.
        """
        values: dict[str, Any] = {}
        for name in cls.model_fields:
            raw = os.getenv(f"{prefix}{name.upper()}")
            if raw is not None:
                values[name] = raw
        return cls.model_validate(values)
