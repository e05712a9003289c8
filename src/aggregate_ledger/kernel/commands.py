"""
Base Command model

A command is a validated, primitive-typed request to change exactly one
aggregate. Its command_id doubles as the idempotency key of the events it
produces, so resubmitting a command after an unknown outcome is safe.
"""

from datetime import datetime, timezone

from pydantic import BaseModel, Field

from aggregate_ledger.kernel.ids import generate_id


class Command(BaseModel):
    """
    Base command class - all use-case requests inherit from this

    Subclasses add their own fields; the bus routes on the concrete class.
    """

    command_id: str = Field(
        default_factory=generate_id,
        description="Unique command identifier (idempotency key)",
    )

    actor_id: str | None = Field(
        default=None,
        description="ID of actor issuing this command (None for system commands)",
    )

    issued_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="UTC timestamp when command was issued",
    )

    model_config = {"frozen": True}

    @classmethod
    def command_type(cls) -> str:
        return cls.__name__
