"""
Unit of Work - one aggregate per transaction

A business operation may read as many aggregates as it needs, but it may
only change one. Tracking a second aggregate for modification is a design
error: either the two belong in one aggregate, or the second change must
follow eventually from a published event.
"""

from types import TracebackType
from typing import Any, TypeVar

from aggregate_ledger.kernel.aggregate import AggregateRoot
from aggregate_ledger.kernel.errors import MultipleAggregatesInTransaction
from aggregate_ledger.kernel.events import DomainEvent
from aggregate_ledger.kernel.logging import get_logger
from aggregate_ledger.kernel.repository import EventSourcedRepository

logger = get_logger(__name__)

A = TypeVar("A", bound=AggregateRoot)


class UnitOfWork:
    """
    Tracks the single aggregate a business operation modifies

    Example:
        with UnitOfWork() as uow:
            idea = uow.load(idea_repository, "idea-1")
            idea.add_rating(4)
        # saved on clean exit, discarded on exception
        uow.committed_events
    """

    def __init__(self) -> None:
        self._repository: EventSourcedRepository[Any] | None = None
        self._aggregate: AggregateRoot | None = None
        self.committed_events: list[DomainEvent] = []

    def track(self, repository: EventSourcedRepository[A], aggregate: A) -> A:
        """Register the aggregate this unit of work will save"""
        if self._aggregate is not None:
            if self._aggregate is aggregate:
                return aggregate
            raise MultipleAggregatesInTransaction(
                self._aggregate.aggregate_id, aggregate.aggregate_id
            )
        self._repository = repository
        self._aggregate = aggregate
        return aggregate

    def load(self, repository: EventSourcedRepository[A], aggregate_id: str) -> A:
        """Load an aggregate for modification"""
        return self.track(repository, repository.load(aggregate_id))

    def create(self, repository: EventSourcedRepository[A], aggregate_id: str) -> A:
        """Start a new aggregate for modification"""
        return self.track(repository, repository.new(aggregate_id))

    def commit(self) -> list[DomainEvent]:
        if self._repository is None or self._aggregate is None:
            return []
        self.committed_events = self._repository.save(self._aggregate)
        return self.committed_events

    def __enter__(self) -> "UnitOfWork":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if exc_type is None:
            self.commit()
        elif self._aggregate is not None:
            logger.debug(
                "Unit of work discarded",
                aggregate_id=self._aggregate.aggregate_id,
                error_type=exc_type.__name__,
            )
