"""
Ideas Module Handlers
"""

from aggregate_ledger.ideas.aggregate import Idea
from aggregate_ledger.ideas.commands import ProposeIdea, RateIdea
from aggregate_ledger.ideas.models import IdeaSummary
from aggregate_ledger.kernel.errors import AggregateAlreadyExists
from aggregate_ledger.kernel.policy import LedgerPolicy
from aggregate_ledger.kernel.repository import EventSourcedRepository
from aggregate_ledger.kernel.unit_of_work import UnitOfWork


class IdeaRepository(EventSourcedRepository[Idea]):
    aggregate_class = Idea


class IdeaCommandHandlers:
    """Command handlers for the ideas module"""

    def __init__(self, repository: IdeaRepository, policy: LedgerPolicy) -> None:
        self.repository = repository
        self.policy = policy

    def handle_propose_idea(self, command: ProposeIdea) -> IdeaSummary:
        """
        Raises:
            AggregateAlreadyExists: If another command already proposed this id
        """
        if self.repository.was_committed(command.idea_id, command.command_id):
            return self.repository.load(command.idea_id).summary()
        if self.repository.exists(command.idea_id):
            raise AggregateAlreadyExists(Idea.aggregate_type, command.idea_id)

        with UnitOfWork() as uow:
            idea = uow.create(self.repository, command.idea_id)
            idea.propose(
                command.title,
                command.author,
                command_id=command.command_id,
                actor_id=command.actor_id,
            )
        return idea.summary()

    def handle_rate_idea(self, command: RateIdea) -> IdeaSummary:
        def decide(idea: Idea) -> IdeaSummary:
            idea.add_rating(
                command.rating,
                minimum=self.policy.min_rating,
                maximum=self.policy.max_rating,
                command_id=command.command_id,
                actor_id=command.actor_id,
            )
            return idea.summary()

        if self.repository.was_committed(command.idea_id, command.command_id):
            return self.repository.load(command.idea_id).summary()
        return self.repository.update(command.idea_id, decide, use_case="RateIdea")
