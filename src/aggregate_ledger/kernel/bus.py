"""
In-process command bus

Routes each command class to the single use-case handler that executes it
(`execute(request) -> response | DomainError`). The transport is
in-process and synchronous; a queue-backed bus can replace it without
touching the handlers.
"""

from collections.abc import Callable
from typing import Any

from aggregate_ledger.kernel.commands import Command
from aggregate_ledger.kernel.errors import InvariantViolation
from aggregate_ledger.kernel.logging import LogOperation, get_logger
from aggregate_ledger.kernel.metrics import track_use_case_duration

logger = get_logger(__name__)

UseCaseHandler = Callable[[Any], Any]


class CommandBus:
    """
    Synchronous command bus with one handler per command class

    Domain errors (InvariantViolation, AggregateNotFound, ...) propagate
    unchanged to the caller, who turns them into user-facing messages.
    """

    def __init__(self) -> None:
        self._handlers: dict[type[Command], UseCaseHandler] = {}
        logger.debug("CommandBus initialized")

    def register(self, command_cls: type[Command], handler: UseCaseHandler) -> None:
        """
        Register the handler for a command class

        Raises:
            ValueError: If a handler is already registered for this class
        """
        if command_cls in self._handlers:
            logger.error(
                "Command handler registration failed - already exists",
                command_type=command_cls.command_type(),
            )
            raise ValueError(
                f"Command handler already registered for {command_cls.command_type()}. "
                "Each command type has exactly one handler."
            )
        self._handlers[command_cls] = track_use_case_duration(command_cls.command_type())(
            handler
        )
        logger.debug("Command handler registered", command_type=command_cls.command_type())

    def execute(self, command: Command) -> Any:
        """
        Execute a command through its handler

        Raises:
            ValueError: If no handler is registered for the command class
            LedgerError: Whatever the handler raises
        """
        handler = self._handlers.get(type(command))
        if handler is None:
            raise ValueError(
                f"No handler registered for command type '{command.command_type()}'. "
                f"Available: {self.command_types()}"
            )

        with LogOperation(
            logger,
            "execute_command",
            command_type=command.command_type(),
            command_id=command.command_id,
            actor_id=command.actor_id,
        ):
            try:
                return handler(command)
            except InvariantViolation as e:
                logger.info(
                    "Command rejected by invariant",
                    command_type=command.command_type(),
                    reason=str(e),
                )
                raise

    def command_types(self) -> list[str]:
        return [cls.command_type() for cls in self._handlers]
