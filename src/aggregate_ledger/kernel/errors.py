"""
Exception hierarchy for Aggregate Ledger

Infrastructure errors (store, delivery) and domain errors (invariant
violations) live in separate branches so callers can tell "retry later"
apart from "this request can never succeed".
"""


class LedgerError(Exception):
    """Base exception for all Aggregate Ledger errors"""

    pass


# Event store errors


class EventStoreError(LedgerError):
    """Base class for event store errors"""

    pass


class ConcurrencyConflict(EventStoreError):
    """
    Raised by the event store when the stream version doesn't match expected

    The store never retries on its own. The repository translates this
    into an OptimisticLockException for the use-case layer.
    """

    def __init__(
        self, aggregate_id: str, expected_version: int, actual_version: int
    ) -> None:
        self.aggregate_id = aggregate_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Stream {aggregate_id} version mismatch: "
            f"expected {expected_version}, got {actual_version}"
        )


class StoreUnavailable(EventStoreError):
    """
    Raised when the backing store cannot be reached or fails transiently

    Callers may retry with backoff. Never swallow this on append: the
    business event would silently disappear.
    """

    def __init__(self, operation: str, cause: BaseException | None = None) -> None:
        self.operation = operation
        self.cause = cause
        detail = f": {cause}" if cause else ""
        super().__init__(f"Store unavailable during {operation}{detail}")


class CommandIdReused(EventStoreError):
    """
    Raised when a batch carries a command_id already recorded for the
    stream, but its events differ from the recorded ones

    A resubmitted command must produce the same event types and payloads.
    """

    def __init__(self, aggregate_id: str, command_id: str) -> None:
        self.aggregate_id = aggregate_id
        self.command_id = command_id
        super().__init__(
            f"Command {command_id} is already recorded for {aggregate_id} "
            "with different events"
        )


class SnapshotIntegrityError(EventStoreError):
    """Raised when a snapshot is rewritten at the same version with new content"""

    def __init__(self, aggregate_id: str, version: int) -> None:
        self.aggregate_id = aggregate_id
        self.version = version
        super().__init__(
            f"Snapshot for {aggregate_id} at version {version} already exists "
            "with different content"
        )


# Repository and unit-of-work errors


class OptimisticLockException(LedgerError):
    """
    Raised by the repository when a save lost the race for a stream

    The caller must reload the aggregate and re-run the business decision.
    Re-appending the same events is never valid.
    """

    def __init__(
        self, aggregate_id: str, expected_version: int, actual_version: int
    ) -> None:
        self.aggregate_id = aggregate_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Aggregate {aggregate_id} was modified concurrently "
            f"(expected version {expected_version}, store has {actual_version}) - "
            "reload and retry"
        )


class AggregateNotFound(LedgerError):
    """Raised when an aggregate has neither events nor a snapshot"""

    def __init__(self, aggregate_type: str, aggregate_id: str) -> None:
        self.aggregate_type = aggregate_type
        self.aggregate_id = aggregate_id
        super().__init__(f"{aggregate_type} {aggregate_id} not found")


class MultipleAggregatesInTransaction(LedgerError):
    """Raised when a unit of work tries to modify a second aggregate"""

    def __init__(self, first_id: str, second_id: str) -> None:
        self.first_id = first_id
        self.second_id = second_id
        super().__init__(
            f"Unit of work already modifies {first_id}; cannot also modify "
            f"{second_id}. Use an event to update it eventually."
        )


class LockTimeout(LedgerError):
    """Raised when a pessimistic aggregate lock was not acquired in time (retryable)"""

    def __init__(self, aggregate_id: str, timeout_seconds: float) -> None:
        self.aggregate_id = aggregate_id
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Could not lock aggregate {aggregate_id} within {timeout_seconds}s"
        )


# Codec and publishing errors


class UnknownEventType(LedgerError):
    """Raised when an aggregate has no apply handler for an event type"""

    def __init__(self, aggregate_type: str, event_type: str) -> None:
        self.aggregate_type = aggregate_type
        self.event_type = event_type
        super().__init__(f"{aggregate_type} cannot apply event type {event_type}")


class DeliveryFailure(LedgerError):
    """
    A channel adapter rejected or failed to deliver an event

    The publisher records this on its result instead of raising, and the
    tracker cursor stays at the last acknowledged position.
    """

    def __init__(self, channel_id: str, position: int, reason: str) -> None:
        self.channel_id = channel_id
        self.position = position
        self.reason = reason
        super().__init__(
            f"Delivery to channel {channel_id} failed at position {position}: {reason}"
        )


# Domain errors


class InvariantViolation(LedgerError):
    """
    Raised when a business method would break an aggregate invariant

    Always raised before any event is recorded.
    """

    pass


class AggregateAlreadyExists(InvariantViolation):
    """Raised when a creation method runs on an aggregate that already exists"""

    def __init__(self, aggregate_type: str, aggregate_id: str) -> None:
        self.aggregate_type = aggregate_type
        self.aggregate_id = aggregate_id
        super().__init__(f"{aggregate_type} {aggregate_id} already exists")


class InvalidEmail(InvariantViolation):
    """Raised when an email address is malformed"""

    def __init__(self, address: str) -> None:
        self.address = address
        super().__init__(f"'{address}' is not a valid email address")


class WishLimitExceeded(InvariantViolation):
    """Raised when a user tries to hold more wishes than allowed"""

    def __init__(self, user_id: str, limit: int) -> None:
        self.user_id = user_id
        self.limit = limit
        super().__init__(f"User {user_id} cannot make more than {limit} wishes")


class WishNotFound(InvariantViolation):
    """Raised when a wish does not belong to the user"""

    def __init__(self, user_id: str, wish_id: str) -> None:
        self.user_id = user_id
        self.wish_id = wish_id
        super().__init__(f"Wish {wish_id} not found for user {user_id}")


class WishAlreadyGranted(InvariantViolation):
    """Raised when granting or removing a wish that was already granted"""

    def __init__(self, wish_id: str) -> None:
        self.wish_id = wish_id
        super().__init__(f"Wish {wish_id} has already been granted")


class RatingOutOfRange(InvariantViolation):
    """Raised when an idea rating falls outside the allowed scale"""

    def __init__(self, rating: int, minimum: int, maximum: int) -> None:
        self.rating = rating
        self.minimum = minimum
        self.maximum = maximum
        super().__init__(f"Rating {rating} must be between {minimum} and {maximum}")


class ForumClosed(InvariantViolation):
    """Raised when posting into a closed forum"""

    def __init__(self, forum_id: str) -> None:
        self.forum_id = forum_id
        super().__init__(f"Forum {forum_id} is closed")


class PostAlreadyPublished(InvariantViolation):
    """Raised when publishing a post twice"""

    def __init__(self, post_id: str) -> None:
        self.post_id = post_id
        super().__init__(f"Post {post_id} is already published")
