"""
Publisher - at-least-once delivery of committed events to named channels

Each channel (local projections, an outbound broker, ...) has its own
cursor. Outbound channels keep theirs in the durable published-message
tracker; a channel whose consumer lives in process memory can bring its
own cursor so that other processes on the same database never move it.
publish_pending() reads the events after that cursor in global commit
order, sends them one by one, and advances the cursor after every
acknowledgement. The first failure stops the batch for that channel only;
the next run resumes from the last acknowledged event.

Runs on one channel are serialized by a per-channel lock. Because a crash
between delivery and cursor advance leads to redelivery, every channel
must still handle events idempotently, keyed on (aggregate_id, version)
or the event id in the metadata.

There is no process-wide publisher: construct one per application
context and pass it to whatever needs it.
"""

import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Protocol

from pydantic import BaseModel

from aggregate_ledger.kernel.codec import EventCodec, MessageMetadata
from aggregate_ledger.kernel.errors import DeliveryFailure, StoreUnavailable
from aggregate_ledger.kernel.event_store import SQLiteEventStore
from aggregate_ledger.kernel.events import DomainEvent
from aggregate_ledger.kernel.logging import LogOperation, get_logger
from aggregate_ledger.kernel.metrics import delivery_failures_total, events_published_total
from aggregate_ledger.kernel.tracker import SQLitePublishedMessageTracker

logger = get_logger(__name__)


class ChannelAdapter(Protocol):
    """Anything that can deliver one serialized event"""

    def send(self, serialized_event: str, metadata: MessageMetadata) -> bool:
        """Deliver one event; True acknowledges, False or an exception fails"""
        ...


class ChannelCursor(Protocol):
    """Where a channel's last acknowledged position is kept"""

    def last_position(self, channel_id: str) -> int: ...

    def advance(self, channel_id: str, position: int) -> bool: ...


class PublishResult(BaseModel):
    """Outcome of one publish_pending() call for one channel"""

    channel_id: str
    delivered: int = 0
    last_position: int = 0
    failed_position: int | None = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


class Publisher:
    """
    Delivers committed events to registered channels

    Args:
        event_store: Source of committed events (read_all)
        tracker: Durable per-channel cursors (default cursor for channels)
        codec: Serializes events for adapters
        batch_size: Maximum events per channel per call
    """

    def __init__(
        self,
        event_store: SQLiteEventStore,
        tracker: SQLitePublishedMessageTracker,
        codec: EventCodec | None = None,
        *,
        batch_size: int = 500,
        auto_publish: bool = True,
    ) -> None:
        self.event_store = event_store
        self.tracker = tracker
        self.codec = codec or EventCodec()
        self.batch_size = batch_size
        self.auto_publish = auto_publish
        self._channels: dict[str, ChannelAdapter] = {}
        self._cursors: dict[str, ChannelCursor] = {}
        self._locks: dict[str, threading.RLock] = {}

    def register_channel(
        self,
        channel_id: str,
        adapter: ChannelAdapter,
        *,
        cursor: ChannelCursor | None = None,
    ) -> None:
        """
        Register a delivery channel

        Args:
            channel_id: Unique channel name
            adapter: Delivers the events
            cursor: Keeps the channel's position (the shared tracker if None)

        Raises:
            ValueError: If the channel id is already registered
        """
        if channel_id in self._channels:
            raise ValueError(f"Channel {channel_id} is already registered")
        self._channels[channel_id] = adapter
        self._cursors[channel_id] = cursor or self.tracker
        self._locks[channel_id] = threading.RLock()
        logger.info("Channel registered", channel_id=channel_id, tracked=cursor is None)

    def channel_ids(self) -> list[str]:
        return list(self._channels)

    @contextmanager
    def channel_lock(self, channel_id: str) -> Iterator[None]:
        """Hold the lock every publishing run on the channel takes"""
        with self._locks[channel_id]:
            yield

    def last_position(self, channel_id: str) -> int:
        return self._cursors[channel_id].last_position(channel_id)

    def publish_pending(self, channel_id: str) -> PublishResult:
        """
        Deliver events committed after the channel's cursor

        Adapter failures are reported on the result, never raised; the
        cursor stays at the last acknowledged event. A concurrent run on
        the same channel waits for this one and then starts from its cursor.

        Raises:
            KeyError: If the channel is not registered
            StoreUnavailable: If the event store or tracker cannot be read
        """
        adapter = self._channels[channel_id]
        channel_cursor = self._cursors[channel_id]

        with self._locks[channel_id]:
            cursor = channel_cursor.last_position(channel_id)
            result = PublishResult(channel_id=channel_id, last_position=cursor)

            with LogOperation(logger, "publish_pending", channel_id=channel_id, cursor=cursor):
                for event in self.event_store.read_all(cursor, limit=self.batch_size):
                    try:
                        self._deliver(channel_id, adapter, event)
                    except DeliveryFailure as failure:
                        delivery_failures_total.labels(channel=channel_id).inc()
                        logger.warning(
                            "Delivery failed, cursor not advanced",
                            channel_id=channel_id,
                            position=failure.position,
                            event_type=event.event_type,
                            reason=failure.reason,
                        )
                        result.failed_position = failure.position
                        result.error = failure.reason
                        break

                    channel_cursor.advance(channel_id, event.position)
                    events_published_total.labels(channel=channel_id).inc()
                    result.delivered += 1
                    result.last_position = event.position

        return result

    def _deliver(self, channel_id: str, adapter: ChannelAdapter, event: DomainEvent) -> None:
        position = event.position or 0
        try:
            acknowledged = adapter.send(
                self.codec.encode(event), self.codec.message_metadata(event)
            )
        except Exception as e:
            raise DeliveryFailure(channel_id, position, f"{type(e).__name__}: {e}") from e
        if not acknowledged:
            raise DeliveryFailure(channel_id, position, "adapter did not acknowledge")

    def publish_all_pending(self) -> list[PublishResult]:
        """Publish to every channel; a failing channel does not hold up the others"""
        results = []
        for channel_id in list(self._channels):
            try:
                results.append(self.publish_pending(channel_id))
            except StoreUnavailable as e:
                logger.error(
                    "Channel could not read its events or cursor",
                    channel_id=channel_id,
                    error=str(e),
                )
                results.append(PublishResult(channel_id=channel_id, error=str(e)))
        return results

    def notify_committed(self, events: list[DomainEvent]) -> None:
        """Commit hook for repositories: push new events out right away"""
        if not self.auto_publish or not events:
            return
        logger.debug(
            "New events committed",
            first_position=events[0].position,
            last_position=events[-1].position,
        )
        self.publish_all_pending()


class CallbackChannel:
    """Channel adapter wrapping a plain function of the decoded event"""

    def __init__(
        self,
        callback: Callable[[DomainEvent], None],
        codec: EventCodec | None = None,
    ) -> None:
        self.callback = callback
        self.codec = codec or EventCodec()

    def send(self, serialized_event: str, metadata: MessageMetadata) -> bool:
        self.callback(self.codec.decode(serialized_event))
        return True


class InMemoryBrokerAdapter:
    """
    Broker stand-in that records messages

    Deduplicates on the metadata id like a real consumer should, and can be
    told to fail on chosen event ids to exercise redelivery.
    """

    def __init__(self) -> None:
        self.messages: list[tuple[str, MessageMetadata]] = []
        self.received_ids: set[str] = set()
        self.attempts = 0
        self.fail_on: set[str] = set()

    def send(self, serialized_event: str, metadata: MessageMetadata) -> bool:
        self.attempts += 1
        if metadata.id in self.fail_on:
            return False
        if metadata.id in self.received_ids:
            return True
        self.received_ids.add(metadata.id)
        self.messages.append((serialized_event, metadata))
        return True

    @property
    def delivered_types(self) -> list[str]:
        return [metadata.type for _, metadata in self.messages]
