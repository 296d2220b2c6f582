# ruff: noqa: I001
"""At-least-once fan-out of ``TransactionCreatedEvent`` messages.

The channel is an ordered log per topic. Messages carry a key (the user id)
and are delivered to each consumer group in offset order, so per-user order
is preserved. Consumers commit the highest offset they have processed after
handling a batch; a crash before the commit redelivers the batch, which is why
handlers must upsert by event id.

Implementations:
- :class:`InMemoryChannel` for tests and single-process runs.
- :class:`SqlEventChannel`, a durable log in ``fl_event_log`` with committed
  offsets in ``fl_consumer_offsets``.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Protocol, TypeAlias

from pydantic import ValidationError
from sqlalchemy import select

from db.client import session_scope
from db.models.ledger import FlConsumerOffset, FlEventLog
from .config import DEFAULT_TOPIC
from .errors import PublishError
from .logging_setup import get_logger
from .models import TransactionCreatedEvent

_logger = get_logger("finflow.events")

_DEFAULT_BATCH = 100


@dataclass(frozen=True, slots=True)
class ChannelMessage:
    offset: int
    key: str
    value: str


class MessageChannel(Protocol):
    def send(self, topic: str, messages: Sequence[tuple[str, str]]) -> None: ...

    def poll(self, topic: str, group: str, *, max_messages: int) -> list[ChannelMessage]: ...

    def commit(self, topic: str, group: str, offset: int) -> None: ...


class InMemoryChannel:
    """Thread-safe in-process log. Offsets start at 1."""

    def __init__(self) -> None:
        self._logs: dict[str, list[tuple[str, str]]] = {}
        self._committed: dict[tuple[str, str], int] = {}
        self._lock = threading.Lock()

    def send(self, topic: str, messages: Sequence[tuple[str, str]]) -> None:
        with self._lock:
            self._logs.setdefault(topic, []).extend(messages)

    def poll(self, topic: str, group: str, *, max_messages: int) -> list[ChannelMessage]:
        with self._lock:
            log = self._logs.get(topic, [])
            start = self._committed.get((topic, group), 0)
            return [
                ChannelMessage(offset=i + 1, key=key, value=value)
                for i, (key, value) in enumerate(log[start : start + max_messages], start=start)
            ]

    def commit(self, topic: str, group: str, offset: int) -> None:
        with self._lock:
            current = self._committed.get((topic, group), 0)
            self._committed[(topic, group)] = max(current, offset)

    def messages(self, topic: str) -> list[tuple[str, str]]:
        with self._lock:
            return list(self._logs.get(topic, []))


class SqlEventChannel:
    """Durable log backed by the shared database."""

    def __init__(self, *, database_url: str | None = None) -> None:
        self._database_url = database_url

    def send(self, topic: str, messages: Sequence[tuple[str, str]]) -> None:
        with session_scope(database_url=self._database_url) as session:
            session.add_all(
                FlEventLog(topic=topic, key=key, payload=value) for key, value in messages
            )

    def poll(self, topic: str, group: str, *, max_messages: int) -> list[ChannelMessage]:
        with session_scope(database_url=self._database_url) as session:
            committed = session.execute(
                select(FlConsumerOffset.committed_offset).where(
                    FlConsumerOffset.topic == topic,
                    FlConsumerOffset.consumer_group == group,
                )
            ).scalar_one_or_none()
            stmt = (
                select(FlEventLog.seq, FlEventLog.key, FlEventLog.payload)
                .where(FlEventLog.topic == topic, FlEventLog.seq > (committed or 0))
                .order_by(FlEventLog.seq)
                .limit(max_messages)
            )
            return [
                ChannelMessage(offset=off, key=key, value=payload)
                for off, key, payload in session.execute(stmt)
            ]

    def commit(self, topic: str, group: str, offset: int) -> None:
        with session_scope(database_url=self._database_url) as session:
            row = session.get(FlConsumerOffset, (topic, group))
            if row is None:
                session.add(
                    FlConsumerOffset(topic=topic, consumer_group=group, committed_offset=offset)
                )
            elif offset > row.committed_offset:
                row.committed_offset = offset


# ---- Publisher ---------------------------------------------------------------


class EventPublisher:
    """Publish one message per event, keyed by user id, to a single topic."""

    def __init__(self, channel: MessageChannel, *, topic: str = DEFAULT_TOPIC) -> None:
        self._channel = channel
        self._topic = topic

    @property
    def topic(self) -> str:
        return self._topic

    def publish(self, events: Iterable[TransactionCreatedEvent]) -> int:
        """Send ``events``; raise :class:`PublishError` if the channel rejects them."""

        messages = [(e.user_id, e.to_wire()) for e in events]
        if not messages:
            return 0
        try:
            self._channel.send(self._topic, messages)
        except Exception as e:  # noqa: BLE001 - any channel failure maps to PublishError
            raise PublishError(
                f"failed to publish {len(messages)} events to {self._topic}: {e}"
            ) from e
        _logger.info("events:published topic=%s count=%d", self._topic, len(messages))
        return len(messages)


# ---- Subscriber --------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class DrainStats:
    applied: int
    dropped: int
    failed: int


EventHandler: TypeAlias = Callable[[TransactionCreatedEvent], None]


class EventSubscriber:
    """Consume a topic for one consumer group and apply ``handler`` per event.

    Malformed messages are logged and dropped. A handler error is logged and
    the message skipped, so one bad message never blocks the group. Offsets are
    committed after each batch.
    """

    def __init__(
        self,
        channel: MessageChannel,
        handler: EventHandler,
        *,
        group: str,
        topic: str = DEFAULT_TOPIC,
        batch_size: int = _DEFAULT_BATCH,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self._channel = channel
        self._handler = handler
        self._group = group
        self._topic = topic
        self._batch_size = batch_size

    def _handle(self, msg: ChannelMessage) -> str:
        try:
            event = TransactionCreatedEvent.model_validate_json(msg.value)
        except ValidationError as e:
            _logger.warning(
                "events:malformed_dropped topic=%s group=%s offset=%d errors=%d",
                self._topic,
                self._group,
                msg.offset,
                e.error_count(),
            )
            return "dropped"
        try:
            self._handler(event)
        except Exception:  # noqa: BLE001 - handler failures are skipped, not fatal
            _logger.exception(
                "events:handler_failed topic=%s group=%s offset=%d event_id=%s",
                self._topic,
                self._group,
                msg.offset,
                event.id,
            )
            return "failed"
        return "applied"

    def poll_once(self) -> DrainStats:
        """Process at most one batch and commit it."""

        batch = self._channel.poll(self._topic, self._group, max_messages=self._batch_size)
        counts = {"applied": 0, "dropped": 0, "failed": 0}
        for msg in batch:
            counts[self._handle(msg)] += 1
        if batch:
            self._channel.commit(self._topic, self._group, batch[-1].offset)
        return DrainStats(**counts)

    def drain(self) -> DrainStats:
        """Process batches until the group has caught up with the log."""

        applied = dropped = failed = 0
        while True:
            stats = self.poll_once()
            applied += stats.applied
            dropped += stats.dropped
            failed += stats.failed
            if stats.applied + stats.dropped + stats.failed < self._batch_size:
                break
        if applied or dropped or failed:
            _logger.info(
                "events:drained topic=%s group=%s applied=%d dropped=%d failed=%d",
                self._topic,
                self._group,
                applied,
                dropped,
                failed,
            )
        return DrainStats(applied=applied, dropped=dropped, failed=failed)


__all__ = [
    "ChannelMessage",
    "DrainStats",
    "EventHandler",
    "EventPublisher",
    "EventSubscriber",
    "InMemoryChannel",
    "MessageChannel",
    "SqlEventChannel",
]
