# ruff: noqa: E402, I001
import datetime as dt
import json
import sys
from decimal import Decimal
from pathlib import Path

import pytest

_ROOT = Path(__file__).resolve().parents[1]
sys.path[:0] = [p for p in [str(_ROOT / "packages"), str(_ROOT)] if p not in sys.path]

from sqlalchemy import select

from db.client import session_scope
from db.models.ledger import FlProjectedTransaction
from finflow.errors import PublishError
from finflow.events import EventPublisher, EventSubscriber, InMemoryChannel, SqlEventChannel
from finflow.models import Category, Direction, TransactionCreatedEvent
from finflow.projection import SqlProjection

TOPIC = "transactions.created"


def _event(n: int, *, user_id: str = "u1", amount: str = "100.00") -> TransactionCreatedEvent:
    return TransactionCreatedEvent(
        id=f"tx-{n}",
        user_id=user_id,
        document_id="doc-1",
        date=dt.date(2024, 4, n),
        description=f"Item {n}",
        amount=Decimal(amount),
        direction=Direction.DEBIT,
        category=Category.SHOPPING,
        raw_merchant=f"Item {n}",
    )


def _projected(database_url: str) -> list[FlProjectedTransaction]:
    with session_scope(database_url=database_url) as s:
        stmt = select(FlProjectedTransaction).order_by(FlProjectedTransaction.id)
        return list(s.execute(stmt).scalars())


def test_publish_keys_by_user_and_uses_camel_case() -> None:
    channel = InMemoryChannel()
    publisher = EventPublisher(channel, topic=TOPIC)

    assert publisher.publish([_event(1), _event(2, user_id="u2")]) == 2
    assert publisher.publish([]) == 0

    messages = channel.messages(TOPIC)
    assert [k for k, _ in messages] == ["u1", "u2"]
    body = json.loads(messages[0][1])
    assert body["userId"] == "u1"
    assert body["documentId"] == "doc-1"
    assert body["rawMerchant"] == "Item 1"
    assert body["date"] == "2024-04-01"
    assert "user_id" not in body


def test_channel_failure_becomes_publish_error() -> None:
    class _Broken(InMemoryChannel):
        def send(self, topic, messages):
            raise ConnectionError("broker down")

    with pytest.raises(PublishError):
        EventPublisher(_Broken(), topic=TOPIC).publish([_event(1)])


def test_subscriber_commits_and_resumes() -> None:
    channel = InMemoryChannel()
    EventPublisher(channel, topic=TOPIC).publish([_event(n) for n in range(1, 6)])
    seen: list[str] = []
    sub = EventSubscriber(
        channel, lambda e: seen.append(e.id), group="g", topic=TOPIC, batch_size=2
    )

    first = sub.poll_once()
    assert first.applied == 2
    assert sub.drain().applied == 3
    assert sub.drain().applied == 0
    assert seen == [f"tx-{n}" for n in range(1, 6)]

    # Another group starts from the beginning.
    other: list[str] = []
    EventSubscriber(channel, lambda e: other.append(e.id), group="g2", topic=TOPIC).drain()
    assert len(other) == 5


def test_malformed_and_failing_messages_do_not_block_the_group() -> None:
    channel = InMemoryChannel()
    good = _event(1).to_wire()
    negative = json.loads(_event(2).to_wire())
    negative["amount"] = "-5"
    channel.send(
        TOPIC,
        [
            ("u1", "{not json"),
            ("u1", json.dumps(negative)),
            ("u1", good),
            ("u1", _event(3).to_wire()),
        ],
    )

    def handler(e: TransactionCreatedEvent) -> None:
        if e.id == "tx-3":
            raise RuntimeError("projection down")

    stats = EventSubscriber(channel, handler, group="g", topic=TOPIC).drain()
    assert (stats.applied, stats.dropped, stats.failed) == (1, 2, 1)
    assert channel.poll(TOPIC, "g", max_messages=10) == []


def test_projection_is_idempotent_under_redelivery(database_url: str) -> None:
    channel = InMemoryChannel()
    EventPublisher(channel, topic=TOPIC).publish([_event(1), _event(2)])
    projection = SqlProjection(database_url=database_url)

    for group in ("first", "replay"):
        EventSubscriber(channel, projection, group=group, topic=TOPIC).drain()
    projection.apply(_event(1))

    rows = _projected(database_url)
    assert [r.id for r in rows] == ["tx-1", "tx-2"]
    assert rows[0].amount == Decimal("100.00")
    assert rows[0].category == "Shopping"
    assert rows[0].direction == "debit"


def test_sql_channel_round_trip_through_projection(database_url: str) -> None:
    channel = SqlEventChannel(database_url=database_url)
    publisher = EventPublisher(channel, topic=TOPIC)
    publisher.publish([_event(1), _event(2)])
    publisher.publish([_event(3)])
    projection = SqlProjection(database_url=database_url)

    sub = EventSubscriber(channel, projection.apply, group="analytics", topic=TOPIC, batch_size=2)
    stats = sub.drain()
    assert stats.applied == 3
    assert sub.drain().applied == 0
    assert [r.id for r in _projected(database_url)] == ["tx-1", "tx-2", "tx-3"]

    # Offsets never move backwards.
    channel.commit(TOPIC, "analytics", 1)
    assert channel.poll(TOPIC, "analytics", max_messages=10) == []


def test_event_accepts_timestamps_and_rejects_negative_amounts() -> None:
    wire = json.loads(_event(1).to_wire())
    wire["date"] = "2024-04-01T18:30:00.000Z"
    assert TransactionCreatedEvent.model_validate_json(json.dumps(wire)).date == dt.date(2024, 4, 1)

    snake = TransactionCreatedEvent.from_record(
        {
            "id": "tx-9",
            "user_id": "u1",
            "document_id": "d",
            "date": dt.date(2024, 4, 1),
            "description": "x",
            "amount": Decimal("1"),
            "direction": "credit",
            "category": "Others",
            "unknown": "ignored",
        }
    )
    assert snake.direction is Direction.CREDIT
    assert snake.raw_merchant is None

    with pytest.raises(ValueError):
        TransactionCreatedEvent.from_record({**wire, "amount": "-1"})
