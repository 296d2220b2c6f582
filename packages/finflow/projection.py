# ruff: noqa: I001
"""Analytics read model fed by ``TransactionCreatedEvent`` messages.

Every write is an upsert keyed by the event id, so redelivered events leave
the projection unchanged. :func:`resync_projection` rebuilds one user's rows
from the ledger; it is the reconciliation path for lost deliveries and for
manual re-categorization (which publishes no event).
"""

from __future__ import annotations

import datetime as dt

from sqlalchemy import delete, select

from db.client import session_scope
from db.models.ledger import FlProjectedTransaction, FlTransaction
from .logging_setup import get_logger
from .models import TransactionCreatedEvent

_logger = get_logger("finflow.projection")


def _row_from_event(event: TransactionCreatedEvent) -> FlProjectedTransaction:
    return FlProjectedTransaction(
        id=event.id,
        user_id=event.user_id,
        document_id=event.document_id,
        date=event.date,
        description=event.description,
        amount=event.amount,
        direction=event.direction.value,
        category=event.category.value,
        raw_merchant=event.raw_merchant,
        projected_at=dt.datetime.now(dt.UTC),
    )


class SqlProjection:
    """Event handler that upserts events into ``fl_projected_transactions``."""

    def __init__(self, *, database_url: str | None = None) -> None:
        self._database_url = database_url

    def apply(self, event: TransactionCreatedEvent) -> None:
        with session_scope(database_url=self._database_url) as session:
            session.merge(_row_from_event(event))

    __call__ = apply


def resync_projection(*, user_id: str, database_url: str | None = None) -> int:
    """Replace ``user_id``'s projected rows with the current ledger contents.

    Returns the number of rows written. Running it twice yields the same state.
    """

    with session_scope(database_url=database_url) as session:
        ledger = session.execute(
            select(FlTransaction).where(FlTransaction.user_id == user_id)
        ).scalars().all()
        session.execute(
            delete(FlProjectedTransaction).where(FlProjectedTransaction.user_id == user_id)
        )
        now = dt.datetime.now(dt.UTC)
        session.add_all(
            FlProjectedTransaction(
                id=row.id,
                user_id=row.user_id,
                document_id=row.document_id,
                date=row.date,
                description=row.description,
                amount=row.amount,
                direction=row.direction,
                category=row.category,
                raw_merchant=row.raw_merchant,
                projected_at=now,
            )
            for row in ledger
        )
    _logger.info("projection:resynced user_id=%s rows=%d", user_id, len(ledger))
    return len(ledger)


__all__ = ["SqlProjection", "resync_projection"]
