# ruff: noqa: I001
"""Persistence integration for finflow.

Functions here write documents and ledger transactions to the shared database
owned by ``libs/db``. They take a session from ``db.client.session_scope``;
committing is the caller's job so a document's batch lands atomically.

Scope:
- Document rows and their status machine
  (``uploaded -> extracting -> completed | failed``).
- Batch insert of ledger transactions.
- Explicit re-categorization of a stored transaction.
"""

from __future__ import annotations

import datetime as dt
import uuid
from collections.abc import Sequence
from dataclasses import dataclass

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from db.models.ledger import FlDocument, FlTransaction
from .errors import DocumentNotFound, InvalidTransition, PersistenceError, TransactionNotFound
from .models import (
    Category,
    CategorySource,
    DocumentStatus,
    DocumentView,
    ParsedTransaction,
    TransactionCreatedEvent,
)

_ALLOWED_TRANSITIONS: dict[DocumentStatus, frozenset[DocumentStatus]] = {
    DocumentStatus.UPLOADED: frozenset({DocumentStatus.EXTRACTING}),
    DocumentStatus.EXTRACTING: frozenset({DocumentStatus.COMPLETED, DocumentStatus.FAILED}),
    DocumentStatus.COMPLETED: frozenset(),
    DocumentStatus.FAILED: frozenset(),
}

_ERROR_MESSAGE_MAX_LEN = 500


@dataclass(frozen=True, slots=True)
class LedgerInsert:
    """One transaction ready for insertion, with its duplicate classification."""

    transaction: ParsedTransaction
    content_hash: str
    is_duplicate: bool


# ---- Documents ---------------------------------------------------------------


def create_document(
    session: Session,
    *,
    user_id: str,
    storage_key: str,
    filename: str | None = None,
    document_id: str | None = None,
) -> FlDocument:
    doc = FlDocument(
        document_id=document_id or str(uuid.uuid4()),
        user_id=user_id,
        filename=filename,
        storage_key=storage_key,
        status=DocumentStatus.UPLOADED.value,
        transaction_count=0,
        duplicate_count=0,
    )
    session.add(doc)
    session.flush()
    return doc


def get_document(session: Session, document_id: str) -> FlDocument:
    doc = session.get(FlDocument, document_id)
    if doc is None:
        raise DocumentNotFound(f"document {document_id} not found")
    return doc


def transition_document(
    session: Session,
    document_id: str,
    target: DocumentStatus,
    *,
    error_message: str | None = None,
    transaction_count: int | None = None,
    duplicate_count: int | None = None,
) -> FlDocument:
    """Move a document to ``target``; raise :class:`InvalidTransition` otherwise."""

    doc = get_document(session, document_id)
    current = DocumentStatus(doc.status)
    if target not in _ALLOWED_TRANSITIONS[current]:
        raise InvalidTransition(document_id, current.value, target.value)
    doc.status = target.value
    if error_message is not None:
        doc.error_message = error_message[:_ERROR_MESSAGE_MAX_LEN]
    if transaction_count is not None:
        doc.transaction_count = transaction_count
    if duplicate_count is not None:
        doc.duplicate_count = duplicate_count
    doc.updated_at = dt.datetime.now(dt.UTC)
    session.flush()
    return doc


def document_view(doc: FlDocument) -> DocumentView:
    return DocumentView(
        document_id=doc.document_id,
        user_id=doc.user_id,
        status=DocumentStatus(doc.status),
        filename=doc.filename,
        transaction_count=doc.transaction_count,
        duplicate_count=doc.duplicate_count,
        error_message=doc.error_message,
    )


# ---- Ledger ------------------------------------------------------------------


def insert_transactions(
    session: Session,
    *,
    user_id: str,
    document_id: str,
    items: Sequence[LedgerInsert],
) -> list[FlTransaction]:
    """Insert ``items`` in one flush.

    Raises
    ------
    PersistenceError
        When the database rejects the batch (e.g., a concurrent ingestion
        already stored the same primary record). The caller's transaction is
        left for rollback; nothing from the batch is committed.
    """

    now = dt.datetime.now(dt.UTC)
    rows: list[FlTransaction] = []
    for item in items:
        tx = item.transaction
        if tx.category is None:
            raise ValueError("transactions must be categorized before persistence")
        rows.append(
            FlTransaction(
                id=str(uuid.uuid4()),
                user_id=user_id,
                document_id=document_id,
                date=tx.date,
                description=tx.description,
                amount=tx.amount,
                direction=tx.direction.value,
                category=tx.category.value,
                category_source=(tx.category_source or CategorySource.RULE).value,
                confidence=tx.confidence.value if tx.confidence is not None else None,
                reason=tx.reason,
                raw_merchant=tx.raw_merchant,
                content_hash=item.content_hash,
                is_duplicate=item.is_duplicate,
                created_at=now,
                updated_at=now,
            )
        )
    session.add_all(rows)
    try:
        session.flush()
    except IntegrityError as e:
        raise PersistenceError(
            f"document {document_id}: ledger insert rejected ({len(rows)} rows)"
        ) from e
    return rows


def event_for(row: FlTransaction) -> TransactionCreatedEvent:
    return TransactionCreatedEvent(
        id=row.id,
        user_id=row.user_id,
        document_id=row.document_id,
        date=row.date,
        description=row.description,
        amount=row.amount,
        direction=row.direction,
        category=row.category,
        raw_merchant=row.raw_merchant,
    )


def count_transactions(session: Session, *, document_id: str) -> int:
    stmt = select(func.count(FlTransaction.id)).where(FlTransaction.document_id == document_id)
    return int(session.execute(stmt).scalar_one())


def recategorize(
    session: Session, *, user_id: str, transaction_id: str, category: Category
) -> FlTransaction:
    """Set a manual category on one of ``user_id``'s ledger transactions."""

    row = session.get(FlTransaction, transaction_id)
    if row is None or row.user_id != user_id:
        raise TransactionNotFound(f"transaction {transaction_id} not found for user {user_id}")
    row.category = category.value
    row.category_source = CategorySource.MANUAL.value
    row.confidence = None
    row.reason = "Set manually"
    row.updated_at = dt.datetime.now(dt.UTC)
    session.flush()
    return row


__all__ = [
    "LedgerInsert",
    "count_transactions",
    "create_document",
    "document_view",
    "event_for",
    "get_document",
    "insert_transactions",
    "recategorize",
    "transition_document",
]
