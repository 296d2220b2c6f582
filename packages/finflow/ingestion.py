# ruff: noqa: I001
"""Statement ingestion orchestrator.

A document moves ``uploaded -> extracting -> completed | failed``. Per
document the pipeline is: read bytes from the object store, extract text,
parse lines (escalating to whole-document classifier extraction when nothing
parses), categorize, hash and batch-check duplicates, insert the kept set in
one transaction, then publish one event per inserted record.

Extraction, storage and persistence failures end the document in ``failed``
with a human-readable message and nothing committed to the ledger. Publishing
is best-effort: a :class:`~finflow.errors.PublishError` is logged and the
document still completes; consumers reconcile through
:func:`finflow.projection.resync_projection`.
"""

from __future__ import annotations

import time
import uuid
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import TypeAlias

from db.client import session_scope
from .categorize import CategorizationEngine
from .classifier import Classifier
from .duplicates import check_duplicates, content_hash
from .errors import (
    ClassifierError,
    ExtractionError,
    PersistenceError,
    PublishError,
    StorageError,
)
from .events import EventPublisher
from .line_parser import parse_statement
from .logging_setup import get_logger
from .models import DocumentStatus, DocumentView, ParsedTransaction, TransactionCreatedEvent
from .persistence import (
    LedgerInsert,
    create_document,
    document_view,
    event_for,
    get_document,
    insert_transactions,
    transition_document,
)
from .statement_text import extract_statement_text
from .storage import ObjectStore

_logger = get_logger("finflow.ingestion")

TextExtractor: TypeAlias = Callable[[bytes, str | None], str]


@dataclass(frozen=True, slots=True)
class IngestionReceipt:
    """Acknowledgement returned once the upload's bytes are stored."""

    document_id: str
    user_id: str
    storage_key: str
    status: DocumentStatus


@dataclass(frozen=True, slots=True)
class IngestionResult:
    document_id: str
    status: DocumentStatus
    transaction_count: int
    duplicate_count: int
    error_message: str | None = None


def partition_duplicates(
    items: list[tuple[ParsedTransaction, str]],
    existing: set[str],
    *,
    skip_duplicates: bool,
) -> tuple[list[LedgerInsert], int]:
    """Split hashed transactions into the insert set and a duplicate count.

    A transaction is a duplicate when its hash already has a primary ledger
    record or appeared earlier in the same batch. With ``skip_duplicates`` the
    duplicates are dropped; otherwise they are kept and flagged.
    """

    seen: set[str] = set(existing)
    inserts: list[LedgerInsert] = []
    dup_count = 0
    for tx, h in items:
        is_dup = h in seen
        seen.add(h)
        if is_dup:
            dup_count += 1
            if skip_duplicates:
                continue
        inserts.append(LedgerInsert(transaction=tx, content_hash=h, is_duplicate=is_dup))
    return inserts, dup_count


class IngestionService:
    """Accept statement uploads and process them on a background pool.

    Parameters
    ----------
    store:
        Object store holding the uploaded bytes.
    engine:
        Categorization engine; its classifier also serves the whole-document
        extraction fallback unless ``classifier`` is given.
    publisher:
        Event publisher. ``None`` disables publication.
    database_url:
        Database for documents and the ledger (``DATABASE_URL`` when omitted).
    skip_duplicates:
        Drop detected duplicates (default) instead of storing them flagged.
    extract_text:
        ``(bytes, password) -> text`` callable; defaults to the PDF extractor.
    max_workers:
        Size of the background processing pool.
    """

    def __init__(
        self,
        *,
        store: ObjectStore,
        engine: CategorizationEngine | None = None,
        publisher: EventPublisher | None = None,
        classifier: Classifier | None = None,
        database_url: str | None = None,
        skip_duplicates: bool = True,
        extract_text: TextExtractor = extract_statement_text,
        max_workers: int = 2,
    ) -> None:
        self._store = store
        self._engine = engine or CategorizationEngine()
        self._classifier: Classifier = classifier or self._engine.classifier
        self._publisher = publisher
        self._database_url = database_url
        self._skip_duplicates = skip_duplicates
        self._extract_text = extract_text
        self._pool = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="finflow-ingest"
        )

    # ---- Intake --------------------------------------------------------------

    def _accept(
        self, *, user_id: str, data: bytes, filename: str | None
    ) -> IngestionReceipt:
        document_id = str(uuid.uuid4())
        storage_key = f"statements/{user_id}/{document_id}.pdf"
        self._store.put(storage_key, data)
        with session_scope(database_url=self._database_url) as session:
            create_document(
                session,
                user_id=user_id,
                storage_key=storage_key,
                filename=filename,
                document_id=document_id,
            )
        _logger.info(
            "ingestion:accepted document_id=%s user_id=%s bytes=%d",
            document_id,
            user_id,
            len(data),
        )
        return IngestionReceipt(
            document_id=document_id,
            user_id=user_id,
            storage_key=storage_key,
            status=DocumentStatus.UPLOADED,
        )

    def submit(
        self,
        *,
        user_id: str,
        data: bytes,
        password: str | None = None,
        filename: str | None = None,
    ) -> IngestionReceipt:
        """Store ``data``, record the document and schedule processing.

        Returns as soon as the bytes are stored. The password lives only in
        the scheduled task and is never persisted.
        """

        receipt = self._accept(user_id=user_id, data=data, filename=filename)
        self._pool.submit(self._process_in_background, receipt.document_id, password)
        return receipt

    def _process_in_background(self, document_id: str, password: str | None) -> None:
        try:
            self.process_document(document_id, password=password)
        except Exception:  # noqa: BLE001 - background failures are recorded on the document
            _logger.exception("ingestion:background_failed document_id=%s", document_id)

    def ingest(
        self,
        *,
        user_id: str,
        data: bytes,
        password: str | None = None,
        filename: str | None = None,
    ) -> IngestionResult:
        """Synchronous variant of :meth:`submit` (CLI, tests)."""

        receipt = self._accept(user_id=user_id, data=data, filename=filename)
        return self.process_document(receipt.document_id, password=password)

    def shutdown(self, *, wait: bool = True) -> None:
        """Stop accepting work; with ``wait`` block until queued documents finish."""

        self._pool.shutdown(wait=wait)

    # ---- Status --------------------------------------------------------------

    def document_status(self, document_id: str) -> DocumentView:
        with session_scope(database_url=self._database_url) as session:
            return document_view(get_document(session, document_id))

    # ---- Processing ----------------------------------------------------------

    def _fail(self, document_id: str, message: str) -> IngestionResult:
        with session_scope(database_url=self._database_url) as session:
            transition_document(
                session, document_id, DocumentStatus.FAILED, error_message=message
            )
        _logger.warning("ingestion:failed document_id=%s error=%s", document_id, message)
        return IngestionResult(
            document_id=document_id,
            status=DocumentStatus.FAILED,
            transaction_count=0,
            duplicate_count=0,
            error_message=message,
        )

    def _parse(self, document_id: str, text: str) -> list[ParsedTransaction]:
        parsed = parse_statement(text)
        if parsed or not text.strip() or not self._classifier.enabled:
            return parsed
        _logger.info("ingestion:extract_fallback document_id=%s", document_id)
        try:
            return self._classifier.extract_transactions(text)
        except ClassifierError as e:
            _logger.warning(
                "ingestion:extract_fallback_failed document_id=%s error=%s", document_id, e
            )
            return []
        except Exception as e:  # noqa: BLE001 - a classifier bug must not fail the document
            _logger.warning(
                "ingestion:extract_fallback_unexpected document_id=%s error=%s: %s",
                document_id,
                e.__class__.__name__,
                e,
            )
            return []

    def process_document(
        self, document_id: str, *, password: str | None = None
    ) -> IngestionResult:
        """Run the full pipeline for one uploaded document."""

        with session_scope(database_url=self._database_url) as session:
            doc = transition_document(session, document_id, DocumentStatus.EXTRACTING)
            user_id = doc.user_id
            storage_key = doc.storage_key

        try:
            return self._run(document_id, user_id, storage_key, password)
        except Exception as e:
            self._fail(document_id, f"Internal error: {e.__class__.__name__}")
            raise

    def _run(
        self, document_id: str, user_id: str, storage_key: str, password: str | None
    ) -> IngestionResult:
        t0 = time.perf_counter()
        try:
            data = self._store.get(storage_key)
            text = self._extract_text(data, password)
        except (StorageError, ExtractionError) as e:
            return self._fail(document_id, str(e))

        transactions = self._engine.categorize_many(self._parse(document_id, text))
        hashed = [
            (tx, content_hash(tx.date, tx.amount, tx.description, user_id))
            for tx in transactions
        ]

        try:
            with session_scope(database_url=self._database_url) as session:
                checks = check_duplicates(session, user_id=user_id, hashes=[h for _, h in hashed])
                existing = {h for h, c in checks.items() if c.is_duplicate}
                inserts, dup_count = partition_duplicates(
                    hashed, existing, skip_duplicates=self._skip_duplicates
                )
                rows = insert_transactions(
                    session, user_id=user_id, document_id=document_id, items=inserts
                )
                events = [event_for(r) for r in rows]
        except PersistenceError as e:
            return self._fail(document_id, str(e))

        self._publish(document_id, events)

        with session_scope(database_url=self._database_url) as session:
            transition_document(
                session,
                document_id,
                DocumentStatus.COMPLETED,
                transaction_count=len(rows),
                duplicate_count=dup_count,
            )
        _logger.info(
            (
                "ingestion:completed document_id=%s parsed=%d inserted=%d duplicates=%d "
                "latency_ms=%.2f"
            ),
            document_id,
            len(transactions),
            len(rows),
            dup_count,
            (time.perf_counter() - t0) * 1000.0,
        )
        return IngestionResult(
            document_id=document_id,
            status=DocumentStatus.COMPLETED,
            transaction_count=len(rows),
            duplicate_count=dup_count,
        )

    def _publish(self, document_id: str, events: list[TransactionCreatedEvent]) -> None:
        if self._publisher is None or not events:
            return
        try:
            self._publisher.publish(events)
        except PublishError as e:
            _logger.error(
                "ingestion:publish_failed document_id=%s events=%d error=%s",
                document_id,
                len(events),
                e,
            )


__all__ = [
    "IngestionReceipt",
    "IngestionResult",
    "IngestionService",
    "TextExtractor",
    "partition_duplicates",
]
