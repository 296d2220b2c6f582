"""Exception taxonomy for the ingestion pipeline.

Only failures that change control flow are exceptions. A line the parser
cannot read is simply skipped, and a duplicate is a classified outcome
(``duplicates.DuplicateCheck``), so neither has an exception type here.
"""

from __future__ import annotations


class FinflowError(Exception):
    """Base class for all errors raised by ``finflow``."""


class ExtractionError(FinflowError):
    """The statement bytes could not be turned into text (bad password, corrupt file)."""


class StorageError(FinflowError):
    """The object store could not read or write a key."""


class ClassifierError(FinflowError):
    """The external classifier failed, timed out, or returned an unusable payload."""


class PersistenceError(FinflowError):
    """A document's batch write was rejected; nothing from the batch was committed."""


class PublishError(FinflowError):
    """Events could not be handed to the message channel."""


class InvalidTransition(FinflowError):
    """A document was asked to move to a status its current status does not allow."""

    def __init__(self, document_id: str, current: str, target: str) -> None:
        super().__init__(f"document {document_id}: cannot move from {current!r} to {target!r}")
        self.document_id = document_id
        self.current = current
        self.target = target


class DocumentNotFound(FinflowError):
    """No document row exists for the given id."""


class TransactionNotFound(FinflowError):
    """No ledger transaction exists for the given user and id."""


__all__ = [
    "ClassifierError",
    "DocumentNotFound",
    "ExtractionError",
    "FinflowError",
    "InvalidTransition",
    "PersistenceError",
    "PublishError",
    "StorageError",
    "TransactionNotFound",
]
