"""Shared SQLAlchemy models registry for the workspace database.

Currently includes the ingestion ledger, read model and event channel tables
used by ``finflow``.
"""

from .ledger import (
    Base,
    FlConsumerOffset,
    FlDocument,
    FlEventLog,
    FlProjectedTransaction,
    FlTransaction,
)

__all__ = [
    "Base",
    "FlConsumerOffset",
    "FlDocument",
    "FlEventLog",
    "FlProjectedTransaction",
    "FlTransaction",
]
