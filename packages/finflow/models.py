"""Data models shared across the ingestion pipeline.

Plain frozen dataclasses carry values between in-process stages (parser,
categorizer, detector, orchestrator). The event that crosses the message
channel is a pydantic model so both ends validate the same wire shape.
"""

from __future__ import annotations

import datetime as dt
from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal
from enum import StrEnum
from typing import Any, TypeAlias

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

# ---------------------------------------------------------------------------
# Closed vocabularies
# ---------------------------------------------------------------------------


class Category(StrEnum):
    FOOD = "Food"
    TRAVEL = "Travel"
    SHOPPING = "Shopping"
    BILLS = "Bills"
    ENTERTAINMENT = "Entertainment"
    ONLINE_PAYMENTS = "OnlinePayments"
    OTHERS = "Others"


class Confidence(StrEnum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Direction(StrEnum):
    DEBIT = "debit"
    CREDIT = "credit"


class CategorySource(StrEnum):
    RULE = "rule"
    CLASSIFIER = "classifier"
    MANUAL = "manual"


class DocumentStatus(StrEnum):
    UPLOADED = "uploaded"
    EXTRACTING = "extracting"
    COMPLETED = "completed"
    FAILED = "failed"


ALL_CATEGORIES: tuple[Category, ...] = tuple(Category)

UserId: TypeAlias = str
DocumentId: TypeAlias = str


# ---------------------------------------------------------------------------
# Pipeline values
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class CategorizationResult:
    """Outcome of the categorization decision procedure for one transaction."""

    category: Category
    confidence: Confidence
    reason: str
    source: CategorySource = CategorySource.RULE


@dataclass(frozen=True, slots=True)
class ParsedTransaction:
    """A transaction recovered from statement text.

    ``amount`` is always a positive magnitude; money direction is carried only
    by ``direction``. The categorization fields stay ``None`` until the
    categorization engine has run.
    """

    date: dt.date
    description: str
    amount: Decimal
    direction: Direction
    raw_merchant: str | None = None
    category: Category | None = None
    confidence: Confidence | None = None
    reason: str | None = None
    category_source: CategorySource | None = None


@dataclass(frozen=True, slots=True)
class DocumentView:
    """User-visible state of an ingested document."""

    document_id: DocumentId
    user_id: UserId
    status: DocumentStatus
    filename: str | None
    transaction_count: int
    duplicate_count: int
    error_message: str | None


# ---------------------------------------------------------------------------
# Wire event
# ---------------------------------------------------------------------------


class TransactionCreatedEvent(BaseModel):
    """Immutable message mirroring one persisted ledger record.

    Serialized with camelCase keys (``userId``, ``documentId``,
    ``rawMerchant``). ``id`` is the ledger id and the idempotency key for
    consumers.
    """

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    id: str
    user_id: str
    document_id: str
    date: dt.date
    description: str
    amount: Decimal
    direction: Direction
    category: Category
    raw_merchant: str | None = None

    @field_validator("amount")
    @classmethod
    def _amount_is_magnitude(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("amount must be a positive magnitude")
        return v

    @field_validator("date", mode="before")
    @classmethod
    def _accept_timestamps(cls, v: Any) -> Any:
        # Producers that send a full ISO-8601 timestamp are truncated to the day.
        if isinstance(v, str) and "T" in v:
            return dt.datetime.fromisoformat(v.replace("Z", "+00:00")).date()
        return v

    def to_wire(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> TransactionCreatedEvent:
        return cls.model_validate(dict(record))


__all__ = [
    "ALL_CATEGORIES",
    "Category",
    "CategorizationResult",
    "CategorySource",
    "Confidence",
    "Direction",
    "DocumentId",
    "DocumentStatus",
    "DocumentView",
    "ParsedTransaction",
    "TransactionCreatedEvent",
    "UserId",
]
