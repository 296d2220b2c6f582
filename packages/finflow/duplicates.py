"""Content-hash duplicate detection for ledger transactions.

The hash is a SHA-256 over ``"{day}-{amount}-{description}-{user_id}"``:

- ``day``: calendar day in UTC, ``YYYY-MM-DD`` (aware datetimes are converted
  to UTC first; naive ones are taken as-is);
- ``amount``: two-decimal string, rounded half-up;
- ``description``: trimmed, lower-cased, whitespace collapsed to one space and
  capped at 200 characters.

Normalization and field order are part of the storage contract: changing them
orphans every stored hash.

The detector only classifies. Callers decide whether a duplicate is skipped or
stored with ``is_duplicate`` set.
"""

from __future__ import annotations

import datetime as dt
import hashlib
import re
from collections.abc import Iterable
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from db.models.ledger import FlTransaction
from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

_DESCRIPTION_HASH_LEN = 200
_WS_RE = re.compile(r"\s+")
# Bound the number of bind parameters per IN query.
_IN_CHUNK = 500


@dataclass(frozen=True, slots=True)
class DuplicateCheck:
    content_hash: str
    is_duplicate: bool
    existing_id: str | None = None
    existing_date: dt.date | None = None


@dataclass(frozen=True, slots=True)
class DuplicateStats:
    total: int
    unique: int
    duplicates: int


def normalize_description(description: str | None) -> str:
    collapsed = _WS_RE.sub(" ", (description or "").strip().lower())
    return collapsed[:_DESCRIPTION_HASH_LEN]


def _utc_day(value: dt.date | dt.datetime) -> str:
    if isinstance(value, dt.datetime):
        if value.tzinfo is not None:
            value = value.astimezone(dt.UTC)
        return value.date().isoformat()
    return value.isoformat()


def _amount_2dp(amount: Decimal | float | int | str) -> str:
    d = Decimal(str(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return f"{d:.2f}"


def content_hash(
    date: dt.date | dt.datetime,
    amount: Decimal | float | int | str,
    description: str | None,
    user_id: str,
) -> str:
    """Return the hex SHA-256 content hash for one transaction."""

    payload = "-".join(
        (_utc_day(date), _amount_2dp(amount), normalize_description(description), user_id)
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def check_duplicate(session: Session, *, user_id: str, content_hash: str) -> DuplicateCheck:
    """Report whether a primary record with ``(user_id, content_hash)`` exists."""

    return check_duplicates(session, user_id=user_id, hashes=[content_hash])[content_hash]


def check_duplicates(
    session: Session, *, user_id: str, hashes: Iterable[str]
) -> dict[str, DuplicateCheck]:
    """Resolve a batch of hashes for one user with a single ``IN`` lookup.

    Only primary (``is_duplicate = false``) records count as the existing
    original. Every requested hash appears in the returned mapping.
    """

    wanted = list(dict.fromkeys(hashes))
    found: dict[str, tuple[str, dt.date]] = {}
    for i in range(0, len(wanted), _IN_CHUNK):
        chunk = wanted[i : i + _IN_CHUNK]
        stmt = select(FlTransaction.content_hash, FlTransaction.id, FlTransaction.date).where(
            FlTransaction.user_id == user_id,
            FlTransaction.content_hash.in_(chunk),
            FlTransaction.is_duplicate.is_(False),
        )
        for h, tx_id, tx_date in session.execute(stmt):
            found.setdefault(h, (tx_id, tx_date))

    out: dict[str, DuplicateCheck] = {}
    for h in wanted:
        hit = found.get(h)
        if hit is None:
            out[h] = DuplicateCheck(content_hash=h, is_duplicate=False)
        else:
            out[h] = DuplicateCheck(
                content_hash=h, is_duplicate=True, existing_id=hit[0], existing_date=hit[1]
            )
    return out


def duplicate_stats(session: Session, *, user_id: str) -> DuplicateStats:
    """Count a user's ledger records split into primary and duplicate rows."""

    stmt = select(
        func.count(FlTransaction.id),
        func.coalesce(func.sum(case((FlTransaction.is_duplicate.is_(True), 1), else_=0)), 0),
    ).where(FlTransaction.user_id == user_id)
    total, dups = session.execute(stmt).one()
    total = int(total or 0)
    dups = int(dups or 0)
    return DuplicateStats(total=total, unique=total - dups, duplicates=dups)


__all__ = [
    "DuplicateCheck",
    "DuplicateStats",
    "check_duplicate",
    "check_duplicates",
    "content_hash",
    "duplicate_stats",
    "normalize_description",
]
