# ruff: noqa: E402, I001
import datetime as dt
import sys
import uuid
from decimal import Decimal
from pathlib import Path

_ROOT = Path(__file__).resolve().parents[1]
sys.path[:0] = [p for p in [str(_ROOT / "packages"), str(_ROOT)] if p not in sys.path]

from db.client import session_scope
from db.models.ledger import FlTransaction
from finflow.duplicates import (
    check_duplicate,
    check_duplicates,
    content_hash,
    duplicate_stats,
    normalize_description,
)


def test_hash_normalizes_description_and_amount() -> None:
    base = content_hash(dt.date(2024, 4, 1), Decimal("250"), "Coffee House", "u1")
    assert base == content_hash(dt.date(2024, 4, 1), "250.00", "  coffee   HOUSE ", "u1")
    assert base == content_hash(dt.date(2024, 4, 1), 250.004, "Coffee House", "u1")
    assert len(base) == 64


def test_hash_distinguishes_fields() -> None:
    base = content_hash(dt.date(2024, 4, 1), "250", "Coffee House", "u1")
    assert base != content_hash(dt.date(2024, 4, 2), "250", "Coffee House", "u1")
    assert base != content_hash(dt.date(2024, 4, 1), "250.01", "Coffee House", "u1")
    assert base != content_hash(dt.date(2024, 4, 1), "250", "Coffee Home", "u1")
    assert base != content_hash(dt.date(2024, 4, 1), "250", "Coffee House", "u2")


def test_hash_uses_utc_calendar_day() -> None:
    ist = dt.timezone(dt.timedelta(hours=5, minutes=30))
    late_utc = dt.datetime(2024, 4, 1, 2, 0, tzinfo=ist)  # 2024-03-31 20:30 UTC
    expected = content_hash(dt.date(2024, 3, 31), "1", "x", "u")
    assert content_hash(late_utc, "1", "x", "u") == expected


def test_description_is_capped_before_hashing() -> None:
    long_a = "a" * 200 + "tail one"
    long_b = "a" * 200 + "tail two"
    assert normalize_description(long_a) == "a" * 200
    assert content_hash(dt.date(2024, 1, 1), 1, long_a, "u") == content_hash(
        dt.date(2024, 1, 1), 1, long_b, "u"
    )


def _add(session, *, user_id: str, h: str, is_duplicate: bool = False) -> str:
    tx_id = str(uuid.uuid4())
    session.add(
        FlTransaction(
            id=tx_id,
            user_id=user_id,
            document_id="doc-1",
            date=dt.date(2024, 4, 1),
            description="Coffee House",
            amount=Decimal("250.00"),
            direction="debit",
            category="Food",
            content_hash=h,
            is_duplicate=is_duplicate,
        )
    )
    session.flush()
    return tx_id


def test_check_duplicates_matches_only_primary_records_of_the_user(database_url: str) -> None:
    h1 = content_hash(dt.date(2024, 4, 1), "250", "Coffee House", "u1")
    h2 = content_hash(dt.date(2024, 4, 2), "99", "Netflix", "u1")
    with session_scope(database_url=database_url) as s:
        original = _add(s, user_id="u1", h=h1)
        _add(s, user_id="u1", h=h1, is_duplicate=True)
        _add(s, user_id="u2", h=h2)

    with session_scope(database_url=database_url) as s:
        checks = check_duplicates(s, user_id="u1", hashes=[h1, h2, h1])
        single = check_duplicate(s, user_id="u2", content_hash=h2)

    assert set(checks) == {h1, h2}
    assert checks[h1].is_duplicate
    assert checks[h1].existing_id == original
    assert checks[h1].existing_date == dt.date(2024, 4, 1)
    assert not checks[h2].is_duplicate
    assert checks[h2].existing_id is None
    assert single.is_duplicate


def test_duplicate_stats(database_url: str) -> None:
    with session_scope(database_url=database_url) as s:
        _add(s, user_id="u1", h="a" * 64)
        _add(s, user_id="u1", h="a" * 64, is_duplicate=True)
        _add(s, user_id="u1", h="b" * 64)

    with session_scope(database_url=database_url) as s:
        stats = duplicate_stats(s, user_id="u1")
        empty = duplicate_stats(s, user_id="nobody")

    assert (stats.total, stats.unique, stats.duplicates) == (3, 2, 1)
    assert (empty.total, empty.unique, empty.duplicates) == (0, 0, 0)
