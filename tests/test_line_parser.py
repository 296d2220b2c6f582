# ruff: noqa: E402, I001
import datetime as dt
import sys
from decimal import Decimal
from pathlib import Path

import pytest

_ROOT = Path(__file__).resolve().parents[1]
sys.path[:0] = [p for p in [str(_ROOT / "packages"), str(_ROOT)] if p not in sys.path]

from finflow.line_parser import (
    DESCRIPTION_MAX_LEN,
    RAW_MERCHANT_MAX_LEN,
    parse_date,
    parse_line,
    parse_statement,
    scan_line,
)
from finflow.models import Direction


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("05/03/2024", dt.date(2024, 3, 5)),  # day-first preferred
        ("25/03/2024", dt.date(2024, 3, 25)),  # day > 12 disambiguates
        ("03/25/2024", dt.date(2024, 3, 25)),  # month-first fallback
        ("5/3/24", dt.date(2024, 3, 5)),  # two-digit year
        ("2024-03-05", dt.date(2024, 3, 5)),
        ("05-Mar-2024", dt.date(2024, 3, 5)),
        ("05 March 2024", dt.date(2024, 3, 5)),
        ("2024-03-05T10:11:12", dt.date(2024, 3, 5)),
    ],
)
def test_parse_date_accepted_shapes(raw: str, expected: dt.date) -> None:
    assert parse_date(raw) == expected


@pytest.mark.parametrize("raw", ["", "   ", "31/31/2024", "05-Foo-2024", "yesterday"])
def test_parse_date_rejects_unreadable(raw: str) -> None:
    assert parse_date(raw) is None


def test_amount_before_type_indicator_and_balance_is_stripped() -> None:
    tx = parse_line("01/04/2024 Coffee House 250.00 DR 10,250.00")
    assert tx is not None
    assert tx.date == dt.date(2024, 4, 1)
    assert tx.amount == Decimal("250.00")
    assert tx.direction is Direction.DEBIT
    assert tx.category is None

    # Description follows the consumed type token; the trailing balance is dropped.
    assert tx.description == "Coffee House"
    assert tx.raw_merchant == "Coffee House"


def test_credit_indicator_sets_direction() -> None:
    tx = parse_line("15/04/2024 SALARY APRIL 50,000.00 CR 60,250.00")
    assert tx is not None
    assert tx.direction is Direction.CREDIT
    assert tx.amount == Decimal("50000.00")


def test_first_amount_after_date_without_indicator() -> None:
    tx = parse_line("02/04/2024 1,200.50 Refund from store")
    assert tx is not None
    assert tx.amount == Decimal("1200.50")
    assert tx.direction is Direction.CREDIT
    assert tx.description == "Refund from store"


@pytest.mark.parametrize(
    ("line", "direction"),
    [
        ("03/04/2024 ATM withdrawal 500", Direction.DEBIT),
        ("03/04/2024 Cash deposit 500", Direction.CREDIT),
        ("03/04/2024 Refund payment 500", Direction.DEBIT),  # debit hint wins
        ("03/04/2024 Something 500", Direction.DEBIT),  # default
    ],
)
def test_direction_keyword_heuristics(line: str, direction: Direction) -> None:
    tx = parse_line(line)
    assert tx is not None
    assert tx.direction is direction


def test_upi_reference_digits_are_not_amounts() -> None:
    line = "06/04/2024 UPI/405612345678/P2M/swiggy@icici/Swiggy 349.00 DR 9,000.00"
    tx = parse_line(line)
    assert tx is not None
    assert tx.amount == Decimal("349.00")
    cand = scan_line(line)
    assert cand is not None
    assert "405612345678" not in [a.text for a in cand.amounts]


def test_description_falls_back_to_line_without_tokens() -> None:
    tx = parse_line("NEFT TRANSFER 07/04/2024 900 DR")
    assert tx is not None
    assert tx.amount == Decimal("900.00")
    assert tx.description == "NEFT TRANSFER"


def test_description_never_empty() -> None:
    tx = parse_line("07/04/2024 900")
    assert tx is not None
    assert tx.description == "Unspecified transaction"


def test_long_descriptions_are_truncated() -> None:
    tx = parse_line("08/04/2024 100.00 DR " + "x" * 400)
    assert tx is not None
    assert len(tx.description) == DESCRIPTION_MAX_LEN
    assert len(tx.raw_merchant or "") == RAW_MERCHANT_MAX_LEN


@pytest.mark.parametrize(
    "line",
    [
        "",
        "Opening balance 10,000.00",  # no date token
        "01/04/2024 no amount here",
        "01/04/2024 0.00 DR",  # zero amount
        "45/45/2024 Bad date 100.00",
    ],
)
def test_unreadable_lines_are_skipped(line: str) -> None:
    assert parse_line(line) is None


def test_parse_statement_keeps_order_and_skips_noise() -> None:
    text = "\n".join(
        [
            "ACME BANK STATEMENT",
            "",
            "  01/04/2024 Coffee House 250.00 DR 10,250.00  ",
            "Page 1 of 2",
            "02/04/2024 Salary 50,000.00 CR 60,250.00",
            "02/04/2024 garbage",
        ]
    )
    parsed = parse_statement(text)
    assert [t.description for t in parsed] == ["Coffee House", "Salary"]
    assert parse_statement("") == []
