"""Spending statistics over a user's transactions.

Pure functions: callers pass the full record set (ledger or projection rows,
or any object exposing ``date``, ``amount``, ``direction`` and ``category``)
and get plain dataclasses back. Amounts stay ``Decimal`` end to end.
"""

from __future__ import annotations

import calendar
import datetime as dt
import math
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Protocol

_CENT = Decimal("0.01")
_HUNDRED = Decimal(100)
_ZERO = Decimal("0.00")
# A month needs this many months in total before it can be judged anomalous.
_MIN_MONTHS_FOR_ANOMALY = 3
_ANOMALY_SIGMAS = 2
# A month must also exceed the baseline mean by this fraction to be flagged.
_ANOMALY_MIN_MARGIN = Decimal("0.2")


class SpendRecord(Protocol):
    @property
    def date(self) -> dt.date: ...

    @property
    def amount(self) -> Decimal: ...

    @property
    def direction(self) -> str: ...

    @property
    def category(self) -> str: ...


@dataclass(frozen=True, slots=True)
class Summary:
    total_debit: Decimal
    total_credit: Decimal
    count: int


@dataclass(frozen=True, slots=True)
class CategorySpend:
    category: str
    total: Decimal
    percentage: Decimal
    count: int


@dataclass(frozen=True, slots=True)
class MonthlyTotal:
    year: int
    month: int
    label: str
    total: Decimal
    top_category: str | None
    is_anomaly: bool


def _money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(_CENT, rounding=ROUND_HALF_UP)


def _is_debit(record: SpendRecord) -> bool:
    return str(record.direction) == "debit"


def summarize(records: Iterable[SpendRecord]) -> Summary:
    """Total debit, total credit and record count in a single pass."""

    debit = credit = _ZERO
    count = 0
    for r in records:
        count += 1
        if _is_debit(r):
            debit += Decimal(r.amount)
        else:
            credit += Decimal(r.amount)
    return Summary(total_debit=_money(debit), total_credit=_money(credit), count=count)


def category_spending(records: Iterable[SpendRecord]) -> list[CategorySpend]:
    """Debit totals per category, largest first, with share of total spend.

    Percentages are rounded half-up to two decimals independently, so their
    sum may drift from 100 by a few hundredths. A zero grand total yields 0%
    for every category.
    """

    totals: dict[str, Decimal] = defaultdict(lambda: _ZERO)
    counts: dict[str, int] = defaultdict(int)
    for r in records:
        if not _is_debit(r):
            continue
        key = str(r.category)
        totals[key] += Decimal(r.amount)
        counts[key] += 1

    grand = sum(totals.values(), _ZERO)
    out: list[CategorySpend] = []
    for category, total in totals.items():
        pct = _ZERO if grand == 0 else (total / grand * _HUNDRED).quantize(
            _CENT, rounding=ROUND_HALF_UP
        )
        out.append(
            CategorySpend(
                category=category, total=_money(total), percentage=pct, count=counts[category]
            )
        )
    out.sort(key=lambda c: (-c.total, c.category))
    return out


def _pstdev(values: list[Decimal]) -> float:
    n = len(values)
    if n == 0:
        return 0.0
    mean = sum(values, _ZERO) / n
    return math.sqrt(float(sum(((v - mean) ** 2 for v in values), _ZERO) / n))


def _anomalies(totals: list[Decimal]) -> list[bool]:
    """Flag months whose total exceeds mean + 2 sigma of the *other* months.

    Each month is measured against a baseline that excludes it, so a single
    outlier cannot inflate its own threshold. The threshold is never below
    the baseline mean raised by ``_ANOMALY_MIN_MARGIN``, so a flat history does not
    flag a trivial increase.
    """

    n = len(totals)
    if n < _MIN_MONTHS_FOR_ANOMALY:
        return [False] * n
    flags: list[bool] = []
    for i, value in enumerate(totals):
        others = totals[:i] + totals[i + 1 :]
        mean = sum(others, _ZERO) / len(others)
        threshold = max(
            float(mean) + _ANOMALY_SIGMAS * _pstdev(others),
            float(mean * (1 + _ANOMALY_MIN_MARGIN)),
        )
        flags.append(float(value) > threshold)
    return flags


def monthly_trend(records: Iterable[SpendRecord]) -> list[MonthlyTotal]:
    """Debit totals per calendar month in chronological order."""

    by_month: dict[tuple[int, int], Decimal] = defaultdict(lambda: _ZERO)
    by_month_cat: dict[tuple[int, int], dict[str, Decimal]] = defaultdict(
        lambda: defaultdict(lambda: _ZERO)
    )
    for r in records:
        if not _is_debit(r):
            continue
        key = (r.date.year, r.date.month)
        amount = Decimal(r.amount)
        by_month[key] += amount
        by_month_cat[key][str(r.category)] += amount

    months = sorted(by_month)
    totals = [_money(by_month[k]) for k in months]
    flags = _anomalies(totals)

    out: list[MonthlyTotal] = []
    for (year, month), total, flagged in zip(months, totals, flags, strict=True):
        cats = by_month_cat[(year, month)]
        top = min(cats.items(), key=lambda kv: (-kv[1], kv[0]))[0] if cats else None
        out.append(
            MonthlyTotal(
                year=year,
                month=month,
                label=f"{calendar.month_name[month]} {year}",
                total=total,
                top_category=top,
                is_anomaly=flagged,
            )
        )
    return out


__all__ = [
    "CategorySpend",
    "MonthlyTotal",
    "SpendRecord",
    "Summary",
    "category_spending",
    "monthly_trend",
    "summarize",
]
