# ruff: noqa: I001
"""Read-side query surface over the analytics projection."""

from __future__ import annotations

import datetime as dt
import math
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator, model_validator
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from db.client import session_scope
from db.models.ledger import FlProjectedTransaction
from .aggregation import (
    CategorySpend,
    MonthlyTotal,
    Summary,
    category_spending,
    monthly_trend,
    summarize,
)
from .models import Category, Direction

DEFAULT_PAGE = 1
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


class TransactionFilters(BaseModel):
    """Listing filters. Out-of-range paging values are clamped, not rejected."""

    model_config = ConfigDict(frozen=True)

    search: str | None = None
    category: Category | None = None
    direction: Direction | None = None
    start_date: dt.date | None = None
    end_date: dt.date | None = None
    page: int = DEFAULT_PAGE
    page_size: int = DEFAULT_PAGE_SIZE

    @field_validator("search")
    @classmethod
    def _blank_search_is_none(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip()
        return v or None

    @field_validator("page", mode="before")
    @classmethod
    def _clamp_page(cls, v: Any) -> int:
        if v is None:
            return DEFAULT_PAGE
        return max(1, int(v))

    @field_validator("page_size", mode="before")
    @classmethod
    def _clamp_page_size(cls, v: Any) -> int:
        if v is None:
            return DEFAULT_PAGE_SIZE
        return min(MAX_PAGE_SIZE, max(1, int(v)))

    @model_validator(mode="after")
    def _date_range_ordered(self) -> TransactionFilters:
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")
        return self


@dataclass(frozen=True, slots=True)
class TransactionItem:
    id: str
    document_id: str
    date: dt.date
    description: str
    amount: Decimal
    direction: str
    category: str
    raw_merchant: str | None


@dataclass(frozen=True, slots=True)
class TransactionPage:
    items: list[TransactionItem]
    total: int
    page: int
    page_size: int
    total_pages: int


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class QueryService:
    """Summary, category, trend and listing queries for one database."""

    def __init__(self, *, database_url: str | None = None) -> None:
        self._database_url = database_url

    def _user_rows(self, session: Session, user_id: str) -> list[FlProjectedTransaction]:
        stmt = select(FlProjectedTransaction).where(FlProjectedTransaction.user_id == user_id)
        return list(session.execute(stmt).scalars())

    def get_summary(self, user_id: str) -> Summary:
        with session_scope(database_url=self._database_url) as session:
            return summarize(self._user_rows(session, user_id))

    def get_category_spending(self, user_id: str) -> list[CategorySpend]:
        with session_scope(database_url=self._database_url) as session:
            return category_spending(self._user_rows(session, user_id))

    def get_monthly_trend(self, user_id: str) -> list[MonthlyTotal]:
        with session_scope(database_url=self._database_url) as session:
            return monthly_trend(self._user_rows(session, user_id))

    def list_transactions(
        self, user_id: str, filters: TransactionFilters | None = None
    ) -> TransactionPage:
        """Newest-first page of ``user_id``'s transactions matching ``filters``."""

        f = filters or TransactionFilters()
        P = FlProjectedTransaction
        conds = [P.user_id == user_id]
        if f.search:
            pattern = f"%{_escape_like(f.search)}%"
            conds.append(
                or_(
                    P.description.ilike(pattern, escape="\\"),
                    P.raw_merchant.ilike(pattern, escape="\\"),
                )
            )
        if f.category is not None:
            conds.append(P.category == f.category.value)
        if f.direction is not None:
            conds.append(P.direction == f.direction.value)
        if f.start_date is not None:
            conds.append(P.date >= f.start_date)
        if f.end_date is not None:
            conds.append(P.date <= f.end_date)

        with session_scope(database_url=self._database_url) as session:
            total = int(session.execute(select(func.count(P.id)).where(*conds)).scalar_one())
            stmt = (
                select(P)
                .where(*conds)
                .order_by(P.date.desc(), P.id)
                .offset((f.page - 1) * f.page_size)
                .limit(f.page_size)
            )
            items = [
                TransactionItem(
                    id=row.id,
                    document_id=row.document_id,
                    date=row.date,
                    description=row.description,
                    amount=row.amount,
                    direction=row.direction,
                    category=row.category,
                    raw_merchant=row.raw_merchant,
                )
                for row in session.execute(stmt).scalars()
            ]

        return TransactionPage(
            items=items,
            total=total,
            page=f.page,
            page_size=f.page_size,
            total_pages=max(1, math.ceil(total / f.page_size)),
        )


__all__ = [
    "DEFAULT_PAGE",
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    "QueryService",
    "TransactionFilters",
    "TransactionItem",
    "TransactionPage",
]
