from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    CHAR,
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import expression as sa_expr

# SQLite only autoincrements INTEGER PRIMARY KEY columns.
_SeqType = BigInteger().with_variant(Integer, "sqlite")


class Base(DeclarativeBase):
    pass


# ---------------------------
# Intake: fl_documents
# ---------------------------


class FlDocument(Base):
    __tablename__ = "fl_documents"

    document_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    filename: Mapped[str | None] = mapped_column(Text, nullable=True)
    storage_key: Mapped[str] = mapped_column(Text, nullable=False)
    # uploaded -> extracting -> completed | failed (enforced in finflow.persistence)
    status: Mapped[str] = mapped_column(String, nullable=False)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    transaction_count: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    duplicate_count: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('uploaded','extracting','completed','failed')",
            name="ck_fl_documents_status",
        ),
    )


# ---------------------------
# Ledger: fl_transactions
# ---------------------------


class FlTransaction(Base):
    __tablename__ = "fl_transactions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String, nullable=False)
    document_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    # Positive magnitude; the sign lives in ``direction``.
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    direction: Mapped[str] = mapped_column(String, nullable=False)
    category: Mapped[str] = mapped_column(String, nullable=False)
    category_source: Mapped[str] = mapped_column(
        String, nullable=False, server_default=sa_expr.text("'rule'")
    )
    confidence: Mapped[str | None] = mapped_column(String, nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    raw_merchant: Mapped[str | None] = mapped_column(Text, nullable=True)
    content_hash: Mapped[str] = mapped_column(CHAR(64), nullable=False)
    is_duplicate: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=sa_expr.false()
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_fl_transactions_amount_magnitude"),
        CheckConstraint("direction IN ('debit','credit')", name="ck_fl_transactions_direction"),
        Index("ix_fl_transactions_user_hash", "user_id", "content_hash"),
        # At most one primary (non-duplicate) record per (user_id, content_hash).
        # Backstop for concurrent ingestions of the same statement.
        Index(
            "uq_fl_transactions_user_hash_primary",
            "user_id",
            "content_hash",
            unique=True,
            postgresql_where=sa_expr.text("NOT is_duplicate"),
            sqlite_where=sa_expr.text("is_duplicate = 0"),
        ),
    )


# ---------------------------
# Read model: fl_projected_transactions
# ---------------------------


class FlProjectedTransaction(Base):
    __tablename__ = "fl_projected_transactions"

    # Event id == ledger id; upserts key on it.
    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    document_id: Mapped[str] = mapped_column(String(36), nullable=False)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    direction: Mapped[str] = mapped_column(String, nullable=False)
    category: Mapped[str] = mapped_column(String, nullable=False)
    raw_merchant: Mapped[str | None] = mapped_column(Text, nullable=True)
    projected_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


# ---------------------------
# Event channel: fl_event_log / fl_consumer_offsets
# ---------------------------


class FlEventLog(Base):
    __tablename__ = "fl_event_log"

    seq: Mapped[int] = mapped_column(_SeqType, primary_key=True, autoincrement=True)
    topic: Mapped[str] = mapped_column(String, nullable=False)
    key: Mapped[str] = mapped_column(String, nullable=False)
    payload: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (Index("ix_fl_event_log_topic_seq", "topic", "seq"),)


class FlConsumerOffset(Base):
    __tablename__ = "fl_consumer_offsets"

    topic: Mapped[str] = mapped_column(String, primary_key=True)
    consumer_group: Mapped[str] = mapped_column(String, primary_key=True)
    # Highest offset fully processed by the group.
    committed_offset: Mapped[int] = mapped_column(BigInteger, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
