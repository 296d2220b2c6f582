# ruff: noqa: I001
"""Ingestion ledger, read model and event channel tables.

Revision ID: 0001_fl_core
Revises: None
Create Date: 2026-10-19
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0001_fl_core"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    ]


def upgrade() -> None:
    # fl_documents
    op.create_table(
        "fl_documents",
        sa.Column("document_id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("filename", sa.Text(), nullable=True),
        sa.Column("storage_key", sa.Text(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("transaction_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("duplicate_count", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('uploaded','extracting','completed','failed')",
            name="ck_fl_documents_status",
        ),
    )
    op.create_index("ix_fl_documents_user_id", "fl_documents", ["user_id"])

    # fl_transactions
    op.create_table(
        "fl_transactions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("document_id", sa.String(36), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("direction", sa.String(), nullable=False),
        sa.Column("category", sa.String(), nullable=False),
        sa.Column(
            "category_source", sa.String(), nullable=False, server_default=sa.text("'rule'")
        ),
        sa.Column("confidence", sa.String(), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("raw_merchant", sa.Text(), nullable=True),
        sa.Column("content_hash", sa.CHAR(64), nullable=False),
        sa.Column("is_duplicate", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.CheckConstraint("amount >= 0", name="ck_fl_transactions_amount_magnitude"),
        sa.CheckConstraint(
            "direction IN ('debit','credit')", name="ck_fl_transactions_direction"
        ),
    )
    op.create_index("ix_fl_transactions_document_id", "fl_transactions", ["document_id"])
    op.create_index(
        "ix_fl_transactions_user_hash", "fl_transactions", ["user_id", "content_hash"]
    )
    op.create_index(
        "uq_fl_transactions_user_hash_primary",
        "fl_transactions",
        ["user_id", "content_hash"],
        unique=True,
        postgresql_where=sa.text("NOT is_duplicate"),
        sqlite_where=sa.text("is_duplicate = 0"),
    )

    # fl_projected_transactions
    op.create_table(
        "fl_projected_transactions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("document_id", sa.String(36), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("direction", sa.String(), nullable=False),
        sa.Column("category", sa.String(), nullable=False),
        sa.Column("raw_merchant", sa.Text(), nullable=True),
        sa.Column(
            "projected_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index(
        "ix_fl_projected_transactions_user_id", "fl_projected_transactions", ["user_id"]
    )

    # fl_event_log / fl_consumer_offsets
    op.create_table(
        "fl_event_log",
        sa.Column(
            "seq",
            sa.BigInteger().with_variant(sa.Integer(), "sqlite"),
            primary_key=True,
            autoincrement=True,
        ),
        sa.Column("topic", sa.String(), nullable=False),
        sa.Column("key", sa.String(), nullable=False),
        sa.Column("payload", sa.Text(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index("ix_fl_event_log_topic_seq", "fl_event_log", ["topic", "seq"])

    op.create_table(
        "fl_consumer_offsets",
        sa.Column("topic", sa.String(), primary_key=True),
        sa.Column("consumer_group", sa.String(), primary_key=True),
        sa.Column("committed_offset", sa.BigInteger(), nullable=False),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )


def downgrade() -> None:
    op.drop_table("fl_consumer_offsets")
    op.drop_index("ix_fl_event_log_topic_seq", table_name="fl_event_log")
    op.drop_table("fl_event_log")
    op.drop_index(
        "ix_fl_projected_transactions_user_id", table_name="fl_projected_transactions"
    )
    op.drop_table("fl_projected_transactions")
    op.drop_index("uq_fl_transactions_user_hash_primary", table_name="fl_transactions")
    op.drop_index("ix_fl_transactions_user_hash", table_name="fl_transactions")
    op.drop_index("ix_fl_transactions_document_id", table_name="fl_transactions")
    op.drop_table("fl_transactions")
    op.drop_index("ix_fl_documents_user_id", table_name="fl_documents")
    op.drop_table("fl_documents")
