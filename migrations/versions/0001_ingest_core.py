"""Transactions and import session audit tables.

Revision ID: 0001_ingest_core
Revises: None
Create Date: 2026-10-19
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0001_ingest_core"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # transactions
    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("category", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.UniqueConstraint(
            "date", "amount", "description", name="uq_transactions_date_amount_desc"
        ),
        sa.CheckConstraint("amount <> 0", name="ck_transactions_amount_nonzero"),
        sa.CheckConstraint(
            "length(description) >= 1 AND length(description) <= 500",
            name="ck_transactions_description_length",
        ),
        sa.CheckConstraint(
            "category IS NULL OR length(category) <= 100",
            name="ck_transactions_category_length",
        ),
    )
    op.create_index("ix_transactions_date", "transactions", ["date"])
    op.create_index("ix_transactions_category", "transactions", ["category"])
    op.create_index("ix_transactions_created_at", "transactions", ["created_at"])
    op.create_index("ix_transactions_amount", "transactions", ["amount"])

    # import_sessions
    op.create_table(
        "import_sessions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("filename", sa.Text(), nullable=False),
        sa.Column(
            "started_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("total_rows", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("imported_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("duplicate_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("error_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column(
            "status", sa.String(16), nullable=False, server_default=sa.text("'pending'")
        ),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.CheckConstraint(
            "status in ('pending','completed','failed')", name="ck_import_sessions_status"
        ),
        sa.CheckConstraint(
            "total_rows >= 0 AND imported_count >= 0 AND duplicate_count >= 0 "
            "AND error_count >= 0",
            name="ck_import_sessions_counts_nonneg",
        ),
        sa.CheckConstraint(
            "imported_count + duplicate_count + error_count <= total_rows",
            name="ck_import_sessions_counts_total",
        ),
    )
    op.create_index("ix_import_sessions_status", "import_sessions", ["status"])
    op.create_index("ix_import_sessions_started_at", "import_sessions", ["started_at"])
    op.create_index("ix_import_sessions_filename", "import_sessions", ["filename"])


def downgrade() -> None:
    op.drop_index("ix_import_sessions_filename", table_name="import_sessions")
    op.drop_index("ix_import_sessions_started_at", table_name="import_sessions")
    op.drop_index("ix_import_sessions_status", table_name="import_sessions")
    op.drop_table("import_sessions")

    op.drop_index("ix_transactions_amount", table_name="transactions")
    op.drop_index("ix_transactions_created_at", table_name="transactions")
    op.drop_index("ix_transactions_category", table_name="transactions")
    op.drop_index("ix_transactions_date", table_name="transactions")
    op.drop_table("transactions")
