from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


# ---------------------------
# Core: transactions
# ---------------------------


class TransactionRow(Base):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        # Exact-duplicate key; inserts resolve conflicts against it atomically.
        UniqueConstraint("date", "amount", "description", name="uq_transactions_date_amount_desc"),
        CheckConstraint("amount <> 0", name="ck_transactions_amount_nonzero"),
        CheckConstraint(
            "length(description) >= 1 AND length(description) <= 500",
            name="ck_transactions_description_length",
        ),
        CheckConstraint(
            "category IS NULL OR length(category) <= 100",
            name="ck_transactions_category_length",
        ),
        Index("ix_transactions_date", "date"),
        Index("ix_transactions_category", "category"),
        Index("ix_transactions_created_at", "created_at"),
        Index("ix_transactions_amount", "amount"),
    )


# ---------------------------
# Audit: import_sessions
# ---------------------------


class ImportSessionRow(Base):
    __tablename__ = "import_sessions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    filename: Mapped[str] = mapped_column(Text, nullable=False)
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    total_rows: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    imported_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    duplicate_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status in ('pending','completed','failed')", name="ck_import_sessions_status"
        ),
        CheckConstraint(
            "total_rows >= 0 AND imported_count >= 0 AND duplicate_count >= 0 "
            "AND error_count >= 0",
            name="ck_import_sessions_counts_nonneg",
        ),
        # Validate-only sessions report parse errors alone, hence <= not ==.
        CheckConstraint(
            "imported_count + duplicate_count + error_count <= total_rows",
            name="ck_import_sessions_counts_total",
        ),
        Index("ix_import_sessions_status", "status"),
        Index("ix_import_sessions_started_at", "started_at"),
        Index("ix_import_sessions_filename", "filename"),
    )


__all__ = [
    "Base",
    "TransactionRow",
    "ImportSessionRow",
]
