"""SQLAlchemy implementations of the storage protocols.

Both stores take a ``sessionmaker`` and run every public operation in its own
``session_scope`` (one unit of work, committed on success). A session record is
therefore durable before the import that owns it starts processing rows.

Exact-duplicate detection on insert is done by the database itself: each row is
written with ``INSERT .. ON CONFLICT (date, amount, description) DO NOTHING ..
RETURNING``, so the check and the write are a single atomic statement even when
several imports run against the same table.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC, date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session, sessionmaker

from .db.client import session_scope
from .db.models import ImportSessionRow, TransactionRow
from .errors import (
    DuplicateConflictError,
    RowValidationError,
    SessionNotFoundError,
    SessionStateError,
    StoreCapacityError,
)
from .logging_setup import get_logger
from .models import (
    MAX_CATEGORY_LENGTH,
    MAX_DESCRIPTION_LENGTH,
    ImportSession,
    ImportStats,
    SessionStatus,
    Transaction,
    TransactionCandidate,
)
from .normalizers import MAX_ABS_AMOUNT
from .storage import BulkCreateResult

logger = get_logger("txn_ingest.persistence")

DEFAULT_MAX_TRANSACTIONS = 100_000
_CENTS = Decimal("0.01")


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _to_decimal_2(raw: Any) -> Decimal:
    return Decimal(str(raw)).quantize(_CENTS, rounding=ROUND_HALF_UP)


def _to_transaction(row: TransactionRow) -> Transaction:
    return Transaction(
        id=row.id,
        date=row.date,
        amount=_to_decimal_2(row.amount),
        description=row.description,
        category=row.category,
        created_at=row.created_at,
    )


def validate_candidate(candidate: TransactionCandidate) -> None:
    """Store-side checks mirroring the table constraints."""

    if not candidate.description or len(candidate.description) > MAX_DESCRIPTION_LENGTH:
        raise RowValidationError(
            f"Description must be 1-{MAX_DESCRIPTION_LENGTH} characters", field="description"
        )
    if candidate.category is not None and len(candidate.category) > MAX_CATEGORY_LENGTH:
        raise RowValidationError(
            f"Category exceeds maximum length of {MAX_CATEGORY_LENGTH} characters",
            field="category",
        )
    if candidate.amount == 0:
        raise RowValidationError("Amount cannot be zero", field="amount")
    if abs(candidate.amount) > MAX_ABS_AMOUNT:
        raise RowValidationError(
            f"Amount exceeds maximum allowed value of {MAX_ABS_AMOUNT}", field="amount"
        )


# ---- Transactions ------------------------------------------------------------


class SqlTransactionStore:
    """``TransactionStore`` over the ``transactions`` table."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        *,
        max_transactions: int = DEFAULT_MAX_TRANSACTIONS,
    ) -> None:
        self._session_factory = session_factory
        self.max_transactions = max_transactions

    # ---- writes ----

    def _insert_ignoring_conflict(
        self, session: Session, candidate: TransactionCandidate
    ) -> tuple[int, datetime] | None:
        dialect = session.get_bind().dialect.name
        if dialect == "postgresql":
            insert = pg_insert
        elif dialect == "sqlite":
            insert = sqlite_insert
        else:
            raise RuntimeError(f"Unsupported database dialect for conflict-free insert: {dialect}")
        stmt = (
            insert(TransactionRow)
            .values(
                date=candidate.date,
                amount=candidate.amount,
                description=candidate.description,
                category=candidate.category,
            )
            .on_conflict_do_nothing(
                index_elements=[
                    TransactionRow.date,
                    TransactionRow.amount,
                    TransactionRow.description,
                ]
            )
            .returning(TransactionRow.id, TransactionRow.created_at)
        )
        row = session.execute(stmt).first()
        return None if row is None else (row[0], row[1])

    def _check_capacity(self, session: Session, incoming: int) -> None:
        current = session.scalar(select(func.count()).select_from(TransactionRow)) or 0
        if current + incoming > self.max_transactions:
            raise StoreCapacityError(current, incoming, self.max_transactions)

    @staticmethod
    def _existing_id(session: Session, key: tuple[date, Decimal, str]) -> int | None:
        txn_date, amount, description = key
        return session.scalar(
            select(TransactionRow.id).where(
                TransactionRow.date == txn_date,
                TransactionRow.amount == amount,
                TransactionRow.description == description,
            )
        )

    def create(self, candidate: TransactionCandidate) -> Transaction:
        """Insert one transaction; raises :class:`DuplicateConflictError` on a key clash."""

        validate_candidate(candidate)
        with session_scope(self._session_factory) as session:
            self._check_capacity(session, 1)
            inserted = self._insert_ignoring_conflict(session, candidate)
            if inserted is None:
                existing_id = self._existing_id(session, candidate.key)
                raise DuplicateConflictError(
                    "Transaction with the same date, amount and description already exists",
                    existing_id=existing_id,
                )
        new_id, created_at = inserted
        return Transaction(
            id=new_id,
            date=candidate.date,
            amount=candidate.amount,
            description=candidate.description,
            category=candidate.category,
            created_at=created_at,
        )

    def create_many(self, candidates: Sequence[TransactionCandidate]) -> BulkCreateResult:
        """Insert a batch in one database transaction.

        Invalid candidates are reported as errors and skipped; conflicting
        candidates are reported with the id of the row they collided with,
        which may have been inserted earlier in the same batch.
        """

        result = BulkCreateResult()
        valid: list[tuple[int, TransactionCandidate]] = []
        for pos, candidate in enumerate(candidates):
            try:
                validate_candidate(candidate)
            except RowValidationError as e:
                result.errors.append((pos, str(e)))
                continue
            valid.append((pos, candidate))

        if not valid:
            return result

        with session_scope(self._session_factory) as session:
            # Only keys that will actually add a row count against the limit.
            new_keys = {
                candidate.key
                for _, candidate in valid
                if self._existing_id(session, candidate.key) is None
            }
            self._check_capacity(session, len(new_keys))
            for pos, candidate in valid:
                inserted = self._insert_ignoring_conflict(session, candidate)
                if inserted is None:
                    existing_id = self._existing_id(session, candidate.key)
                    if existing_id is None:
                        # Conflicting row vanished between statements.
                        result.errors.append((pos, "Conflicting transaction could not be resolved"))
                    else:
                        result.duplicates.append((pos, existing_id))
                    continue
                new_id, created_at = inserted
                result.created.append(
                    (
                        pos,
                        Transaction(
                            id=new_id,
                            date=candidate.date,
                            amount=candidate.amount,
                            description=candidate.description,
                            category=candidate.category,
                            created_at=created_at,
                        ),
                    )
                )

        logger.info(
            "bulk insert: %d created, %d duplicates, %d errors",
            len(result.created),
            len(result.duplicates),
            len(result.errors),
        )
        return result

    def delete(self, transaction_id: int) -> bool:
        with session_scope(self._session_factory) as session:
            res = session.execute(delete(TransactionRow).where(TransactionRow.id == transaction_id))
            return (res.rowcount or 0) > 0

    # ---- reads ----

    def exists(self, txn_date: date, amount: Decimal, description: str) -> int | None:
        with session_scope(self._session_factory) as session:
            return self._existing_id(session, (txn_date, amount, description))

    def get(self, transaction_id: int) -> Transaction | None:
        with session_scope(self._session_factory) as session:
            row = session.get(TransactionRow, transaction_id)
            return None if row is None else _to_transaction(row)

    def in_date_range(self, start: date, end: date, *, limit: int) -> list[Transaction]:
        with session_scope(self._session_factory) as session:
            rows = session.scalars(
                select(TransactionRow)
                .where(TransactionRow.date >= start, TransactionRow.date <= end)
                .order_by(TransactionRow.date.desc(), TransactionRow.id.desc())
                .limit(limit)
            ).all()
            return [_to_transaction(r) for r in rows]

    def recent(self, limit: int) -> list[Transaction]:
        with session_scope(self._session_factory) as session:
            rows = session.scalars(
                select(TransactionRow)
                .order_by(TransactionRow.created_at.desc(), TransactionRow.id.desc())
                .limit(limit)
            ).all()
            return [_to_transaction(r) for r in rows]

    def list(
        self,
        *,
        start_date: date | None = None,
        end_date: date | None = None,
        category: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Transaction]:
        stmt = select(TransactionRow)
        if start_date is not None:
            stmt = stmt.where(TransactionRow.date >= start_date)
        if end_date is not None:
            stmt = stmt.where(TransactionRow.date <= end_date)
        if category is not None:
            stmt = stmt.where(TransactionRow.category == category)
        stmt = (
            stmt.order_by(TransactionRow.date.desc(), TransactionRow.id.desc())
            .limit(limit)
            .offset(offset)
        )
        with session_scope(self._session_factory) as session:
            return [_to_transaction(r) for r in session.scalars(stmt).all()]

    def count(
        self,
        *,
        start_date: date | None = None,
        end_date: date | None = None,
        category: str | None = None,
    ) -> int:
        stmt = select(func.count()).select_from(TransactionRow)
        if start_date is not None:
            stmt = stmt.where(TransactionRow.date >= start_date)
        if end_date is not None:
            stmt = stmt.where(TransactionRow.date <= end_date)
        if category is not None:
            stmt = stmt.where(TransactionRow.category == category)
        with session_scope(self._session_factory) as session:
            return session.scalar(stmt) or 0


# ---- Import sessions ---------------------------------------------------------


def _to_session(row: ImportSessionRow) -> ImportSession:
    return ImportSession(
        id=row.id,
        filename=row.filename,
        total_rows=row.total_rows,
        imported_count=row.imported_count,
        duplicate_count=row.duplicate_count,
        error_count=row.error_count,
        status=SessionStatus(row.status),
        started_at=row.started_at,
        completed_at=row.completed_at,
        failure_reason=row.error_message,
    )


class SqlImportSessionStore:
    """``ImportSessionStore`` over the ``import_sessions`` table."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def create(self, filename: str, total_rows: int) -> ImportSession:
        with session_scope(self._session_factory) as session:
            row = ImportSessionRow(
                filename=filename,
                total_rows=total_rows,
                imported_count=0,
                duplicate_count=0,
                error_count=0,
                status=SessionStatus.PENDING.value,
                started_at=_utcnow(),
            )
            session.add(row)
            session.flush()
            return _to_session(row)

    def _finish(self, session_id: int, values: dict[str, Any]) -> ImportSession:
        with session_scope(self._session_factory) as session:
            res = session.execute(
                update(ImportSessionRow)
                .where(
                    ImportSessionRow.id == session_id,
                    ImportSessionRow.status == SessionStatus.PENDING.value,
                )
                .values(completed_at=_utcnow(), **values)
            )
            row = session.get(ImportSessionRow, session_id, populate_existing=True)
            if row is None:
                raise SessionNotFoundError(session_id)
            if (res.rowcount or 0) == 0:
                raise SessionStateError(
                    f"Import session {session_id} is already {row.status}; "
                    "only pending sessions can be finalized"
                )
            return _to_session(row)

    def mark_completed(
        self, session_id: int, *, imported: int, duplicates: int, errors: int
    ) -> ImportSession:
        return self._finish(
            session_id,
            {
                "status": SessionStatus.COMPLETED.value,
                "imported_count": imported,
                "duplicate_count": duplicates,
                "error_count": errors,
            },
        )

    def mark_failed(self, session_id: int, reason: str) -> ImportSession:
        return self._finish(
            session_id,
            {"status": SessionStatus.FAILED.value, "error_message": reason},
        )

    def find_by_id(self, session_id: int) -> ImportSession | None:
        with session_scope(self._session_factory) as session:
            row = session.get(ImportSessionRow, session_id)
            return None if row is None else _to_session(row)

    def find_by_filename(self, filename: str) -> list[ImportSession]:
        with session_scope(self._session_factory) as session:
            rows = session.scalars(
                select(ImportSessionRow)
                .where(ImportSessionRow.filename == filename)
                .order_by(ImportSessionRow.started_at.desc(), ImportSessionRow.id.desc())
            ).all()
            return [_to_session(r) for r in rows]

    def get_recent(self, limit: int = 10) -> list[ImportSession]:
        with session_scope(self._session_factory) as session:
            rows = session.scalars(
                select(ImportSessionRow)
                .order_by(ImportSessionRow.started_at.desc(), ImportSessionRow.id.desc())
                .limit(limit)
            ).all()
            return [_to_session(r) for r in rows]

    def delete_older_than(self, days: int) -> int:
        """Prune finished sessions started more than ``days`` ago.

        Pending sessions are never pruned.
        """

        cutoff = _utcnow() - timedelta(days=days)
        with session_scope(self._session_factory) as session:
            res = session.execute(
                delete(ImportSessionRow).where(
                    ImportSessionRow.started_at < cutoff,
                    ImportSessionRow.status != SessionStatus.PENDING.value,
                )
            )
            deleted = res.rowcount or 0
        logger.info("pruned %d import sessions older than %d days", deleted, days)
        return deleted

    def has_pending(self) -> bool:
        with session_scope(self._session_factory) as session:
            found = session.scalar(
                select(ImportSessionRow.id)
                .where(ImportSessionRow.status == SessionStatus.PENDING.value)
                .limit(1)
            )
            return found is not None

    def last_successful(self) -> datetime | None:
        """Completion time of the latest completed import that stored rows."""

        with session_scope(self._session_factory) as session:
            return session.scalar(
                select(ImportSessionRow.completed_at)
                .where(
                    ImportSessionRow.status == SessionStatus.COMPLETED.value,
                    ImportSessionRow.imported_count > 0,
                )
                .order_by(ImportSessionRow.completed_at.desc())
                .limit(1)
            )

    def stats(self) -> ImportStats:
        def _count_status(status: SessionStatus):
            return func.coalesce(
                func.sum(case((ImportSessionRow.status == status.value, 1), else_=0)), 0
            )

        with session_scope(self._session_factory) as session:
            row = session.execute(
                select(
                    func.count(ImportSessionRow.id),
                    _count_status(SessionStatus.COMPLETED),
                    _count_status(SessionStatus.FAILED),
                    _count_status(SessionStatus.PENDING),
                    func.coalesce(func.sum(ImportSessionRow.imported_count), 0),
                    func.coalesce(func.sum(ImportSessionRow.duplicate_count), 0),
                    func.coalesce(func.sum(ImportSessionRow.error_count), 0),
                )
            ).one()

        total, completed, failed, pending, imported, duplicates, errors = (int(v) for v in row)
        finished = completed + failed
        success_rate = round(completed / finished * 100, 2) if finished else 0.0
        return ImportStats(
            total_sessions=total,
            completed_sessions=completed,
            failed_sessions=failed,
            pending_sessions=pending,
            total_imported=imported,
            total_duplicates=duplicates,
            total_errors=errors,
            success_rate=success_rate,
        )


__all__ = [
    "DEFAULT_MAX_TRANSACTIONS",
    "validate_candidate",
    "SqlTransactionStore",
    "SqlImportSessionStore",
]
