"""Storage collaborator interfaces.

The orchestrator and the duplicate detector depend only on these protocols;
:mod:`txn_ingest.persistence` provides the SQLAlchemy implementation and the
tests provide in-memory fakes.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Protocol

from .models import ImportSession, ImportStats, Transaction, TransactionCandidate


@dataclass(slots=True)
class BulkCreateResult:
    """Outcome of :meth:`TransactionStore.create_many`.

    Positions index into the candidate list passed to ``create_many``.
    """

    created: list[tuple[int, Transaction]] = field(default_factory=list)
    duplicates: list[tuple[int, int]] = field(default_factory=list)
    errors: list[tuple[int, str]] = field(default_factory=list)


class TransactionLookup(Protocol):
    """Read-only queries the duplicate detector needs."""

    def exists(self, txn_date: date, amount: Decimal, description: str) -> int | None: ...

    def in_date_range(self, start: date, end: date, *, limit: int) -> list[Transaction]: ...

    def recent(self, limit: int) -> list[Transaction]: ...


class TransactionStore(TransactionLookup, Protocol):
    def create(self, candidate: TransactionCandidate) -> Transaction: ...

    def create_many(self, candidates: Sequence[TransactionCandidate]) -> BulkCreateResult: ...


class ImportSessionStore(Protocol):
    def create(self, filename: str, total_rows: int) -> ImportSession: ...

    def mark_completed(
        self, session_id: int, *, imported: int, duplicates: int, errors: int
    ) -> ImportSession: ...

    def mark_failed(self, session_id: int, reason: str) -> ImportSession: ...

    def find_by_id(self, session_id: int) -> ImportSession | None: ...

    def get_recent(self, limit: int = 10) -> list[ImportSession]: ...

    def delete_older_than(self, days: int) -> int: ...

    def has_pending(self) -> bool: ...

    def last_successful(self) -> datetime | None: ...

    def stats(self) -> ImportStats: ...


__all__ = [
    "BulkCreateResult",
    "TransactionLookup",
    "TransactionStore",
    "ImportSessionStore",
]
