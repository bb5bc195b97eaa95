"""Data models for ``txn_ingest``.

Records that flow through the pipeline are frozen, slotted dataclasses so they
can be shared between threads and compared by value. Caller-supplied options
are pydantic models so malformed settings fail loudly at the boundary instead
of deep inside a scorer.

Amounts are always :class:`~decimal.Decimal` quantized to cents and dates are
:class:`datetime.date`; string rendering (``YYYY-MM-DD``, ``-50.00``) happens
only at the edges (CLI output, ``DuplicateInfo`` serialization).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, field_validator

# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------

MAX_DESCRIPTION_LENGTH = 500
MAX_CATEGORY_LENGTH = 100


@dataclass(frozen=True, slots=True)
class TransactionCandidate:
    """A parsed, normalized, not-yet-persisted transaction."""

    date: date
    amount: Decimal
    description: str
    category: str | None = None

    @property
    def key(self) -> tuple[date, Decimal, str]:
        """Exact-duplicate key: ``(date, amount, description)`` verbatim."""

        return (self.date, self.amount, self.description)


@dataclass(frozen=True, slots=True)
class Transaction:
    """A stored transaction as returned by a :class:`TransactionStore`."""

    id: int
    date: date
    amount: Decimal
    description: str
    category: str | None
    created_at: datetime | None = None

    def as_candidate(self) -> TransactionCandidate:
        return TransactionCandidate(
            date=self.date,
            amount=self.amount,
            description=self.description,
            category=self.category,
        )


# ---------------------------------------------------------------------------
# Import sessions
# ---------------------------------------------------------------------------


class SessionStatus(StrEnum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class ImportSession:
    """Audit record of one import attempt."""

    id: int
    filename: str
    total_rows: int
    imported_count: int
    duplicate_count: int
    error_count: int
    status: SessionStatus
    started_at: datetime
    completed_at: datetime | None = None
    failure_reason: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status is not SessionStatus.PENDING


@dataclass(frozen=True, slots=True)
class ImportStats:
    total_sessions: int
    completed_sessions: int
    failed_sessions: int
    pending_sessions: int
    total_imported: int
    total_duplicates: int
    total_errors: int
    success_rate: float


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RowError:
    """A per-row problem, referenced back to the source CSV.

    ``row`` is 1-based with the header counted as row 1, so the Nth data row
    is reported as ``N + 1``.
    """

    row: int
    message: str
    raw: tuple[str, ...] | None = None
    field: str | None = None


@dataclass(frozen=True, slots=True)
class ColumnMapping:
    """Zero-based column index for each role found in the header row."""

    date: int
    amount: int
    description: int
    category: int | None = None
    type: int | None = None

    def as_dict(self) -> dict[str, int]:
        roles = {
            "date": self.date,
            "amount": self.amount,
            "description": self.description,
            "category": self.category,
            "type": self.type,
        }
        return {k: v for k, v in roles.items() if v is not None}


@dataclass(slots=True)
class ParseResult:
    """Output of :func:`txn_ingest.parser.parse_csv`.

    ``source_rows`` runs parallel to ``candidates`` and holds the CSV row
    number each candidate was read from.
    """

    candidates: list[TransactionCandidate]
    source_rows: list[int]
    errors: list[RowError]
    total_rows: int
    headers: tuple[str, ...]
    mapping: ColumnMapping

    @property
    def valid_rows(self) -> int:
        return len(self.candidates)


@dataclass(frozen=True, slots=True)
class CsvPreview:
    is_valid: bool
    errors: list[str]
    headers: list[str]
    sample_rows: list[list[str]]
    estimated_row_count: int
    mapping: ColumnMapping | None = None


# ---------------------------------------------------------------------------
# Duplicate detection
# ---------------------------------------------------------------------------


class MatchType(StrEnum):
    EXACT = "exact"
    FUZZY = "fuzzy"


@dataclass(frozen=True, slots=True)
class DuplicateMatch:
    """One reason to believe ``candidate`` is already known.

    ``existing_id`` is ``None`` when the match is another row of the same
    batch; ``batch_position`` then holds that row's index in the batch.
    """

    candidate: TransactionCandidate
    existing_id: int | None
    confidence: float
    match_type: MatchType
    matched_fields: frozenset[str]
    batch_position: int | None = None

    @property
    def within_batch(self) -> bool:
        return self.existing_id is None


@dataclass(frozen=True, slots=True)
class StoredDuplicatePair:
    first: Transaction
    second: Transaction
    confidence: float
    matched_fields: frozenset[str]


class DetectionOptions(BaseModel):
    """Tuning knobs for :class:`txn_ingest.duplicates.DuplicateDetector`.

    Fuzzy matching is opt-in: exact matching alone never flags two rows whose
    descriptions differ only in case or whitespace.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    exact_match: bool = True
    fuzzy_matching: bool = False
    fuzzy_threshold: float = 0.8
    date_tolerance_days: int = 0
    amount_tolerance_percent: float = 0.0
    description_similarity_threshold: float = 0.85
    candidate_limit: int = 1000
    concurrency: int = 1

    @field_validator("fuzzy_threshold", "description_similarity_threshold")
    @classmethod
    def _in_unit_interval(cls, v: float) -> float:
        fv = float(v)
        if 0.0 <= fv <= 1.0:
            return fv
        raise ValueError("threshold must be within [0,1]")

    @field_validator("date_tolerance_days", "amount_tolerance_percent")
    @classmethod
    def _non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("tolerance must be non-negative")
        return v

    @field_validator("candidate_limit", "concurrency")
    @classmethod
    def _positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be a positive integer")
        return v


# ---------------------------------------------------------------------------
# Import orchestration
# ---------------------------------------------------------------------------


class ImportOptions(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    skip_duplicates: bool = True
    validate_only: bool = False
    detection: DetectionOptions = DetectionOptions()


@dataclass(frozen=True, slots=True)
class DuplicateInfo:
    """A skipped row, reported with its CSV row number."""

    row: int
    date: date
    amount: Decimal
    description: str
    existing_id: int | None

    @classmethod
    def for_candidate(
        cls, row: int, candidate: TransactionCandidate, existing_id: int | None
    ) -> DuplicateInfo:
        return cls(
            row=row,
            date=candidate.date,
            amount=candidate.amount,
            description=candidate.description,
            existing_id=existing_id,
        )


@dataclass(frozen=True, slots=True)
class ImportResult:
    session: ImportSession
    imported: list[Transaction] = field(default_factory=list)
    duplicates: list[DuplicateInfo] = field(default_factory=list)
    errors: list[RowError] = field(default_factory=list)

    @property
    def imported_count(self) -> int:
        return len(self.imported)

    @property
    def duplicate_count(self) -> int:
        return len(self.duplicates)

    @property
    def error_count(self) -> int:
        return len(self.errors)


__all__ = [
    "MAX_DESCRIPTION_LENGTH",
    "MAX_CATEGORY_LENGTH",
    "TransactionCandidate",
    "Transaction",
    "SessionStatus",
    "ImportSession",
    "ImportStats",
    "RowError",
    "ColumnMapping",
    "ParseResult",
    "CsvPreview",
    "MatchType",
    "DuplicateMatch",
    "StoredDuplicatePair",
    "DetectionOptions",
    "ImportOptions",
    "DuplicateInfo",
    "ImportResult",
]
