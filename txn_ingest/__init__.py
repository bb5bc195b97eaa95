"""Public interface for the ``txn_ingest`` package.

Symbol re-exports only; see the individual modules for behavior.
"""

from .duplicates import DuplicateDetector
from .errors import (
    CSVParseError,
    DuplicateConflictError,
    FileValidationError,
    ImportCancelledError,
    IngestError,
    NoTransactionDataError,
    SessionNotFoundError,
    SessionStateError,
    StoreCapacityError,
    UnmappableColumnsError,
)
from .importer import ImportOrchestrator
from .models import (
    CsvPreview,
    DetectionOptions,
    DuplicateInfo,
    DuplicateMatch,
    ImportOptions,
    ImportResult,
    ImportSession,
    RowError,
    SessionStatus,
    Transaction,
    TransactionCandidate,
)
from .parser import parse_csv, preview_csv

__all__ = [
    # Components
    "ImportOrchestrator",
    "DuplicateDetector",
    "parse_csv",
    "preview_csv",
    # Models
    "TransactionCandidate",
    "Transaction",
    "ImportSession",
    "SessionStatus",
    "RowError",
    "DuplicateMatch",
    "DuplicateInfo",
    "ImportResult",
    "CsvPreview",
    "DetectionOptions",
    "ImportOptions",
    # Errors
    "IngestError",
    "FileValidationError",
    "UnmappableColumnsError",
    "CSVParseError",
    "NoTransactionDataError",
    "DuplicateConflictError",
    "StoreCapacityError",
    "SessionStateError",
    "SessionNotFoundError",
    "ImportCancelledError",
]
