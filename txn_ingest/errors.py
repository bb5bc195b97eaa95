"""Exception taxonomy for the ingestion pipeline.

Fatal, file-level problems (``FileValidationError`` and subclasses,
``CSVParseError``, ``NoTransactionDataError``) abort an import before any
import session exists. ``RowValidationError`` never escapes the row parser; it
is converted into a :class:`~txn_ingest.models.RowError` and collected.
``DuplicateConflictError`` is a classification outcome, not a failure.
"""

from __future__ import annotations

import csv
from collections.abc import Sequence


class IngestError(Exception):
    """Base class for every error raised by ``txn_ingest``."""


# ---- File-level (fatal, before a session exists) -----------------------------


class FileValidationError(IngestError, ValueError):
    """The uploaded file was rejected before parsing started."""


class EmptyFileError(FileValidationError):
    def __init__(self) -> None:
        super().__init__("File is empty")


class InvalidExtensionError(FileValidationError):
    def __init__(self, filename: str) -> None:
        self.filename = filename
        super().__init__(f"File must have a .csv extension: {filename!r}")


class FileTooLargeError(FileValidationError):
    def __init__(self, size: int, limit: int) -> None:
        self.size = size
        self.limit = limit
        super().__init__(
            f"File size {size} bytes exceeds maximum allowed size of {limit} bytes"
        )


class TooFewColumnsError(FileValidationError):
    def __init__(self, found: int, minimum: int) -> None:
        self.found = found
        self.minimum = minimum
        super().__init__(
            f"CSV must contain at least {minimum} columns (Date, Amount, Description); "
            f"found {found}"
        )


class UnmappableColumnsError(FileValidationError):
    """Required column roles could not be located in the header row."""

    def __init__(self, missing: Sequence[str], headers: Sequence[str]) -> None:
        self.missing = tuple(missing)
        self.headers = tuple(headers)
        super().__init__(
            "Unable to detect required columns: "
            + ", ".join(self.missing)
            + ". Expected columns for Date, Amount and Description"
        )


class CSVParseError(IngestError, csv.Error):
    """Malformed CSV structure or undecodable bytes."""


class NoTransactionDataError(IngestError):
    def __init__(self) -> None:
        super().__init__("CSV file contains no valid transaction data")


# ---- Row-level (collected, never fatal) --------------------------------------


class RowValidationError(IngestError, ValueError):
    """A single data row failed validation or normalization."""

    def __init__(self, message: str, *, field: str | None = None) -> None:
        self.field = field
        super().__init__(message)


# ---- Storage outcomes --------------------------------------------------------


class DuplicateConflictError(IngestError):
    """The store already holds a transaction with the same exact key."""

    def __init__(self, message: str, *, existing_id: int | None = None) -> None:
        self.existing_id = existing_id
        super().__init__(message)


class StoreCapacityError(IngestError):
    def __init__(self, current: int, incoming: int, limit: int) -> None:
        self.current = current
        self.incoming = incoming
        self.limit = limit
        super().__init__(
            f"Storing {incoming} more transactions would exceed the maximum of {limit} "
            f"(currently {current})"
        )


# ---- Import session lifecycle ------------------------------------------------


class SessionStateError(IngestError):
    """An import session transition was requested from a non-pending state."""


class SessionNotFoundError(IngestError, LookupError):
    def __init__(self, session_id: int) -> None:
        self.session_id = session_id
        super().__init__(f"Import session with ID {session_id} not found")


class ImportCancelledError(IngestError):
    def __init__(self, session_id: int) -> None:
        self.session_id = session_id
        super().__init__(f"Import session {session_id} was cancelled before persistence")


__all__ = [
    "IngestError",
    "FileValidationError",
    "EmptyFileError",
    "InvalidExtensionError",
    "FileTooLargeError",
    "TooFewColumnsError",
    "UnmappableColumnsError",
    "CSVParseError",
    "NoTransactionDataError",
    "RowValidationError",
    "DuplicateConflictError",
    "StoreCapacityError",
    "SessionStateError",
    "SessionNotFoundError",
    "ImportCancelledError",
]
