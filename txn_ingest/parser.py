"""Row parser: raw CSV bytes -> normalized transaction candidates.

File-level problems (empty buffer, wrong extension, oversized upload, too few
columns, unmappable header, malformed CSV) raise and abort the whole parse.
Row-level problems are collected as :class:`~txn_ingest.models.RowError` and
parsing continues with the next row.

Row numbers are 1-based with the header as row 1. Entirely blank records are
skipped and take no row number.
"""

from __future__ import annotations

import csv
import io
from collections.abc import Iterator, Sequence
from datetime import date
from pathlib import PurePath

from .columns import detect_columns
from .errors import (
    CSVParseError,
    EmptyFileError,
    FileTooLargeError,
    FileValidationError,
    InvalidExtensionError,
    RowValidationError,
    TooFewColumnsError,
)
from .logging_setup import get_logger
from .models import (
    MAX_CATEGORY_LENGTH,
    MAX_DESCRIPTION_LENGTH,
    ColumnMapping,
    CsvPreview,
    ParseResult,
    RowError,
    TransactionCandidate,
)
from .normalizers import Err, normalize_amount, normalize_date

logger = get_logger("txn_ingest.parser")

DEFAULT_MAX_FILE_SIZE = 10 * 1024 * 1024
MIN_COLUMNS = 3
PREVIEW_SAMPLE_ROWS = 5


# ---- File-level validation ---------------------------------------------------


def _file_problems(data: bytes, filename: str, max_file_size: int) -> list[FileValidationError]:
    problems: list[FileValidationError] = []
    if not data:
        problems.append(EmptyFileError())
    if PurePath(filename).suffix.lower() != ".csv":
        problems.append(InvalidExtensionError(filename))
    if len(data) > max_file_size:
        problems.append(FileTooLargeError(len(data), max_file_size))
    return problems


def validate_file(
    data: bytes, filename: str, *, max_file_size: int = DEFAULT_MAX_FILE_SIZE
) -> None:
    """Reject a buffer before parsing: empty, non-``.csv``, or over the size cap.

    Checks run in that order and the first failure is raised.
    """

    problems = _file_problems(data, filename, max_file_size)
    if problems:
        raise problems[0]


def _decode(data: bytes) -> str:
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise CSVParseError(f"File is not valid UTF-8 text: {e}") from e


def _iter_records(text: str, max_field_size: int) -> Iterator[list[str]]:
    """Yield trimmed, non-blank CSV records.

    The csv module caps single fields at 128 KiB by default; the cap is
    raised to the file size limit so an oversized cell becomes a row error
    instead of aborting the whole file.
    """

    if csv.field_size_limit() < max_field_size:
        csv.field_size_limit(max_field_size)
    reader = csv.reader(io.StringIO(text, newline=""), strict=True)
    try:
        for record in reader:
            cells = [c.strip() for c in record]
            if not any(cells):
                continue
            yield cells
    except csv.Error as e:
        raise CSVParseError(f"Malformed CSV near line {reader.line_num}: {e}") from e


def _check_header(headers: Sequence[str]) -> ColumnMapping:
    if len(headers) < MIN_COLUMNS:
        raise TooFewColumnsError(len(headers), MIN_COLUMNS)
    return detect_columns(headers)


# ---- Row parsing -------------------------------------------------------------


def _cell(record: Sequence[str], idx: int | None) -> str:
    if idx is None or idx >= len(record):
        return ""
    return record[idx]


def _parse_row(
    record: Sequence[str], mapping: ColumnMapping, *, today: date | None
) -> TransactionCandidate:
    raw_date = _cell(record, mapping.date)
    raw_amount = _cell(record, mapping.amount)
    description = _cell(record, mapping.description)
    category = _cell(record, mapping.category) or None
    type_hint = _cell(record, mapping.type) or None

    missing = [
        f"{label} is required"
        for label, value in (
            ("Date", raw_date),
            ("Amount", raw_amount),
            ("Description", description),
        )
        if not value
    ]
    if missing:
        raise RowValidationError(", ".join(missing))

    if len(description) > MAX_DESCRIPTION_LENGTH:
        raise RowValidationError(
            f"Description exceeds maximum length of {MAX_DESCRIPTION_LENGTH} characters",
            field="description",
        )
    if category is not None and len(category) > MAX_CATEGORY_LENGTH:
        raise RowValidationError(
            f"Category exceeds maximum length of {MAX_CATEGORY_LENGTH} characters",
            field="category",
        )

    d = normalize_date(raw_date, today=today)
    if isinstance(d, Err):
        raise RowValidationError(d.message, field="date")
    amt = normalize_amount(raw_amount, type_hint=type_hint)
    if isinstance(amt, Err):
        raise RowValidationError(amt.message, field="amount")

    return TransactionCandidate(
        date=d.value, amount=amt.value, description=description, category=category
    )


def parse_csv(
    data: bytes,
    filename: str,
    *,
    max_file_size: int = DEFAULT_MAX_FILE_SIZE,
    today: date | None = None,
) -> ParseResult:
    """Parse a CSV upload into candidates and per-row errors.

    Parameters
    ----------
    data:
        Raw file bytes (UTF-8, optional BOM).
    filename:
        Original file name; only its extension is checked.
    max_file_size:
        Upload size cap in bytes.
    today:
        Upper bound for transaction dates; defaults to the current date.
    """

    try:
        validate_file(data, filename, max_file_size=max_file_size)
    except FileValidationError as e:
        logger.warning("rejected %s: %s", filename, e)
        raise

    records = _iter_records(_decode(data), max_file_size)
    try:
        headers = next(records)
    except StopIteration:
        # Only blank lines
        raise EmptyFileError() from None
    mapping = _check_header(headers)

    result = ParseResult(
        candidates=[],
        source_rows=[],
        errors=[],
        total_rows=0,
        headers=tuple(headers),
        mapping=mapping,
    )
    for data_idx, record in enumerate(records, start=1):
        row = data_idx + 1
        result.total_rows += 1
        try:
            candidate = _parse_row(record, mapping, today=today)
        except RowValidationError as e:
            result.errors.append(
                RowError(row=row, message=str(e), raw=tuple(record), field=e.field)
            )
            continue
        result.candidates.append(candidate)
        result.source_rows.append(row)

    logger.info(
        "parsed %s: %d rows, %d valid, %d errors",
        filename,
        result.total_rows,
        result.valid_rows,
        len(result.errors),
    )
    return result


# ---- Preview -----------------------------------------------------------------


def preview_csv(
    data: bytes,
    filename: str,
    *,
    max_rows: int = PREVIEW_SAMPLE_ROWS,
    max_file_size: int = DEFAULT_MAX_FILE_SIZE,
) -> CsvPreview:
    """Dry-run look at an upload; file-level problems are reported, not raised."""

    errors = [str(p) for p in _file_problems(data, filename, max_file_size)]
    if not data:
        return CsvPreview(False, errors, [], [], 0)

    try:
        all_records = list(_iter_records(_decode(data), max_file_size))
    except CSVParseError as e:
        errors.append(str(e))
        return CsvPreview(False, errors, [], [], 0)

    if not all_records:
        errors.append(str(EmptyFileError()))
        return CsvPreview(False, errors, [], [], 0)

    headers, body = all_records[0], all_records[1:]
    mapping: ColumnMapping | None = None
    try:
        mapping = _check_header(headers)
    except FileValidationError as e:
        errors.append(str(e))

    return CsvPreview(
        is_valid=not errors,
        errors=errors,
        headers=list(headers),
        sample_rows=[list(r) for r in body[:max_rows]],
        estimated_row_count=len(body),
        mapping=mapping,
    )


__all__ = [
    "DEFAULT_MAX_FILE_SIZE",
    "MIN_COLUMNS",
    "validate_file",
    "parse_csv",
    "preview_csv",
]
