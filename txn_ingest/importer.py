"""Import orchestration: parse, classify, persist, and audit one CSV upload.

Lifecycle of an import session::

    (parse ok) -> pending -> completed
                          \\-> failed      (any exception, or cancel())

Fatal file problems raise before a session exists. Once a session exists the
call either returns a result for a ``completed`` session or re-raises after the
session has been marked ``failed``; it is never left ``pending``.
"""

from __future__ import annotations

from datetime import datetime

from .duplicates import DuplicateDetector
from .errors import (
    DuplicateConflictError,
    ImportCancelledError,
    IngestError,
    NoTransactionDataError,
    SessionNotFoundError,
    SessionStateError,
)
from .logging_setup import get_logger
from .models import (
    CsvPreview,
    DetectionOptions,
    DuplicateInfo,
    ImportOptions,
    ImportResult,
    ImportSession,
    ImportStats,
    ParseResult,
    RowError,
    Transaction,
)
from .parser import DEFAULT_MAX_FILE_SIZE, parse_csv, preview_csv
from .storage import ImportSessionStore, TransactionStore

logger = get_logger("txn_ingest.importer")

CANCEL_REASON = "Import cancelled by user"

type _Outcome = tuple[list[Transaction], list[DuplicateInfo], list[RowError]]


class ImportOrchestrator:
    """Coordinates the parser, the duplicate detector and the stores.

    Parameters
    ----------
    transactions:
        Transaction store (also used as the detector's lookup by default).
    sessions:
        Import session store.
    detector:
        Optional detector override; defaults to one over ``transactions``.
    max_file_size:
        Upload size cap in bytes.
    """

    def __init__(
        self,
        transactions: TransactionStore,
        sessions: ImportSessionStore,
        *,
        detector: DuplicateDetector | None = None,
        max_file_size: int = DEFAULT_MAX_FILE_SIZE,
    ) -> None:
        self._transactions = transactions
        self._sessions = sessions
        self.detector = detector or DuplicateDetector(transactions)
        self.max_file_size = max_file_size

    # ---- Import --------------------------------------------------------------

    def import_csv(
        self, data: bytes, filename: str, options: ImportOptions | None = None
    ) -> ImportResult:
        opts = options or ImportOptions()
        parsed = parse_csv(data, filename, max_file_size=self.max_file_size)
        if not parsed.candidates and not parsed.errors:
            raise NoTransactionDataError()

        session = self._sessions.create(filename, parsed.total_rows)
        logger.info(
            "import session %d started for %s (%d rows)", session.id, filename, parsed.total_rows
        )

        try:
            if opts.validate_only:
                imported, duplicates, errors = [], [], list(parsed.errors)
            elif opts.skip_duplicates:
                imported, duplicates, errors = self._import_skipping(
                    session.id, parsed, opts.detection
                )
            else:
                imported, duplicates, errors = self._import_each(session.id, parsed)
            final = self._sessions.mark_completed(
                session.id,
                imported=len(imported),
                duplicates=len(duplicates),
                errors=len(errors),
            )
        except Exception as e:
            self._fail(session.id, e)
            raise

        logger.info(
            "import session %d completed: %d imported, %d duplicates, %d errors",
            final.id,
            final.imported_count,
            final.duplicate_count,
            final.error_count,
        )
        return ImportResult(session=final, imported=imported, duplicates=duplicates, errors=errors)

    def _ensure_pending(self, session_id: int) -> None:
        current = self._sessions.find_by_id(session_id)
        if current is None:
            raise SessionNotFoundError(session_id)
        if current.is_terminal:
            raise ImportCancelledError(session_id)

    def _import_skipping(
        self, session_id: int, parsed: ParseResult, detection: DetectionOptions
    ) -> _Outcome:
        candidates = parsed.candidates
        rows = parsed.source_rows
        matches = self.detector.detect_bulk(candidates, detection)

        # position -> existing id for rows classified as duplicates
        dup_of: dict[int, int | None] = {}
        to_store: list[int] = []
        for pos in range(len(candidates)):
            found = matches.get(pos, [])
            stored = [m for m in found if not m.within_batch]
            if stored:
                dup_of[pos] = stored[0].existing_id
                continue
            internal = next((m for m in found if m.within_batch), None)
            if internal is not None and internal.batch_position in dup_of:
                dup_of[pos] = dup_of[internal.batch_position]
                continue
            # Repeats of a row that is itself being stored go to the store too;
            # its conflict handling resolves them to the first row's id.
            to_store.append(pos)

        self._ensure_pending(session_id)

        imported: list[Transaction] = []
        errors = list(parsed.errors)
        if to_store:
            bulk = self._transactions.create_many([candidates[p] for p in to_store])
            imported = [txn for _, txn in sorted(bulk.created, key=lambda item: item[0])]
            for sub_pos, existing_id in bulk.duplicates:
                dup_of[to_store[sub_pos]] = existing_id
            for sub_pos, message in bulk.errors:
                row = rows[to_store[sub_pos]]
                logger.warning("row %d rejected by store: %s", row, message)
                errors.append(RowError(row=row, message=message))

        duplicates = [
            DuplicateInfo.for_candidate(rows[p], candidates[p], dup_of[p]) for p in sorted(dup_of)
        ]
        errors.sort(key=lambda e: e.row)
        return imported, duplicates, errors

    def _import_each(self, session_id: int, parsed: ParseResult) -> _Outcome:
        self._ensure_pending(session_id)

        imported: list[Transaction] = []
        duplicates: list[DuplicateInfo] = []
        errors = list(parsed.errors)
        for candidate, row in zip(parsed.candidates, parsed.source_rows, strict=True):
            try:
                imported.append(self._transactions.create(candidate))
            except DuplicateConflictError as e:
                existing_id = self._transactions.exists(*candidate.key) or e.existing_id
                if existing_id is None:
                    errors.append(RowError(row=row, message=str(e)))
                else:
                    duplicates.append(DuplicateInfo.for_candidate(row, candidate, existing_id))
            except (IngestError, ValueError) as e:
                logger.warning("row %d rejected by store: %s", row, e)
                errors.append(RowError(row=row, message=str(e)))
        errors.sort(key=lambda e: e.row)
        return imported, duplicates, errors

    def _fail(self, session_id: int, exc: BaseException) -> None:
        reason = str(exc) or type(exc).__name__
        try:
            current = self._sessions.find_by_id(session_id)
            if current is not None and current.is_terminal:
                logger.info(
                    "import session %d already %s; not marking failed", session_id, current.status
                )
                return
            self._sessions.mark_failed(session_id, reason)
        except Exception:
            logger.exception("could not mark import session %d as failed", session_id)
            return
        logger.error("import session %d failed: %s", session_id, reason)

    # ---- Preview -------------------------------------------------------------

    def preview_csv(self, data: bytes, filename: str) -> CsvPreview:
        return preview_csv(data, filename, max_file_size=self.max_file_size)

    # ---- Session management --------------------------------------------------

    def cancel(self, session_id: int, reason: str = CANCEL_REASON) -> ImportSession:
        """Move a pending session to ``failed`` with ``reason``."""

        current = self._sessions.find_by_id(session_id)
        if current is None:
            raise SessionNotFoundError(session_id)
        if current.is_terminal:
            raise SessionStateError(
                f"Import session {session_id} is already {current.status} and cannot be cancelled"
            )
        session = self._sessions.mark_failed(session_id, reason)
        logger.info("import session %d cancelled: %s", session_id, reason)
        return session

    def get_session(self, session_id: int) -> ImportSession:
        session = self._sessions.find_by_id(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def recent_sessions(self, limit: int = 10) -> list[ImportSession]:
        return self._sessions.get_recent(limit)

    def import_stats(self) -> ImportStats:
        return self._sessions.stats()

    def last_import_timestamp(self) -> datetime | None:
        return self._sessions.last_successful()

    def has_pending_imports(self) -> bool:
        return self._sessions.has_pending()

    def cleanup_old_sessions(self, older_than_days: int = 30) -> int:
        if older_than_days < 0:
            raise ValueError("older_than_days must be non-negative")
        return self._sessions.delete_older_than(older_than_days)


__all__ = ["CANCEL_REASON", "ImportOrchestrator"]
