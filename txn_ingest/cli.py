"""CLI for the ``txn_ingest`` package.

Typer console interface over :class:`~txn_ingest.importer.ImportOrchestrator`.
The root callback loads a local ``.env`` with ``python-dotenv`` (existing
environment wins) and configures package logging before any command runs.
Business logic lives in the library modules; commands only wire stores from
``DATABASE_URL`` and render results with ``rich``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from typer.models import ArgumentInfo

from .db.client import create_schema, get_engine, get_sessionmaker
from .errors import IngestError
from .importer import CANCEL_REASON, ImportOrchestrator
from .logging_setup import configure_logging
from .models import DetectionOptions, ImportOptions, ImportResult, ImportSession
from .normalizers import format_amount
from .parser import preview_csv
from .persistence import SqlImportSessionStore, SqlTransactionStore
from .settings import Settings

console = Console()

# Module-level argument object to satisfy ruff B008 (no calls in parameter
# defaults).
CSV_PATH_ARGUMENT: ArgumentInfo = typer.Argument(
    ...,
    help="Path to the CSV export to read",
    dir_okay=False,
    file_okay=True,
    exists=False,  # the handler reports missing files itself
)

DatabaseUrlOption = Annotated[
    str | None,
    typer.Option("--database-url", help="Override DATABASE_URL (falls back to env var)."),
]


# ---- Small module-level helpers used by CLI commands -------------------------


def _fail(message: str) -> typer.Exit:
    console.print(f"[red]Error:[/red] {escape(message)}")
    return typer.Exit(1)


def _read_csv(csv_path: Path) -> bytes:
    if not csv_path.is_file():
        raise _fail(f"File not found: {csv_path}")
    return csv_path.read_bytes()


def _orchestrator(
    database_url: str | None, settings: Settings | None = None
) -> ImportOrchestrator:
    settings = settings or Settings.from_env()
    try:
        factory = get_sessionmaker(database_url=database_url or settings.database_url)
    except RuntimeError as e:
        raise _fail(str(e)) from e
    return ImportOrchestrator(
        SqlTransactionStore(factory, max_transactions=settings.max_transactions),
        SqlImportSessionStore(factory),
        max_file_size=settings.max_file_bytes,
    )


def _sessions_table(sessions: list[ImportSession], *, title: str) -> Table:
    table = Table(title=title)
    for col in ("ID", "File", "Status", "Rows", "Imported", "Duplicates", "Errors", "Started"):
        table.add_column(col)
    for s in sessions:
        table.add_row(
            str(s.id),
            s.filename,
            s.status.value,
            str(s.total_rows),
            str(s.imported_count),
            str(s.duplicate_count),
            str(s.error_count),
            s.started_at.strftime("%Y-%m-%d %H:%M:%S"),
        )
    return table


def _print_result(result: ImportResult) -> None:
    console.print(_sessions_table([result.session], title="Import session"))

    if result.duplicates:
        dups = Table(title="Duplicates skipped")
        for col in ("Row", "Date", "Amount", "Description", "Existing ID"):
            dups.add_column(col)
        for d in result.duplicates:
            dups.add_row(
                str(d.row),
                d.date.isoformat(),
                format_amount(d.amount),
                d.description,
                "-" if d.existing_id is None else str(d.existing_id),
            )
        console.print(dups)

    if result.errors:
        errs = Table(title="Row errors")
        errs.add_column("Row")
        errs.add_column("Message")
        for e in result.errors:
            errs.add_row(str(e.row), e.message)
        console.print(errs)


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Import bank CSV exports into the transactions database with duplicate "
        "detection and audited import sessions. Loads DATABASE_URL from a local .env."
    ),
)


@app.command("import")
def import_cmd(
    csv_path: Annotated[Path, CSV_PATH_ARGUMENT],
    *,
    skip_duplicates: bool = typer.Option(
        True, help="Skip rows already stored (exact match, plus fuzzy when enabled)."
    ),
    validate_only: bool = typer.Option(
        False, "--validate-only", help="Parse and validate only; store nothing."
    ),
    fuzzy: bool = typer.Option(False, "--fuzzy", help="Enable fuzzy duplicate matching."),
    fuzzy_threshold: float = typer.Option(0.8, help="Minimum fuzzy confidence (0-1)."),
    date_tolerance_days: int = typer.Option(0, help="Fuzzy date window in days."),
    amount_tolerance_percent: float = typer.Option(0.0, help="Fuzzy amount tolerance in %."),
    database_url: DatabaseUrlOption = None,
) -> None:
    """Import a CSV file and print the session summary."""

    data = _read_csv(csv_path)
    settings = Settings.from_env()
    orchestrator = _orchestrator(database_url, settings)
    try:
        options = ImportOptions(
            skip_duplicates=skip_duplicates,
            validate_only=validate_only,
            detection=DetectionOptions(
                fuzzy_matching=fuzzy,
                fuzzy_threshold=fuzzy_threshold,
                date_tolerance_days=date_tolerance_days,
                amount_tolerance_percent=amount_tolerance_percent,
                candidate_limit=settings.fuzzy_candidate_limit,
            ),
        )
    except ValueError as e:
        raise _fail(f"invalid options: {e}") from e

    try:
        result = orchestrator.import_csv(data, csv_path.name, options)
    except IngestError as e:
        raise _fail(str(e)) from e
    _print_result(result)


@app.command("preview")
def preview_cmd(
    csv_path: Annotated[Path, CSV_PATH_ARGUMENT],
    *,
    rows: int = typer.Option(5, min=1, help="Number of sample rows to show."),
) -> None:
    """Show headers, inferred columns and sample rows without importing."""

    settings = Settings.from_env()
    preview = preview_csv(
        _read_csv(csv_path), csv_path.name, max_rows=rows, max_file_size=settings.max_file_bytes
    )

    console.print(f"[cyan]Headers:[/cyan] {', '.join(preview.headers) or '-'}")
    if preview.mapping is not None:
        mapping = ", ".join(
            f"{role}={preview.headers[idx]}" for role, idx in preview.mapping.as_dict().items()
        )
        console.print(f"[cyan]Columns:[/cyan] {mapping}")
    console.print(f"[cyan]Estimated rows:[/cyan] {preview.estimated_row_count}")

    if preview.sample_rows:
        table = Table(title="Sample rows")
        width = max(len(preview.headers), *(len(r) for r in preview.sample_rows))
        for i in range(width):
            table.add_column(preview.headers[i] if i < len(preview.headers) else f"#{i + 1}")
        for r in preview.sample_rows:
            table.add_row(*r, *([""] * (width - len(r))))
        console.print(table)

    if preview.is_valid:
        console.print("[green]File looks importable.[/green]")
        return
    for err in preview.errors:
        console.print(f"[red]Error:[/red] {escape(err)}")
    raise typer.Exit(1)


@app.command("sessions")
def sessions_cmd(
    *,
    limit: int = typer.Option(10, min=1, help="Number of recent sessions to list."),
    database_url: DatabaseUrlOption = None,
) -> None:
    """List recent import sessions and aggregate statistics."""

    orchestrator = _orchestrator(database_url)
    console.print(_sessions_table(orchestrator.recent_sessions(limit), title="Recent imports"))
    stats = orchestrator.import_stats()
    console.print(
        f"{stats.total_sessions} sessions "
        f"({stats.completed_sessions} completed, {stats.failed_sessions} failed, "
        f"{stats.pending_sessions} pending); success rate {stats.success_rate:.2f}%"
    )
    last = orchestrator.last_import_timestamp()
    if last is not None:
        console.print(f"Last successful import: {last:%Y-%m-%d %H:%M:%S}")


@app.command("cancel")
def cancel_cmd(
    session_id: Annotated[int, typer.Argument(help="Import session ID to cancel")],
    *,
    reason: str = typer.Option(CANCEL_REASON, help="Failure reason recorded on the session."),
    database_url: DatabaseUrlOption = None,
) -> None:
    """Cancel a pending import session."""

    orchestrator = _orchestrator(database_url)
    try:
        session = orchestrator.cancel(session_id, reason)
    except IngestError as e:
        raise _fail(str(e)) from e
    console.print(f"[yellow]Cancelled import session {session.id}[/yellow]: {reason}")


@app.command("cleanup")
def cleanup_cmd(
    *,
    days: int = typer.Option(30, min=0, help="Delete finished sessions older than this."),
    database_url: DatabaseUrlOption = None,
) -> None:
    """Prune old import session records."""

    deleted = _orchestrator(database_url).cleanup_old_sessions(days)
    console.print(f"Deleted {deleted} import session(s) older than {days} days")


@app.command("scan-duplicates")
def scan_duplicates_cmd(
    *,
    limit: int = typer.Option(100, min=1, help="Maximum number of pairs to report."),
    database_url: DatabaseUrlOption = None,
) -> None:
    """Report likely duplicate pairs among recently stored transactions."""

    pairs = _orchestrator(database_url).detector.scan_stored_duplicates(limit)
    if not pairs:
        console.print("[green]No likely duplicates found.[/green]")
        return
    table = Table(title="Likely duplicates")
    for col in ("ID", "ID", "Date", "Amount", "Description", "Confidence", "Fields"):
        table.add_column(col)
    for p in pairs:
        table.add_row(
            str(p.first.id),
            str(p.second.id),
            f"{p.first.date.isoformat()} / {p.second.date.isoformat()}",
            f"{format_amount(p.first.amount)} / {format_amount(p.second.amount)}",
            f"{p.first.description} / {p.second.description}",
            f"{p.confidence:.2f}",
            ", ".join(sorted(p.matched_fields)),
        )
    console.print(table)


@app.command("init-db")
def init_db_cmd(*, database_url: DatabaseUrlOption = None) -> None:
    """Create the transactions and import_sessions tables if missing."""

    settings = Settings.from_env()
    try:
        engine = get_engine(database_url=database_url or settings.database_url)
    except RuntimeError as e:
        raise _fail(str(e)) from e
    create_schema(engine)
    console.print("[green]Database schema is ready.[/green]")


@app.callback()
def _root() -> None:
    """Load ``.env`` from the working directory and configure logging."""

    # override=False keeps already-set environment variables
    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    # Default level first so warnings about malformed settings are shown.
    configure_logging()
    configure_logging(Settings.from_env().log_level)


if __name__ == "__main__":  # pragma: no cover
    app()
