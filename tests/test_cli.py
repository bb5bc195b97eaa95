from __future__ import annotations

import logging
from pathlib import Path

import pytest
from typer.testing import CliRunner

from tests.helpers.db import sqlite_url
from txn_ingest.cli import app
from txn_ingest.models import SessionStatus

runner = CliRunner()

CSV_TEXT = (
    "Date,Amount,Description,Category\n"
    "2025-01-01,-50.00,Grocery Store,Food\n"
    "2025-01-02,2500.00,Salary,Income\n"
    ",10.00,Missing date,\n"
)


@pytest.fixture
def db_url(tmp_path: Path, session_factory) -> str:
    # session_factory has already created the schema in this file
    return sqlite_url(tmp_path / "ingest.db")


@pytest.fixture
def csv_file(tmp_path: Path) -> Path:
    path = tmp_path / "bank.csv"
    path.write_text(CSV_TEXT, encoding="utf-8")
    return path


def test_init_db_creates_schema(tmp_path: Path):
    url = sqlite_url(tmp_path / "fresh.db")
    result = runner.invoke(app, ["init-db", "--database-url", url])
    assert result.exit_code == 0, result.output
    assert "Database schema is ready." in result.output
    assert (tmp_path / "fresh.db").exists()


def test_import_then_list_sessions(db_url, csv_file, txn_store, session_store):
    result = runner.invoke(app, ["import", str(csv_file), "--database-url", db_url])

    assert result.exit_code == 0, result.output
    assert "Row errors" in result.output
    assert "Date is required" in result.output
    assert txn_store.count() == 2
    (s,) = session_store.get_recent()
    assert s.status is SessionStatus.COMPLETED
    assert (s.imported_count, s.duplicate_count, s.error_count) == (2, 0, 1)

    again = runner.invoke(app, ["import", str(csv_file), "--database-url", db_url])
    assert again.exit_code == 0, again.output
    assert "Duplicates skipped" in again.output
    assert txn_store.count() == 2

    listing = runner.invoke(app, ["sessions", "--database-url", db_url])
    assert listing.exit_code == 0, listing.output
    assert "2 sessions (2 completed, 0 failed, 0 pending); success rate 100.00%" in listing.output


def test_import_validate_only(db_url, csv_file, txn_store):
    result = runner.invoke(
        app, ["import", str(csv_file), "--validate-only", "--database-url", db_url]
    )
    assert result.exit_code == 0, result.output
    assert txn_store.count() == 0


def test_import_reads_database_url_from_env(db_url, csv_file, txn_store, monkeypatch):
    monkeypatch.setenv("DATABASE_URL", db_url)
    result = runner.invoke(app, ["import", str(csv_file)])
    assert result.exit_code == 0, result.output
    assert txn_store.count() == 2


def test_import_missing_file(db_url, tmp_path: Path):
    result = runner.invoke(
        app, ["import", str(tmp_path / "nope.csv"), "--database-url", db_url]
    )
    assert result.exit_code == 1
    assert "File not found" in result.output


def test_import_without_database_url(csv_file, monkeypatch, tmp_path: Path):
    monkeypatch.chdir(tmp_path)
    result = runner.invoke(app, ["import", str(csv_file)])
    assert result.exit_code == 1
    assert "DATABASE_URL is not set" in result.output


def test_import_rejects_bad_file(db_url, tmp_path: Path, session_store):
    bad = tmp_path / "bank.csv"
    bad.write_text("Foo,Bar,Baz\n1,2,3\n", encoding="utf-8")

    result = runner.invoke(app, ["import", str(bad), "--database-url", db_url])

    assert result.exit_code == 1
    assert "Unable to detect required columns" in result.output
    assert session_store.get_recent() == []


def test_import_rejects_invalid_fuzzy_threshold(db_url, csv_file):
    result = runner.invoke(
        app,
        ["import", str(csv_file), "--fuzzy", "--fuzzy-threshold", "1.5", "--database-url", db_url],
    )
    assert result.exit_code == 1
    assert "invalid options" in result.output


def test_preview_valid_file(csv_file):
    result = runner.invoke(app, ["preview", str(csv_file)])
    assert result.exit_code == 0, result.output
    assert "Estimated rows: 3" in result.output
    assert "File looks importable." in result.output


def test_preview_bad_extension(tmp_path: Path):
    path = tmp_path / "bank.txt"
    path.write_text(CSV_TEXT, encoding="utf-8")
    result = runner.invoke(app, ["preview", str(path)])
    assert result.exit_code == 1
    assert ".csv extension" in result.output


def test_cancel_pending_session(db_url, session_store):
    pending = session_store.create("slow.csv", 5)

    result = runner.invoke(app, ["cancel", str(pending.id), "--database-url", db_url])

    assert result.exit_code == 0, result.output
    assert f"Cancelled import session {pending.id}" in result.output
    s = session_store.find_by_id(pending.id)
    assert s.status is SessionStatus.FAILED
    assert s.failure_reason == "Import cancelled by user"

    again = runner.invoke(app, ["cancel", str(pending.id), "--database-url", db_url])
    assert again.exit_code == 1


def test_cancel_unknown_session(db_url):
    result = runner.invoke(app, ["cancel", "42", "--database-url", db_url])
    assert result.exit_code == 1
    assert "Import session with ID 42 not found" in result.output


def test_cleanup(db_url, csv_file):
    runner.invoke(app, ["import", str(csv_file), "--database-url", db_url])
    result = runner.invoke(app, ["cleanup", "--days", "30", "--database-url", db_url])
    assert result.exit_code == 0, result.output
    assert "Deleted 0 import session(s) older than 30 days" in result.output


def test_scan_duplicates(db_url, tmp_path: Path):
    path = tmp_path / "subs.csv"
    path.write_text(
        "Date,Amount,Description\n2025-01-05,-15.99,Netflix\n2025-01-05,-15.99,NETFLIX\n",
        encoding="utf-8",
    )
    runner.invoke(app, ["import", str(path), "--database-url", db_url])

    result = runner.invoke(app, ["scan-duplicates", "--database-url", db_url])

    assert result.exit_code == 0, result.output
    assert "Likely duplicates" in result.output


def test_scan_duplicates_on_clean_data(db_url):
    result = runner.invoke(app, ["scan-duplicates", "--database-url", db_url])
    assert result.exit_code == 0, result.output
    assert "No likely duplicates found." in result.output


def test_log_level_comes_from_settings(csv_file, monkeypatch):
    monkeypatch.setenv("TXN_INGEST_LOG_LEVEL", "warning")

    result = runner.invoke(app, ["preview", str(csv_file)])

    assert result.exit_code == 0, result.output
    assert logging.getLogger("txn_ingest").level == logging.WARNING


def test_unknown_log_level_falls_back_to_info(csv_file, monkeypatch):
    monkeypatch.setenv("TXN_INGEST_LOG_LEVEL", "chatty")

    result = runner.invoke(app, ["preview", str(csv_file)])

    assert result.exit_code == 0, result.output
    assert logging.getLogger("txn_ingest").level == logging.INFO
