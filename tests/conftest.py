"""Pytest configuration for test isolation.

Settings read ``DATABASE_URL`` and ``TXN_INGEST_*`` from the
environment, and the CLI caches a process-wide engine. Each test starts with
those variables cleared and the shared engine dropped, so no test can see a
database or override left behind by another.
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from pathlib import Path

import pytest
from sqlalchemy.orm import Session, sessionmaker

from tests.helpers.db import bootstrap_sqlite_db
from tests.helpers.memory_store import InMemoryImportSessionStore, InMemoryTransactionStore
from txn_ingest.logging_setup import reset_logging
from txn_ingest.db.client import dispose_engine
from txn_ingest.importer import ImportOrchestrator
from txn_ingest.persistence import SqlImportSessionStore, SqlTransactionStore


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    for name in list(os.environ):
        if name == "DATABASE_URL" or name.startswith("TXN_INGEST_"):
            monkeypatch.delenv(name, raising=False)
    yield
    dispose_engine()


@pytest.fixture(autouse=True)
def _reset_logging() -> Iterator[None]:
    """Undo ``configure_logging`` so handlers never outlive a test's streams."""

    yield
    reset_logging()


@pytest.fixture
def session_factory(tmp_path: Path) -> sessionmaker[Session]:
    return bootstrap_sqlite_db(tmp_path / "ingest.db")


@pytest.fixture
def txn_store(session_factory: sessionmaker[Session]) -> SqlTransactionStore:
    return SqlTransactionStore(session_factory)


@pytest.fixture
def session_store(session_factory: sessionmaker[Session]) -> SqlImportSessionStore:
    return SqlImportSessionStore(session_factory)


@pytest.fixture
def orchestrator(
    txn_store: SqlTransactionStore, session_store: SqlImportSessionStore
) -> ImportOrchestrator:
    return ImportOrchestrator(txn_store, session_store)


@pytest.fixture
def memory_stores() -> tuple[InMemoryTransactionStore, InMemoryImportSessionStore]:
    return InMemoryTransactionStore(), InMemoryImportSessionStore()
