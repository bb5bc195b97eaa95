"""DB helpers for tests: bootstrap a temporary SQLite database."""

from __future__ import annotations

from pathlib import Path

from sqlalchemy import create_engine, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from txn_ingest.db import Base
from txn_ingest.db.client import create_schema, make_sessionmaker


def sqlite_url(db_file: Path) -> str:
    return f"sqlite+pysqlite:///{db_file}"


def bootstrap_sqlite_db(db_file: Path) -> sessionmaker[Session]:
    """Create a SQLite database file with the full schema; return a sessionmaker.

    A file-backed database lets every SQLAlchemy connection (and thread) see
    the same state; in-memory SQLite databases are per-connection.
    """

    db_file.parent.mkdir(parents=True, exist_ok=True)
    engine = create_engine(sqlite_url(db_file))
    create_schema(engine)
    assert_schema_in_sync(engine)
    return make_sessionmaker(engine)


def assert_schema_in_sync(engine: Engine) -> None:
    """ORM column sets match the tables that actually exist."""

    insp = inspect(engine)
    for table in Base.metadata.sorted_tables:
        expected = {c.name for c in table.columns}
        got = {c["name"] for c in insp.get_columns(table.name)}
        missing = expected - got
        extra = got - expected
        assert not missing and not extra, (
            f"{table.name} schema drift: missing={missing or '∅'}, extra={extra or '∅'}"
        )
