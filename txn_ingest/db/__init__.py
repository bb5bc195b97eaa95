"""Database layer for ``txn_ingest`` (SQLAlchemy/Alembic).

Public exports
--------------
- ``Base`` and ``metadata`` for Alembic autogenerate/targeting
- ORM models from ``txn_ingest.db.models`` (re-exported for convenience)
"""

from __future__ import annotations

from .models import Base, ImportSessionRow, TransactionRow

# Re-export SQLAlchemy metadata for Alembic's env.py
metadata = Base.metadata

__all__ = [
    "Base",
    "metadata",
    "TransactionRow",
    "ImportSessionRow",
]
