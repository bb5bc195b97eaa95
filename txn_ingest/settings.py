"""Environment-driven process configuration.

Entry points load a local ``.env`` first (``python-dotenv``, non-overriding)
and then call :meth:`Settings.from_env`. Malformed numeric overrides fall back
to their defaults instead of failing startup, and so does an unknown
``TXN_INGEST_LOG_LEVEL``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from .logging_setup import get_logger, resolve_level
from .parser import DEFAULT_MAX_FILE_SIZE
from .persistence import DEFAULT_MAX_TRANSACTIONS

logger = get_logger("txn_ingest.settings")

DEFAULT_FUZZY_CANDIDATE_LIMIT = 1000
DEFAULT_LOG_LEVEL = "INFO"
LOG_LEVEL_ENV = "TXN_INGEST_LOG_LEVEL"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("ignoring %s=%r: not an integer", name, raw)
        return default
    if value < 1:
        logger.warning("ignoring %s=%r: must be positive", name, raw)
        return default
    return value


def _env_log_level() -> str:
    raw = os.getenv(LOG_LEVEL_ENV)
    if raw is None or not raw.strip():
        return DEFAULT_LOG_LEVEL
    try:
        resolve_level(raw)
    except ValueError:
        logger.warning("ignoring %s=%r: unknown log level", LOG_LEVEL_ENV, raw)
        return DEFAULT_LOG_LEVEL
    return raw.strip().upper()


@dataclass(frozen=True, slots=True)
class Settings:
    database_url: str | None = None
    max_file_bytes: int = DEFAULT_MAX_FILE_SIZE
    max_transactions: int = DEFAULT_MAX_TRANSACTIONS
    fuzzy_candidate_limit: int = DEFAULT_FUZZY_CANDIDATE_LIMIT
    log_level: str = DEFAULT_LOG_LEVEL

    @classmethod
    def from_env(cls) -> Settings:
        return cls(
            database_url=os.getenv("DATABASE_URL") or None,
            max_file_bytes=_env_int("TXN_INGEST_MAX_FILE_BYTES", DEFAULT_MAX_FILE_SIZE),
            max_transactions=_env_int("TXN_INGEST_MAX_TRANSACTIONS", DEFAULT_MAX_TRANSACTIONS),
            fuzzy_candidate_limit=_env_int(
                "TXN_INGEST_FUZZY_CANDIDATE_LIMIT", DEFAULT_FUZZY_CANDIDATE_LIMIT
            ),
            log_level=_env_log_level(),
        )


__all__ = ["DEFAULT_FUZZY_CANDIDATE_LIMIT", "DEFAULT_LOG_LEVEL", "LOG_LEVEL_ENV", "Settings"]
