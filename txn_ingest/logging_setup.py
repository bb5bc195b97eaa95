"""Logging for the ``txn_ingest`` package.

Library modules log under the ``txn_ingest`` namespace through
:func:`get_logger` and never attach handlers; the package logger carries a
``NullHandler`` so an unconfigured host sees nothing. Entry points call
:func:`configure_logging` with the level from
:class:`~txn_ingest.settings.Settings`. The package owns at most one output
handler: configuring again swaps it out, and :func:`reset_logging` detaches it.
"""

from __future__ import annotations

import logging
import sys
from typing import IO

PACKAGE_LOGGER = "txn_ingest"
LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

logging.getLogger(PACKAGE_LOGGER).addHandler(logging.NullHandler())

_handler: logging.Handler | None = None


def resolve_level(level: int | str) -> int:
    """Turn ``"debug"``, ``"WARNING"``, ``"10"`` or ``10`` into a numeric level.

    Raises ``ValueError`` for names the ``logging`` module does not define.
    """

    if isinstance(level, int):
        return level
    name = level.strip().upper()
    if name.isdigit():
        return int(name)
    try:
        return logging.getLevelNamesMapping()[name]
    except KeyError:
        raise ValueError(f"Unknown log level {level!r}") from None


def configure_logging(level: int | str = "INFO", *, stream: IO[str] | None = None) -> None:
    """Send package records at ``level`` and above to ``stream`` (stderr by default)."""

    global _handler
    pkg_logger = logging.getLogger(PACKAGE_LOGGER)
    resolved = resolve_level(level)
    if _handler is not None:
        pkg_logger.removeHandler(_handler)

    # Resolve stderr at call time; test runners swap it per invocation.
    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    pkg_logger.addHandler(handler)
    pkg_logger.setLevel(resolved)
    pkg_logger.propagate = False
    _handler = handler


def reset_logging() -> None:
    """Detach the handler installed by :func:`configure_logging`."""

    global _handler
    pkg_logger = logging.getLogger(PACKAGE_LOGGER)
    if _handler is not None:
        pkg_logger.removeHandler(_handler)
        _handler = None
    pkg_logger.setLevel(logging.NOTSET)
    pkg_logger.propagate = True


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


__all__ = ["LOG_FORMAT", "configure_logging", "get_logger", "reset_logging", "resolve_level"]
