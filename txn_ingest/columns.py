"""Header-driven column role inference.

Column identity is inferred from the header text alone with an explicit,
ordered rule table. Each rule names a role and one or more keyword tiers; the
first tier is tried across the whole header (left to right) before the next
tier is considered, so ``category`` beats ``class``/``group``/``tag`` no
matter where they appear.

A column claimed by a required role is not offered to later required roles
(``"Value Date"`` is a date column, not an amount column). Optional roles may
share a column with any other role.

This intentionally differs from a plain first-match-per-role scan, which
would let a single header such as ``"Value Date"`` fill both the date and
the amount role and then fail every row on an unparseable amount. With
exclusive claiming, amount detection moves on to the next matching header,
or the file is rejected as unmappable.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import StrEnum

from .errors import UnmappableColumnsError
from .logging_setup import get_logger
from .models import ColumnMapping

logger = get_logger("txn_ingest.columns")


class ColumnRole(StrEnum):
    DATE = "date"
    AMOUNT = "amount"
    DESCRIPTION = "description"
    CATEGORY = "category"
    TYPE = "type"


@dataclass(frozen=True, slots=True)
class ColumnRule:
    role: ColumnRole
    tiers: tuple[tuple[str, ...], ...]
    required: bool = True


COLUMN_RULES: tuple[ColumnRule, ...] = (
    ColumnRule(ColumnRole.DATE, (("date", "day", "time"),)),
    ColumnRule(ColumnRole.AMOUNT, (("amount", "value", "sum", "total", "price", "cost"),)),
    ColumnRule(
        ColumnRole.DESCRIPTION,
        (
            (
                "description",
                "detail",
                "merchant",
                "vendor",
                "payee",
                "memo",
                "note",
                "reference",
            ),
        ),
    ),
    ColumnRule(ColumnRole.CATEGORY, (("category",), ("class", "group", "tag")), required=False),
    ColumnRule(ColumnRole.TYPE, (("type",),), required=False),
)


def _normalize_header(h: str) -> str:
    return h.strip().lower()


def _find(headers: Sequence[str], keywords: tuple[str, ...], skip: set[int]) -> int | None:
    for idx, h in enumerate(headers):
        if idx in skip:
            continue
        if any(k in h for k in keywords):
            return idx
    return None


def detect_columns(
    headers: Sequence[str], rules: Sequence[ColumnRule] = COLUMN_RULES
) -> ColumnMapping:
    """Map column roles to header indices.

    Raises :class:`UnmappableColumnsError` listing every required role that
    could not be located.
    """

    normalized = [_normalize_header(h) for h in headers]
    found: dict[ColumnRole, int] = {}
    claimed: set[int] = set()
    missing: list[str] = []

    for rule in rules:
        skip = claimed if rule.required else set()
        idx: int | None = None
        for tier in rule.tiers:
            idx = _find(normalized, tier, skip)
            if idx is not None:
                break
        if idx is None:
            if rule.required:
                missing.append(rule.role.value)
            continue
        found[rule.role] = idx
        if rule.required:
            claimed.add(idx)

    if missing:
        raise UnmappableColumnsError(missing, list(headers))

    mapping = ColumnMapping(
        date=found[ColumnRole.DATE],
        amount=found[ColumnRole.AMOUNT],
        description=found[ColumnRole.DESCRIPTION],
        category=found.get(ColumnRole.CATEGORY),
        type=found.get(ColumnRole.TYPE),
    )
    logger.debug("column mapping %s for headers %s", mapping.as_dict(), list(headers))
    return mapping


__all__ = ["ColumnRole", "ColumnRule", "COLUMN_RULES", "detect_columns"]
