"""Field normalizers: raw CSV cell text -> canonical date and amount values.

These are pure value-to-value transforms. They never raise for bad input;
each returns either :class:`Ok` carrying the normalized value or :class:`Err`
carrying a human-readable reason, so the row parser can record the problem and
move on to the next row.

Dates are accepted in this priority order::

    YYYY-MM-DD, MM/DD/YYYY, MM-DD-YYYY, YYYY/MM/DD, MM/DD/YY

and anything else goes through ``dateutil``'s general parser. A two-digit
year below 50 maps to 20xx, otherwise 19xx. Dates later than today are
rejected.

Amounts may carry currency symbols, thousands separators, whitespace, a
leading sign and accounting-style parentheses (negative). An optional type
hint of ``credit``/``debit`` forces the sign positive/negative.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Generic, TypeVar

from dateutil import parser as date_parser

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True, slots=True)
class Err:
    message: str


type Normalized[T] = Ok[T] | Err


# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------

_TWO_DIGIT_YEAR_PIVOT = 50


def _expand_year(yy: str) -> int:
    n = int(yy)
    return 2000 + n if n < _TWO_DIGIT_YEAR_PIVOT else 1900 + n


# (pattern, builder) in priority order; builders receive the regex groups and
# return (year, month, day).
_DATE_RULES: tuple[tuple[re.Pattern[str], Callable[..., tuple[int, int, int]]], ...] = (
    (re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$"), lambda y, m, d: (int(y), int(m), int(d))),
    (re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$"), lambda m, d, y: (int(y), int(m), int(d))),
    (re.compile(r"^(\d{1,2})-(\d{1,2})-(\d{4})$"), lambda m, d, y: (int(y), int(m), int(d))),
    (re.compile(r"^(\d{4})/(\d{1,2})/(\d{1,2})$"), lambda y, m, d: (int(y), int(m), int(d))),
    (
        re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{2})$"),
        lambda m, d, yy: (_expand_year(yy), int(m), int(d)),
    ),
)

_EXPECTED_DATE_FORMATS = "YYYY-MM-DD, MM/DD/YYYY, MM-DD-YYYY, YYYY/MM/DD, MM/DD/YY"


def _parse_date(s: str) -> date | None:
    for pattern, build in _DATE_RULES:
        m = pattern.match(s)
        if m is None:
            continue
        try:
            return date(*build(*m.groups()))
        except ValueError:
            # Matched the shape but not a real calendar day (e.g. 02/30/2025)
            return None
    try:
        return date_parser.parse(s).date()
    except (ValueError, OverflowError):
        return None


def normalize_date(raw: str | None, *, today: date | None = None) -> Normalized[date]:
    """Normalize a raw date cell to a :class:`datetime.date`.

    ``today`` defaults to the current local date and bounds the result: a date
    strictly later than ``today`` is an error.
    """

    if raw is None or not raw.strip():
        return Err("Date is required")
    s = raw.strip()
    parsed = _parse_date(s)
    if parsed is None:
        return Err(f'Invalid date format "{s}". Expected formats: {_EXPECTED_DATE_FORMATS}')
    limit = today or date.today()
    if parsed > limit:
        return Err(f'Date "{s}" cannot be in the future')
    return Ok(parsed)


# ---------------------------------------------------------------------------
# Amounts
# ---------------------------------------------------------------------------

MAX_ABS_AMOUNT = Decimal("999999.99")
_CENTS = Decimal("0.01")
_STRIP_RE = re.compile(r"[$£€¥₹,\s]")


def normalize_amount(raw: str | None, *, type_hint: str | None = None) -> Normalized[Decimal]:
    """Normalize a raw amount cell to a signed :class:`~decimal.Decimal`.

    The result is quantized to cents, non-zero and within ``±999,999.99``.
    """

    if raw is None or not raw.strip():
        return Err("Amount is required")
    s = _STRIP_RE.sub("", raw)

    negative = False
    # Accept "-(12.00)" and "(-12.00)" as well as the plain accounting form.
    if s.startswith("-(") and s.endswith(")"):
        s = s[2:-1]
        negative = True
    elif s.startswith("(") and s.endswith(")"):
        s = s[1:-1]
        negative = True

    try:
        d = Decimal(s)
    except InvalidOperation:
        return Err(f'Invalid amount format "{raw.strip()}"')
    if not d.is_finite():
        return Err(f'Invalid amount format "{raw.strip()}"')

    # Range check precedes quantize: huge exponents cannot be quantized.
    if abs(d) > MAX_ABS_AMOUNT:
        return Err(f'Amount "{raw.strip()}" exceeds maximum allowed value of {MAX_ABS_AMOUNT}')
    if negative:
        d = -abs(d)
    d = d.quantize(_CENTS, rounding=ROUND_HALF_UP)
    if d == 0:
        return Err("Amount cannot be zero")

    return Ok(apply_type_hint(d, type_hint))


def apply_type_hint(amount: Decimal, type_hint: str | None) -> Decimal:
    """Force the sign from a ``credit`` (income) / ``debit`` (expense) hint.

    Any other hint, or none, leaves the parsed sign untouched.
    """

    if type_hint is None:
        return amount
    hint = type_hint.strip().lower()
    if hint == "credit":
        return abs(amount)
    if hint == "debit":
        return -abs(amount)
    return amount


def format_amount(d: Decimal) -> str:
    # Exactly two decimals; leading minus for negatives.
    return f"{d.quantize(_CENTS, rounding=ROUND_HALF_UP):.2f}"


__all__ = [
    "Ok",
    "Err",
    "Normalized",
    "MAX_ABS_AMOUNT",
    "normalize_date",
    "normalize_amount",
    "apply_type_hint",
    "format_amount",
]
