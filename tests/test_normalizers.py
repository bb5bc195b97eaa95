from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

import pytest

from txn_ingest.normalizers import (
    Err,
    Ok,
    apply_type_hint,
    format_amount,
    normalize_amount,
    normalize_date,
)

# ---- Dates -------------------------------------------------------------------


@pytest.mark.parametrize(
    "raw",
    ["2025-01-15", "01/15/2025", "01-15-2025", "2025/01/15", "01/15/25", " 2025-01-15 "],
)
def test_supported_date_formats_normalize_to_same_day(raw: str):
    assert normalize_date(raw) == Ok(date(2025, 1, 15))


def test_single_digit_month_and_day():
    assert normalize_date("1/5/2025") == Ok(date(2025, 1, 5))


def test_two_digit_year_pivot():
    far_future = date(2100, 1, 1)
    assert normalize_date("03/04/49", today=far_future) == Ok(date(2049, 3, 4))
    assert normalize_date("03/04/50", today=far_future) == Ok(date(1950, 3, 4))


@pytest.mark.parametrize("raw", ["January 15, 2025", "15 Jan 2025", "2025-01-15T08:30:00"])
def test_general_parse_fallback(raw: str):
    assert normalize_date(raw) == Ok(date(2025, 1, 15))


@pytest.mark.parametrize("raw", ["02/30/2025", "not a date", "2025-13-01"])
def test_invalid_dates_are_rejected(raw: str):
    result = normalize_date(raw)
    assert isinstance(result, Err)
    assert result.message.startswith(f'Invalid date format "{raw}"')


def test_missing_date():
    assert normalize_date("") == Err("Date is required")
    assert normalize_date("   ") == Err("Date is required")
    assert normalize_date(None) == Err("Date is required")


def test_tomorrow_is_rejected_in_every_format():
    tomorrow = date.today() + timedelta(days=1)
    for raw in (
        tomorrow.strftime("%Y-%m-%d"),
        tomorrow.strftime("%m/%d/%Y"),
        tomorrow.strftime("%m-%d-%Y"),
        tomorrow.strftime("%Y/%m/%d"),
        tomorrow.strftime("%m/%d/%y"),
        tomorrow.strftime("%B %d, %Y"),
    ):
        result = normalize_date(raw)
        assert isinstance(result, Err), raw
        assert "cannot be in the future" in result.message


def test_today_is_accepted():
    today = date.today()
    assert normalize_date(today.isoformat()) == Ok(today)


def test_explicit_today_bounds_the_date():
    assert isinstance(normalize_date("2025-01-02", today=date(2025, 1, 1)), Err)
    assert normalize_date("2025-01-01", today=date(2025, 1, 1)) == Ok(date(2025, 1, 1))


# ---- Amounts -----------------------------------------------------------------


@pytest.mark.parametrize(
    ("raw", "hint", "expected"),
    [
        ("(50.00)", None, Decimal("-50.00")),
        ("50.00", "debit", Decimal("-50.00")),
        ("50.00", "credit", Decimal("50.00")),
        ("-50.00", "credit", Decimal("50.00")),
        ("(50.00)", "Credit", Decimal("50.00")),
        ("-50.00", None, Decimal("-50.00")),
        ("50.00", "transfer", Decimal("50.00")),
    ],
)
def test_sign_conventions(raw: str, hint: str | None, expected: Decimal):
    assert normalize_amount(raw, type_hint=hint) == Ok(expected)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("$1,234.56", Decimal("1234.56")),
        ("£12.5", Decimal("12.50")),
        ("€ 3", Decimal("3.00")),
        ("¥1,000", Decimal("1000.00")),
        ("₹99.99", Decimal("99.99")),
        ("-$20.00", Decimal("-20.00")),
        ("+15", Decimal("15.00")),
        ("($1,000.00)", Decimal("-1000.00")),
        ("-(12.00)", Decimal("-12.00")),
        ("10.005", Decimal("10.01")),
    ],
)
def test_amount_cleanup(raw: str, expected: Decimal):
    assert normalize_amount(raw) == Ok(expected)


def test_missing_amount():
    assert normalize_amount("") == Err("Amount is required")
    assert normalize_amount(None) == Err("Amount is required")


@pytest.mark.parametrize("raw", ["abc", "12.3.4", "NaN", "Infinity", "$"])
def test_invalid_amounts(raw: str):
    result = normalize_amount(raw)
    assert isinstance(result, Err)
    assert result.message.startswith("Invalid amount format")


@pytest.mark.parametrize("raw", ["0", "0.00", "(0.00)", "0.004"])
def test_zero_amounts_are_rejected(raw: str):
    assert normalize_amount(raw) == Err("Amount cannot be zero")


def test_amount_range():
    assert normalize_amount("999,999.99") == Ok(Decimal("999999.99"))
    assert normalize_amount("-999999.99") == Ok(Decimal("-999999.99"))
    for raw in ("1000000", "-1,000,000.00", "1e30"):
        result = normalize_amount(raw)
        assert isinstance(result, Err)
        assert "exceeds maximum allowed value of 999999.99" in result.message


def test_apply_type_hint_without_hint_keeps_sign():
    assert apply_type_hint(Decimal("-5.00"), None) == Decimal("-5.00")


def test_format_amount():
    assert format_amount(Decimal("-50")) == "-50.00"
    assert format_amount(Decimal("1234.5")) == "1234.50"
