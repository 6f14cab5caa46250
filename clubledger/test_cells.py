"""
Tests for cell coercion helpers.

Tests cover:
- Header normalization
- Lenient number parsing (currency, parentheses, sentinels)
- Date parsing from cells and filenames
- As-of date precedence
"""

import pytest
from datetime import date, datetime
from decimal import Decimal

from clubledger.cells import (
    normalize_header, parse_date, parse_date_from_filename, parse_number, resolve_as_of,
)


@pytest.mark.parametrize("raw, expected", [
    ("\ufeffSymbol", "symbol"),
    ("  Price   ($) ", "price ($)"),
    ("Last\tPrice", "last price"),
    (None, ""),
])
def test_normalize_header(raw, expected):
    assert normalize_header(raw) == expected


def test_normalize_header_is_idempotent():
    once = normalize_header("  Total  Gain/Loss DOLLAR ")
    assert normalize_header(once) == once


@pytest.mark.parametrize("raw, expected", [
    ("$1,234.50", Decimal("1234.50")),
    ("(12.00)", Decimal("-12.00")),
    ("($1,234.50)", Decimal("-1234.50")),
    ("45%", Decimal("45")),
    ("-3.2", Decimal("-3.2")),
    ("\ufeff7", Decimal("7")),
    ("0", Decimal("0")),
])
def test_parse_number_valid(raw, expected):
    assert parse_number(raw) == expected


@pytest.mark.parametrize("raw", [None, "", "   ", "no", "N/A", "No purchase this month", "abc", "NaN", "Infinity"])
def test_parse_number_rejects(raw):
    assert parse_number(raw) is None


def test_parse_number_returns_decimal():
    assert isinstance(parse_number("0.1"), Decimal)


@pytest.mark.parametrize("raw, expected", [
    ("2.5E+3", "2500"),
    ("1E+3", "1000"),
    ("1.5E-05", "0.000015"),
    ("0.123456789", "0.12345679"),
])
def test_parse_number_plain_notation(raw, expected):
    value = parse_number(raw)
    assert str(value) == expected
    assert value.as_tuple().exponent >= -8


@pytest.mark.parametrize("raw", ["12345678901234567", "1e20", "-1E+16", "9999999999999999.999999999"])
def test_parse_number_out_of_range(raw):
    assert parse_number(raw) is None


def test_parse_number_largest_storable():
    assert parse_number("9999999999999999.99") == Decimal("9999999999999999.99")


@pytest.mark.parametrize("raw, expected", [
    ("2024-01-15", date(2024, 1, 15)),
    ("01/15/2024", date(2024, 1, 15)),
    (date(2024, 3, 1), date(2024, 3, 1)),
    (datetime(2024, 3, 1, 14, 30), date(2024, 3, 1)),
])
def test_parse_date_valid(raw, expected):
    assert parse_date(raw) == expected


@pytest.mark.parametrize("raw", [None, "", "not a date", "Pending", "today", "now", "Jan", "Yesterday"])
def test_parse_date_rejects(raw):
    assert parse_date(raw) is None


@pytest.mark.parametrize("name, expected", [
    ("Portfolio_Positions_Jan-05-2024.csv", date(2024, 1, 5)),
    ("positions_2024-02-29.csv", date(2024, 2, 29)),
    ("live_prices_03-15-2024.csv", date(2024, 3, 15)),
    ("Portfolio_Positions_Xyz-05-2024.csv", None),
    ("positions_2023-02-30.csv", None),
    ("positions.csv", None),
    (None, None),
])
def test_parse_date_from_filename(name, expected):
    assert parse_date_from_filename(name) == expected


class TestResolveAsOf:
    """Tests for the explicit > filename > today precedence."""

    def test_explicit_wins(self):
        assert resolve_as_of("2024-05-01", "Portfolio_Positions_Jan-05-2024.csv") == date(2024, 5, 1)

    def test_filename_used_when_no_explicit(self):
        assert resolve_as_of(None, "Portfolio_Positions_Jan-05-2024.csv") == date(2024, 1, 5)

    def test_unparseable_explicit_falls_back_to_filename(self):
        assert resolve_as_of("garbage", "positions_2024-02-01.csv") == date(2024, 2, 1)

    def test_today_fallback(self):
        assert resolve_as_of(None, "positions.csv", today=date(2024, 6, 30)) == date(2024, 6, 30)
