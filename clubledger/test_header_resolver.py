"""
Tests for header row discovery and column mapping.

Tests cover:
- Anchor + hint header search below banner rows
- Exact and substring synonym matching, first match wins
- Missing required columns
"""

import pytest

from clubledger.errors import EmptyFileError, HeaderNotFoundError, MissingColumnsError
from clubledger.header_resolver import (
    CONTRIBUTION_HEADERS, FIDELITY_HISTORY_HEADERS, FIDELITY_POSITION_HEADERS,
    LIVE_PRICE_HEADERS, TRADE_HEADERS,
    find_header_row, map_columns, resolve,
)


FIDELITY_HISTORY_ROWS = [
    ["Brokerage", "", "", "", "", ""],
    ["Run Date", "Action", "Symbol", "Quantity", "Price ($)", "Commission ($)"],
    ["01/02/2024", "YOU BOUGHT APPLE INC (AAPL)", "AAPL", "10", "150.00", ""],
]


class TestFindHeaderRow:
    """Tests for locating the real header row."""

    def test_header_on_second_row(self):
        assert find_header_row(FIDELITY_HISTORY_ROWS, FIDELITY_HISTORY_HEADERS) == 1

    def test_anchor_without_hint_is_not_a_header(self):
        rows = [
            ["Run Date", "", ""],
            ["Run Date", "Action", "Symbol"],
        ]
        assert find_header_row(rows, FIDELITY_HISTORY_HEADERS) == 1

    def test_first_qualifying_row_wins(self):
        rows = [
            ["Symbol", "Qty", "Price"],
            ["Symbol", "Qty", "Price"],
        ]
        assert find_header_row(rows, LIVE_PRICE_HEADERS) == 0

    def test_substring_anchor(self):
        rows = [
            ["Account Number", "Symbol/CUSIP", "Quantity"],
        ]
        assert find_header_row(rows, FIDELITY_POSITION_HEADERS) == 0

    def test_missing_header_row(self):
        with pytest.raises(HeaderNotFoundError, match="History import missing a Run Date header row."):
            find_header_row([["Date", "Action", "Symbol"]], FIDELITY_HISTORY_HEADERS)


class TestMapColumns:
    """Tests for canonical field mapping."""

    def test_synonyms(self):
        columns = map_columns(["Trade Date", "Ticker", "Type", "Qty", "Price per share"], TRADE_HEADERS)
        assert columns.indices["date"] == 0
        assert columns.indices["ticker"] == 1
        assert columns.indices["action"] == 2
        assert columns.indices["shares"] == 3
        assert columns.indices["price"] == 4
        assert "fees" not in columns

    def test_first_matching_column_wins(self):
        columns = map_columns(["Date", "Symbol", "Ticker", "Action", "Shares", "Price"], TRADE_HEADERS)
        assert columns.indices["ticker"] == 1

    def test_headers_normalized(self):
        columns = map_columns(["\ufeffDATE", "  Amount ", "Shares"], CONTRIBUTION_HEADERS)
        assert columns.indices == {"date": 0, "amount": 1, "shares": 2}

    def test_substring_matching(self):
        columns = map_columns(
            ["Symbol", "Current Value", "Total Gain/Loss Dollar", "Total Gain/Loss Percent"],
            FIDELITY_POSITION_HEADERS,
        )
        assert columns.indices["current_value"] == 1
        assert columns.indices["total_gain_loss"] == 2
        assert columns.indices["total_gain_loss_percent"] == 3

    def test_missing_required(self):
        with pytest.raises(MissingColumnsError) as excinfo:
            map_columns(["date", "memo"], CONTRIBUTION_HEADERS)
        assert excinfo.value.missing == ("amount", "shares")
        assert "amount, shares" in str(excinfo.value)
        assert "Ensure the CSV includes date, amount, and shares columns." in str(excinfo.value)

    def test_get_from_list_and_dict_rows(self):
        columns = map_columns(["date", "amount", "shares"], CONTRIBUTION_HEADERS)
        assert columns.get(["2024-01-01", "10", "1"], "amount") == "10"
        assert columns.get({"date": "2024-01-01", "amount": "10", "shares": "1"}, "amount") == "10"
        assert columns.get(["2024-01-01"], "shares") is None
        assert columns.get(["2024-01-01", "10", "1"], "memo") is None


class TestResolve:
    """Tests for header row + mapping in one step."""

    def test_returns_rows_below_header(self):
        columns, rows = resolve(FIDELITY_HISTORY_ROWS, FIDELITY_HISTORY_HEADERS)
        assert rows == FIDELITY_HISTORY_ROWS[2:]
        assert columns.get(rows[0], "ticker") == "AAPL"
        assert columns.get(rows[0], "commission") == ""

    def test_no_anchor_uses_first_row(self):
        rows = [["date", "amount", "shares"], ["2024-01-01", "1", "1"]]
        _, data = resolve(rows, CONTRIBUTION_HEADERS)
        assert data == rows[1:]

    def test_empty(self):
        with pytest.raises(EmptyFileError):
            resolve([], LIVE_PRICE_HEADERS)
