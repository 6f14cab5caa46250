"""
Tests for upload decoding and CSV reading.

Tests cover:
- UTF-8 and UTF-16LE uploads, BOM stripping
- Raw matrix reading (padding, blank lines)
- Columnar reading (headers, short rows, empty files)
"""

import pytest

from clubledger.decoder import decode_upload, read_records, read_rows
from clubledger.errors import EmptyFileError


class TestDecodeUpload:
    """Tests for encoding detection."""

    def test_utf8(self):
        assert decode_upload("Symbol,Qty\nAAPL,10\n".encode("utf-8")) == "Symbol,Qty\nAAPL,10\n"

    def test_utf8_bom_removed(self):
        assert decode_upload("\ufeffSymbol,Qty\n".encode("utf-8")) == "Symbol,Qty\n"

    def test_utf16le_with_bom(self):
        content = "\ufeffSymbol,Qty\nAAPL,10\n".encode("utf-16-le")
        assert decode_upload(content) == "Symbol,Qty\nAAPL,10\n"

    def test_utf16le_same_rows_as_utf8(self):
        text = "Run Date,Action,Symbol\n01/02/2024,YOU BOUGHT,AAPL\n"
        assert read_rows(decode_upload(text.encode("utf-16-le"))) == read_rows(decode_upload(text.encode("utf-8")))


class TestReadRows:
    """Tests for the raw matrix reader."""

    def test_pads_ragged_rows(self):
        rows = read_rows("Brokerage export\nSymbol,Quantity,Last Price\nAAPL,10,150.00\n")
        assert rows == [
            ["Brokerage export", "", ""],
            ["Symbol", "Quantity", "Last Price"],
            ["AAPL", "10", "150.00"],
        ]

    def test_skips_blank_lines_and_trims(self):
        rows = read_rows("a , b\n\n,\n c,d \n")
        assert rows == [["a", "b"], ["c", "d"]]

    def test_quoted_commas(self):
        rows = read_rows('Symbol,Description\nAAPL,"APPLE INC, COM"\n')
        assert rows[1] == ["AAPL", "APPLE INC, COM"]

    def test_empty_text(self):
        assert read_rows("") == []


class TestReadRecords:
    """Tests for the columnar reader."""

    def test_records_keyed_by_header(self):
        headers, records, dropped = read_records("date,amount,shares\n2024-01-15,500,10\n")
        assert headers == ["date", "amount", "shares"]
        assert records == [{"date": "2024-01-15", "amount": "500", "shares": "10"}]
        assert dropped == 0

    def test_values_stay_text(self):
        _, records, _ = read_records("ticker,shares\nAAPL,007\n")
        assert records[0]["shares"] == "007"

    def test_short_rows_padded_and_blank_rows_dropped(self):
        _, records, _ = read_records("a,b,c\n1,2\n\n,,\n4,5,6\n")
        assert records == [{"a": "1", "b": "2", "c": ""}, {"a": "4", "b": "5", "c": "6"}]

    def test_header_whitespace_and_bom(self):
        headers, _, _ = read_records("\ufeff Date ,Amount\n2024-01-01,1\n")
        assert headers == ["Date", "Amount"]

    def test_long_rows_dropped_and_counted(self):
        text = "date,amount\n2024-01-01,1\n2024-01-02,2,extra\n2024-01-03,3\n,,\n"
        _, records, dropped = read_records(text)
        assert records == [{"date": "2024-01-01", "amount": "1"}, {"date": "2024-01-03", "amount": "3"}]
        assert dropped == 1

    def test_long_first_row_not_taken_as_index(self):
        _, records, dropped = read_records("a,b\n1,2,3\n4,5\n")
        assert records == [{"a": "4", "b": "5"}]
        assert dropped == 1

    def test_header_only(self):
        headers, records, _ = read_records("date,amount,shares\n")
        assert headers == ["date", "amount", "shares"]
        assert records == []

    @pytest.mark.parametrize("text", ["", "   \n\n"])
    def test_empty_file(self, text):
        with pytest.raises(EmptyFileError):
            read_records(text)
