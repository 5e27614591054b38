"""
Unit tests for the CSV parser.

Run: pytest tests/unit/test_csv_parser.py -v
"""

import io

import pytest

from exceptions import CsvParseError
from parsers.csv_parser import (
    CsvTable,
    read_header_line,
    read_header_stream,
    escape_csv_field,
    to_csv_text,
    decode_csv_bytes,
)


class TestCsvTableHeaders:
    """Tests for header handling."""

    def test_headers_kept_verbatim(self):
        """Should keep header strings exactly, including spaces."""
        table = CsvTable(" Item Code ,Price\nA,1")

        assert table.headers == [" Item Code ", "Price"]

    def test_empty_and_duplicate_headers_preserved(self):
        """Should keep empty and duplicate headers in position."""
        table = CsvTable("SKU,,SKU,Price\nA,x,B,1")

        assert table.headers == ["SKU", "", "SKU", "Price"]

    def test_duplicate_header_lookup_is_first_wins(self):
        """Should return the value of the first column with that header."""
        table = CsvTable("SKU,Price,SKU\nFIRST,1,SECOND")

        row = next(table.rows())

        assert row.get("SKU") == "FIRST"
        assert row.as_dict() == {"SKU": "FIRST", "Price": "1"}

    def test_empty_input_has_no_headers(self):
        """Should give an empty header list for empty text."""
        table = CsvTable("")

        assert table.headers == []
        assert list(table.rows()) == []

    def test_bom_is_stripped(self):
        """Should drop a UTF-8 BOM from the first header."""
        table = CsvTable.from_bytes("\ufeffSKU,Price\nA,1".encode("utf-8"))

        assert table.headers == ["SKU", "Price"]

    def test_read_header_line_only_uses_first_record(self):
        """Should return just the header list."""
        assert read_header_line('A,"B, C",D\n1,2,3') == ["A", "B, C", "D"]


class TestCsvTableRows:
    """Tests for data record parsing."""

    def test_quoted_commas_and_newlines(self):
        """Should keep embedded commas and newlines inside quoted fields."""
        text = 'SKU,Desc\nA,"Cable, 2 core"\nB,"Line one\nLine two"\n'

        rows = list(CsvTable(text).rows())

        assert [r.get("Desc") for r in rows] == ["Cable, 2 core", "Line one\nLine two"]

    def test_doubled_quotes_unescaped(self):
        """Should turn doubled quotes into one quote."""
        rows = list(CsvTable('SKU,Desc\nA,"12"" rule"').rows())

        assert rows[0].get("Desc") == '12" rule'

    def test_rows_carry_start_line(self):
        """Should number rows by the line they start on."""
        text = 'SKU,Desc\nA,"multi\nline"\nB,plain'

        rows = list(CsvTable(text).rows())

        assert [r.line for r in rows] == [2, 4]

    def test_blank_lines_skipped(self):
        """Should skip blank and whitespace-only records."""
        rows = list(CsvTable("SKU,Price\nA,1\n\n , \nB,2\n").rows())

        assert [r.get("SKU") for r in rows] == ["A", "B"]

    def test_short_row_missing_values_default(self):
        """Should return the default for columns the row does not have."""
        row = next(CsvTable("SKU,Price,Brand\nA,1").rows())

        assert row.get("Brand") == ""
        assert row.get("Brand", "n/a") == "n/a"

    def test_malformed_row_does_not_abort_file(self):
        """Should yield a parse error for the bad record and keep going."""
        text = 'SKU,Desc\nA,ok\nB,"bad" here\nC,fine\n'

        records = list(CsvTable(text).records())

        errors = [r for r in records if isinstance(r, CsvParseError)]
        good = [r.get("SKU") for r in records if not isinstance(r, CsvParseError)]
        assert len(errors) == 1
        assert errors[0].line == 3
        assert good == ["A", "C"]

    def test_rows_collects_errors(self):
        """Should collect row failures on table.errors."""
        table = CsvTable('SKU,Desc\nA,"x"y\nB,ok')

        rows = list(table.rows())

        assert [r.get("SKU") for r in rows] == ["B"]
        assert len(table.errors) == 1
        assert table.errors[0].code == "CSV_PARSE_ERROR"

    def test_records_not_restartable(self):
        """Should be exhausted after one pass."""
        table = CsvTable("SKU\nA\nB")

        first = list(table.rows())
        second = list(table.rows())

        assert len(first) == 2
        assert second == []


class TestReadHeaderStream:
    """Tests for read_header_stream()"""

    def test_headers_then_rewind(self):
        """Should return the header list and leave the stream where it was."""
        stream = io.BytesIO(b'\xef\xbb\xbfSKU,"Desc, long"\nA,1\n')

        assert read_header_stream(stream) == ["SKU", "Desc, long"]
        assert stream.tell() == 0

    def test_header_spanning_lines(self):
        """Should read every line of a quoted multi-line header."""
        stream = io.BytesIO(b'SKU,"Cost\nex GST"\nA,1\n')

        assert read_header_stream(stream) == ["SKU", "Cost\nex GST"]

    def test_reads_line_by_line(self):
        """Should only read lines, never the whole stream."""
        class LineOnlyStream(io.BytesIO):
            def read(self, size=-1):
                raise AssertionError("whole-stream read")

        assert read_header_stream(LineOnlyStream(b"A,B\n1,2\n")) == ["A", "B"]

    def test_empty_stream(self):
        """Should give no headers for an empty stream."""
        assert read_header_stream(io.BytesIO(b"")) == []

    def test_malformed_header(self):
        """Should raise CsvParseError for broken quoting in the header."""
        with pytest.raises(CsvParseError):
            read_header_stream(io.BytesIO(b'SKU,"Desc"x\nA,1\n'))


class TestDecodeCsvBytes:
    """Tests for decode_csv_bytes()"""

    def test_latin1_fallback(self):
        """Should fall back to latin-1 for non UTF-8 bytes."""
        assert decode_csv_bytes("Café".encode("latin-1")) == "Café"


class TestCsvSerialization:
    """Tests for escape_csv_field() and to_csv_text()"""

    @pytest.mark.parametrize("value,expected", [
        ("plain", "plain"),
        ("a,b", '"a,b"'),
        ('say "hi"', '"say ""hi"""'),
        ("two\nlines", '"two\nlines"'),
        ("cr\rhere", '"cr\rhere"'),
        (None, ""),
        (25, "25"),
    ])
    def test_escape_csv_field(self, value, expected):
        """Should quote only when needed and double embedded quotes."""
        assert escape_csv_field(value) == expected

    def test_to_csv_text_has_no_trailing_newline(self):
        """Should join lines with \\n and end without one."""
        text = to_csv_text(["A", "B"], [["1", "2"], ["3", "4"]])

        assert text == "A,B\n1,2\n3,4"

    def test_round_trip_preserves_headers_and_cells(self):
        """Should re-parse serialized output to the same headers and values."""
        headers = ["SKU", "Desc", "", "SKU2"]
        rows = [["A1", "Cable, 2 core", "", "x"], ["B2", 'Rule 12"', "y", ""]]

        table = CsvTable(to_csv_text(headers, rows))
        parsed = [r.values for r in table.rows()]

        assert table.headers == headers
        assert parsed == rows
