"""
CSV parser for supplier price lists, reference snapshots and templates.

Comma-delimited, RFC4180-style quoting (embedded commas/newlines inside
quoted fields, doubled quotes as escapes). The first record is the header
line and is kept verbatim, including empty and duplicate headers.
Lookups by header are first-wins.

Malformed quoting fails only the record it occurs in: the failure is
yielded as a CsvParseError and parsing continues with the next line.
"""

import csv
import io
from dataclasses import dataclass, field
from typing import BinaryIO, Iterator, Iterable, Sequence, Union
import structlog

from exceptions import CsvParseError

logger = structlog.get_logger(__name__)


@dataclass
class CsvRow:
    """One data record, positioned by the line it starts on."""
    line: int
    values: list[str]
    index: dict[str, int] = field(repr=False, default_factory=dict)

    def get(self, header: str, default: str = "") -> str:
        """Value under header (first matching column wins)."""
        position = self.index.get(header)
        if position is None or position >= len(self.values):
            return default
        return self.values[position]

    def as_dict(self) -> dict[str, str]:
        """Header -> value, first-wins for duplicate headers."""
        return {h: self.get(h) for h in self.index}


CsvRecord = Union[CsvRow, CsvParseError]


def build_header_index(headers: Sequence[str]) -> dict[str, int]:
    """Map each header to its first position."""
    index: dict[str, int] = {}
    for position, header in enumerate(headers):
        index.setdefault(header, position)
    return index


def decode_csv_bytes(data: bytes) -> str:
    """Decode uploaded bytes, tolerating a BOM and legacy single-byte files."""
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        logger.warning("csv_not_utf8_falling_back", size_bytes=len(data))
        return data.decode("latin-1")


class CsvTable:
    """
    Lazily parsed CSV table.

    The header line is read on construction; data records are produced by
    records()/rows() on demand. The record stream is consumed once: to start
    over, build a new CsvTable from the same text.

    Usage:
        table = CsvTable.from_bytes(raw)
        for row in table.rows():
            sku = row.get("Item Code")
        if table.errors:
            ...
    """

    def __init__(self, text: str):
        self._reader = csv.reader(io.StringIO(text, newline=""), strict=True)
        self._last_line = 0
        self.errors: list[CsvParseError] = []
        self.headers: list[str] = self._read_headers()
        self.index = build_header_index(self.headers)

    @classmethod
    def from_bytes(cls, data: bytes) -> "CsvTable":
        return cls(decode_csv_bytes(data))

    def _read_headers(self) -> list[str]:
        try:
            headers = next(self._reader)
        except StopIteration:
            return []
        except csv.Error as e:
            raise CsvParseError(line=1, message=str(e), header="(header line)") from e
        self._last_line = self._reader.line_num
        return headers

    def records(self) -> Iterator[CsvRecord]:
        """
        Yield every data record in file order.

        Each item is either a CsvRow or a CsvParseError for a record whose
        quoting is malformed. Blank lines are skipped and not counted.
        """
        while True:
            start_line = self._last_line + 1
            try:
                values = next(self._reader)
            except StopIteration:
                return
            except csv.Error as e:
                self._last_line = self._reader.line_num
                error = CsvParseError(line=start_line, message=str(e))
                logger.warning(
                    "csv_row_parse_failed",
                    line=start_line,
                    error=str(e)
                )
                yield error
                continue

            self._last_line = self._reader.line_num
            if not any(v.strip() for v in values):
                continue
            yield CsvRow(line=start_line, values=values, index=self.index)

    def count_records(self) -> int:
        """
        Number of records left in the stream, counted as records() would
        yield them (malformed records included, blank lines not), without
        building row objects.
        """
        count = 0
        while True:
            try:
                values = next(self._reader)
            except StopIteration:
                return count
            except csv.Error:
                count += 1
                continue
            if any(v.strip() for v in values):
                count += 1

    def rows(self) -> Iterator[CsvRow]:
        """Yield parsed rows only; failures are collected on self.errors."""
        for record in self.records():
            if isinstance(record, CsvParseError):
                self.errors.append(record)
                continue
            yield record


def read_header_line(text: str) -> list[str]:
    """Only the first line of a CSV, as the ordered header list."""
    return CsvTable(text).headers


def read_header_stream(stream: BinaryIO) -> list[str]:
    """
    Header list of a CSV file, read line by line from a binary stream.

    Only the lines making up the header record are read (more than one when
    a quoted header spans lines). The stream is rewound to where it started.

    Raises:
        CsvParseError: If the header record is malformed
    """
    start = stream.tell()
    lines = (decode_csv_bytes(line) for line in iter(stream.readline, b""))
    try:
        return next(csv.reader(lines, strict=True), [])
    except csv.Error as e:
        raise CsvParseError(line=1, message=str(e), header="(header line)") from e
    finally:
        stream.seek(start)


# ===================
# SERIALIZATION
# ===================

def escape_csv_field(value: object) -> str:
    """Quote a field iff it contains a comma, quote or line break."""
    if value is None:
        return ""
    text = str(value)
    if any(ch in text for ch in (",", '"', "\n", "\r")):
        return '"' + text.replace('"', '""') + '"'
    return text


def to_csv_text(headers: Sequence[str], rows: Iterable[Sequence[object]]) -> str:
    """
    Serialize headers and value rows.

    Lines are joined with "\\n" and there is no trailing newline, so equal
    input always gives byte-identical output.
    """
    lines = [",".join(escape_csv_field(h) for h in headers)]
    for values in rows:
        lines.append(",".join(escape_csv_field(v) for v in values))
    return "\n".join(lines)
