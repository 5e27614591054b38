"""
CSV parsers module.
"""

from parsers.csv_parser import (
    CsvTable,
    CsvRow,
    read_header_line,
    to_csv_text,
)

__all__ = [
    "CsvTable",
    "CsvRow",
    "read_header_line",
    "to_csv_text",
]
