"""
Date helpers for the ingestion wire format and price validity ranges.

Wire dates are DD-MM-YYYY. Validity ranges are Postgres daterange text,
half-open: "[2025-01-01,2025-02-01)" or "[2025-01-01,)" when open.
"""

from datetime import date, datetime
from typing import Optional

WIRE_DATE_FORMAT = "%d-%m-%Y"


def format_effective_date(day: date) -> str:
    """date(2025, 3, 7) → "07-03-2025"."""
    return day.strftime(WIRE_DATE_FORMAT)


def parse_effective_date(text: str) -> date:
    """ "07-03-2025" → date(2025, 3, 7). Raises ValueError on bad input."""
    return datetime.strptime(text.strip(), WIRE_DATE_FORMAT).date()


def format_daterange(start: date, end: Optional[date] = None) -> str:
    upper = end.isoformat() if end else ""
    return f"[{start.isoformat()},{upper})"


def parse_daterange(text: str) -> tuple[Optional[date], Optional[date]]:
    """
    Parse daterange text into (start, end).

    Bounds are normalized to half-open: an inclusive upper bound "]" moves
    one day later, an exclusive lower bound "(" moves one day later.
    Empty bounds come back as None.
    """
    text = (text or "").strip()
    if len(text) < 3 or text == "empty":
        return None, None

    lower_inclusive = text[0] == "["
    upper_inclusive = text[-1] == "]"
    lower_raw, _, upper_raw = text[1:-1].partition(",")

    start = date.fromisoformat(lower_raw.strip().strip('"')) if lower_raw.strip() else None
    end = date.fromisoformat(upper_raw.strip().strip('"')) if upper_raw.strip() else None

    if start and not lower_inclusive:
        start = date.fromordinal(start.toordinal() + 1)
    if end and upper_inclusive:
        end = date.fromordinal(end.toordinal() + 1)
    return start, end
