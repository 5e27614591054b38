"""
Text utilities for identifier matching and file naming.

normalize_key() is shared by ingestion (MPN search key, stored as-is) and
export reconciliation (match_key(), uppercased).
"""

import re
from typing import Optional

_AROUND_COMMA = re.compile(r"\s*,\s*")
_WHITESPACE = re.compile(r"\s+")
_DASH_RUN = re.compile(r"-{2,}")
_UNSAFE_FILENAME = re.compile(r"[^A-Za-z0-9_-]+")


def normalize_key(raw: Optional[str]) -> str:
    """
    Canonical matching key for a raw identifier.

    - "  ABC & DEF  " → "ABC,DEF"
    - "AB 12 / 34"    → "AB-12-/-34"
    - "-X  -- Y-,"    → "X-Y"

    Args:
        raw: Identifier as found in a file or the catalog (may be None)

    Returns:
        Normalized key; "" means "no key"
    """
    if not raw:
        return ""

    key = raw.strip().replace("&", ",")
    key = _AROUND_COMMA.sub(",", key)
    key = _WHITESPACE.sub("-", key)
    key = _DASH_RUN.sub("-", key)
    return key.strip("-,")


def match_key(raw: Optional[str]) -> str:
    """Uppercased normalize_key(), used when comparing across snapshots."""
    return normalize_key(raw).upper()


def sanitize_filename_part(name: Optional[str], fallback: str = "supplier") -> str:
    """
    Make a display name safe for a download filename.

    "Acme Pty. Ltd." → "Acme-Pty-Ltd-"
    """
    if not name:
        return fallback
    cleaned = _UNSAFE_FILENAME.sub("-", name)
    return cleaned or fallback


def format_duration_ms(ms: Optional[float]) -> str:
    """Milliseconds as "2m 20s" or "41s"; "—" when unknown."""
    if ms is None or ms != ms or ms < 0:
        return "—"
    seconds = round(ms / 1000)
    minutes, rest = divmod(seconds, 60)
    if minutes > 0:
        return f"{minutes}m {rest}s"
    return f"{rest}s"
