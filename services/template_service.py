"""
Export template headers.

The export target defines its own column layout. Only its first line is
read, as the ordered header list. Semantic export fields are matched onto
those literal headers through ordered name variants (case-insensitive,
exact). When the template cannot be fetched the built-in FALLBACK_HEADERS
are used instead.
"""

from pathlib import Path
from typing import Mapping, Optional, Sequence
import requests
import structlog

from config import settings
from exceptions import CsvParseError, TemplateUnavailableError
from parsers.csv_parser import decode_csv_bytes, read_header_line

logger = structlog.get_logger(__name__)

TEMPLATE_FETCH_TIMEOUT_SECONDS = 10

FALLBACK_HEADERS: tuple[str, ...] = (
    "Group (Ignored for Updates)",
    "Subgroup 1 (Ignored for Updates)",
    "Subgroup 2 (Ignored for Updates)",
    "Subgroup 3 (Ignored for Updates)",
    "Part Number",
    "Description",
    "Universal Product Code",
    "Country of Origin",
    "Trade Price",
    "Cost Price",
    "Split Price",
    "Split Cost Price",
    "Purchase Tax Code",
    "Sales Tax Code",
    "Trade Split Quantity",
    "Minimum Pack Quantity",
    "Manufacturer",
    "Supplier Part Number",
    "Favourite",
    "Search Terms",
    "Purchase Stage",
    "Inventory Item",
    "Notes",
    "Unit of Measurement",
    "Add-on Enabled",
    "Markup (Tier 1 Name)",
    "Sell Price (Tier 1 Name)",
    "Add-on Markup (Tier 1 Name)",
    "Add-on Sell Price (Tier 1 Name)",
    "Markup (Tier 2 Name)",
    "Sell Price (Tier 2 Name)",
    "Add-on Markup (Tier 2 Name)",
    "Add-on Sell Price (Tier 2 Name)",
)

# Export field → acceptable template header names, in preference order
HEADER_VARIANTS: dict[str, tuple[str, ...]] = {
    "group": ("Group (Ignored for Updates)", "Group"),
    "subgroup1": ("Subgroup 1 (Ignored for Updates)", "Subgroup 1"),
    "subgroup2": ("Subgroup 2 (Ignored for Updates)", "Subgroup 2"),
    "subgroup3": ("Subgroup 3 (Ignored for Updates)", "Subgroup 3"),
    "part_number": ("Part Number",),
    "description": ("Description", "Supplier Description"),
    "upc": ("Universal Product Code",),
    "trade_price": ("Trade Price",),
    "cost_price": ("Cost Price",),
    "split_price": ("Split Price",),
    "split_cost_price": ("Split Cost Price",),
    "purchase_tax": ("Purchase Tax Code",),
    "sales_tax": ("Sales Tax Code",),
    "manufacturer": ("Manufacturer",),
    "supplier_part": ("Supplier Part Number", "Part Number"),
    "uom": ("Unit of Measurement",),
    "markup_tier1": ("Markup (Tier 1 Name)",),
}

PRICE_FIELDS: tuple[str, ...] = ("trade_price", "cost_price", "split_price", "split_cost_price")
CLASSIFICATION_FIELDS: tuple[str, ...] = ("group", "subgroup1", "subgroup2", "subgroup3")

ResolvedHeaders = dict[str, Optional[str]]


def pick_header(headers: Sequence[str], names: Sequence[str]) -> Optional[str]:
    """
    First header matching any of names (case-insensitive, whitespace-trimmed).

    Variants are tried in order, so an earlier variant wins even if a later
    one appears first in the header list.
    """
    lowered = [(h.strip().casefold(), h) for h in headers]
    for name in names:
        wanted = name.strip().casefold()
        for key, header in lowered:
            if key == wanted:
                return header
    return None


def resolve_headers(
    template_headers: Sequence[str],
    variants: Mapping[str, Sequence[str]] = HEADER_VARIANTS,
) -> ResolvedHeaders:
    """Export field → literal template header, None when the template lacks it."""
    resolved = {field: pick_header(template_headers, names) for field, names in variants.items()}
    logger.debug(
        "template_headers_resolved",
        resolved=sum(1 for h in resolved.values() if h),
        absent=[f for f, h in resolved.items() if h is None]
    )
    return resolved


class TemplateService:
    """Loads the export template header line."""

    def __init__(self, source: Optional[str] = None, session: Optional[requests.Session] = None):
        self.source = source if source is not None else settings.export_template_url
        self.session = session or requests.Session()

    def fetch_headers(self) -> list[str]:
        """
        Read the template's header line.

        Raises:
            TemplateUnavailableError: No source configured, fetch failed,
                or the first line is empty/unparseable
        """
        if not self.source:
            raise TemplateUnavailableError("(none)", "no template source configured")

        try:
            if self.source.startswith(("http://", "https://")):
                response = self.session.get(self.source, timeout=TEMPLATE_FETCH_TIMEOUT_SECONDS)
                response.raise_for_status()
                raw = response.content
            else:
                raw = Path(self.source).read_bytes()
        except (requests.exceptions.RequestException, OSError) as e:
            raise TemplateUnavailableError(self.source, str(e)) from e

        try:
            headers = read_header_line(decode_csv_bytes(raw))
        except CsvParseError as e:
            raise TemplateUnavailableError(self.source, e.message) from e

        if not any(h.strip() for h in headers):
            raise TemplateUnavailableError(self.source, "template has no header line")
        return headers

    def load_headers(self) -> tuple[list[str], str]:
        """
        Template headers, falling back to FALLBACK_HEADERS.

        Returns:
            (headers, source) where source is "template" or "fallback"
        """
        try:
            headers = self.fetch_headers()
        except TemplateUnavailableError as e:
            logger.warning(
                "template_fallback_used",
                source=self.source or None,
                reason=e.message
            )
            return list(FALLBACK_HEADERS), "fallback"

        logger.info("template_loaded", source=self.source, headers=len(headers))
        return headers, "template"
