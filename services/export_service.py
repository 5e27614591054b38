"""
Export service — Generate catalogue CSVs in the export template layout.

One row per active catalog item, spanning every template header, followed
by EOL rows: items of a previously exported reference snapshot whose key
(MPN, else SKU, normalized and uppercased) is missing from the current
catalogue's keys for that same column.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Iterable, Mapping, Optional, Sequence
import structlog

from config import settings
from exceptions import CsvParseError
from models.catalog import CatalogItem
from parsers.csv_parser import CsvTable, to_csv_text
from services.catalog_service import CatalogService, get_catalog_service
from services.price_service import PriceService, get_price_service
from services.template_service import (
    CLASSIFICATION_FIELDS,
    PRICE_FIELDS,
    ResolvedHeaders,
    TemplateService,
    pick_header,
    resolve_headers,
)
from utils.text_utils import match_key, sanitize_filename_part

logger = structlog.get_logger(__name__)

DESCRIPTION_SEPARATOR = " • "
EOL_MARKER = "EOL"
TAX_CODE = "Default"

# Reference snapshot columns that carry the matching key
REFERENCE_KEY_VARIANTS: dict[str, tuple[str, ...]] = {
    "mpn": ("Universal Product Code", "MPN", "Manufacturer Part Number"),
    "sku": ("Supplier Part Number", "Part Number", "Part", "Supplier SKU", "SKU"),
}

# Fields copied verbatim from a reference row onto its EOL row
EOL_COPIED_FIELDS: tuple[str, ...] = CLASSIFICATION_FIELDS + (
    "upc",
    "manufacturer",
    "supplier_part",
    "part_number",
)


def format_description(*parts: Optional[str]) -> str:
    """Join non-empty parts with the description separator."""
    return DESCRIPTION_SEPARATOR.join(p.strip() for p in parts if p and p.strip())


def format_price(price: Optional[Decimal]) -> str:
    """Plain decimal text; items without a current price export as 0."""
    if price is None:
        return "0"
    return format(price, "f")


@dataclass
class CatalogueKeys:
    """
    Normalized keys of the current catalogue, one set per key column.

    A reference row keyed from its MPN column is looked up in `mpn`, one
    keyed from its SKU column in `sku`, so an export re-read as a reference
    matches itself whichever key columns its template carried.
    """
    mpn: set[str] = field(default_factory=set)
    sku: set[str] = field(default_factory=set)

    def __contains__(self, key: str) -> bool:
        return key in self.mpn or key in self.sku

    def has(self, key: str, column: str) -> bool:
        """Whether key is a current key of the given column ("mpn" or "sku")."""
        return key in (self.mpn if column == "mpn" else self.sku)


def current_keys(items: Iterable[CatalogItem]) -> CatalogueKeys:
    """Key sets of the current export; empty keys are left out."""
    keys = CatalogueKeys()
    for item in items:
        mpn = match_key(item.mpn)
        sku = match_key(item.supplier_sku)
        if mpn:
            keys.mpn.add(mpn)
        if sku:
            keys.sku.add(sku)
    return keys


def export_filename(supplier_name: str, day: date) -> str:
    """Catalogue-Export-{supplier}-{YYYY-MM-DD}.csv"""
    return f"Catalogue-Export-{sanitize_filename_part(supplier_name)}-{day.isoformat()}.csv"


@dataclass
class EolCandidate:
    """A reference row with no counterpart in the current catalogue."""
    key: str
    row: dict[str, str]


class EolReconciler:
    """
    Diffs a reference snapshot against the current catalogue keys.

    Key columns are discovered from the snapshot's own headers.

    Usage:
        reconciler = EolReconciler(table.headers)
        candidates = reconciler.find_candidates(rows, current_keys(items))
    """

    def __init__(self, reference_headers: Sequence[str]):
        self.headers = list(reference_headers)
        self.mpn_header = pick_header(self.headers, REFERENCE_KEY_VARIANTS["mpn"])
        self.sku_header = pick_header(self.headers, REFERENCE_KEY_VARIANTS["sku"])
        self.field_headers: ResolvedHeaders = resolve_headers(self.headers)

    @property
    def is_keyed(self) -> bool:
        return self.mpn_header is not None or self.sku_header is not None

    def keyed_by(self, row: Mapping[str, str]) -> tuple[str, Optional[str]]:
        """(normalized key, "mpn" or "sku") of a reference row; ("", None) without one."""
        if self.mpn_header:
            key = match_key(row.get(self.mpn_header))
            if key:
                return key, "mpn"
        if self.sku_header:
            key = match_key(row.get(self.sku_header))
            if key:
                return key, "sku"
        return "", None

    def key_for(self, row: Mapping[str, str]) -> str:
        """Normalized key of a reference row; empty when it has none."""
        return self.keyed_by(row)[0]

    def find_candidates(
        self,
        rows: Iterable[Mapping[str, str]],
        catalogue: CatalogueKeys,
    ) -> list[EolCandidate]:
        """
        Reference rows whose key is non-empty and absent from the catalogue.

        A row is compared against the key set of the column its key came
        from. A key is reported once, at its first occurrence in the snapshot.
        """
        if not self.is_keyed:
            logger.warning("reference_snapshot_unkeyed", headers=self.headers)
            return []

        candidates: list[EolCandidate] = []
        seen: set[str] = set()
        for row in rows:
            key, column = self.keyed_by(row)
            if not key or key in seen:
                continue
            if catalogue.has(key, column):
                continue
            seen.add(key)
            candidates.append(EolCandidate(key=key, row=dict(row)))

        logger.info("eol_candidates_found", count=len(candidates))
        return candidates


class ExportRowBuilder:
    """
    Builds template-shaped rows.

    Every row has exactly one value per template header (blank unless a
    resolved field fills it), so column count always matches the template.
    """

    def __init__(
        self,
        template_headers: Sequence[str],
        default_uom: Optional[str] = None,
        markup_percent: Optional[int] = None,
    ):
        self.headers = list(template_headers)
        self.fields = resolve_headers(self.headers)
        self.default_uom = default_uom or settings.default_uom
        self.markup_percent = (
            settings.default_markup_percent if markup_percent is None else markup_percent
        )

    def _blank(self) -> dict[str, str]:
        return {h: "" for h in self.headers}

    def _set(self, row: dict[str, str], field_name: str, value: object) -> None:
        header = self.fields.get(field_name)
        if header is not None:
            row[header] = "" if value is None else str(value)

    def _set_prices(self, row: dict[str, str], price: str) -> None:
        for name in PRICE_FIELDS:
            self._set(row, name, price)

    def item_row(self, item: CatalogItem, price: Optional[Decimal]) -> dict[str, str]:
        """Row for a current catalog item."""
        row = self._blank()
        self._set(row, "description", format_description(
            item.brand, item.mpn, item.supplier_description
        ))
        self._set(row, "upc", item.mpn)
        self._set_prices(row, format_price(price))
        self._set(row, "purchase_tax", TAX_CODE)
        self._set(row, "sales_tax", TAX_CODE)
        self._set(row, "manufacturer", item.brand)
        self._set(row, "supplier_part", item.supplier_sku)
        self._set(row, "part_number", item.supplier_sku)
        self._set(row, "uom", self.default_uom)
        self._set(row, "markup_tier1", self.markup_percent)
        return row

    def eol_row(self, candidate: EolCandidate, source_fields: ResolvedHeaders) -> dict[str, str]:
        """
        Row for a discontinued reference item.

        Prices are 0 and the description is prefixed with the EOL marker;
        classification and identity values come from the reference row
        when its snapshot has the matching column.
        """
        row = self._blank()
        for name in EOL_COPIED_FIELDS:
            source = source_fields.get(name)
            if source is not None:
                self._set(row, name, candidate.row.get(source, ""))

        source_description = source_fields.get("description")
        description = candidate.row.get(source_description, "") if source_description else ""
        self._set(row, "description", format_description(EOL_MARKER, description or candidate.key))
        self._set_prices(row, "0")
        self._set(row, "purchase_tax", TAX_CODE)
        self._set(row, "sales_tax", TAX_CODE)
        self._set(row, "uom", self.default_uom)
        return row

    def to_csv(self, rows: Iterable[Mapping[str, str]]) -> str:
        """Serialize rows in template header order."""
        return to_csv_text(self.headers, ([row[h] for h in self.headers] for row in rows))


@dataclass
class ExportResult:
    """A generated catalogue file plus what went into it."""
    filename: str
    content: str
    item_count: int
    eol_count: int
    template_source: str
    warnings: list[str] = field(default_factory=list)


class ExportService:
    """Service for building catalogue exports."""

    def __init__(
        self,
        catalog: Optional[CatalogService] = None,
        prices: Optional[PriceService] = None,
        templates: Optional[TemplateService] = None,
    ):
        self.catalog = catalog or get_catalog_service()
        self.prices = prices or get_price_service()
        self.templates = templates or TemplateService()

    def generate_catalogue(
        self,
        supplier_id: int,
        brands: Optional[list[str]] = None,
        reference_csv: Optional[bytes] = None,
        as_of: Optional[date] = None,
    ) -> ExportResult:
        """
        Build the catalogue CSV for a supplier.

        Args:
            supplier_id: Supplier to export
            brands: Only these brands (None/empty = all)
            reference_csv: Previously exported snapshot to reconcile against
            as_of: Price resolution day (defaults to today)

        Returns:
            ExportResult; a bad reference snapshot adds a warning and skips
            EOL rows instead of failing the export
        """
        as_of = as_of or date.today()
        supplier = self.catalog.get_supplier(supplier_id)
        items = self.catalog.get_active_items(supplier_id, brands)
        current_prices = self.prices.resolve_current_prices(
            [i.supplier_product_id for i in items], as_of
        )

        headers, template_source = self.templates.load_headers()
        builder = ExportRowBuilder(headers)
        rows = [builder.item_row(i, current_prices.get(i.supplier_product_id)) for i in items]

        warnings: list[str] = []
        eol_rows: list[dict[str, str]] = []
        if reference_csv:
            try:
                table = CsvTable.from_bytes(reference_csv)
            except CsvParseError as e:
                logger.warning("reference_snapshot_unreadable", error=e.message)
                warnings.append(f"Reference snapshot skipped: {e.message}")
            else:
                reconciler = EolReconciler(table.headers)
                reference_rows = [r.as_dict() for r in table.rows()]
                if table.errors:
                    warnings.append(f"{len(table.errors)} reference row(s) could not be parsed")
                if not reconciler.is_keyed:
                    warnings.append("Reference snapshot has no part number column")
                candidates = reconciler.find_candidates(reference_rows, current_keys(items))
                eol_rows = [builder.eol_row(c, reconciler.field_headers) for c in candidates]

        content = builder.to_csv(rows + eol_rows)
        filename = export_filename(supplier.name, as_of)

        logger.info(
            "catalogue_export_generated",
            supplier_id=supplier_id,
            brands=brands or None,
            items=len(rows),
            eol=len(eol_rows),
            template_source=template_source,
            filename=filename
        )

        return ExportResult(
            filename=filename,
            content=content,
            item_count=len(rows),
            eol_count=len(eol_rows),
            template_source=template_source,
            warnings=warnings,
        )


# Singleton instance for convenience
_export_service: Optional[ExportService] = None


def get_export_service() -> ExportService:
    """Get or create ExportService instance."""
    global _export_service
    if _export_service is None:
        _export_service = ExportService()
    return _export_service
