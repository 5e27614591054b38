"""
Column mapping — canonical field → source CSV header.

The mapping comes from the operator (UI) and is never persisted. Required
fields (supplier_sku, mpn, description, price_ex_gst) must each point at a
header present in the file; optional fields may stay unmapped and then take
their defaults when a row is applied:

    brand     → supplier display name
    uom       → settings.default_uom ("ea")
    pack_size → 1
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Mapping, Optional, Sequence
import structlog

from exceptions import MappingIncompleteError
from models.upload import (
    CanonicalField,
    CanonicalFieldInfo,
    HeaderOption,
    REQUIRED_FIELDS,
    FIELD_LABELS,
)
from parsers.csv_parser import CsvRow
from utils.text_utils import normalize_key

logger = structlog.get_logger(__name__)

DEFAULT_PACK_SIZE = 1

ResolvedMapping = dict[CanonicalField, str]


@dataclass
class MappedRow:
    """A source row expressed in canonical fields, defaults applied."""
    supplier_sku: str
    mpn: str
    mpn_search_key: str
    description: str
    price_ex_gst: Optional[Decimal]
    brand: str
    uom: str
    pack_size: int


def canonical_field_catalogue() -> list[CanonicalFieldInfo]:
    """Canonical fields in display order, required first."""
    return [
        CanonicalFieldInfo(
            value=f,
            label=FIELD_LABELS[f],
            required=f in REQUIRED_FIELDS,
        )
        for f in CanonicalField
    ]


def header_options(headers: Sequence[str]) -> list[HeaderOption]:
    """Selectable header options; empty headers get a positional label."""
    options = []
    for idx, header in enumerate(headers):
        value = header or ""
        if value.strip() == "":
            options.append(HeaderOption(
                key=f"__EMPTY__{idx}",
                label=f"(Empty header #{idx + 1})",
                value=value,
            ))
        else:
            options.append(HeaderOption(key=f"H_{idx}", label=value, value=value))
    return options


def wire_mapping(mapping: Mapping[str, Optional[str]]) -> dict[str, str]:
    """
    Mapping as sent to the chunk endpoint.

    Only mapped canonical fields travel; empty values and unknown field
    names are dropped.
    """
    known = {f.value for f in CanonicalField}
    result: dict[str, str] = {}
    for name, header in mapping.items():
        if name not in known:
            logger.warning("unknown_canonical_field_dropped", field=name)
            continue
        if header is None or header == "":
            continue
        result[name] = header
    return result


def verify_mapping(
    headers: Sequence[str],
    mapping: Mapping[str, Optional[str]],
) -> ResolvedMapping:
    """
    Check that every required canonical field maps to a header in the file.

    Header comparison is exact and case-sensitive.

    Args:
        headers: Parsed header list of the file
        mapping: canonical field name → header string

    Returns:
        Resolved mapping restricted to fields whose header exists

    Raises:
        MappingIncompleteError: Naming every missing required field
    """
    available = set(headers)
    resolved: ResolvedMapping = {}

    for name, header in wire_mapping(mapping).items():
        field = CanonicalField(name)
        if header in available:
            resolved[field] = header
        else:
            logger.warning(
                "mapped_header_not_in_file",
                field=field.value,
                header=header
            )

    missing = [f.value for f in REQUIRED_FIELDS if f not in resolved]
    if missing:
        logger.info("mapping_incomplete", missing=missing)
        raise MappingIncompleteError(missing)

    return resolved


def parse_price(raw: Optional[str]) -> Optional[Decimal]:
    """
    Parse a price cell.

    "$1,234.50" → Decimal("1234.50"); blank or garbage → None.
    """
    if raw is None:
        return None
    cleaned = str(raw).strip().replace("$", "").replace(",", "").replace(" ", "")
    if not cleaned:
        return None
    try:
        value = Decimal(cleaned)
    except InvalidOperation:
        return None
    if not value.is_finite():
        return None
    return value


def parse_pack_size(raw: Optional[str]) -> int:
    """Positive integer pack size, DEFAULT_PACK_SIZE when blank or invalid."""
    if raw is None or str(raw).strip() == "":
        return DEFAULT_PACK_SIZE
    try:
        value = int(Decimal(str(raw).strip()))
    except (InvalidOperation, ValueError):
        return DEFAULT_PACK_SIZE
    return value if value >= 1 else DEFAULT_PACK_SIZE


def apply_mapping(
    row: CsvRow,
    mapping: ResolvedMapping,
    supplier_name: str,
    default_uom: str = "ea",
) -> MappedRow:
    """Read one source row through the mapping, filling optional defaults."""

    def cell(field: CanonicalField) -> str:
        header = mapping.get(field)
        if header is None:
            return ""
        return row.get(header).strip()

    mpn = cell(CanonicalField.MPN)
    brand = cell(CanonicalField.BRAND) or supplier_name
    uom = cell(CanonicalField.UOM) or default_uom

    if CanonicalField.PACK_SIZE in mapping:
        pack_size = parse_pack_size(cell(CanonicalField.PACK_SIZE))
    else:
        pack_size = DEFAULT_PACK_SIZE

    return MappedRow(
        supplier_sku=cell(CanonicalField.SUPPLIER_SKU),
        mpn=mpn,
        mpn_search_key=normalize_key(mpn),
        description=cell(CanonicalField.DESCRIPTION),
        price_ex_gst=parse_price(cell(CanonicalField.PRICE)),
        brand=brand,
        uom=uom,
        pack_size=pack_size,
    )
