"""
Chunk processor - server side of the chunk-processing contract.

Applies one window [offset, offset + limit) of a stored upload to the
catalog: mapped rows are upserted as items keyed on (supplier_id,
supplier_sku) and their prices written from the effective date. Windows
are counted in parsed records (malformed records take a slot too), so the
same offset always addresses the same rows and re-applying a window is
idempotent.
"""

from itertools import islice
from typing import Optional
import structlog

from config import settings
from exceptions import CsvParseError
from models.ingest import ChunkRequest, ChunkResponse
from parsers.csv_parser import CsvRecord, CsvTable
from services.catalog_service import CatalogService, get_catalog_service
from services.column_mapping_service import MappedRow, apply_mapping, verify_mapping
from services.price_service import PriceService, get_price_service
from services.upload_service import UploadService, get_upload_service
from utils.date_utils import parse_effective_date

logger = structlog.get_logger(__name__)

# Uploads whose record count is remembered
RECORD_COUNT_CACHE_SIZE = 256


def item_payload(supplier_id: int, row: MappedRow) -> dict:
    """Store-shaped supplier_product row."""
    return {
        "supplier_id": supplier_id,
        "supplier_sku": row.supplier_sku,
        "supplier_description": row.description,
        "brand": row.brand,
        "mpn": row.mpn,
        "mpn_search_key": row.mpn_search_key,
        "uom": row.uom,
        "pack_size": row.pack_size,
    }


def read_window(table: CsvTable, offset: int, limit: int) -> tuple[list[CsvRecord], int]:
    """
    Records [offset, offset + limit) of a table.

    Stops reading once the window is full. Also returns how many records
    were read, which is the total when the file ends inside the window.
    """
    window: list[CsvRecord] = []
    read = 0
    for record in islice(table.records(), offset + limit):
        if read >= offset:
            window.append(record)
        read += 1
    return window, read


class ChunkProcessorService:
    """
    Applies row windows of uploaded price lists to the catalog.

    Record counts are cached per content digest, so only the first window
    of an upload reads the file to its end.
    """

    def __init__(
        self,
        uploads: Optional[UploadService] = None,
        catalog: Optional[CatalogService] = None,
        prices: Optional[PriceService] = None,
    ):
        self.uploads = uploads or get_upload_service()
        self.catalog = catalog or get_catalog_service()
        self.prices = prices or get_price_service()
        self._record_counts: dict[str, int] = {}

    def process(self, request: ChunkRequest) -> ChunkResponse:
        """
        Apply one window of an upload.

        Args:
            request: Window (uploadId, effectiveDate, offset, limit, mapping)

        Returns:
            ChunkResponse with nextOffset=None and done=True on the last window

        Raises:
            UploadNotFoundError: Unknown upload
            SupplierNotFoundError: Upload's supplier vanished
            MappingIncompleteError: Mapping misses a required field
            CsvParseError: Header line unreadable
            StoreError: Store failures
        """
        upload = self.uploads.get_by_id(request.upload_id)
        supplier = self.catalog.get_supplier(upload.supplier_id)
        effective = parse_effective_date(request.effective_date)

        table = CsvTable.from_bytes(self.uploads.download(upload))
        mapping = verify_mapping(table.headers, request.mapping)

        window, read = read_window(table, request.offset, request.limit)
        total = self._record_counts.get(upload.sha256)
        if total is None:
            total = read + table.count_records()
            self._remember_count(upload.sha256, total)

        errors: list[dict] = []
        by_sku: dict[str, MappedRow] = {}
        for record in window:
            if isinstance(record, CsvParseError):
                errors.append({"line": record.line, "error": record.message})
                continue
            mapped = apply_mapping(record, mapping, supplier.name, settings.default_uom)
            if not mapped.supplier_sku:
                errors.append({"line": record.line, "error": "Missing supplier SKU"})
                continue
            # Later rows of the same SKU win
            by_sku[mapped.supplier_sku] = mapped

        items = self.catalog.upsert_items(
            item_payload(supplier.supplier_id, row) for row in by_sku.values()
        )
        ids = {item.supplier_sku: item.supplier_product_id for item in items}

        prices = {
            ids[sku]: row.price_ex_gst
            for sku, row in by_sku.items()
            if row.price_ex_gst is not None and sku in ids
        }
        self.prices.apply_prices(prices, effective)

        end = request.offset + len(window)
        done = end >= total
        if done:
            self.uploads.mark_parsed(upload.upload_id)

        logger.info(
            "chunk_processed",
            upload_id=upload.upload_id,
            offset=request.offset,
            processed=len(window),
            items=len(by_sku),
            priced=len(prices),
            row_errors=len(errors),
            total_rows=total,
            done=done
        )

        return ChunkResponse(
            processed=len(window),
            next_offset=None if done else end,
            total_rows=total,
            done=done,
            errors=errors,
        )

    def _remember_count(self, digest: str, total: int) -> None:
        if len(self._record_counts) >= RECORD_COUNT_CACHE_SIZE:
            self._record_counts.pop(next(iter(self._record_counts)))
        self._record_counts[digest] = total


# Singleton instance for convenience
_chunk_processor: Optional[ChunkProcessorService] = None


def get_chunk_processor() -> ChunkProcessorService:
    """Get or create ChunkProcessorService instance."""
    global _chunk_processor
    if _chunk_processor is None:
        _chunk_processor = ChunkProcessorService()
    return _chunk_processor
