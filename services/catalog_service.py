"""
Catalog service — suppliers and supplier items in the catalog store.
"""

from typing import Iterable, Optional
import structlog

from config import get_supabase_client, settings
from models.catalog import SupplierCreate, SupplierResponse, CatalogItem
from exceptions import StoreError, SupplierNotFoundError

logger = structlog.get_logger(__name__)

ITEM_COLUMNS = (
    "supplier_product_id, supplier_id, supplier_sku, supplier_description, "
    "is_active, uom, pack_size, brand, mpn, mpn_search_key"
)


class CatalogService:
    """
    Catalog store access.

    Handles:
    - Supplier listing / creation
    - Brand lists per supplier
    - Paged reads of active items for export
    - Item upserts keyed on (supplier_id, supplier_sku)
    """

    def __init__(self):
        self.db = get_supabase_client()
        self.supplier_table = "supplier"
        self.item_table = "supplier_product"
        self.page_size = settings.catalog_page_size

    # ===================
    # SUPPLIERS
    # ===================

    def list_suppliers(self, active_only: bool = False) -> list[SupplierResponse]:
        """All suppliers ordered by name."""
        try:
            query = self.db.table(self.supplier_table).select("supplier_id, name, is_active")
            if active_only:
                query = query.eq("is_active", True)
            result = query.order("name").execute()
        except Exception as e:
            logger.error("list_suppliers_failed", error=str(e))
            raise StoreError("select", str(e))
        return [SupplierResponse(**row) for row in result.data]

    def get_supplier(self, supplier_id: int) -> SupplierResponse:
        """
        Get a single supplier.

        Raises:
            SupplierNotFoundError: If supplier doesn't exist
        """
        try:
            result = (
                self.db.table(self.supplier_table)
                .select("supplier_id, name, is_active")
                .eq("supplier_id", supplier_id)
                .execute()
            )
        except Exception as e:
            logger.error("get_supplier_failed", supplier_id=supplier_id, error=str(e))
            raise StoreError("select", str(e))

        if not result.data:
            raise SupplierNotFoundError(str(supplier_id))
        return SupplierResponse(**result.data[0])

    def create_supplier(self, data: SupplierCreate) -> SupplierResponse:
        """Create an active supplier."""
        logger.info("creating_supplier", name=data.name)
        try:
            result = (
                self.db.table(self.supplier_table)
                .insert({"name": data.name, "is_active": True})
                .execute()
            )
        except Exception as e:
            logger.error("create_supplier_failed", name=data.name, error=str(e))
            raise StoreError("insert", str(e))

        supplier = SupplierResponse(**result.data[0])
        logger.info("supplier_created", supplier_id=supplier.supplier_id)
        return supplier

    # ===================
    # ITEMS
    # ===================

    def list_brands(self, supplier_id: int) -> list[str]:
        """Distinct non-empty brands of a supplier's active items, sorted."""
        try:
            result = (
                self.db.table(self.item_table)
                .select("brand")
                .eq("supplier_id", supplier_id)
                .eq("is_active", True)
                .execute()
            )
        except Exception as e:
            logger.error("list_brands_failed", supplier_id=supplier_id, error=str(e))
            raise StoreError("select", str(e))

        brands = {(row.get("brand") or "").strip() for row in result.data}
        return sorted((b for b in brands if b), key=str.casefold)

    def get_active_items(
        self,
        supplier_id: int,
        brands: Optional[list[str]] = None
    ) -> list[CatalogItem]:
        """
        All active items of a supplier, read page by page.

        Args:
            supplier_id: Supplier to export
            brands: Restrict to these brands (None or empty = all)

        Returns:
            Items ordered by id
        """
        items: list[CatalogItem] = []
        offset = 0

        while True:
            try:
                query = (
                    self.db.table(self.item_table)
                    .select(ITEM_COLUMNS)
                    .eq("supplier_id", supplier_id)
                    .eq("is_active", True)
                )
                if brands:
                    query = query.in_("brand", brands)
                result = (
                    query.order("supplier_product_id")
                    .range(offset, offset + self.page_size - 1)
                    .execute()
                )
            except Exception as e:
                logger.error(
                    "get_active_items_failed",
                    supplier_id=supplier_id,
                    offset=offset,
                    error=str(e)
                )
                raise StoreError("select", str(e))

            page = result.data or []
            items.extend(CatalogItem(**row) for row in page)
            if len(page) < self.page_size:
                break
            offset += self.page_size

        logger.info(
            "active_items_retrieved",
            supplier_id=supplier_id,
            brands=brands or None,
            count=len(items)
        )
        return items

    def upsert_items(self, rows: Iterable[dict]) -> list[CatalogItem]:
        """
        Insert or update items on (supplier_id, supplier_sku).

        Rows are store-shaped dicts; is_active is forced to True since an
        item present in a fresh price list is live again.
        """
        payload = [{**row, "is_active": True} for row in rows]
        if not payload:
            return []

        try:
            result = (
                self.db.table(self.item_table)
                .upsert(payload, on_conflict="supplier_id,supplier_sku")
                .execute()
            )
        except Exception as e:
            logger.error("upsert_items_failed", count=len(payload), error=str(e))
            raise StoreError("upsert", str(e))

        logger.debug("items_upserted", count=len(result.data))
        return [CatalogItem(**row) for row in result.data]


# Singleton instance for convenience
_catalog_service: Optional[CatalogService] = None


def get_catalog_service() -> CatalogService:
    """Get or create CatalogService instance."""
    global _catalog_service
    if _catalog_service is None:
        _catalog_service = CatalogService()
    return _catalog_service
