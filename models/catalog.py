"""
Catalog schemas: suppliers, supplier items and their price history.
"""

from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from models.base import BaseSchema


class SupplierCreate(BaseSchema):
    """Create a new supplier."""

    name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Supplier display name",
        examples=["Acme Electrical"]
    )


class SupplierResponse(BaseSchema):
    """Supplier identity + display name."""

    supplier_id: int = Field(..., description="Supplier id")
    name: str = Field(..., description="Display name")
    is_active: bool = Field(True, description="Whether supplier is active")


class CatalogItem(BaseSchema):
    """
    One supplier catalog item.

    Owned by exactly one supplier. Never hard-deleted by ingestion;
    is_active=False marks a logical delete.
    """

    supplier_product_id: int = Field(..., description="Item id")
    supplier_id: int = Field(..., description="Owning supplier")
    supplier_sku: Optional[str] = Field(None, description="Supplier SKU")
    supplier_description: Optional[str] = Field(None, description="Supplier description")
    brand: Optional[str] = Field(None, description="Brand / manufacturer")
    mpn: Optional[str] = Field(None, description="Manufacturer part number")
    mpn_search_key: Optional[str] = Field(None, description="Normalized MPN")
    uom: str = Field("ea", description="Unit of measure")
    pack_size: int = Field(1, ge=1, description="Units per pack")
    is_active: bool = Field(True, description="Whether item is active")


class PriceRecord(BaseModel):
    """
    Price valid over the half-open interval [start_date, end_date).

    end_date=None means the interval is open (still current).
    """

    price_id: int
    supplier_product_id: int
    price_ex_gst: Decimal
    start_date: date
    end_date: Optional[date] = None

    def contains(self, day: date) -> bool:
        """True if this record is authoritative on day."""
        if day < self.start_date:
            return False
        return self.end_date is None or day < self.end_date


class BrandListResponse(BaseModel):
    """Distinct brands carried by a supplier."""

    supplier_id: int
    brands: list[str]
