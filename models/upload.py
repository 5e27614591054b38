"""
Upload and column-mapping schemas.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, computed_field

from models.base import BaseSchema
from models.ingest import RunState


class CanonicalField(str, Enum):
    """Semantic fields a price list column can be mapped to."""
    SUPPLIER_SKU = "supplier_sku"
    MPN = "mpn"
    DESCRIPTION = "description"
    PRICE = "price_ex_gst"
    BRAND = "brand"
    UOM = "uom"
    PACK_SIZE = "pack_size"


REQUIRED_FIELDS: tuple[CanonicalField, ...] = (
    CanonicalField.SUPPLIER_SKU,
    CanonicalField.MPN,
    CanonicalField.DESCRIPTION,
    CanonicalField.PRICE,
)

FIELD_LABELS: dict[CanonicalField, str] = {
    CanonicalField.SUPPLIER_SKU: "Supplier SKU",
    CanonicalField.MPN: "Manufacturer Part Number",
    CanonicalField.DESCRIPTION: "Product Description",
    CanonicalField.PRICE: "Price ex GST",
    CanonicalField.BRAND: "Brand (optional — defaults to supplier name)",
    CanonicalField.UOM: "Unit of Measure (optional)",
    CanonicalField.PACK_SIZE: "Pack Size (optional)",
}


class CanonicalFieldInfo(BaseModel):
    """Canonical field as offered to the mapping UI."""
    value: CanonicalField
    label: str
    required: bool


class HeaderOption(BaseModel):
    """
    A source header as offered to the mapping UI.

    Empty headers get a synthetic key/label so they stay selectable; value
    is always the literal header string.
    """
    key: str
    label: str
    value: str


class UploadRecord(BaseSchema):
    """
    Upload metadata.

    One logical record per (supplier, sha256). reused=True when a
    submission resolved to an existing record.
    """

    upload_id: int = Field(..., description="Upload id")
    supplier_id: int = Field(..., description="Supplier the file belongs to")
    filename: str = Field(..., description="Original filename")
    sha256: str = Field(..., min_length=64, max_length=64, description="Content digest (hex)")
    parsed_ok: bool = Field(False, description="True once every row window was processed")
    uploaded_at: Optional[datetime] = Field(None, description="When the record was created")
    reused: bool = Field(False, description="Submission matched an existing upload")

    @computed_field
    @property
    def storage_path(self) -> str:
        return f"{self.supplier_id}/{self.sha256}.csv"


class UploadPreviewResponse(BaseModel):
    """Parsed header list + first rows of a candidate upload."""

    filename: Optional[str] = None
    headers: list[HeaderOption]
    rows: list[dict[str, Any]]
    total_rows: int
    errors: list[dict[str, Any]] = Field(default_factory=list)
    fields: list[CanonicalFieldInfo]


class UploadListResponse(BaseModel):
    """Paginated upload list."""

    data: list[UploadRecord]
    total: int
    page: int
    page_size: int
    total_pages: int


class UploadSubmitResponse(BaseModel):
    """Stored upload plus the ingestion run started for it."""

    upload: UploadRecord
    run: RunState
