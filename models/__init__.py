"""
Pydantic models for validation and serialization.
"""

from models.base import BaseSchema
from models.catalog import (
    SupplierCreate,
    SupplierResponse,
    CatalogItem,
    PriceRecord,
    BrandListResponse,
)
from models.upload import (
    CanonicalField,
    REQUIRED_FIELDS,
    FIELD_LABELS,
    CanonicalFieldInfo,
    HeaderOption,
    UploadRecord,
    UploadPreviewResponse,
    UploadListResponse,
    UploadSubmitResponse,
)
from models.ingest import (
    RunStatus,
    ChunkRequest,
    ChunkResponse,
    RunState,
)

__all__ = [
    # Base
    "BaseSchema",

    # Catalog
    "SupplierCreate",
    "SupplierResponse",
    "CatalogItem",
    "PriceRecord",
    "BrandListResponse",

    # Upload
    "CanonicalField",
    "REQUIRED_FIELDS",
    "FIELD_LABELS",
    "CanonicalFieldInfo",
    "HeaderOption",
    "UploadRecord",
    "UploadPreviewResponse",
    "UploadListResponse",
    "UploadSubmitResponse",

    # Ingestion
    "RunStatus",
    "ChunkRequest",
    "ChunkResponse",
    "RunState",
]
