"""
Business logic services.

Each service handles one domain area.
"""

from services.catalog_service import CatalogService, get_catalog_service
from services.price_service import PriceService, get_price_service
from services.upload_service import UploadService, get_upload_service
from services.chunk_processor_service import ChunkProcessorService, get_chunk_processor
from services.ingestion_service import BatchIngestionCoordinator
from services.template_service import TemplateService
from services.export_service import ExportService, get_export_service

__all__ = [
    "CatalogService",
    "get_catalog_service",
    "PriceService",
    "get_price_service",
    "UploadService",
    "get_upload_service",
    "ChunkProcessorService",
    "get_chunk_processor",
    "BatchIngestionCoordinator",
    "TemplateService",
    "ExportService",
    "get_export_service",
]
