"""
API route modules.

Each module defines routes for one domain area.
"""

from routes.suppliers import router as suppliers_router
from routes.uploads import router as uploads_router
from routes.ingest import router as ingest_router
from routes.export import router as export_router

__all__ = [
    "suppliers_router",
    "uploads_router",
    "ingest_router",
    "export_router",
]
