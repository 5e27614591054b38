"""
Supplier API routes.

Supplier listing/creation and the brand list used to filter exports.
"""

from fastapi import APIRouter, Query, status
from fastapi.responses import JSONResponse
import structlog

from models.catalog import SupplierCreate, SupplierResponse, BrandListResponse
from services.catalog_service import get_catalog_service
from exceptions import AppError

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/suppliers", tags=["Suppliers"])


# ===================
# EXCEPTION HANDLER
# ===================

def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(
            status_code=e.status_code,
            content=e.to_dict()
        )
    logger.error("unexpected_error", error=str(e), type=type(e).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred"
            }
        }
    )


# ===================
# SUPPLIER ROUTES
# ===================

@router.get("", response_model=list[SupplierResponse])
async def list_suppliers(
    active_only: bool = Query(False, description="Only active suppliers"),
):
    """List suppliers ordered by name."""
    try:
        return get_catalog_service().list_suppliers(active_only=active_only)
    except Exception as e:
        return handle_error(e)


@router.post("", response_model=SupplierResponse, status_code=status.HTTP_201_CREATED)
async def create_supplier(data: SupplierCreate):
    """Create a supplier."""
    try:
        return get_catalog_service().create_supplier(data)
    except Exception as e:
        return handle_error(e)


@router.get("/{supplier_id}/brands", response_model=BrandListResponse)
async def list_brands(supplier_id: int):
    """
    Distinct brands of a supplier's active items.

    Used to narrow a catalogue export to selected brands.
    """
    try:
        service = get_catalog_service()
        service.get_supplier(supplier_id)
        return BrandListResponse(
            supplier_id=supplier_id,
            brands=service.list_brands(supplier_id)
        )
    except Exception as e:
        return handle_error(e)
