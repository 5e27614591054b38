"""
Catalogue export routes.

Builds a supplier's catalogue in the export template layout, optionally
reconciled against a previously exported snapshot to append EOL rows.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, File, Form, UploadFile
from fastapi.responses import JSONResponse, Response
import structlog

from exceptions import AppError
from services.export_service import get_export_service

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/export", tags=["Export"])


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
# EXPORT ROUTES
# ===================

@router.post("/catalogue")
def export_catalogue(
    supplier_id: int = Form(..., description="Supplier to export"),
    brands: Optional[list[str]] = Form(None, description="Only these brands (repeat field)"),
    as_of: Optional[date] = Form(None, description="Price day (YYYY-MM-DD), defaults to today"),
    reference: Optional[UploadFile] = File(None, description="Previous export to reconcile against"),
):
    """
    Download the catalogue CSV.

    Rows follow the export template's header order. With a reference
    snapshot, items it lists that are no longer in the catalogue are
    appended as EOL rows (price 0, description prefixed "EOL").
    """
    try:
        reference_csv = reference.file.read() if reference is not None else None
        selected = [b for b in (brands or []) if b.strip()]

        result = get_export_service().generate_catalogue(
            supplier_id=supplier_id,
            brands=selected or None,
            reference_csv=reference_csv,
            as_of=as_of,
        )

        return Response(
            content=result.content.encode("utf-8"),
            media_type="text/csv; charset=utf-8",
            headers={
                "Content-Disposition": f'attachment; filename="{result.filename}"',
                "X-Export-Items": str(result.item_count),
                "X-Export-Eol": str(result.eol_count),
                "X-Template-Source": result.template_source,
            }
        )

    except Exception as e:
        return handle_error(e)
