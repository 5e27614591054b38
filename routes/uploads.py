"""
Price list upload routes.

Preview a CSV's headers and first rows, submit it with a column mapping
(which stores the file and starts a background ingestion run), and list
past uploads.
"""

import json
from datetime import date
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, File, Form, Query, UploadFile, status
from fastapi.responses import JSONResponse
import structlog

from exceptions import AppError, ValidationError
from integrations.ingest_endpoint import ChunkEndpointClient
from models.upload import UploadListResponse, UploadPreviewResponse, UploadSubmitResponse
from parsers.csv_parser import CsvTable, read_header_stream
from services import ingestion_run_registry
from services.catalog_service import get_catalog_service
from services.column_mapping_service import canonical_field_catalogue, header_options, verify_mapping
from services.ingestion_service import BatchIngestionCoordinator
from services.upload_service import get_upload_service

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/uploads", tags=["Uploads"])

PREVIEW_ROWS = 100


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


def parse_mapping_field(raw: str) -> dict[str, Optional[str]]:
    """Decode the mapping form field (JSON object of field -> header)."""
    try:
        mapping = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValidationError(f"mapping is not valid JSON: {e}", code="INVALID_MAPPING")
    if not isinstance(mapping, dict):
        raise ValidationError("mapping must be a JSON object", code="INVALID_MAPPING")
    return {str(k): (None if v is None else str(v)) for k, v in mapping.items()}


# ===================
# UPLOAD ROUTES
# ===================

@router.post("/preview", response_model=UploadPreviewResponse)
async def preview_upload(file: UploadFile = File(..., description="Supplier price list (.csv)")):
    """
    Parse a price list without storing it.

    Returns the header options for mapping, the first rows, the number of
    parsed rows, per-row parse errors and the canonical fields to map.
    """
    try:
        content = await file.read()
        table = CsvTable.from_bytes(content)

        rows = []
        total = 0
        for row in table.rows():
            if total < PREVIEW_ROWS:
                rows.append(row.as_dict())
            total += 1

        logger.info(
            "upload_previewed",
            filename=file.filename,
            headers=len(table.headers),
            rows=total,
            errors=len(table.errors)
        )

        return UploadPreviewResponse(
            filename=file.filename,
            headers=header_options(table.headers),
            rows=rows,
            total_rows=total,
            errors=[err.details for err in table.errors],
            fields=canonical_field_catalogue(),
        )

    except Exception as e:
        return handle_error(e)


@router.post("", response_model=UploadSubmitResponse, status_code=status.HTTP_202_ACCEPTED)
async def submit_upload(
    background_tasks: BackgroundTasks,
    supplier_id: int = Form(..., description="Supplier the price list belongs to"),
    mapping: str = Form(..., description="JSON object: canonical field -> CSV header"),
    effective_date: Optional[date] = Form(None, description="First day prices apply (YYYY-MM-DD)"),
    batch_size: Optional[int] = Form(None, ge=1, description="Rows per chunk request"),
    file: UploadFile = File(..., description="Supplier price list (.csv)"),
):
    """
    Store a price list and start ingesting it.

    The mapping is checked against the file's headers first; an incomplete
    mapping is rejected with MAPPING_INCOMPLETE and nothing is stored.
    Ingestion runs in the background; poll /api/ingest/runs/{run_id}.
    """
    try:
        column_mapping = parse_mapping_field(mapping)
        get_catalog_service().get_supplier(supplier_id)

        verify_mapping(read_header_stream(file.file), column_mapping)

        upload = get_upload_service().submit(supplier_id, file.file, file.filename or "upload.csv")

        coordinator = BatchIngestionCoordinator(ChunkEndpointClient(), batch_size=batch_size)
        run = ingestion_run_registry.start_run(
            coordinator,
            upload.upload_id,
            effective_date or date.today()
        )
        background_tasks.add_task(
            ingestion_run_registry.execute_run,
            coordinator,
            run.run_id,
            column_mapping
        )

        logger.info(
            "ingestion_run_queued",
            run_id=run.run_id,
            upload_id=upload.upload_id,
            reused=upload.reused
        )
        return UploadSubmitResponse(upload=upload, run=run)

    except Exception as e:
        return handle_error(e)


@router.get("", response_model=UploadListResponse)
async def list_uploads(
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(20, ge=1, le=100, description="Items per page"),
    supplier_id: Optional[int] = Query(None, description="Filter by supplier"),
):
    """List uploads, newest first."""
    try:
        uploads, total = get_upload_service().get_all(
            page=page,
            page_size=page_size,
            supplier_id=supplier_id,
        )
        total_pages = (total + page_size - 1) // page_size

        return UploadListResponse(
            data=uploads,
            total=total,
            page=page,
            page_size=page_size,
            total_pages=total_pages,
        )

    except Exception as e:
        return handle_error(e)
