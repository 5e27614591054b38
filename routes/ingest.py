"""
Ingestion routes.

Run progress and cancellation for background ingestion runs, plus the
chunk-processing endpoint the runs call (one window of rows per request).
"""

from fastapi import APIRouter
from fastapi.responses import JSONResponse
import structlog

from exceptions import AppError
from models.ingest import ChunkRequest, ChunkResponse, RunState
from services import ingestion_run_registry
from services.chunk_processor_service import get_chunk_processor

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/ingest", tags=["Ingestion"])


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
# RUN ROUTES
# ===================

@router.get("/runs/{run_id}", response_model=RunState)
async def get_run(run_id: str):
    """
    Current state of an ingestion run.

    eta_ms is null until the first batch has reported the total row count.
    """
    try:
        return ingestion_run_registry.get_run(run_id)
    except Exception as e:
        return handle_error(e)


@router.post("/runs/{run_id}/cancel", response_model=RunState)
async def cancel_run(run_id: str):
    """
    Stop a run before its next batch.

    A batch already in flight finishes; finished runs are returned unchanged.
    """
    try:
        return ingestion_run_registry.request_cancel(run_id)
    except Exception as e:
        return handle_error(e)


# ===================
# CHUNK ENDPOINT
# ===================

@router.post("/chunk", response_model=ChunkResponse)
def process_chunk(request: ChunkRequest):
    """
    Apply rows [offset, offset + limit) of an upload.

    Body: {uploadId, effectiveDate (DD-MM-YYYY), offset, limit, mapping}
    Response: {ok, processed, nextOffset, totalRows, done}
    """
    try:
        return get_chunk_processor().process(request)
    except Exception as e:
        return handle_error(e)
