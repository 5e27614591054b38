"""
Custom exception classes for the application.

Every error raised by a service derives from AppError so routes can turn it
into the standard error envelope with handle_error().
"""

from typing import Optional, Any
from datetime import datetime


class AppError(Exception):
    """
    Base exception for all application errors.

    All custom exceptions inherit from this.

    Attributes:
        code: Error code (e.g., "UPLOAD_NOT_FOUND")
        message: Human-readable message
        status_code: HTTP status code
        details: Additional context
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.utcnow().isoformat()
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to API response format."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
                "timestamp": self.timestamp
            }
        }


class NotFoundError(AppError):
    """Resource not found (404)."""

    def __init__(
        self,
        resource: str,
        identifier: str,
        code: Optional[str] = None
    ):
        super().__init__(
            code=code or f"{resource.upper()}_NOT_FOUND",
            message=f"{resource} not found",
            status_code=404,
            details={"id": identifier}
        )


class ValidationError(AppError):
    """Validation failed (422)."""

    def __init__(
        self,
        message: str,
        code: str = "VALIDATION_ERROR",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=422,
            details=details
        )


class ExternalServiceError(AppError):
    """External service failure (503)."""

    def __init__(
        self,
        service: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code=f"{service.upper()}_ERROR",
            message=message,
            status_code=503,
            details={"service": service, **(details or {})}
        )


class StoreError(AppError):
    """Catalog store operation failed (500)."""

    def __init__(
        self,
        operation: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="STORE_ERROR",
            message=f"Store {operation} failed: {message}",
            status_code=500,
            details={"operation": operation, **(details or {})}
        )


# ===================
# CSV ERRORS
# ===================

class CsvParseError(ValidationError):
    """A CSV row (or the header line) could not be parsed."""

    def __init__(self, line: int, message: str, header: Optional[str] = None):
        self.line = line
        self.header = header
        super().__init__(
            code="CSV_PARSE_ERROR",
            message=f"Line {line}: {message}",
            details={"line": line, "header": header, "error": message}
        )


# ===================
# MAPPING ERRORS
# ===================

class MappingIncompleteError(ValidationError):
    """Required canonical fields are not mapped to a header in the file."""

    def __init__(self, missing: list[str]):
        self.missing = list(missing)
        super().__init__(
            code="MAPPING_INCOMPLETE",
            message=f"Please map required fields: {', '.join(self.missing)}",
            details={"missing": self.missing}
        )


# ===================
# INGESTION ERRORS
# ===================

class TransportError(ExternalServiceError):
    """Chunk endpoint call failed (network error or non-2xx response)."""

    def __init__(
        self,
        message: str,
        offset: Optional[int] = None,
        status: Optional[int] = None
    ):
        self.offset = offset
        self.status = status
        super().__init__(
            service="ingest_endpoint",
            message=message,
            details={"offset": offset, "status": status}
        )


class ChunkTimeoutError(TransportError):
    """Chunk endpoint did not answer within the request timeout."""

    def __init__(self, offset: Optional[int], timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(
            message=f"Chunk request timed out after {timeout_seconds}s",
            offset=offset
        )


class IngestionRunNotFoundError(NotFoundError):
    """Ingestion run not found."""

    def __init__(self, run_id: str):
        super().__init__(
            resource="Ingestion run",
            identifier=run_id,
            code="INGESTION_RUN_NOT_FOUND"
        )


# ===================
# CATALOG ERRORS
# ===================

class SupplierNotFoundError(NotFoundError):
    """Supplier not found."""

    def __init__(self, supplier_id: str):
        super().__init__(
            resource="Supplier",
            identifier=supplier_id,
            code="SUPPLIER_NOT_FOUND"
        )


class UploadNotFoundError(NotFoundError):
    """Upload record not found."""

    def __init__(self, upload_id: str):
        super().__init__(
            resource="Upload",
            identifier=upload_id,
            code="UPLOAD_NOT_FOUND"
        )


# ===================
# EXPORT ERRORS
# ===================

class TemplateUnavailableError(ExternalServiceError):
    """Export template could not be fetched or had no header line."""

    def __init__(self, source: str, reason: str):
        super().__init__(
            service="export_template",
            message=f"Export template unavailable: {reason}",
            details={"source": source}
        )
