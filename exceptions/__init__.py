"""
Custom exceptions module.

Import from here rather than from exceptions.errors.
"""

from exceptions.errors import (
    # Base exceptions
    AppError,
    NotFoundError,
    ValidationError,
    ExternalServiceError,
    StoreError,

    # CSV
    CsvParseError,

    # Mapping
    MappingIncompleteError,

    # Ingestion
    TransportError,
    ChunkTimeoutError,
    IngestionRunNotFoundError,

    # Catalog
    SupplierNotFoundError,
    UploadNotFoundError,

    # Export
    TemplateUnavailableError,
)

__all__ = [
    # Base
    "AppError",
    "NotFoundError",
    "ValidationError",
    "ExternalServiceError",
    "StoreError",

    # CSV
    "CsvParseError",

    # Mapping
    "MappingIncompleteError",

    # Ingestion
    "TransportError",
    "ChunkTimeoutError",
    "IngestionRunNotFoundError",

    # Catalog
    "SupplierNotFoundError",
    "UploadNotFoundError",

    # Export
    "TemplateUnavailableError",
]
