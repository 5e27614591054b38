"""
Application settings loaded from environment variables.

Uses pydantic-settings for validation and type safety.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """
    Application settings.

    All values loaded from .env file or environment variables.
    Validation happens automatically on startup.
    """

    model_config = SettingsConfigDict(
        env_file=(".env", "../.env"),  # Check current dir, then parent
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"  # Ignore extra env vars
    )

    # ===================
    # SUPABASE
    # ===================
    supabase_url: str = Field(
        ...,
        description="Supabase project URL"
    )
    supabase_key: str = Field(
        ...,
        description="Supabase anon/public key"
    )
    upload_bucket: str = Field(
        default="price_uploads",
        description="Storage bucket holding raw price list CSVs"
    )

    # ===================
    # INGESTION
    # ===================
    ingest_endpoint_url: Optional[str] = Field(
        None,
        description="Chunk-processing endpoint (defaults to the ingest-upload edge function)"
    )
    ingest_batch_size: int = Field(
        default=70,
        ge=1,
        le=5000,
        description="Rows per chunk request"
    )
    ingest_request_timeout_seconds: float = Field(
        default=140.0,
        gt=0,
        le=600,
        description="Timeout for a single chunk request"
    )
    ingest_retry_backoff_seconds: float = Field(
        default=0.8,
        ge=0,
        le=30,
        description="Pause before the single retry of a failed chunk"
    )

    # ===================
    # CATALOG / EXPORT
    # ===================
    price_lookup_chunk_size: int = Field(
        default=400,
        ge=1,
        le=1000,
        description="Item ids per price lookup query"
    )
    catalog_page_size: int = Field(
        default=1000,
        ge=1,
        le=10000,
        description="Rows per catalog page when reading items for export"
    )
    export_template_url: Optional[str] = Field(
        None,
        description="URL of the catalogue import template CSV (first line = headers)"
    )
    default_uom: str = Field(
        default="ea",
        description="Unit token used when UOM is unmapped and on every export row"
    )
    default_markup_percent: int = Field(
        default=25,
        ge=0,
        le=1000,
        description="Markup written to the tier 1 markup column on export"
    )

    # ===================
    # APP SETTINGS
    # ===================
    environment: str = Field(
        default="development",
        pattern="^(development|staging|production)$",
        description="Application environment"
    )
    debug: bool = Field(
        default=True,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Logging level"
    )
    api_host: str = Field(
        default="0.0.0.0",
        description="API host"
    )
    api_port: int = Field(
        default=8000,
        ge=1000,
        le=65535,
        description="API port"
    )
    cors_origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        description="Origins allowed to call the API (JSON list in env)"
    )

    # ===================
    # COMPUTED PROPERTIES
    # ===================
    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"

    @property
    def chunk_endpoint_url(self) -> str:
        """Resolved chunk-processing endpoint URL."""
        if self.ingest_endpoint_url:
            return self.ingest_endpoint_url
        return f"{self.supabase_url.rstrip('/')}/functions/v1/ingest-upload"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload.

    Returns:
        Settings: Application settings

    Raises:
        ValidationError: If required env vars are missing or invalid
    """
    return Settings()


# For convenient imports: from config.settings import settings
settings = get_settings()
