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
    supabase_url: Optional[str] = Field(
        None,
        description="Supabase project URL"
    )
    supabase_key: Optional[str] = Field(
        None,
        description="Supabase anon/public key"
    )
    supabase_service_key: Optional[str] = Field(
        None,
        description="Supabase service role key (for staging writes from webhooks)"
    )

    # ===================
    # STAGING STORE
    # ===================
    staging_backend: str = Field(
        default="memory",
        pattern="^(memory|supabase)$",
        description="Where staged imports live: process memory or a Supabase table"
    )
    staging_table: str = Field(
        default="pending_imports",
        description="Supabase table holding staged imports"
    )
    staging_retention_minutes: int = Field(
        default=24 * 60,
        ge=1,
        le=60 * 24 * 30,
        description="Age after which abandoned staged imports are evicted"
    )

    # ===================
    # DOCUMENT EXTRACTION
    # ===================
    extraction_service_url: Optional[str] = Field(
        None,
        description="Endpoint of the external document extraction service"
    )
    extraction_api_key: Optional[str] = Field(
        None,
        description="Bearer token sent to the extraction service"
    )
    extraction_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        le=300,
        description="HTTP timeout for the dispatch call (not for extraction itself)"
    )

    # ===================
    # POLLING
    # ===================
    poll_interval_seconds: float = Field(
        default=2.0,
        ge=0,
        le=60,
        description="Seconds between staging store checks"
    )
    poll_max_attempts: int = Field(
        default=30,
        ge=1,
        le=600,
        description="Checks before an import is reported as timed out"
    )

    # ===================
    # IMPORTS
    # ===================
    transactions_table: str = Field(
        default="transactions",
        description="Supabase table receiving committed transactions"
    )
    max_upload_mb: int = Field(
        default=20,
        ge=1,
        le=100,
        description="Largest accepted upload"
    )
    dropbox_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        le=300,
        description="HTTP timeout when fetching JSON exports from Dropbox"
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

    # ===================
    # COMPUTED PROPERTIES
    # ===================
    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"

    @property
    def supabase_configured(self) -> bool:
        """Check if Supabase credentials are present."""
        return bool(self.supabase_url and self.supabase_key)

    @property
    def extraction_configured(self) -> bool:
        """Check if the extraction service endpoint is set."""
        return bool(self.extraction_service_url)

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload.

    Returns:
        Settings: Application settings

    Raises:
        ValidationError: If env vars are invalid
    """
    return Settings()


# For convenient imports: from config.settings import settings
settings = get_settings()
