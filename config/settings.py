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
    supabase_service_key: Optional[str] = Field(
        None,
        description="Supabase service role key (for admin operations)"
    )

    # ===================
    # SINK REQUESTS
    # ===================
    sink_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        le=300,
        description="Timeout for a single lookup or upsert batch"
    )
    sink_retry_attempts: int = Field(
        default=2,
        ge=1,
        le=5,
        description="Total attempts per batch on timeout (2 = one retry)"
    )
    sink_retry_max_wait_seconds: float = Field(
        default=4.0,
        ge=0,
        le=60,
        description="Upper bound for the jittered backoff between attempts"
    )

    # ===================
    # IMPORT BATCHING
    # ===================
    lookup_batch_size: int = Field(
        default=500,
        ge=1,
        le=2000,
        description="Employee numbers per existing-employee lookup"
    )
    employee_batch_size: int = Field(
        default=500,
        ge=1,
        le=5000,
        description="Employees per upsert batch"
    )
    link_batch_size: int = Field(
        default=1000,
        ge=1,
        le=10000,
        description="Employee-slot links per upsert batch"
    )

    # ===================
    # IMPORT BEHAVIOUR
    # ===================
    assert_existing_entitlements: bool = Field(
        default=False,
        description="Employee table imports also link slots for employees that already existed"
    )
    employee_number_max_length: int = Field(
        default=20,
        ge=1,
        le=100,
        description="Longest header accepted as a stray employee number in gift sheets"
    )
    session_ttl_minutes: int = Field(
        default=30,
        ge=1,
        le=24 * 60,
        description="How long an unfinished import session is kept in memory"
    )
    preview_rows: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Rows shown in the import preview"
    )
    max_upload_mb: int = Field(
        default=20,
        ge=1,
        le=200,
        description="Largest accepted workbook upload"
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
        default=[
            "http://localhost:3000",
            "http://localhost:5173",
        ],
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
        ValidationError: If required env vars are missing or invalid
    """
    return Settings()


# For convenient imports: from config.settings import settings
settings = get_settings()
