"""
Application settings loaded from environment variables.

Uses pydantic-settings for validation and type safety.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from functools import lru_cache
from typing import Optional


DEFAULT_CARRIER_DOMAINS = [
    "maersk", "hlag", "hapag", "cma-cgm", "cmacgm", "msc.com",
    "coscon", "cosco", "oocl", "one-line", "evergreen", "yangming",
    "hmm21", "zim.com", "paborlines", "namsung", "sinokor",
    "heung-a", "kmtc", "wanhai", "tslines", "sitc",
]


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
        description="Supabase service role key (batch jobs prefer this)"
    )

    # ===================
    # BATCH PROCESSING
    # ===================
    batch_page_size: int = Field(
        default=500,
        ge=50,
        le=1000,
        description="Rows fetched per page when scanning large tables"
    )
    batch_max_workers: int = Field(
        default=4,
        ge=1,
        le=32,
        description="Worker threads for per-shipment state recomputation"
    )

    # ===================
    # SHIPMENT LINKING
    # ===================
    carrier_domains: list[str] = Field(
        default_factory=lambda: list(DEFAULT_CARRIER_DOMAINS),
        description="Mail domain fragments that identify a carrier sender"
    )
    internal_domains: list[str] = Field(
        default_factory=lambda: ["intoglo.com", "intoglo.in"],
        description="Our own mail domains (sender here means outbound)"
    )
    carrier_confidence_bonus: int = Field(
        default=10,
        ge=0,
        le=30,
        description="Confidence bonus for documents sent directly by a carrier"
    )
    min_identifier_confidence: int = Field(
        default=40,
        ge=0,
        le=100,
        description="Extracted identifiers below this confidence are ignored"
    )
    max_repair_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="How many times one document may be revoked and re-resolved"
    )

    # ===================
    # WORKFLOW
    # ===================
    workflow_rules_path: Optional[str] = Field(
        None,
        description="Optional JSON file overriding the built-in workflow rule table"
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
        return bool(self.supabase_url and (self.supabase_service_key or self.supabase_key))


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
