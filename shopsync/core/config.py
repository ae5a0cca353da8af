"""Core configuration settings.

Centralized configuration using Pydantic Settings for environment
variable management with sensible defaults.
"""

import logging
import os
from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from shopsync.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Per data object behaviour (schedules, dependencies, sheet names) lives in
    ``shopsync.core.data_objects``; this class only holds process-wide knobs
    and credentials.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # =========================================================================
    # Environment Detection
    # =========================================================================

    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        alias="ENVIRONMENT",
    )

    # Application
    app_name: str = "ShopSync"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"

    # Server (webhook ingress + status API)
    host: str = "0.0.0.0"
    port: int = Field(default=3000, alias="WEBHOOK_PORT")

    # Database
    database_url: str = "sqlite:///./data/shopsync.db"
    slow_query_threshold_ms: float = Field(default=500.0, alias="SLOW_QUERY_THRESHOLD_MS")
    enable_query_logging: bool = Field(default=False, alias="ENABLE_QUERY_LOGGING")

    # =========================================================================
    # Sync Engine
    # =========================================================================

    # demo mode uses the fast schedules and wipes engine tables on start
    run_mode: Literal["demo", "production"] = Field(default="demo", alias="SYNC_MODE")
    max_concurrent_jobs: int = Field(default=1, alias="MAX_CONCURRENT_JOBS")
    heartbeat_interval_seconds: int = Field(default=60, alias="HEARTBEAT_INTERVAL_SECONDS")
    stuck_threshold_seconds: int = Field(default=600, alias="STUCK_THRESHOLD_SECONDS")
    batch_size: int = Field(default=10, alias="SYNC_BATCH_SIZE")
    shutdown_timeout_seconds: float = Field(default=30.0, alias="SHUTDOWN_TIMEOUT_SECONDS")
    manual_sync_timeout_seconds: float = Field(default=300.0, alias="MANUAL_SYNC_TIMEOUT_SECONDS")
    webhook_retention_days: int = Field(default=7, alias="WEBHOOK_RETENTION_DAYS")

    # Optional JSON file with per data object overrides
    data_objects_file: str | None = Field(default=None, alias="DATA_OBJECTS_FILE")

    # =========================================================================
    # Shopify
    # =========================================================================

    shopify_store_domain: str | None = Field(default=None, alias="SHOPIFY_STORE_DOMAIN")
    shopify_client_id: str | None = Field(default=None, alias="SHOPIFY_CLIENT_ID")
    shopify_client_secret: str | None = Field(default=None, alias="SHOPIFY_CLIENT_SECRET")
    shopify_api_version: str = Field(default="2026-01", alias="SHOPIFY_API_VERSION")
    shopify_default_location: str | None = Field(default=None, alias="SHOPIFY_DEFAULT_LOCATION")
    shopify_request_timeout: float = Field(default=30.0, alias="SHOPIFY_REQUEST_TIMEOUT")

    # Shared secret used to sign inbound webhooks
    webhook_secret: str | None = Field(default=None, alias="WEBHOOK_SECRET")
    # Public base URL used when registering webhook subscriptions
    webhook_base_url: str | None = Field(default=None, alias="WEBHOOK_BASE_URL")

    # =========================================================================
    # Google Sheets
    # =========================================================================

    google_sheets_spreadsheet_id: str | None = Field(default=None, alias="GOOGLE_SHEETS_SPREADSHEET_ID")
    google_service_account_file: str | None = Field(default=None, alias="GOOGLE_SERVICE_ACCOUNT_FILE")

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("environment", mode="before")
    @classmethod
    def detect_environment(cls, v: str | None) -> str:
        """Auto-detect environment from common environment variables."""
        if v:
            return v.lower()

        if os.getenv("PRODUCTION") or os.getenv("PROD"):
            return "production"
        if os.getenv("STAGING"):
            return "staging"

        return "development"

    @field_validator("run_mode", mode="before")
    @classmethod
    def normalize_run_mode(cls, v: str) -> str:
        """Accept DEMO/Production etc."""
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("shopify_store_domain")
    @classmethod
    def strip_store_domain(cls, v: str | None) -> str | None:
        """Store the bare ``shop.myshopify.com`` host."""
        if not v:
            return v
        return v.replace("https://", "").replace("http://", "").rstrip("/")

    @model_validator(mode="after")
    def validate_engine_limits(self):
        """Reject nonsensical engine limits."""
        if self.max_concurrent_jobs < 1:
            raise ValueError("MAX_CONCURRENT_JOBS must be at least 1")
        if self.batch_size < 1:
            raise ValueError("SYNC_BATCH_SIZE must be at least 1")
        if self.heartbeat_interval_seconds < 1:
            raise ValueError("HEARTBEAT_INTERVAL_SECONDS must be at least 1")
        return self

    @model_validator(mode="after")
    def validate_debug_mode(self):
        """Prevent debug mode in production."""
        if self.environment == "production" and self.debug:
            logger.error(
                "DEBUG mode cannot be enabled in production! "
                "Set DEBUG=false or ENVIRONMENT=development"
            )
            raise ValueError("DEBUG cannot be True in production environment")
        return self

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def is_demo(self) -> bool:
        """Check if the engine runs with demo schedules."""
        return self.run_mode == "demo"

    @property
    def is_shopify_configured(self) -> bool:
        """Check if Shopify credentials are present."""
        return all([
            self.shopify_store_domain,
            self.shopify_client_id,
            self.shopify_client_secret,
        ])

    @property
    def is_sheets_configured(self) -> bool:
        """Check if Google Sheets credentials are present."""
        return all([
            self.google_sheets_spreadsheet_id,
            self.google_service_account_file,
        ])

    @property
    def effective_log_level(self) -> str:
        """Demo mode always logs at DEBUG."""
        return "DEBUG" if self.is_demo or self.debug else self.log_level.upper()


def validate_remote_credentials(settings: Settings) -> None:
    """Raise ConfigurationError listing every missing credential."""
    problems = []
    if not settings.shopify_store_domain:
        problems.append("SHOPIFY_STORE_DOMAIN is required")
    if not settings.shopify_client_id:
        problems.append("SHOPIFY_CLIENT_ID is required")
    if not settings.shopify_client_secret:
        problems.append("SHOPIFY_CLIENT_SECRET is required")
    if not settings.google_sheets_spreadsheet_id:
        problems.append("GOOGLE_SHEETS_SPREADSHEET_ID is required")
    if not settings.google_service_account_file:
        problems.append("GOOGLE_SERVICE_ACCOUNT_FILE is required")
    if problems:
        raise ConfigurationError("Missing credentials", problems)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
