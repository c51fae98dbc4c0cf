"""Application configuration from environment variables."""

from decimal import Decimal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Ledger settings loaded from environment variables and .env."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database
    database_url: str = Field(
        default="sqlite:///./utility_ledger.db",
        description="SQLAlchemy connection string",
    )
    database_echo: bool = Field(default=False, description="Log SQL queries")

    # Meter reading validation
    high_consumption_threshold: Decimal = Field(
        default=Decimal("50"),
        ge=0,
        description="Consumption (units) above which a reading is flagged as high",
    )

    # Per-tenant serialization
    ledger_max_retries: int = Field(
        default=5,
        ge=1,
        description="Attempts before a contended tenant transaction raises ConcurrencyConflict",
    )
    ledger_retry_backoff: float = Field(
        default=0.05,
        ge=0,
        description="Base delay in seconds between retries (doubled each attempt)",
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_file: str = Field(default="logs/ledger.log", description="Log file path")

    # API
    api_title: str = Field(default="Utility Ledger API", description="API title")
    api_version: str = Field(default="0.1.0", description="API version")


# Global settings instance
settings = Settings()
