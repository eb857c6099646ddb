"""
Application configuration using Pydantic Settings.
Loads environment variables and provides type-safe configuration.
"""

from decimal import Decimal
from typing import Optional
from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from pathlib import Path

# Get the base directory
BASE_DIR = Path(__file__).resolve().parent.parent

BUCKET_GRANULARITIES = ("day", "iso_week", "week_of_month")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment
    environment: str = Field(default="development", description="Current environment")
    debug: bool = Field(default=False, description="Debug mode")
    log_level: str = Field(default="INFO", description="Root log level when not in debug mode")

    # API Configuration
    api_title: str = Field(default="Billsync")
    api_version: str = Field(default="1.0.0")
    api_prefix: str = Field(default="/api")
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)

    # Backing store; the in-memory store is used when no database URL is set
    database_url: Optional[str] = Field(default=None, description="SQLAlchemy database URL")

    # Jira Configuration
    jira_base_url: str = Field(default="https://example.atlassian.net", description="Jira site URL")
    jira_user_email: str = Field(default="", description="Jira account email")
    jira_api_token: str = Field(default="", description="Jira API token")

    # Timeouts for external calls (seconds)
    tracker_timeout_seconds: float = Field(default=30.0, gt=0)
    store_timeout_seconds: float = Field(default=10.0, gt=0)

    # Billing
    default_hourly_rate: Decimal = Field(default=Decimal("50.00"), ge=0)
    default_tax_rate: Decimal = Field(default=Decimal("0"))
    default_currency: str = Field(default="USD")
    payment_terms_days: int = Field(default=30, ge=0)
    invoice_number_prefix: str = Field(default="INV")

    # Company details printed on invoice PDFs
    company_name: str = Field(default="")
    company_email: str = Field(default="")
    company_address: str = Field(default="")

    # Worklog aggregation and reconciliation
    bucket_granularity: str = Field(default="week_of_month")
    reconciled_entries_billable: bool = Field(default=True)

    @field_validator("bucket_granularity", mode="before")
    @classmethod
    def parse_bucket_granularity(cls, v):
        """Normalize bucket granularity names."""
        if v is None or (isinstance(v, str) and not v.strip()):
            return "week_of_month"
        value = str(v).strip().lower().replace("-", "_")
        if value not in BUCKET_GRANULARITIES:
            raise ValueError(f"bucket_granularity must be one of: {', '.join(BUCKET_GRANULARITIES)}")
        return value

    @field_validator("default_tax_rate")
    @classmethod
    def validate_tax_rate(cls, v):
        """Tax rate is a fraction between 0 and 1."""
        if v < 0 or v > 1:
            raise ValueError("default_tax_rate must be between 0 and 1")
        return v

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment.lower() == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    @property
    def is_testing(self) -> bool:
        """Check if running in testing environment."""
        return self.environment.lower() == "testing"

    @property
    def company(self) -> dict:
        """Company details for invoice documents."""
        return {
            "name": self.company_name,
            "email": self.company_email,
            "address": self.company_address
        }

    @property
    def jira_configured(self) -> bool:
        """Check if Jira credentials are present."""
        return bool(self.jira_user_email and self.jira_api_token)

    def validate_environment(self) -> None:
        """Validate that all required environment variables are set."""
        required_vars = [
            "database_url",
            "jira_user_email",
            "jira_api_token",
        ]

        missing_vars = []
        for var in required_vars:
            if not getattr(self, var, None):
                missing_vars.append(var.upper())

        if missing_vars:
            raise ValueError(
                f"Missing required environment variables: {', '.join(missing_vars)}"
            )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Use this function to get settings throughout the application.
    """
    settings = Settings()

    # Validate environment in production
    if settings.is_production:
        settings.validate_environment()

    return settings
