"""Application configuration from environment variables."""

from decimal import Decimal
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database
    database_url: str = Field(
        default="sqlite:///./condo_finance.db",
        description="SQLAlchemy connection string",
    )
    database_echo: bool = Field(default=False, description="Log SQL queries")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_file: str = Field(default="logs/condo_finance.log", description="Log file path")

    # Formatting
    locale: str = Field(default="pt_BR", description="Babel locale for money and dates")

    # Late charges
    monthly_interest_rate: Decimal = Field(
        default=Decimal("0.01"), description="Simple interest per month on overdue charges"
    )
    late_penalty_rate: Decimal = Field(
        default=Decimal("0.02"), description="Flat penalty applied once a charge is overdue"
    )

    # Reports
    reserve_fund_category: str = Field(
        default="reserve_fund", description="Payment category tracked as the reserve fund"
    )
    default_page_size: int = Field(default=10, description="Default listing page size")
    max_page_size: int = Field(default=100, description="Upper bound for listing page size")
    dashboard_top_n: int = Field(default=5, description="Rows shown in dashboard top lists")


@lru_cache()
def get_settings() -> Settings:
    """Return cached Settings instance to avoid re-reading .env on every access."""
    return Settings()


__all__ = ["Settings", "get_settings"]
