"""Application configuration via environment variables."""

from functools import lru_cache
from typing import Literal, Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Application
    app_version: str = "0.1.0"
    environment: Literal["development", "staging", "production"] = "development"
    log_level: str = "INFO"

    # Upstream VIA Rail tracking feed
    via_feed_url: str = Field(
        default="https://tsimobile.viarail.ca/data/allData.json",
        validation_alias=AliasChoices("VIA_FEED_URL", "VIA_RAIL_FEED_URL"),
    )
    via_user_agent: str = Field(
        default="Catenary",
        validation_alias=AliasChoices("VIA_USER_AGENT"),
    )
    # None keeps the httpx transport default
    fetch_timeout_sec: Optional[float] = Field(default=None, gt=0)

    # Transformation
    operational_timezone: str = "America/Toronto"
    strict_estimates: bool = Field(
        default=False,
        validation_alias=AliasChoices("VIA_STRICT_ESTIMATES", "STRICT_ESTIMATES"),
    )

    # Static reference data (bundled CSVs are used when unset)
    trips_csv_path: Optional[str] = None
    stops_csv_path: Optional[str] = None

    # Poller
    poll_interval_sec: int = Field(default=30, ge=1)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
