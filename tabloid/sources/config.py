"""Configuration for the source registry."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SourcesConfig(BaseSettings):
    """Settings for source seeding and initial hydration."""

    model_config = SettingsConfigDict(
        env_prefix="SOURCES_",
        case_sensitive=False,
        extra="ignore",
    )

    seed_on_init: bool = Field(
        default=True,
        description="Seed default sources and tickers on first init if tables are empty",
    )
    records_per_source: int = Field(
        default=100,
        ge=1,
        le=500,
        description="Records per source returned by the initial load",
    )
    default_records_limit: int = Field(
        default=20,
        ge=1,
        description="Limit used by get_records_since when the caller gives none",
    )
