"""Centralized settings management for the event ingestion pipeline."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings powered by pydantic-settings.

    Loads configuration from environment variables and a .env file located
    at the project root.
    """

    # -------------------------------------------------------------------------
    # ENVIRONMENT
    # -------------------------------------------------------------------------
    ENV: str = "development"
    DEBUG: bool = False

    # -------------------------------------------------------------------------
    # LOGGING
    # -------------------------------------------------------------------------
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    # -------------------------------------------------------------------------
    # SOURCE API KEYS
    # -------------------------------------------------------------------------
    TICKETMASTER_API_KEY: SecretStr | None = None

    # -------------------------------------------------------------------------
    # NETWORK & BROWSER
    # -------------------------------------------------------------------------
    REQUEST_TIMEOUT_S: float = Field(default=15.0, gt=0)
    ROBOTS_TIMEOUT_S: float = Field(default=5.0, gt=0)
    ROBOTS_CACHE_TTL_HOURS: float = Field(default=24.0, gt=0)
    BROWSER_HEADLESS: bool = True

    # -------------------------------------------------------------------------
    # PATHS
    # -------------------------------------------------------------------------
    # BASE_DIR points to the project root
    BASE_DIR: Path = Path(__file__).resolve().parents[3]

    INGESTION_CONFIG_PATH: Path = Path(__file__).resolve().parent / "ingestion.yaml"
    CATALOG_OUTPUT_PATH: Path = BASE_DIR / "data" / "catalog.jsonl"

    # -------------------------------------------------------------------------
    # CONFIGURATION
    # -------------------------------------------------------------------------
    model_config = SettingsConfigDict(
        env_file=str(Path(__file__).resolve().parents[3] / ".env"),
        env_file_encoding="utf-8",
        # Allow extra fields in .env but ignore them in the model
        extra="ignore",
    )

    @property
    def robots_cache_ttl_seconds(self) -> float:
        return self.ROBOTS_CACHE_TTL_HOURS * 3600

    def get_ticketmaster_api_key(self) -> str | None:
        """
        Return the Ticketmaster API key as plain text.

        Returns
        -------
        str | None
            The key, or None when not configured.
        """
        if self.TICKETMASTER_API_KEY is None:
            return None
        return self.TICKETMASTER_API_KEY.get_secret_value() or None


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Returns
    -------
    Settings
        The singleton settings instance.
    """
    return Settings()
