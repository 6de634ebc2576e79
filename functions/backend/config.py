"""
Configuration and settings for the fleet maintenance functions.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings shared by every function."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    # Cloud Functions placement
    region: str = Field(default="us-central1", validation_alias="FUNCTIONS_REGION")
    cpu: float = Field(default=0.25, validation_alias="FUNCTIONS_CPU")

    # Realtime Database; falls back to the databaseURL in FIREBASE_CONFIG
    database_url: Optional[str] = Field(
        default=None, validation_alias="FIREBASE_DATABASE_URL"
    )

    # Scheduled reports
    report_timezone: str = Field(
        default="Asia/Colombo", validation_alias="REPORT_TIMEZONE"
    )

    # Sequential ids, e.g. GN0001
    id_sequence_width: int = Field(default=4, validation_alias="ID_SEQUENCE_WIDTH")

    list_limit_max: int = Field(default=500, validation_alias="LIST_LIMIT_MAX")

    # Development toggles
    use_in_memory_backends: bool = Field(
        default=False, validation_alias="FLEET_USE_IN_MEMORY_BACKENDS"
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
