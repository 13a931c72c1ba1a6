"""
Configuration and settings for the job board service.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8000)

    # Firebase project (service account, Realtime Database, Storage)
    firebase_credentials: Optional[str] = Field(default=None)
    firebase_database_url: Optional[str] = Field(default=None)
    firebase_storage_bucket: Optional[str] = Field(default=None)
    # Web API key for the Identity Toolkit REST endpoints (password sign-in)
    firebase_web_api_key: Optional[str] = Field(default=None)
    identity_request_timeout: float = Field(default=30.0)

    # Development toggles
    use_in_memory_backends: bool = Field(
        default=False, validation_alias="JOBBOARD_USE_IN_MEMORY_BACKENDS"
    )
    log_level: str = Field(default="INFO")

    # Uploads and signed URLs
    asset_url_ttl_days: int = Field(default=3650)
    download_url_ttl_minutes: int = Field(default=15)
    max_upload_bytes: int = Field(default=10 * 1024 * 1024)

    @property
    def firebase_configured(self) -> bool:
        return bool(
            self.firebase_credentials
            and self.firebase_database_url
            and self.firebase_storage_bucket
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
