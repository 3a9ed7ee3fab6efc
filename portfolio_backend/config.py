"""
Configuration and settings for the portfolio service.
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
    frontend_url: str = Field(default="http://localhost:3000")
    log_level: str = Field(default="INFO")

    # Firebase (Auth + Firestore)
    firebase_project_id: Optional[str] = Field(default=None)
    # Service-account JSON; application default credentials are used when unset.
    firebase_credentials_path: Optional[str] = Field(default=None)

    # Cloudinary image hosting
    cloudinary_cloud_name: Optional[str] = Field(default=None)
    cloudinary_api_key: Optional[str] = Field(default=None)
    cloudinary_api_secret: Optional[str] = Field(default=None)
    upload_folder: str = Field(default="portfolio-app/users")
    max_upload_bytes: int = Field(default=10 * 1024 * 1024)
    max_upload_files: int = Field(default=10)

    # Development toggles
    use_in_memory_backends: bool = Field(
        default=False,
        validation_alias="PORTFOLIO_USE_IN_MEMORY_BACKENDS",
    )

    @property
    def cloudinary_configured(self) -> bool:
        return bool(
            self.cloudinary_cloud_name
            and self.cloudinary_api_key
            and self.cloudinary_api_secret
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
