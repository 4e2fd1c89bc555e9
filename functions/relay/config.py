"""
Configuration and settings for the media relay.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from shared.firebase_constants import UPLOADS_COLLECTION, USERS_COLLECTION

ONE_GIB = 1024**3


class Settings(BaseSettings):
    """Environment-backed settings for the relay service."""

    model_config = SettingsConfigDict(
        env_prefix="RELAY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Development toggles
    use_in_memory_backends: bool = Field(default=False)

    # Firebase (identity provider + Firestore metadata store)
    firebase_credentials_path: str = Field(default="serviceAccountKey.json")
    firebase_database_url: Optional[str] = Field(default=None)

    # Google Drive (blob store)
    drive_credentials_path: str = Field(default="apikey.json")
    drive_folder_id: str = Field(default="")
    download_host: str = Field(default="drive.google.com")
    video_mime_type: str = Field(default="video/mp4")

    # SQL metadata store; when set it replaces Firestore for upload records.
    database_url: Optional[str] = Field(default=None)

    # Local staging
    staging_dir: str = Field(default="uploads")
    max_upload_bytes: int = Field(default=ONE_GIB, gt=0)
    staging_chunk_size: int = Field(default=1024 * 1024, gt=0)

    # Upper bound on every call to a remote collaborator.
    remote_call_timeout_seconds: float = Field(default=120.0, gt=0)

    cors_origins: list[str] = Field(default_factory=lambda: ["*"])

    uploads_collection: str = Field(default=UPLOADS_COLLECTION)
    users_collection: str = Field(default=USERS_COLLECTION)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
