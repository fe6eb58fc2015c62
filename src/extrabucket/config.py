"""Bucket configuration using pydantic-settings.

Settings come from ``GCS_``-prefixed environment variables or a ``.env``
file. Which credential set is complete is decided later by
``extrabucket.credentials.resolve_credentials``.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class BucketSettings(BaseSettings):
    """Bucket settings loaded from environment variables.

    Environment variables:
    - GCS_BUCKET_NAME: Bucket to operate on (required)
    - GCS_CLIENT_EMAIL, GCS_PRIVATE_KEY or GCS_PRIVATE_KEY_FILE: service account
    - GCS_CLIENT_ID, GCS_CLIENT_SECRET, GCS_REFRESH_TOKEN: delegated access
    - GCS_LOG_LEVEL: Minimum level for ``configure_logging``
    """

    model_config = SettingsConfigDict(
        env_prefix="GCS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    bucket_name: str

    # Service account
    client_email: str | None = None
    private_key: str | None = None
    private_key_file: Path | None = None

    # Delegated OAuth2
    client_id: str | None = None
    client_secret: str | None = None
    refresh_token: str | None = None

    log_level: str = "INFO"

    @field_validator("bucket_name")
    @classmethod
    def validate_bucket_name(cls, v: str) -> str:
        """Reject blank bucket names."""
        v = v.strip()
        if not v:
            raise ValueError("bucket_name must not be empty")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a known value."""
        allowed = {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"log_level must be one of: {allowed}")
        return v_upper


@lru_cache
def get_settings() -> BucketSettings:
    """Get cached settings instance."""
    return BucketSettings()  # type: ignore[call-arg]
