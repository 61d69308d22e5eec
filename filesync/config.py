"""Library configuration loaded from environment variables."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """filesync settings."""

    model_config = SettingsConfigDict(
        env_prefix="FILESYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    debug: bool = False

    # Remote API
    api_endpoint: str = "https://api.ente.io"
    auth_header: str = "X-Auth-Token"
    request_timeout: float = Field(default=60.0, gt=0)

    # Local store
    database_url: str = "sqlite+aiosqlite:///data/filesync.db"

    # Sync
    diff_page_size: int = Field(default=100, ge=1, le=2500)
    max_diff_pages: int = Field(default=10_000, ge=1)

    # Content cache
    thumbnail_cache_name: str = "thumbs"
