"""Library configuration using Pydantic Settings.

Environment variables are loaded with the PACKSYNC_ prefix, optionally from a
``.env`` file in the working directory.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from packsync.core.constants import (
    BUNDLE_CACHE_MAX_ENTRIES,
    BUNDLE_CACHE_TTL_SECONDS,
    CONFIG_CACHE_MAX_ENTRIES,
    CONFIG_CACHE_TTL_SECONDS,
    PREVIOUS_MANIFEST_FILENAME,
)


class Settings(BaseSettings):
    """Settings for the sync core and its bundled collaborators.

    Pattern: Pydantic Settings with Environment Variables
    """

    # Service identity (used by the logging context)
    service_name: str = "packsync"
    environment: str = Field(default="development", description="Runtime environment")
    log_level: str = Field(default="INFO", description="Logging level")

    # Remote bundle store (GitHub contents API)
    github_api_url: str = Field(
        default="https://api.github.com",
        description="Base URL of the GitHub REST API",
    )
    github_branch: str = Field(default="main", description="Branch uploads are committed to")
    user_agent: str = Field(default="packsync", description="User-Agent header for API calls")
    http_timeout_seconds: float = Field(default=30.0, gt=0, description="HTTP request timeout")

    # Caches
    cache_dir: Path = Field(
        default=Path.home() / ".packsync" / "cache",
        description="Directory of the durable cache layer",
    )
    durable_cache_enabled: bool = Field(default=True, description="Persist the bundle cache to disk")
    bundle_cache_ttl_seconds: float = Field(default=BUNDLE_CACHE_TTL_SECONDS, ge=0)
    bundle_cache_max_entries: int = Field(default=BUNDLE_CACHE_MAX_ENTRIES, ge=0)
    config_cache_ttl_seconds: float = Field(default=CONFIG_CACHE_TTL_SECONDS, ge=0)
    config_cache_max_entries: int = Field(default=CONFIG_CACHE_MAX_ENTRIES, ge=0)

    # Retry / batching
    retry_max_attempts: int = Field(default=3, ge=1, le=10, description="Attempts per network call")
    retry_base_delay_seconds: float = Field(default=1.0, ge=0, description="Backoff base delay")
    batch_size: int = Field(default=100, ge=1, description="Items processed concurrently per batch")
    batch_delay_seconds: float = Field(default=0.01, ge=0, description="Pause between batches")

    # Local install target
    manifest_filename: str = Field(
        default=PREVIOUS_MANIFEST_FILENAME,
        description="File name of the installed manifest inside the modpack directory",
    )

    model_config = SettingsConfigDict(
        env_prefix="PACKSYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Settings: Library settings singleton
    """
    return Settings()
