"""Engine settings loaded from the environment.

``EngineSettings`` holds the tunables shared by every connector and job:
HTTP timeout, default page size, the pagination safety bound, retry
backoff and logging. Values come from ``SAASBACKUP_*`` environment
variables or a ``.env`` file; unknown variables are ignored.

Examples:
    >>> from saasbackup.core.settings import EngineSettings
    >>> EngineSettings(max_retries=5).max_retries
    5

    Environment override::

        SAASBACKUP_HTTP_TIMEOUT_SECONDS=10 saasbackup run source.json ...

Tags:
    settings, configuration, pydantic, environment, saasbackup
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineSettings(BaseSettings):
    """Tunables for connectors, retry policy and logging."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="SAASBACKUP_",
        extra="ignore",
    )

    # HTTP
    http_timeout_seconds: float = Field(default=30.0, gt=0, description="Per-request timeout")
    user_agent: str = Field(default="saasbackup/0.1", description="User-Agent sent to platforms")

    # Pagination
    default_page_size: int = Field(default=100, ge=1, description="Page size when an endpoint sets none")
    max_pages: int = Field(default=10_000, ge=1, description="Safety bound on pages per endpoint fetch")

    # Retry
    max_retries: int = Field(default=3, ge=0, description="Retries per endpoint for transient errors")
    retry_base_delay: float = Field(default=1.0, ge=0, description="First backoff delay in seconds")
    retry_max_delay: float = Field(default=60.0, ge=0, description="Backoff ceiling in seconds")
    retry_jitter: bool = True

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    json_logs: bool | None = Field(default=None, description="Force JSON (True) or console (False) logs")

    data_dir: Path = Field(
        default_factory=lambda: Path.home() / ".saasbackup",
        description="Default root for JSONL output and the watermark database",
    )


@lru_cache(maxsize=1)
def get_settings() -> EngineSettings:
    """Process-wide settings, read once."""
    return EngineSettings()
