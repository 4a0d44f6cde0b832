"""Application settings via Pydantic BaseSettings."""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from vislens.constants import (
    DEFAULT_BREAKPOINTS,
    DEFAULT_DIFF_COLOR,
    DEFAULT_SETTLE_MS,
    DEFAULT_THRESHOLD,
    DEFAULT_VIEWPORT_HEIGHT,
    DEFAULT_VIEWPORT_WIDTH,
    RESPONSIVE_VIEWPORT_HEIGHT,
)
from vislens.exceptions import ConfigError


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="VISLENS_", env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    # Logging
    log_level: str = "INFO"
    json_logs: bool = False

    # Storage
    artifacts_dir: str = "~/.vislens"
    use_s3: bool = False
    s3_bucket: str | None = None
    s3_endpoint_url: str | None = None
    s3_access_key_id: str | None = None
    s3_secret_access_key: str | None = None
    s3_region: str = "auto"
    save_artifacts: bool = True
    lock_timeout_seconds: float = Field(default=10.0, ge=0)

    # Diffing
    threshold: float = Field(default=DEFAULT_THRESHOLD, ge=0.0, le=1.0)
    include_anti_aliasing: bool = False
    diff_color: tuple[int, int, int] = DEFAULT_DIFF_COLOR

    # Capture
    viewport_width: int = DEFAULT_VIEWPORT_WIDTH
    viewport_height: int = DEFAULT_VIEWPORT_HEIGHT
    responsive_height: int = RESPONSIVE_VIEWPORT_HEIGHT
    breakpoints: list[int] = list(DEFAULT_BREAKPOINTS)
    settle_ms: int = DEFAULT_SETTLE_MS
    headless: bool = True


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""
    settings = Settings()
    if settings.use_s3 and not settings.s3_bucket:
        raise ConfigError("VISLENS_USE_S3=true requires VISLENS_S3_BUCKET", operation="settings")
    return settings
