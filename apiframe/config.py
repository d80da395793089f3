"""Application Configuration — environment-driven settings via pydantic-settings.

Invariants:
    - get_settings() is cached (lru_cache) — single instance per process
    - request_timeout_seconds bounds every endpoint execution (default 10s)

Design Decisions:
    - pydantic-settings over raw os.environ: validation, type coercion, .env file support
    - APIFRAME_ prefix: settings live next to the host application's own env vars
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Framework settings from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env", env_prefix="APIFRAME_", case_sensitive=False,
        extra="ignore",
    )

    # Endpoint execution
    request_timeout_seconds: float = Field(10.0, gt=0)
    max_request_body_bytes: int = Field(1_048_576, gt=0)

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"


@lru_cache
def get_settings() -> Settings:
    return Settings()
