"""Runtime settings.

Hook timeouts live here rather than at each call site: a workflow names a
hook kind, and the deployment decides how long that kind may wait.
"""

from __future__ import annotations

import logging
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from pykairos.core.duration import parse_duration
from pykairos.models import RetryPolicy


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables (prefix ``KAIROS_``).

    ``KAIROS_HOOK_TIMEOUTS`` is read as JSON, for example
    ``{"legal-approval": "2h", "manager-review": "30m"}``.
    """

    database_path: str = ""
    default_hook_timeout: str = "1h"
    hook_timeouts: dict[str, str] = Field(default_factory=dict)
    default_max_attempts: int = Field(default=3, ge=1)
    retry_initial_delay_ms: int = Field(default=1000, ge=0)
    retry_max_delay_ms: int = Field(default=30000, ge=0)
    retry_backoff_multiplier: float = Field(default=2.0, ge=1.0)
    app_base_url: str = "http://localhost:3000"
    notify_url: str = ""
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="KAIROS_",
        extra="ignore",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    @field_validator("default_hook_timeout")
    @classmethod
    def _check_duration(cls, value: str) -> str:
        parse_duration(value)
        return value

    @field_validator("hook_timeouts")
    @classmethod
    def _check_durations(cls, value: dict[str, str]) -> dict[str, str]:
        for duration in value.values():
            parse_duration(duration)
        return value

    def retry_policy(self) -> RetryPolicy:
        """Default backoff for steps that don't declare their own."""
        return RetryPolicy(
            max_attempts=self.default_max_attempts,
            initial_delay_ms=self.retry_initial_delay_ms,
            max_delay_ms=self.retry_max_delay_ms,
            backoff_multiplier=self.retry_backoff_multiplier,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


def configure_logging(level: str | int | None = None) -> None:
    """Basic log format for hosts (CLI, uvicorn) that don't configure their own."""
    logging.basicConfig(
        level=level or get_settings().log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
