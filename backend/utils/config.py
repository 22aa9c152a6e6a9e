"""
Rewatch Configuration Module.

Centralizes all configuration settings using Pydantic Settings.
Values come from the environment only; command-line flags override them.
Requires Python 3.11+.
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class WatcherSettings(BaseSettings):
    """File watcher and debounce settings."""

    model_config = SettingsConfigDict(env_prefix="WATCHER_")

    debounce_delay_ms: int = Field(
        default=200, ge=1, le=60_000, description="Quiescence delay before a rerun"
    )
    run_on_start: bool = Field(default=False, description="Run every command once at startup")


class RunnerSettings(BaseSettings):
    """Child process settings."""

    model_config = SettingsConfigDict(env_prefix="RUNNER_")

    poll_interval_ms: int = Field(
        default=5, ge=1, le=1000, description="Exit status polling interval"
    )


class LoggingSettings(BaseSettings):
    """Logging configuration settings."""

    model_config = SettingsConfigDict(env_prefix="LOG_")

    level: str = Field(default="WARNING")
    format: str = Field(default="console")  # "json" or "console"

    @field_validator("format")
    @classmethod
    def check_format(cls, v: str) -> str:
        """Only the two renderers configure_logging knows about are accepted."""
        v = v.lower()
        if v not in ("json", "console"):
            raise ValueError(f"unknown log format: {v}")
        return v


class Settings(BaseSettings):
    """Main application settings aggregating all sub-settings."""

    model_config = SettingsConfigDict(
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = Field(default="rewatch")
    app_version: str = Field(default="0.1.0")

    watcher: WatcherSettings = Field(default_factory=WatcherSettings)
    runner: RunnerSettings = Field(default_factory=RunnerSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @property
    def debounce_delay(self) -> float:
        """Quiescence delay in seconds."""
        return self.watcher.debounce_delay_ms / 1000.0

    @property
    def poll_interval(self) -> float:
        """Exit status polling interval in seconds."""
        return self.runner.poll_interval_ms / 1000.0


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get cached application settings.

    Returns singleton instance of Settings. Call ``get_settings.cache_clear()``
    after changing the environment to reload.
    """
    return Settings()
