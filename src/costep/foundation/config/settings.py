"""Environment-based configuration using pydantic-settings.

Example:
    >>> from costep.foundation.config import get_settings
    >>> settings = get_settings()
    >>> settings.scheduler.tick_interval_ms
    25.0

    # Or with environment variables:
    # COSTEP_SCHEDULER_TICK_INTERVAL_MS=10
    # COSTEP_LOG_LEVEL=DEBUG
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, NonNegativeInt, PositiveFloat, PositiveInt, computed_field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SchedulerSettings(BaseSettings):
    """Driver pacing."""

    model_config = SettingsConfigDict(
        env_prefix="COSTEP_SCHEDULER_",
        extra="ignore",
    )

    tick_interval_ms: PositiveFloat = Field(default=25.0, description="Timer tick for pull-driven coroutines")
    step_interval_ms: PositiveFloat = Field(default=50.0, description="Minimum spacing between async coroutine steps")
    max_cycles: PositiveInt | None = Field(default=None, description="Stop after this many cycles (None = forever)")


class ProxySettings(BaseSettings):
    """Stream proxy queue sizing."""

    model_config = SettingsConfigDict(
        env_prefix="COSTEP_PROXY_",
        extra="ignore",
    )

    queue_maxsize: NonNegativeInt = Field(default=0, description="Proxy queue bound (0 = unbounded)")

    @computed_field
    @property
    def bounded(self) -> bool:
        return self.queue_maxsize > 0


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(
        env_prefix="COSTEP_LOG_",
        extra="ignore",
    )

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["console", "json", "none"] = "console"

    @field_validator("level", mode="before")
    @classmethod
    def _upper_level(cls, v: str) -> str:
        return v.upper() if isinstance(v, str) else v


class DemoSettings(BaseSettings):
    """Sizes of the bundled demo coroutines."""

    model_config = SettingsConfigDict(
        env_prefix="COSTEP_DEMO_",
        extra="ignore",
    )

    steps: PositiveInt = Field(default=80, description="Steps each demo coroutine runs")
    rendezvous_step: PositiveInt = Field(default=40, description="Step at which mutual coroutines wait for each other")
    slow_delay_ms: PositiveFloat = Field(default=25.0, description="Extra delay of the slow push coroutine")

    @model_validator(mode="after")
    def _check_rendezvous(self) -> DemoSettings:
        if self.rendezvous_step >= self.steps:
            raise ValueError("rendezvous_step must be smaller than steps")
        return self


class CostepSettings(BaseSettings):
    """Root settings.

    Example environment variables:
        COSTEP_DEBUG=true
        COSTEP_SCHEDULER_MAX_CYCLES=3
        COSTEP_PROXY_QUEUE_MAXSIZE=16
        COSTEP_LOG_FORMAT=json
    """

    model_config = SettingsConfigDict(
        env_prefix="COSTEP_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        validate_default=True,
    )

    debug: bool = Field(default=False, description="Enable debug mode")
    environment: Literal["development", "staging", "production"] = "development"

    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)
    proxy: ProxySettings = Field(default_factory=ProxySettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    demo: DemoSettings = Field(default_factory=DemoSettings)

    @field_validator("environment", mode="before")
    @classmethod
    def _normalize_env(cls, v: str) -> str:
        """Normalize environment name to lowercase."""
        return v.lower() if isinstance(v, str) else v

    @computed_field
    @property
    def is_production(self) -> bool:
        return self.environment == "production"


@lru_cache(maxsize=1)
def get_settings() -> CostepSettings:
    """Get the global settings instance (cached)."""
    return CostepSettings()


def clear_settings_cache() -> None:
    """Clear the settings cache so the next get_settings() re-reads the environment."""
    get_settings.cache_clear()
