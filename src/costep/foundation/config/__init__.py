"""Configuration management using pydantic-settings."""

from .settings import (
    CostepSettings,
    DemoSettings,
    LoggingSettings,
    ProxySettings,
    SchedulerSettings,
    clear_settings_cache,
    get_settings,
)

__all__ = [
    "CostepSettings",
    "DemoSettings",
    "LoggingSettings",
    "ProxySettings",
    "SchedulerSettings",
    "clear_settings_cache",
    "get_settings",
]
