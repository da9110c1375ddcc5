"""Shared fixtures: fresh settings and silent logging for every test."""

from __future__ import annotations

from collections.abc import Iterator

import pytest

from costep.foundation.config import clear_settings_cache
from costep.runtime.observability import configure_logging


@pytest.fixture(autouse=True)
def clean_environment() -> Iterator[None]:
    """Reset cached settings and silence log output around each test."""
    clear_settings_cache()
    configure_logging(format="none", level="DEBUG")
    yield
    clear_settings_cache()


class FakeClock:
    """Monotonic clock under test control. Returns seconds."""

    def __init__(self, start: float = 100.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance_ms(self, ms: float) -> None:
        self.now += ms / 1000.0


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
