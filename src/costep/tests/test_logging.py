"""Tests for structured logging."""

from __future__ import annotations

import io

import orjson
import pytest

from costep.foundation.config import clear_settings_cache
from costep.runtime.observability import (
    BoundLogger,
    ConsoleRenderer,
    JsonRenderer,
    LogEntry,
    NoOpRenderer,
    configure_from_settings,
    configure_logging,
    get_logger,
    log_context,
)


class CaptureRenderer:
    def __init__(self) -> None:
        self.entries: list[LogEntry] = []

    def render(self, entry: LogEntry) -> None:
        self.entries.append(entry)


def test_bind_is_immutable() -> None:
    base = get_logger("costep.test")
    bound = base.bind_component("Channel", size=3)
    assert "component" not in base.context
    assert bound.context == {"logger": "costep.test", "component": "Channel", "size": 3}
    assert "size" not in bound.unbind("size").context


def test_level_filter() -> None:
    capture = CaptureRenderer()
    log = BoundLogger(context={}, _renderer=capture, _level=30)
    log.info("hidden")
    log.warning("shown")
    assert [e.event for e in capture.entries] == ["shown"]


def test_log_context_merges() -> None:
    capture = CaptureRenderer()
    log = BoundLogger(context={"component": "Driver"}, _renderer=capture)
    with log_context(cycle=2):
        log.info("cycle started")
    log.info("after")
    assert capture.entries[0].context == {"cycle": 2, "component": "Driver"}
    assert capture.entries[1].context == {"component": "Driver"}


def test_json_renderer() -> None:
    output = io.StringIO()
    renderer = JsonRenderer(output=output)
    log = BoundLogger(context={"proxy": "A"}, _renderer=renderer)
    log.error("producer faulted", items=3)
    record = orjson.loads(output.getvalue())
    assert record["level"] == "error"
    assert record["event"] == "producer faulted"
    assert record["proxy"] == "A"
    assert record["items"] == 3


def test_console_renderer_without_colors() -> None:
    output = io.StringIO()
    log = BoundLogger(context={}, _renderer=ConsoleRenderer(output=output, colors=False, show_timestamp=False))
    log.warning("slow step", ms=12.5, name="B")
    assert output.getvalue().strip() == '[warning] slow step ms=12.5 name="B"'


def test_configure_logging() -> None:
    assert isinstance(configure_logging(format="json"), JsonRenderer)
    assert isinstance(configure_logging(format="none"), NoOpRenderer)
    with pytest.raises(ValueError):
        configure_logging(format="xml")


def test_configure_from_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("COSTEP_LOG_FORMAT", "json")
    clear_settings_cache()
    assert isinstance(configure_from_settings(), JsonRenderer)
