"""Tests for the command-line entry point."""

from __future__ import annotations

import pytest

from costep.cli import build_parser, main


def test_parser() -> None:
    args = build_parser().parse_args(["demo", "mutual", "--cycles", "2", "--steps", "10", "--log-format", "json"])
    assert (args.command, args.name, args.cycles, args.steps, args.log_format) == ("demo", "mutual", 2, 10, "json")


def test_parser_rejects_unknown_demo() -> None:
    with pytest.raises(SystemExit):
        build_parser().parse_args(["demo", "sideways"])


def test_pull_demo_runs(capsys: pytest.CaptureFixture[str], monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("COSTEP_SCHEDULER_TICK_INTERVAL_MS", "1")
    assert main(["demo", "pull", "--cycles", "1", "--steps", "3", "--log-format", "none"]) == 0
    lines = capsys.readouterr().out.splitlines()
    assert lines[0] == "--- cycle 1 ---"
    assert lines[1:] == [
        "[0] CoroutineA: ",
        "[1] CoroutineB: ",
        "[0] CoroutineA: A",
        "[1] CoroutineB: B",
        "[0] CoroutineA: AA",
        "[1] CoroutineB: BB",
    ]


def test_mutual_demo_runs(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("COSTEP_SCHEDULER_TICK_INTERVAL_MS", "1")
    assert main(["demo", "mutual", "--cycles", "1", "--steps", "4", "--log-format", "none"]) == 0
