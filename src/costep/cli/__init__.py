"""Command-line entry point for the bundled demos.

Usage:
    costep demo pull --cycles 2
    costep demo mutual --steps 20 --log-format json
    python -m costep demo push --log-level DEBUG

Ctrl-C fires the run's cancel token: the driver stops cleanly and the
process exits with code 0. Any fault is reported and exits with code 1.
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import signal
import sys
from typing import Sequence

from costep.demos import DEMOS, ConsoleSink, build_driver
from costep.foundation.config import get_settings
from costep.foundation.errors import CostepFault
from costep.runtime.concurrency import CancelToken
from costep.runtime.observability import configure_logging, get_logger

_log = get_logger("costep.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="costep", description="Cooperative coroutine scheduling demos")
    commands = parser.add_subparsers(dest="command", required=True)

    demo = commands.add_parser("demo", help="Run a demo until Ctrl-C or --cycles are done")
    demo.add_argument("name", choices=sorted(DEMOS), help="Which demo to run")
    demo.add_argument("--cycles", type=int, default=None, help="Stop after N cycles (default: COSTEP_SCHEDULER_MAX_CYCLES)")
    demo.add_argument("--steps", type=int, default=None, help="Steps per coroutine (default: COSTEP_DEMO_STEPS)")
    demo.add_argument("--log-format", choices=["console", "json", "none"], default=None)
    demo.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING, ERROR")
    return parser


async def run_demo(name: str, *, cycles: int | None = None, steps: int | None = None) -> int:
    """Run the named demo to the console with Ctrl-C wired to its cancel token.

    Returns:
        Number of completed cycles
    """
    token = CancelToken()
    loop = asyncio.get_running_loop()
    with contextlib.suppress(NotImplementedError):  # no signal handlers on Windows loops
        loop.add_signal_handler(signal.SIGINT, token.cancel, "interrupted")
    try:
        options = {"steps": steps} if steps is not None else {}
        max_cycles = cycles if cycles is not None else get_settings().scheduler.max_cycles
        driver = build_driver(name, ConsoleSink(), max_cycles=max_cycles, **options)
        return await driver.run(token)
    finally:
        with contextlib.suppress(NotImplementedError):
            loop.remove_signal_handler(signal.SIGINT)


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    configure_logging(
        format=args.log_format or settings.logging.format,
        level=args.log_level or settings.logging.level,
    )

    try:
        cycles = asyncio.run(run_demo(args.name, cycles=args.cycles, steps=args.steps))
    except (CostepFault, ExceptionGroup, ValueError) as exc:
        _log.error("demo failed", demo=args.name, error=str(exc), kind=type(exc).__name__)
        print(f"error: {exc}", file=sys.stderr)
        return 1
    _log.info("demo finished", demo=args.name, cycles=cycles)
    return 0


__all__ = ["build_parser", "main", "run_demo"]
