"""Push-based coroutines: async generators that run themselves.

Each coroutine steps aside whenever the yield signal reports pending
external work; CoroutineB is additionally slowed by its own delay. The
driver paces every coroutine independently.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from functools import partial

from costep.foundation.config import get_settings
from costep.runtime.concurrency import (
    CancelToken,
    DelaySource,
    IdleSource,
    ManualYieldSignal,
    Sink,
    YieldSignal,
    drive_streams,
)

from .sinks import Frame


async def coroutine_a(signal: YieldSignal, steps: int, cancel: CancelToken | None) -> AsyncIterator[Frame]:
    with IdleSource(signal) as idler:
        for i in range(steps):
            await idler.idle(cancel)  # let pending external work run first
            yield Frame("CoroutineA", 0, "A" * i)


async def coroutine_b(
    signal: YieldSignal,
    steps: int,
    slow_delay_ms: float,
    cancel: CancelToken | None,
) -> AsyncIterator[Frame]:
    with IdleSource(signal) as idler, DelaySource(slow_delay_ms) as delay:
        for i in range(steps):
            await idler.idle(cancel)
            frame = Frame("CoroutineB", 1, "B" * i)
            await delay.sleep(cancel=cancel)
            yield frame


def cycle_for(
    sink: Sink[Frame],
    *,
    steps: int | None = None,
    interval_ms: float | None = None,
    slow_delay_ms: float | None = None,
    signal: YieldSignal | None = None,
):
    """One demo cycle: both coroutines run concurrently until exhausted."""
    demo = get_settings().demo
    steps = demo.steps if steps is None else steps
    slow = demo.slow_delay_ms if slow_delay_ms is None else slow_delay_ms
    signal = signal if signal is not None else ManualYieldSignal()

    async def cycle(cancel: CancelToken | None) -> int:
        return await drive_streams(
            partial(coroutine_a, signal, steps),
            partial(coroutine_b, signal, steps, slow),
            sink=sink,
            interval_ms=interval_ms,
            cancel=cancel,
        )

    return cycle
