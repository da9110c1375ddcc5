"""Pull-based coroutines: plain generators advanced one step per timer tick.

The coroutines never suspend on their own. The driver decides when each
step runs by pulling the combined sequence on every tick.
"""

from __future__ import annotations

from collections.abc import Iterator
from functools import partial

from costep.foundation.config import get_settings
from costep.runtime.concurrency import CancelToken, Sink, combine, drive_ticks

from .sinks import Frame


def coroutine_a(steps: int) -> Iterator[Frame]:
    for i in range(steps):
        yield Frame("CoroutineA", 0, "A" * i)


def coroutine_b(steps: int) -> Iterator[Frame]:
    for i in range(steps):
        yield Frame("CoroutineB", 1, "B" * i)


def cycle_for(sink: Sink[Frame], *, steps: int | None = None, interval_ms: float | None = None):
    """One demo cycle: both coroutines interleaved until exhausted."""
    steps = get_settings().demo.steps if steps is None else steps

    async def cycle(cancel: CancelToken | None) -> int:
        sequence = combine(partial(coroutine_a, steps), partial(coroutine_b, steps))
        return await drive_ticks(sequence, sink, interval_ms=interval_ms, cancel=cancel)

    return cycle
