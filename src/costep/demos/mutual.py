"""Mutual coroutines: each one reads the other's live output stream.

CoroutineA shows a throbber until CoroutineB reaches the rendezvous step,
then runs its own steps. CoroutineB pauses at the rendezvous step until
CoroutineA catches up. Neither stream exists before its producer starts, so
both are reached through ``StreamProxy`` instances created up front.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from functools import partial

from costep.foundation.config import get_settings
from costep.runtime.concurrency import (
    CancelToken,
    RateLimiter,
    Sink,
    StreamProxy,
    StreamSource,
    deliver,
    run_mutual,
)

from .sinks import Frame

THROBBER = "-\\|/"


async def coroutine_a(
    peer: StreamSource[int],
    sink: Sink[Frame],
    steps: int,
    rendezvous: int,
    interval_ms: float,
    cancel: CancelToken | None,
) -> AsyncIterator[int]:
    stream_b = await peer.resolve(cancel)
    with RateLimiter() as limiter:
        async for step_b in stream_b:
            if step_b >= rendezvous:
                break
            await deliver(sink, Frame("CoroutineA", 0, THROBBER[step_b % 4]))
            await limiter.wait(interval_ms, cancel)

        for i in range(steps):
            await deliver(sink, Frame("CoroutineA", 0, "A" * i))
            await limiter.wait(interval_ms, cancel)
            yield i


async def coroutine_b(
    peer: StreamSource[int],
    sink: Sink[Frame],
    steps: int,
    rendezvous: int,
    interval_ms: float,
    cancel: CancelToken | None,
) -> AsyncIterator[int]:
    stream_a = await peer.resolve(cancel)
    with RateLimiter() as limiter:
        for i in range(steps):
            await deliver(sink, Frame("CoroutineB", 1, "B" * i))
            await limiter.wait(interval_ms, cancel)
            yield i

            if i == rendezvous:
                async for step_a in stream_a:
                    if step_a >= rendezvous:
                        break
                    await deliver(sink, Frame("CoroutineB", 1, "B" * i + THROBBER[step_a % 4]))
                    await limiter.wait(interval_ms, cancel)


def cycle_for(
    sink: Sink[Frame],
    *,
    steps: int | None = None,
    rendezvous: int | None = None,
    interval_ms: float | None = None,
):
    """One demo cycle: fresh proxies, both coroutines started together."""
    settings = get_settings()
    steps = settings.demo.steps if steps is None else steps
    if rendezvous is None:
        rendezvous = min(settings.demo.rendezvous_step, steps // 2)
    elif rendezvous >= steps:
        raise ValueError(f"rendezvous ({rendezvous}) must be smaller than steps ({steps})")
    interval = settings.scheduler.tick_interval_ms if interval_ms is None else interval_ms

    async def cycle(cancel: CancelToken | None) -> list[int]:
        # A stops reading B after the rendezvous, so B's channel must not block on a bound.
        proxy_a: StreamProxy[int] = StreamProxy("A", maxsize=0)
        proxy_b: StreamProxy[int] = StreamProxy("B", maxsize=0)
        return await run_mutual(
            (proxy_a, partial(coroutine_a, proxy_b, sink, steps, rendezvous, interval)),
            (proxy_b, partial(coroutine_b, proxy_a, sink, steps, rendezvous, interval)),
            cancel=cancel,
        )

    return cycle
