"""External control loop that advances coroutines and applies cancellation.

Three ways to drive work, matching the three coroutine shapes:

    - drive_ticks: pull one value of a (combined) pull sequence per timer tick
    - drive_streams: run async coroutines side by side, each paced by a RateLimiter
    - run_mutual: run coroutines wired to each other through StreamProxy instances

``Driver`` wraps any of them in the top-level retry loop: restart on normal
exhaustion, clean stop on ``Cancelled``, surface any other fault.

Example:
    >>> async def cycle(cancel):
    ...     return await drive_ticks(combine(gen_a, gen_b), sink, cancel=cancel)
    >>> token = CancelToken()
    >>> cycles = await Driver(cycle, max_cycles=3).run(token)
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import AsyncIterable, Iterable
from typing import TYPE_CHECKING, Awaitable, Callable, Generic, TypeVar

from costep.foundation.config import get_settings
from costep.foundation.errors import Cancelled, as_producer_fault
from costep.runtime.observability import get_logger

from .cancel import CancelToken, raise_if_cancelled
from .interval import RateLimiter
from .signals import TimerSource
from .stream import aclose_iterator
from .task import TaskGroup

if TYPE_CHECKING:
    from .proxy import CoroutineBody, StreamProxy

T = TypeVar("T")
R = TypeVar("R")

__all__ = ["Sink", "deliver", "drive_ticks", "drive_streams", "run_mutual", "Driver", "Supervisor"]

_log = get_logger("costep.driver")

Sink = Callable[[T], "Awaitable[object] | object"]
Cycle = Callable[["CancelToken | None"], Awaitable[object]]


async def deliver(sink: Sink[T], value: T) -> None:
    """Hand ``value`` to the per-step sink, awaiting it if it is asynchronous."""
    result = sink(value)
    if inspect.isawaitable(result):
        await result


# ─────────────────────────────────────────────────────────────────────────────
# Drive loops
# ─────────────────────────────────────────────────────────────────────────────


async def drive_ticks(
    sequence: Iterable[T],
    sink: Sink[T],
    *,
    interval_ms: float | None = None,
    cancel: CancelToken | None = None,
) -> int:
    """Pull exactly one value of ``sequence`` per timer tick and deliver it.

    The token is checked before and after every pull. The sequence is closed
    on every exit path.

    Returns:
        Number of values delivered before the sequence was exhausted
    """
    interval = get_settings().scheduler.tick_interval_ms if interval_ms is None else interval_ms
    iterator = iter(sequence)
    steps = 0
    try:
        with TimerSource(interval) as timer:
            while True:
                await timer.next_tick(cancel)
                raise_if_cancelled(cancel)
                try:
                    value = next(iterator)
                except StopIteration:
                    break
                raise_if_cancelled(cancel)
                await deliver(sink, value)
                steps += 1
    finally:
        close = getattr(iterator, "close", None)
        if callable(close):
            close()
    _log.debug("tick sequence exhausted", steps=steps)
    return steps


async def _pump(
    index: int,
    body: CoroutineBody[T],
    sink: Sink[T],
    interval_ms: float,
    cancel: CancelToken | None,
) -> int:
    steps = 0
    iterator = aiter(body(cancel))
    try:
        with RateLimiter() as limiter:
            while True:
                raise_if_cancelled(cancel)
                try:
                    value = await iterator.__anext__()
                except StopAsyncIteration:
                    break
                except Exception as exc:
                    fault = as_producer_fault(exc, component="drive_streams", index=index)
                    if fault is exc:
                        raise
                    raise fault from exc
                await deliver(sink, value)
                steps += 1
                await limiter.wait(interval_ms, cancel)
    finally:
        await aclose_iterator(iterator)
    return steps


async def drive_streams(
    *bodies: CoroutineBody[T],
    sink: Sink[T],
    interval_ms: float | None = None,
    cancel: CancelToken | None = None,
) -> int:
    """Run every async coroutine concurrently, spacing each one's steps by ``interval_ms``.

    Returns:
        Total number of values delivered
    """
    interval = get_settings().scheduler.step_interval_ms if interval_ms is None else interval_ms
    async with TaskGroup(cancel) as tg:
        handles = [tg.spawn(_pump(i, body, sink, interval, cancel), name=f"stream-{i}")
                   for i, body in enumerate(bodies)]
    return sum(handle.result() for handle in handles)


async def run_mutual(
    *pairs: tuple[StreamProxy[T], CoroutineBody[T]],
    cancel: CancelToken | None = None,
) -> list[int]:
    """Run ``proxy.run(body, cancel)`` for every pair concurrently.

    Returns:
        Items produced per pair, in argument order
    """
    async with TaskGroup(cancel) as tg:
        handles = [tg.spawn(proxy.run(body, cancel), name=f"mutual-{proxy.name}") for proxy, body in pairs]
    return [handle.result() for handle in handles]


# ─────────────────────────────────────────────────────────────────────────────
# Top-level loop
# ─────────────────────────────────────────────────────────────────────────────


class Driver:
    """Top-level retry loop around one cycle of work.

    Args:
        cycle: ``async cycle(cancel)`` running all coroutines once to exhaustion
        on_cycle: Hook called with the cycle number before each cycle (e.g. clear the screen)
        max_cycles: Stop after this many completed cycles; None runs until cancelled
    """

    __slots__ = ("_cycle", "_on_cycle", "max_cycles", "_cycles", "_log")

    def __init__(
        self,
        cycle: Cycle,
        *,
        on_cycle: Callable[[int], Awaitable[object] | object] | None = None,
        max_cycles: int | None = None,
        name: str = "driver",
    ) -> None:
        self._cycle = cycle
        self._on_cycle = on_cycle
        self.max_cycles = max_cycles
        self._cycles = 0
        self._log = _log.bind_component("Driver", driver=name)

    @property
    def cycles(self) -> int:
        return self._cycles

    async def run(self, cancel: CancelToken | None = None) -> int:
        """Run cycles until ``max_cycles``, cancellation, or a fault.

        Returns:
            Number of completed cycles

        Raises:
            CostepFault: Any non-cancellation fault, after logging it
        """
        self._cycles = 0
        try:
            while self.max_cycles is None or self._cycles < self.max_cycles:
                raise_if_cancelled(cancel)
                if self._on_cycle is not None:
                    result = self._on_cycle(self._cycles + 1)
                    if inspect.isawaitable(result):
                        await result
                self._log.debug("cycle started", cycle=self._cycles + 1)
                await self._cycle(cancel)
                self._cycles += 1
                self._log.info("cycle completed", cycle=self._cycles)
        except Cancelled as exc:
            self._log.info("driver stopped", cycles=self._cycles, reason=str(exc))
            return self._cycles
        except Exception as exc:
            self._log.error("driver faulted", cycles=self._cycles, error=str(exc), kind=type(exc).__name__)
            raise
        return self._cycles


class Supervisor(Generic[R]):
    """Start/stop helper that keeps at most one run alive.

    ``start`` cancels the previous run and queues the new one behind it, so
    two runs never overlap.

    Example:
        >>> supervisor = Supervisor()
        >>> supervisor.start(lambda token: Driver(cycle).run(token))
        >>> supervisor.stop("user pressed stop")
        >>> await supervisor.wait()
    """

    __slots__ = ("_lock", "_token", "_task")

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._token: CancelToken | None = None
        self._task: asyncio.Task[R | None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def token(self) -> CancelToken | None:
        return self._token

    def start(self, factory: Callable[[CancelToken], Awaitable[R]]) -> asyncio.Task[R | None]:
        self.stop("superseded by a new run")
        self._token = token = CancelToken()
        self._task = asyncio.get_running_loop().create_task(self._run(factory, token))
        return self._task

    async def _run(self, factory: Callable[[CancelToken], Awaitable[R]], token: CancelToken) -> R | None:
        async with self._lock:
            try:
                return await factory(token)
            except Cancelled as exc:
                _log.info("run cancelled", reason=str(exc))
                return None

    def stop(self, reason: str = "stopped") -> bool:
        """Cancel the current run's token. Returns False if nothing was running."""
        return self._token.cancel(reason) if self._token is not None else False

    async def wait(self) -> R | None:
        return await self._task if self._task is not None else None
