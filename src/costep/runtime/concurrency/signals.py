"""External signal adapters built on ``CompletionSource``.

Each adapter subscribes ``complete`` to its signal only while a wait is
outstanding and unsubscribes on every exit path, so a torn-down coroutine
never leaves a timer or callback behind.

Adapters:
    - DelaySource: one-shot loop timer (cancellable sleep)
    - TimerSource: periodic ticks on a fixed phase grid
    - IdleSource: resumes once a ``YieldSignal`` reports no pending external work

Example:
    >>> with TimerSource(interval_ms=25) as timer:
    ...     for _ in range(3):
    ...         await timer.next_tick(cancel)
"""

from __future__ import annotations

import asyncio
import math
from typing import TYPE_CHECKING, Callable, Protocol, runtime_checkable

from .cancel import raise_if_cancelled
from .source import Completion, CompletionSource

if TYPE_CHECKING:
    from .cancel import CancelToken

__all__ = [
    "DelaySource",
    "TimerSource",
    "YieldSignal",
    "ManualYieldSignal",
    "IdleSource",
]


# ─────────────────────────────────────────────────────────────────────────────
# Timers
# ─────────────────────────────────────────────────────────────────────────────


class DelaySource(CompletionSource):
    """Completes ``delay_ms`` after each wait begins."""

    __slots__ = ("delay_ms", "_timer")

    def __init__(self, delay_ms: float = 0.0) -> None:
        super().__init__()
        self.delay_ms = delay_ms
        self._timer: asyncio.TimerHandle | None = None

    def _attach(self) -> None:
        self._timer = asyncio.get_running_loop().call_later(max(self.delay_ms, 0.0) / 1000.0, self.complete)

    def _detach(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    async def sleep(self, delay_ms: float | None = None, cancel: CancelToken | None = None) -> None:
        if delay_ms is not None:
            self.delay_ms = delay_ms
        await self.wait(cancel)


class TimerSource(CompletionSource):
    """Periodic tick source.

    Ticks fall on a grid anchored at the first wait, so time spent between
    waits does not drift the schedule: a wait begun mid-period resumes at the
    next grid point.
    """

    __slots__ = ("interval_ms", "ticks", "_anchor", "_last", "_timer")

    def __init__(self, interval_ms: float) -> None:
        if interval_ms <= 0:
            raise ValueError(f"interval_ms must be positive, got {interval_ms}")
        super().__init__()
        self.interval_ms = interval_ms
        self.ticks = 0
        self._anchor: float | None = None
        self._last = 0  # grid index of the last tick fired
        self._timer: asyncio.TimerHandle | None = None

    def next_tick(self, cancel: CancelToken | None = None) -> Completion:
        return self.wait(cancel)

    def _attach(self) -> None:
        loop = asyncio.get_running_loop()
        now = loop.time()
        if self._anchor is None:
            self._anchor = now
        period = self.interval_ms / 1000.0
        index = max(math.floor((now - self._anchor) / period) + 1, self._last + 1)
        self._timer = loop.call_at(self._anchor + index * period, self._on_tick, index)

    def _detach(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_tick(self, index: int) -> None:
        self._timer, self._last = None, index
        self.ticks += 1
        self.complete()


# ─────────────────────────────────────────────────────────────────────────────
# Yield signal
# ─────────────────────────────────────────────────────────────────────────────


@runtime_checkable
class YieldSignal(Protocol):
    """External "should I yield now" capability.

    ``pending()`` reports whether external work (input, UI messages) is
    waiting; subscribers are notified whenever the provider goes idle.
    """

    def pending(self) -> bool: ...
    def subscribe(self, callback: Callable[[], None]) -> None: ...
    def unsubscribe(self, callback: Callable[[], None]) -> None: ...


class ManualYieldSignal:
    """In-process ``YieldSignal`` driven by explicit post/take calls.

    Example:
        >>> signal = ManualYieldSignal()
        >>> signal.post(2)          # two units of external work queued
        >>> signal.take(2)          # processed; subscribers are told we are idle
        2
    """

    __slots__ = ("_backlog", "_subscribers")

    def __init__(self) -> None:
        self._backlog = 0
        self._subscribers: list[Callable[[], None]] = []

    @property
    def backlog(self) -> int:
        return self._backlog

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def pending(self) -> bool:
        return self._backlog > 0

    def post(self, count: int = 1) -> None:
        self._backlog += count

    def take(self, count: int = 1) -> int:
        """Process up to ``count`` units; notifies idle subscribers once the backlog empties."""
        taken = min(count, self._backlog)
        self._backlog -= taken
        if self._backlog == 0:
            self.notify_idle()
        return taken

    def notify_idle(self) -> None:
        for callback in list(self._subscribers):
            callback()

    def subscribe(self, callback: Callable[[], None]) -> None:
        self._subscribers.append(callback)

    def unsubscribe(self, callback: Callable[[], None]) -> None:
        try:
            self._subscribers.remove(callback)
        except ValueError:
            pass


class IdleSource(CompletionSource):
    """Lets a coroutine step aside while external work is pending."""

    __slots__ = ("signal",)

    def __init__(self, signal: YieldSignal) -> None:
        super().__init__()
        self.signal = signal

    def _on_idle(self) -> None:
        if not self.signal.pending():
            self.complete()

    def _attach(self) -> None:
        self.signal.subscribe(self._on_idle)

    def _detach(self) -> None:
        self.signal.unsubscribe(self._on_idle)

    async def idle(self, cancel: CancelToken | None = None) -> None:
        """Return at once if nothing is pending, else wait for the next idle notification.

        Raises:
            Cancelled: The token fired before or while waiting
        """
        if self.signal.pending():
            await self.wait(cancel)
        raise_if_cancelled(cancel)
