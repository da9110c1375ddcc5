"""Minimum-interval rate limiting for coroutine step loops.

``RateLimiter.wait`` sleeps only for whatever part of the interval has not
already been spent since the previous call returned, so work done between
calls counts toward the interval instead of being added to it.

Example:
    >>> limiter = RateLimiter()
    >>> async def body(cancel):
    ...     for i in range(10):
    ...         yield i
    ...         await limiter.wait(50, cancel)   # at most one step per 50ms
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Callable

from .cancel import raise_if_cancelled
from .signals import DelaySource

if TYPE_CHECKING:
    from types import TracebackType

    from .cancel import CancelToken

__all__ = ["RateLimiter"]

Clock = Callable[[], float]


class RateLimiter:
    """Bounds a loop to a minimum period between successive ``wait()`` returns.

    Args:
        clock: Monotonic clock returning seconds (injectable for tests)

    Invariant: after ``wait(interval_ms)`` returns, at least ``interval_ms``
    has elapsed since the baseline, and the baseline has been reset to now.
    """

    __slots__ = ("_clock", "_baseline", "_delay")

    def __init__(self, clock: Clock = time.monotonic) -> None:
        self._clock = clock
        self._baseline = clock()
        self._delay = DelaySource()

    def reset(self) -> None:
        self._baseline = self._clock()

    @property
    def elapsed_ms(self) -> float:
        return (self._clock() - self._baseline) * 1000.0

    async def wait(self, interval_ms: float, cancel: CancelToken | None = None) -> float:
        """Suspend for the unspent part of ``interval_ms``.

        Returns:
            The delay scheduled, in milliseconds (0.0 if the interval had already elapsed)

        Raises:
            ValueError: ``interval_ms`` is negative
            Cancelled: The token fired before, during or right after the delay
        """
        if interval_ms < 0:
            raise ValueError(f"interval_ms must be >= 0, got {interval_ms}")
        remaining = interval_ms - self.elapsed_ms
        try:
            if remaining > 0:
                await self._delay.sleep(remaining, cancel)
        finally:
            self.reset()
        raise_if_cancelled(cancel)
        return max(remaining, 0.0)

    def close(self) -> None:
        self._delay.close()

    def __enter__(self) -> RateLimiter:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()
