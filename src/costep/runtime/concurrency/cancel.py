"""Cooperative cancellation signal threaded through every suspension point.

A ``CancelToken`` is a latch: once cancelled it stays cancelled. Primitives
register a callback for the duration of a suspension and dispose the
registration when the suspension ends, so a long-lived token does not
accumulate callbacks.

Example:
    >>> token = CancelToken()
    >>> with token.register(lambda: print("stop")):
    ...     token.cancel("user pressed stop")
    stop
    True
    >>> token.cancelled
    True
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Callable

from costep.foundation.errors import Cancelled

if TYPE_CHECKING:
    from types import TracebackType

__all__ = ["CancelToken", "Registration", "raise_if_cancelled"]


class Registration:
    """Handle for a registered cancellation callback. Disposing is idempotent."""

    __slots__ = ("_token", "_callback")

    def __init__(self, token: CancelToken | None, callback: Callable[[], object] | None) -> None:
        self._token, self._callback = token, callback

    def dispose(self) -> None:
        if self._token is not None and self._callback is not None:
            self._token._unregister(self._callback)
        self._token = self._callback = None

    def __enter__(self) -> Registration:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.dispose()


class CancelToken:
    """Cancellation latch with callback registration.

    Loop-confined: ``cancel()`` must be called from the event loop thread
    (or before the loop starts).
    """

    __slots__ = ("_cancelled", "_reason", "_callbacks", "__weakref__")

    def __init__(self) -> None:
        self._cancelled = False
        self._reason: str | None = None
        self._callbacks: list[Callable[[], object]] = []

    def __repr__(self) -> str:
        state = f"cancelled reason={self._reason!r}" if self._cancelled else "active"
        return f"<CancelToken {state} callbacks={len(self._callbacks)}>"

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str | None = None) -> bool:
        """Latch cancellation and run registered callbacks once, in registration order.

        Returns:
            False if the token was already cancelled
        """
        if self._cancelled:
            return False
        self._cancelled, self._reason = True, reason
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()
        return True

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise Cancelled(self._reason or "operation was cancelled", component="CancelToken")

    def register(self, callback: Callable[[], object]) -> Registration:
        """Run ``callback`` on cancellation. Runs immediately if already cancelled."""
        if self._cancelled:
            callback()
            return Registration(None, None)
        self._callbacks.append(callback)
        return Registration(self, callback)

    def _unregister(self, callback: Callable[[], object]) -> None:
        try:
            self._callbacks.remove(callback)
        except ValueError:
            pass  # already fired

    def cancel_after(self, delay_ms: float) -> asyncio.TimerHandle:
        """Cancel from a loop timer after ``delay_ms``."""
        loop = asyncio.get_running_loop()
        return loop.call_later(delay_ms / 1000.0, self.cancel, f"timed out after {delay_ms:g}ms")

    async def wait(self) -> str | None:
        """Suspend until cancelled. Returns the reason."""
        if self._cancelled:
            return self._reason
        waiter = asyncio.get_running_loop().create_future()

        def _wake() -> None:
            if not waiter.done():
                waiter.set_result(None)

        with self.register(_wake):
            await waiter
        return self._reason

    @classmethod
    def linked(cls, *parents: CancelToken | None) -> CancelToken:
        """Create a child token cancelled whenever any parent is cancelled."""
        child = cls()
        for parent in parents:
            if parent is not None:
                parent.register(lambda p=parent: child.cancel(p.reason))
        return child


def raise_if_cancelled(token: CancelToken | None) -> None:
    """Check an optional token."""
    if token is not None:
        token.raise_if_cancelled()
