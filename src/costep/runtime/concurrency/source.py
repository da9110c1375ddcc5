"""Manually-resumable single-shot completion source.

A ``CompletionSource`` is the suspension point every other primitive is built
on. It is a three-state machine (idle, pending, completed) guarded by a
generation counter:

    IDLE --wait()--> PENDING --complete()/cancel--> COMPLETED --result consumed--> IDLE

Each ``wait()`` returns a ``Completion`` handle bound to the current
generation. Consuming the result (awaiting the handle), superseding an
unconsumed completion, or tearing the source down advances the generation, so
a handle from an earlier wait can never observe or resume a later one.

The handle speaks the asyncio future protocol by duck typing, so an
``asyncio.Task`` suspends on it directly and is resumed by ``complete()``
through a continuation scheduled on the loop.

Policies:
    - ``complete()`` with no pending wait is a no-op returning False. Nothing is
      latched for the next ``wait()``.
    - A ``CancelToken`` passed to ``wait()`` is a second completion path: when
      it fires the wait completes as cancelled and awaiting raises ``Cancelled``.
    - Cancelling the awaiting asyncio task completes the wait as aborted and
      raises ``asyncio.CancelledError`` in the task.
    - ``close()`` resumes an outstanding waiter with ``Cancelled``.

Example:
    >>> source = CompletionSource()
    >>> loop.call_later(0.1, source.complete)
    >>> await source.wait()        # resumes after ~100ms
    >>> source.generation
    1
"""

from __future__ import annotations

import asyncio
import contextvars
from enum import StrEnum
from functools import partial
from typing import TYPE_CHECKING, Callable, Generator

from costep.foundation.errors import (
    Cancelled,
    MultipleContinuationFault,
    NotReadyFault,
    SourceClosedFault,
    StaleTokenFault,
)
from costep.runtime.observability import get_logger

if TYPE_CHECKING:
    from types import TracebackType

    from .cancel import CancelToken, Registration

__all__ = ["CompletionSource", "Completion", "SourceStatus"]

_log = get_logger("costep.source")

Continuation = Callable[["Completion"], object]
PendingContinuation = tuple[Continuation, contextvars.Context | None, asyncio.AbstractEventLoop]


class SourceStatus(StrEnum):
    """Lifecycle of one wait."""
    IDLE = "idle"            # no wait outstanding
    PENDING = "pending"      # waiting for an external signal
    COMPLETED = "completed"  # signalled, result not yet consumed


class _Outcome(StrEnum):
    SUCCEEDED = "succeeded"
    CANCELLED = "cancelled"  # cancel token fired
    ABORTED = "aborted"      # awaiting asyncio task was cancelled
    CLOSED = "closed"        # source torn down while pending


class CompletionSource:
    """Reusable single-waiter suspension point completed by an external signal.

    Subclasses adapt a signal (timer, idle notification) by overriding
    ``_attach`` / ``_detach``. Both run only around a pending wait: ``_attach``
    when a wait becomes pending, ``_detach`` as soon as it stops being pending
    for any reason, so an external subscription never outlives the wait.
    """

    __slots__ = (
        "_generation", "_status", "_outcome", "_handle", "_continuation", "_continued",
        "_registration", "_attached", "_loop", "_closed", "_reason", "_log",
    )

    def __init__(self) -> None:
        self._generation = 0
        self._status = SourceStatus.IDLE
        self._outcome: _Outcome | None = None
        self._handle: Completion | None = None
        self._continuation: PendingContinuation | None = None
        self._continued = False
        self._registration: Registration | None = None
        self._attached = False
        self._loop: asyncio.AbstractEventLoop | None = None
        self._closed = False
        self._reason: str | None = None
        self._log = _log.bind_component(type(self).__name__)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self._status} generation={self._generation}>"

    # ─────────────────────────────────────────────────────────────────────────
    # Public API
    # ─────────────────────────────────────────────────────────────────────────

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def status(self) -> SourceStatus:
        return self._status

    @property
    def closed(self) -> bool:
        return self._closed

    def wait(self, cancel: CancelToken | None = None) -> Completion:
        """Begin a wait and return its awaitable handle.

        Raises:
            MultipleContinuationFault: A wait is already pending
            SourceClosedFault: The source was closed
        """
        if self._closed:
            raise SourceClosedFault("wait() on a closed source", component=type(self).__name__)
        if self._status is SourceStatus.PENDING:
            raise MultipleContinuationFault(
                f"wait() called while generation {self._generation} is still pending",
                component=type(self).__name__,
            )
        if self._status is SourceStatus.COMPLETED:
            self._retire(self._generation)  # supersede an unconsumed completion

        self._status, self._outcome = SourceStatus.PENDING, None
        self._handle = handle = Completion(self, self._generation)
        self._log.debug("wait pending", generation=self._generation)

        if cancel is not None:
            if cancel.cancelled:
                self._reason = cancel.reason
                self._finish(_Outcome.CANCELLED)
                return handle
            self._registration = cancel.register(partial(self._cancel_wait, handle.token, cancel))

        self._attached = True
        try:
            self._attach()
        except BaseException:
            self._retire(handle.token)
            raise
        return handle

    def complete(self) -> bool:
        """Complete the pending wait.

        Returns:
            True if a pending wait was completed, False if there was none (no-op)
        """
        if self._status is not SourceStatus.PENDING:
            self._log.debug("complete ignored", status=str(self._status), generation=self._generation)
            return False
        self._finish(_Outcome.SUCCEEDED)
        return True

    def close(self) -> None:
        """Tear down: detach any subscription and resume an outstanding waiter with ``Cancelled``."""
        if self._closed:
            return
        self._closed = True
        if self._status is SourceStatus.PENDING:
            self._reason = "source was closed while waiting"
            self._finish(_Outcome.CLOSED)
        self._log.debug("closed", generation=self._generation)

    def __enter__(self) -> CompletionSource:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()

    # ─────────────────────────────────────────────────────────────────────────
    # Signal adapter hooks
    # ─────────────────────────────────────────────────────────────────────────

    def _attach(self) -> None:
        """Subscribe ``complete`` to the external signal. Called when a wait becomes pending."""

    def _detach(self) -> None:
        """Undo ``_attach``. Called once per attach, on every exit path."""

    # ─────────────────────────────────────────────────────────────────────────
    # State machine
    # ─────────────────────────────────────────────────────────────────────────

    def _finish(self, outcome: _Outcome) -> None:
        """PENDING -> COMPLETED, then schedule the continuation if one is registered."""
        self._status, self._outcome = SourceStatus.COMPLETED, outcome
        self._release_subscriptions()
        self._log.debug("wait completed", generation=self._generation, outcome=str(outcome))
        if self._continuation is not None:
            callback, context, loop = self._continuation
            self._continuation = None
            loop.call_soon(callback, self._handle, context=context)

    def _release_subscriptions(self) -> None:
        if self._registration is not None:
            self._registration.dispose()
            self._registration = None
        if self._attached:
            self._attached = False
            self._detach()

    def _retire(self, token: int) -> None:
        """End the wait for ``token`` and advance the generation."""
        if token != self._generation or self._status is SourceStatus.IDLE:
            return
        self._release_subscriptions()
        self._status, self._outcome = SourceStatus.IDLE, None
        self._handle, self._continuation, self._continued = None, None, False
        self._reason = None
        self._generation += 1

    def _cancel_wait(self, token: int, cancel: CancelToken) -> None:
        if token == self._generation and self._status is SourceStatus.PENDING:
            self._reason = cancel.reason
            self._finish(_Outcome.CANCELLED)

    def _abort(self, token: int, msg: object | None) -> bool:
        if token != self._generation or self._status is not SourceStatus.PENDING:
            return False
        self._reason = None if msg is None else str(msg)
        self._finish(_Outcome.ABORTED)
        return True

    def _check_token(self, token: int) -> None:
        if token != self._generation:
            raise StaleTokenFault(
                f"handle for generation {token} used after the source advanced to {self._generation}",
                component=type(self).__name__,
            )

    def _is_done(self, token: int) -> bool:
        self._check_token(token)
        return self._status is SourceStatus.COMPLETED

    def _is_aborted(self, token: int) -> bool:
        self._check_token(token)
        return self._outcome is _Outcome.ABORTED

    def _check_ready(self, token: int) -> None:
        self._check_token(token)
        if self._status is not SourceStatus.COMPLETED:
            raise NotReadyFault(
                f"result of generation {token} requested while still pending",
                component=type(self).__name__,
            )

    def _peek(self, token: int) -> None:
        """Raise the outcome of ``token``'s wait without consuming it."""
        self._check_ready(token)
        self._raise_outcome()

    def _raise_outcome(self) -> None:
        match self._outcome:
            case _Outcome.CANCELLED | _Outcome.CLOSED:
                raise Cancelled(self._reason or "wait was cancelled", component=type(self).__name__)
            case _Outcome.ABORTED:
                raise asyncio.CancelledError(*(() if self._reason is None else (self._reason,)))

    def _consume(self, token: int) -> None:
        """Observe the outcome and return the source to IDLE under a new generation."""
        self._check_ready(token)
        try:
            self._raise_outcome()
        finally:
            self._retire(token)

    def _on_completed(self, token: int, callback: Continuation, context: contextvars.Context | None) -> None:
        self._check_token(token)
        if self._continued:
            raise MultipleContinuationFault(
                f"a continuation is already registered for generation {token}",
                component=type(self).__name__,
            )
        self._continued = True
        self._loop = loop = asyncio.get_running_loop()
        if self._status is SourceStatus.COMPLETED:
            loop.call_soon(callback, self._handle, context=context)
        else:
            self._continuation = (callback, context, loop)

    def _remove_continuation(self, token: int, callback: Continuation) -> int:
        if token != self._generation or self._continuation is None or self._continuation[0] != callback:
            return 0
        self._continuation, self._continued = None, False
        return 1


class Completion:
    """Awaitable handle for one generation of a ``CompletionSource``.

    Implements the subset of the asyncio future protocol a Task needs to
    suspend on it. ``_asyncio_future_blocking`` is deliberately an instance
    attribute: ``asyncio.isfuture`` inspects the class, so helpers such as
    ``asyncio.ensure_future`` wrap a handle in a task instead of treating it
    as a native future.
    """

    def __init__(self, source: CompletionSource, token: int) -> None:
        self._source = source
        self._token = token
        self._asyncio_future_blocking = False

    def __repr__(self) -> str:
        return f"<Completion generation={self._token} of {self._source!r}>"

    @property
    def token(self) -> int:
        return self._token

    @property
    def source(self) -> CompletionSource:
        return self._source

    def get_loop(self) -> asyncio.AbstractEventLoop:
        return self._source._loop or asyncio.get_running_loop()

    def done(self) -> bool:
        return self._source._is_done(self._token)

    def cancelled(self) -> bool:
        return self._source._is_aborted(self._token)

    def result(self) -> None:
        """Raise the outcome if the wait failed. Does not consume the result.

        Raises:
            StaleTokenFault: The source moved on to a later generation
            NotReadyFault: The wait is still pending
            Cancelled: The wait was cancelled through its token or by close()
        """
        self._source._peek(self._token)

    def add_done_callback(self, fn: Continuation, *, context: contextvars.Context | None = None) -> None:
        self._source._on_completed(self._token, fn, context)

    def remove_done_callback(self, fn: Continuation) -> int:
        return self._source._remove_continuation(self._token, fn)

    def cancel(self, msg: object | None = None) -> bool:
        return self._source._abort(self._token, msg)

    def __await__(self) -> Generator[Completion, None, None]:
        if not self.done():
            self._asyncio_future_blocking = True
            try:
                yield self
            except BaseException:
                self._source._retire(self._token)
                raise
        self._source._consume(self._token)

    __iter__ = __await__
