"""Task management with structured concurrency.

Provides TaskGroup for running coroutine producers side by side on the loop.
When any task fails, sibling tasks are cancelled. An optional ``CancelToken``
cancels the whole group.

Key Features:
    - Structured lifetime: Tasks don't outlive their TaskGroup
    - Automatic cancellation: First failure cancels siblings
    - Token-aware: the group's token cancels every task and surfaces as ``Cancelled``
    - Task handles: Access to task state and results

Example:
    >>> async with TaskGroup(cancel=token) as tg:
    ...     a = tg.spawn(proxy_a.run(body_a, token), name="A")
    ...     b = tg.spawn(proxy_b.run(body_b, token), name="B")
    >>> a.result(), b.result()
    (80, 80)
"""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from dataclasses import dataclass, field
from functools import partial
from enum import StrEnum
from typing import TYPE_CHECKING, Generic, TypeVar

from costep.foundation.errors import is_cancellation
from costep.runtime.observability import get_logger

from .cancel import raise_if_cancelled

if TYPE_CHECKING:
    from types import TracebackType

    from .cancel import CancelToken, Registration

T = TypeVar("T")

__all__ = ["TaskGroup", "TaskHandle", "TaskState"]

_log = get_logger("costep.task")


class TaskState(StrEnum):
    """Task lifecycle states."""
    PENDING = "pending"      # Not yet started
    RUNNING = "running"      # Currently executing
    COMPLETED = "completed"  # Finished successfully
    FAILED = "failed"        # Raised exception
    CANCELLED = "cancelled"  # Was cancelled


@dataclass(slots=True)
class TaskHandle(Generic[T]):
    """Handle to a spawned task with state access.

    Attributes:
        name: Optional task name for debugging
    """

    name: str | None = None
    _task: asyncio.Task[T] | None = field(default=None, repr=False)

    @property
    def state(self) -> TaskState:
        if self._task is None:
            return TaskState.PENDING
        if self._task.cancelled():
            return TaskState.CANCELLED
        if self._task.done():
            return TaskState.FAILED if self._task.exception() else TaskState.COMPLETED
        return TaskState.RUNNING

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    def result(self) -> T:
        """Get task result.

        Raises:
            RuntimeError: If task not started
            asyncio.InvalidStateError: If task not complete
            Exception: If task failed with exception
        """
        if self._task is None:
            raise RuntimeError("Task not started")
        return self._task.result()

    def cancel(self, msg: str | None = None) -> bool:
        return self._task.cancel(msg) if self._task else False


class TaskGroup:
    """Structured task group with fail-fast cancellation.

    Exit semantics:
        - asyncio cancellations of member tasks are expected and dropped
        - ``Cancelled`` is raised only when nothing else failed
        - one remaining failure is raised as-is, several as an ``ExceptionGroup``
          (a ``BaseExceptionGroup`` when any of them is not an ``Exception``)
    """

    __slots__ = ("_tasks", "_handles", "_cancel", "_registration", "_started", "_exiting")

    def __init__(self, cancel: CancelToken | None = None) -> None:
        self._tasks: set[asyncio.Task[object]] = set()
        self._handles: list[TaskHandle[object]] = []
        self._cancel = cancel
        self._registration: Registration | None = None
        self._started = False
        self._exiting = False

    def spawn(self, coro: Coroutine[object, object, T], *, name: str | None = None) -> TaskHandle[T]:
        """Spawn a task in this group.

        Raises:
            RuntimeError: If called outside the context manager or while exiting
        """
        if not self._started:
            coro.close()
            raise RuntimeError("TaskGroup must be used as context manager")
        if self._exiting:
            coro.close()
            raise RuntimeError("Cannot spawn tasks while exiting TaskGroup")

        task = asyncio.create_task(coro, name=name)
        handle: TaskHandle[T] = TaskHandle(name=name, _task=task)
        self._tasks.add(task)  # type: ignore[arg-type]
        self._handles.append(handle)  # type: ignore[arg-type]
        task.add_done_callback(self._tasks.discard)
        return handle

    @property
    def tasks(self) -> list[TaskHandle[object]]:
        return list(self._handles)

    def cancel_all(self, msg: str | None = None) -> None:
        for task in self._tasks:
            task.cancel(msg)

    async def __aenter__(self) -> TaskGroup:
        self._started = True
        if self._cancel is not None:
            self._registration = self._cancel.register(partial(self._on_token, self._cancel))
        return self

    def _on_token(self, cancel: CancelToken) -> None:
        self.cancel_all(cancel.reason)

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> bool:
        self._exiting = True
        if exc_val is not None:
            self.cancel_all()

        exceptions: list[BaseException] = [] if exc_val is None else [exc_val]
        try:
            while self._tasks:
                done, _ = await asyncio.wait(self._tasks, return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    self._tasks.discard(task)
                    if task.cancelled():
                        continue
                    if (exc := task.exception()) is not None:
                        if not any(exc is seen for seen in exceptions):
                            exceptions.append(exc)
                        if not is_cancellation(exc):
                            _log.debug("task failed, cancelling siblings", task=task.get_name(),
                                       error=type(exc).__name__)
                            self.cancel_all()
        except asyncio.CancelledError:
            self.cancel_all()  # host task cancelled while waiting
            raise
        finally:
            if self._registration is not None:
                self._registration.dispose()
                self._registration = None

        failures = [e for e in exceptions if not is_cancellation(e)]
        if failures:
            if len(failures) == 1:
                raise failures[0]
            raise BaseExceptionGroup("TaskGroup errors", failures)
        if exceptions:
            raise exceptions[0]
        raise_if_cancelled(self._cancel)
        return False
