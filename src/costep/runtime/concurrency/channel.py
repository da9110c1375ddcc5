"""Single-writer FIFO channel built on completion sources.

The channel carries a producer's items to its reader in emission order. Its
write end is closed either cleanly (readers drain, then see end-of-stream) or
carrying an error (readers drain every good item, then get the error).

Suspension goes through two ``CompletionSource`` instances, one per direction,
so the channel inherits their one-waiter-at-a-time rule: a second concurrent
reader (or writer blocked on a full bounded channel) is a
``MultipleContinuationFault``.

Example:
    >>> channel: Channel[int] = Channel()
    >>> channel.try_send(1)
    True
    >>> channel.close()
    True
    >>> async for item in channel.reader():
    ...     print(item)
    1
"""

from __future__ import annotations

from collections import deque
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING, Generic, TypeVar

from costep.foundation.errors import ChannelClosedFault, StreamExhausted

from .cancel import raise_if_cancelled
from .source import CompletionSource

if TYPE_CHECKING:
    from .cancel import CancelToken

T = TypeVar("T")

__all__ = ["Channel", "ChannelReader"]


class Channel(Generic[T]):
    """FIFO queue with a closable write end.

    Args:
        maxsize: Bound on buffered items; 0 means unbounded
    """

    __slots__ = ("_items", "_maxsize", "_readable", "_writable", "_closed", "_error")

    def __init__(self, maxsize: int = 0) -> None:
        if maxsize < 0:
            raise ValueError(f"maxsize must be >= 0, got {maxsize}")
        self._items: deque[T] = deque()
        self._maxsize = maxsize
        self._readable = CompletionSource()
        self._writable = CompletionSource()
        self._closed = False
        self._error: BaseException | None = None

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"<Channel {state} size={len(self._items)} maxsize={self._maxsize}>"

    def __len__(self) -> int:
        return len(self._items)

    @property
    def maxsize(self) -> int:
        return self._maxsize

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def full(self) -> bool:
        return 0 < self._maxsize <= len(self._items)

    # ─────────────────────────────────────────────────────────────────────────
    # Write end
    # ─────────────────────────────────────────────────────────────────────────

    def try_send(self, item: T) -> bool:
        """Append without waiting. Returns False if the channel is full.

        Raises:
            ChannelClosedFault: The write end was closed
        """
        if self._closed:
            raise ChannelClosedFault("send() on a closed channel", component="Channel")
        if self.full:
            return False
        self._items.append(item)
        self._readable.complete()
        return True

    async def send(self, item: T, cancel: CancelToken | None = None) -> None:
        """Append, waiting for the reader to free space when bounded and full."""
        while not self.try_send(item):
            await self._writable.wait(cancel)

    def close(self, error: BaseException | None = None) -> bool:
        """Close the write end, optionally carrying ``error`` to the reader.

        Returns:
            False if the channel was already closed
        """
        if self._closed:
            return False
        self._closed, self._error = True, error
        self._readable.complete()
        self._writable.complete()
        return True

    # ─────────────────────────────────────────────────────────────────────────
    # Read end
    # ─────────────────────────────────────────────────────────────────────────

    async def receive(self, cancel: CancelToken | None = None) -> T:
        """Next item in emission order.

        Raises:
            StreamExhausted: Closed cleanly and drained
            Cancelled: The token fired
            BaseException: The error the channel was closed with, once drained
        """
        while True:
            raise_if_cancelled(cancel)
            if self._items:
                item = self._items.popleft()
                self._writable.complete()
                return item
            if self._closed:
                if self._error is not None:
                    raise self._error
                raise StreamExhausted("channel closed and drained", component="Channel")
            await self._readable.wait(cancel)

    def reader(self, cancel: CancelToken | None = None) -> ChannelReader[T]:
        return ChannelReader(self, cancel)


class ChannelReader(Generic[T]):
    """Read end of a channel.

    Re-iterable: each ``async for`` resumes where the previous one stopped,
    and breaking out of a loop leaves the channel untouched.
    """

    __slots__ = ("_channel", "_cancel")

    def __init__(self, channel: Channel[T], cancel: CancelToken | None = None) -> None:
        self._channel = channel
        self._cancel = cancel

    def __repr__(self) -> str:
        return f"<ChannelReader of {self._channel!r}>"

    @property
    def channel(self) -> Channel[T]:
        return self._channel

    def __aiter__(self) -> AsyncIterator[T]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[T]:
        while True:
            try:
                item = await self._channel.receive(self._cancel)
            except StreamExhausted:
                return
            yield item

    async def receive(self) -> T:
        return await self._channel.receive(self._cancel)
