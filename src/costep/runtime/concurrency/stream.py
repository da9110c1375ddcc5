"""Async stream helpers.

Small utilities for consuming coroutine output streams:

    - for_each: run an action (sync or async) on every item, with cancellation
    - next_item: pull one item or fail with ``StreamExhausted``
    - collect_stream: drain into a list

Example:
    >>> count = await for_each(proxy_reader, render, cancel)
    >>> first = await next_item(aiter(proxy_reader))
"""

from __future__ import annotations

import inspect
from collections.abc import AsyncIterable, AsyncIterator
from typing import TYPE_CHECKING, Awaitable, Callable, TypeVar

from costep.foundation.errors import StreamExhausted

from .cancel import raise_if_cancelled

if TYPE_CHECKING:
    from .cancel import CancelToken

T = TypeVar("T")

__all__ = ["aclose_iterator", "for_each", "next_item", "collect_stream"]


async def aclose_iterator(iterator: object) -> None:
    """Close an async iterator if it supports ``aclose()``."""
    aclose = getattr(iterator, "aclose", None)
    if callable(aclose):
        await aclose()


async def for_each(
    stream: AsyncIterable[T],
    action: Callable[[T], Awaitable[object] | object],
    cancel: CancelToken | None = None,
) -> int:
    """Apply ``action`` to every item; awaits the action when it returns an awaitable.

    The token is checked before each item is handed over.

    Returns:
        Number of items processed
    """
    count = 0
    iterator = aiter(stream)
    try:
        async for item in iterator:
            raise_if_cancelled(cancel)
            result = action(item)
            if inspect.isawaitable(result):
                await result
            count += 1
    finally:
        await aclose_iterator(iterator)
    return count


async def next_item(iterator: AsyncIterator[T]) -> T:
    """Next item of ``iterator``.

    Raises:
        StreamExhausted: The iterator has ended
    """
    try:
        return await iterator.__anext__()
    except StopAsyncIteration:
        raise StreamExhausted("stream has no more items", component="stream") from None


async def collect_stream(stream: AsyncIterable[T], limit: int | None = None) -> list[T]:
    """Drain ``stream`` into a list, stopping after ``limit`` items if given."""
    items: list[T] = []
    async for item in stream:
        items.append(item)
        if limit is not None and len(items) >= limit:
            break
    return items
