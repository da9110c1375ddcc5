"""Fair round-robin interleaving of lazy sequences.

``combine`` merges pull-style sequences (plain iterables and generators);
``combine_async`` merges async iterables. Both are themselves lazy: each
value pulled from the combined sequence advances exactly one underlying
cursor.

Fairness: within a pass every live cursor is advanced once, in its original
order, so no source emits its (i+1)-th value before every other live source
has had a chance to emit its i-th. An exhausted cursor is released and
dropped without disturbing the order of the rest.

Release: every cursor still live when the combined sequence stops (exhausted,
closed early by its consumer, or faulted) is closed in a ``finally`` block.

Faults: an exception raised by a source is re-raised as ``ProducerFault``
(original kept as ``__cause__``, source index recorded). ``Cancelled`` and
other costep faults pass through unchanged.

Example:
    >>> list(combine(lambda: "abc", lambda: [1, 2]))
    ['a', 1, 'b', 2, 'c']
"""

from __future__ import annotations

from collections.abc import AsyncIterable, AsyncIterator, Iterable, Iterator
from typing import Callable, TypeVar

from costep.foundation.errors import as_producer_fault
from costep.runtime.observability import get_logger

T = TypeVar("T")

__all__ = ["combine", "combine_async"]

_log = get_logger("costep.combinator")


def _fault_for(exc: Exception, index: int) -> BaseException:
    fault = as_producer_fault(exc, component="combine", index=index)
    if fault is not exc:
        _log.debug("source faulted", index=index, error=type(exc).__name__)
    return fault


def _release(cursor: Iterator[object]) -> None:
    close = getattr(cursor, "close", None)
    if callable(close):
        close()


async def _arelease(cursor: AsyncIterator[object]) -> None:
    aclose = getattr(cursor, "aclose", None)
    if callable(aclose):
        await aclose()


def combine(*factories: Callable[[], Iterable[T]]) -> Iterator[T]:
    """Interleave the sequences produced by ``factories`` round-robin.

    Args:
        factories: Zero-arg callables each returning a fresh iterable

    Yields:
        Values in round-robin order across live sources

    Raises:
        ProducerFault: A source (or its factory) raised
    """
    cursors: list[tuple[int, Iterator[T]]] = []
    try:
        for index, factory in enumerate(factories):
            try:
                cursors.append((index, iter(factory())))
            except Exception as exc:
                fault = _fault_for(exc, index)
                if fault is exc:
                    raise
                raise fault from exc

        while cursors:
            position = 0
            while position < len(cursors):
                index, cursor = cursors[position]
                try:
                    value = next(cursor)
                except StopIteration:
                    del cursors[position]  # next cursor slides into this position
                    _release(cursor)
                    continue
                except Exception as exc:
                    fault = _fault_for(exc, index)
                    if fault is exc:
                        raise
                    raise fault from exc
                yield value
                position += 1
    finally:
        for _, cursor in cursors:
            _release(cursor)


async def combine_async(*factories: Callable[[], AsyncIterable[T]]) -> AsyncIterator[T]:
    """Async counterpart of ``combine``; released cursors are ``aclose()``d."""
    cursors: list[tuple[int, AsyncIterator[T]]] = []
    try:
        for index, factory in enumerate(factories):
            try:
                cursors.append((index, aiter(factory())))
            except Exception as exc:
                fault = _fault_for(exc, index)
                if fault is exc:
                    raise
                raise fault from exc

        while cursors:
            position = 0
            while position < len(cursors):
                index, cursor = cursors[position]
                try:
                    value = await cursor.__anext__()
                except StopAsyncIteration:
                    del cursors[position]
                    await _arelease(cursor)
                    continue
                except Exception as exc:
                    fault = _fault_for(exc, index)
                    if fault is exc:
                        raise
                    raise fault from exc
                yield value
                position += 1
    finally:
        for _, cursor in cursors:
            await _arelease(cursor)
