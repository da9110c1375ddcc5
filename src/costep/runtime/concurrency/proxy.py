"""Forward reference to another coroutine's live output stream.

Two coroutines that read each other's output cannot both be built eagerly:
each stream only exists once its producer starts. A ``StreamProxy`` breaks the
cycle with a single-assignment cell that is filled when the producer *starts*
(``run`` publishes the channel before the body executes a single step), not
when it finishes or first emits.

Usage:
    >>> proxy_a: StreamProxy[int] = StreamProxy("A")
    >>> proxy_b: StreamProxy[int] = StreamProxy("B")
    >>> async def body_a(cancel):            # reads B while producing A
    ...     reader = await proxy_b.resolve(cancel)
    ...     ...
    >>> await run_mutual((proxy_a, body_a), (proxy_b, body_b), cancel=token)

Cancellation: if the token passed to ``resolve`` fires before the stream is
published, the whole proxy becomes cancelled. Every pending and later
``resolve`` raises ``Cancelled`` and a later ``run`` is rejected with
``Cancelled`` instead of overwriting the cell. A ``run`` handed an already
cancelled token cancels the proxy the same way, so readers never wait on a
producer that gave up before publishing.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterable, AsyncIterator
from enum import StrEnum
from functools import partial
from typing import TYPE_CHECKING, Callable, Generic, Protocol, TypeVar

from costep.foundation.config import get_settings
from costep.foundation.errors import Cancelled, MultipleProducerFault, as_producer_fault
from costep.runtime.observability import get_logger

from .cancel import raise_if_cancelled
from .channel import Channel, ChannelReader
from .stream import aclose_iterator

if TYPE_CHECKING:
    from .cancel import CancelToken, Registration

T = TypeVar("T")
T_co = TypeVar("T_co", covariant=True)

__all__ = ["ProxyState", "StreamProxy", "StreamSource", "CoroutineBody"]

_log = get_logger("costep.proxy")

CoroutineBody = Callable[["CancelToken | None"], AsyncIterable[T]]


class ProxyState(StrEnum):
    """State of the proxy's single-assignment cell."""
    UNRESOLVED = "unresolved"
    RESOLVED = "resolved"
    CANCELLED = "cancelled"


class StreamSource(Protocol[T_co]):
    """What a mutual coroutine is handed: something that resolves to a readable stream."""

    async def resolve(self, cancel: CancelToken | None = None) -> ChannelReader[T_co]: ...


class StreamProxy(Generic[T]):
    """Lazily-resolved handle to the stream of the coroutine run through it.

    Args:
        name: Label used in logs and fault components
        maxsize: Channel bound; defaults to ``COSTEP_PROXY_QUEUE_MAXSIZE`` (0 = unbounded)
    """

    __slots__ = ("name", "_maxsize", "_cell", "_state", "_started", "_log")

    def __init__(self, name: str | None = None, *, maxsize: int | None = None) -> None:
        self.name = name or f"proxy-{id(self):x}"
        self._maxsize = get_settings().proxy.queue_maxsize if maxsize is None else maxsize
        self._cell: asyncio.Future[Channel[T]] | None = None
        self._state = ProxyState.UNRESOLVED
        self._started = False
        self._log = _log.bind_component("StreamProxy", proxy=self.name)

    def __repr__(self) -> str:
        return f"<StreamProxy {self.name!r} {self._state}>"

    @property
    def state(self) -> ProxyState:
        return self._state

    @property
    def started(self) -> bool:
        return self._started

    # ─────────────────────────────────────────────────────────────────────────
    # Reader side
    # ─────────────────────────────────────────────────────────────────────────

    async def resolve(self, cancel: CancelToken | None = None) -> ChannelReader[T]:
        """Wait until a producer has published its stream.

        The cell is shielded: cancelling the awaiting task abandons this
        resolve without touching the cell. Only the token cancels the proxy.

        Raises:
            Cancelled: The proxy was cancelled before a stream was published
        """
        cell = self._get_cell()
        registration: Registration | None = None
        if cancel is not None and not cell.done():
            registration = cancel.register(partial(self._cancel, cancel))
        try:
            channel = await asyncio.shield(cell)
        finally:
            if registration is not None:
                registration.dispose()
        return channel.reader(cancel)

    async def iterator(self, cancel: CancelToken | None = None) -> AsyncIterator[T]:
        """Resolve and return an async iterator over the stream."""
        return aiter(await self.resolve(cancel))

    def _get_cell(self) -> asyncio.Future[Channel[T]]:
        if self._cell is None:
            self._cell = asyncio.get_running_loop().create_future()
        return self._cell

    def _cancel(self, cancel: CancelToken) -> None:
        cell = self._get_cell()
        if cell.done():
            return
        self._state = ProxyState.CANCELLED
        cell.set_exception(
            Cancelled(cancel.reason or "stream resolution was cancelled", component=f"StreamProxy[{self.name}]")
        )
        self._log.info("resolution cancelled", reason=cancel.reason)

    # ─────────────────────────────────────────────────────────────────────────
    # Producer side
    # ─────────────────────────────────────────────────────────────────────────

    def _publish(self, channel: Channel[T]) -> None:
        cell = self._get_cell()
        if cell.done():
            raise Cancelled("proxy was cancelled before its stream was published",
                            component=f"StreamProxy[{self.name}]")
        cell.set_result(channel)
        self._state = ProxyState.RESOLVED
        self._log.debug("stream published")

    async def run(self, body: CoroutineBody[T], cancel: CancelToken | None = None) -> int:
        """Run ``body(cancel)`` as this proxy's producer, forwarding each item into its stream.

        The stream is published before the body starts. The channel is closed
        on every exit path: cleanly on completion, carrying ``Cancelled`` on
        cancellation, carrying the ``ProducerFault`` on failure.

        Returns:
            Number of items produced

        Raises:
            MultipleProducerFault: ``run`` was already called on this proxy
            Cancelled: The token fired, or the proxy was cancelled before publishing
            ProducerFault: The body raised
        """
        if self._started:
            raise MultipleProducerFault(f"proxy {self.name!r} already has a producer",
                                        component=f"StreamProxy[{self.name}]")
        self._started = True
        if cancel is not None and cancel.cancelled:
            self._cancel(cancel)  # no other producer can ever fill the cell
            raise_if_cancelled(cancel)

        channel: Channel[T] = Channel(self._maxsize)
        self._publish(channel)

        count = 0
        iterator: AsyncIterator[T] | None = None
        try:
            iterator = aiter(body(cancel))
            async for item in iterator:
                raise_if_cancelled(cancel)
                await channel.send(item, cancel)
                count += 1
        except asyncio.CancelledError:
            channel.close(Cancelled("producer task was cancelled", component=f"StreamProxy[{self.name}]"))
            raise
        except Cancelled as exc:
            channel.close(exc)
            self._log.info("producer cancelled", items=count)
            raise
        except Exception as exc:
            fault = as_producer_fault(exc, component=f"StreamProxy[{self.name}]")
            channel.close(fault)
            self._log.error("producer faulted", items=count, error=str(fault))
            if fault is exc:
                raise
            raise fault from exc
        else:
            channel.close()
            self._log.info("producer finished", items=count)
        finally:
            if iterator is not None:
                await aclose_iterator(iterator)
        return count
