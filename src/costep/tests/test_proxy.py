"""Tests for StreamProxy.

Validates:
- Mutual coroutines resolve each other's stream before either emits
- FIFO forwarding and clean end-of-stream
- Cancellation of a pending resolve cancels the proxy
- Exactly one producer per proxy
- Producer faults reach readers after all good items
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator

import pytest

from costep.foundation.errors import Cancelled, MultipleProducerFault, ProducerFault, StreamExhausted
from costep.runtime.concurrency import (
    CancelToken,
    ProxyState,
    StreamProxy,
    StreamSource,
    collect_stream,
    next_item,
    run_mutual,
)


async def numbers(n: int, cancel: CancelToken | None = None) -> AsyncIterator[int]:
    for i in range(n):
        await asyncio.sleep(0)
        yield i


# ─────────────────────────────────────────────────────────────────────────────
# Mutual resolution
# ─────────────────────────────────────────────────────────────────────────────


class TestMutualResolution:
    """Resolution happens at producer start, not at first output."""

    @pytest.mark.asyncio
    async def test_mutual_resolve_before_any_emit(self) -> None:
        proxy_a: StreamProxy[int] = StreamProxy("A")
        proxy_b: StreamProxy[int] = StreamProxy("B")
        events: list[str] = []

        def body(name: str, peer: StreamSource[int]):
            async def run(cancel: CancelToken | None) -> AsyncIterator[int]:
                await peer.resolve(cancel)
                events.append(f"resolved {name}")
                for i in range(3):
                    assert proxy_a.state is ProxyState.RESOLVED
                    assert proxy_b.state is ProxyState.RESOLVED
                    events.append(f"emit {name}{i}")
                    yield i
            return run

        counts = await asyncio.wait_for(
            run_mutual((proxy_a, body("A", proxy_b)), (proxy_b, body("B", proxy_a))),
            timeout=2.0,
        )
        assert counts == [3, 3]
        assert sorted(e for e in events if e.startswith("resolved")) == ["resolved A", "resolved B"]

    @pytest.mark.asyncio
    async def test_mutual_bodies_that_never_emit_still_finish(self) -> None:
        """Neither body needs the other's first value to resolve."""
        proxy_a: StreamProxy[int] = StreamProxy("A")
        proxy_b: StreamProxy[int] = StreamProxy("B")

        def body(peer: StreamSource[int]):
            async def run(cancel: CancelToken | None) -> AsyncIterator[int]:
                await peer.resolve(cancel)
                return
                yield  # pragma: no cover
            return run

        counts = await asyncio.wait_for(
            run_mutual((proxy_a, body(proxy_b)), (proxy_b, body(proxy_a))),
            timeout=2.0,
        )
        assert counts == [0, 0]

    @pytest.mark.asyncio
    async def test_mutual_exchange_of_values(self) -> None:
        """Each coroutine reads the other's values while producing its own."""
        proxy_a: StreamProxy[str] = StreamProxy("A")
        proxy_b: StreamProxy[str] = StreamProxy("B")
        seen: dict[str, list[str]] = {"A": [], "B": []}

        def body(name: str, peer: StreamSource[str]):
            async def run(cancel: CancelToken | None) -> AsyncIterator[str]:
                reader = await peer.resolve(cancel)
                for i in range(3):
                    yield f"{name}{i}"
                    seen[name].append(await reader.receive())
            return run

        await asyncio.wait_for(
            run_mutual((proxy_a, body("A", proxy_b)), (proxy_b, body("B", proxy_a))),
            timeout=2.0,
        )
        assert seen == {"A": ["B0", "B1", "B2"], "B": ["A0", "A1", "A2"]}


# ─────────────────────────────────────────────────────────────────────────────
# Forwarding
# ─────────────────────────────────────────────────────────────────────────────


class TestForwarding:
    """Items reach readers in emission order."""

    @pytest.mark.asyncio
    async def test_fifo_and_end_of_stream(self) -> None:
        proxy: StreamProxy[int] = StreamProxy("P")
        producer = asyncio.create_task(proxy.run(lambda cancel: numbers(5, cancel)))
        reader = await proxy.resolve()
        assert await collect_stream(reader) == [0, 1, 2, 3, 4]
        assert await producer == 5

    @pytest.mark.asyncio
    async def test_resolve_after_run_finished(self) -> None:
        proxy: StreamProxy[int] = StreamProxy("P")
        assert await proxy.run(lambda cancel: numbers(2, cancel)) == 2
        iterator = await proxy.iterator()
        assert await next_item(iterator) == 0
        assert await next_item(iterator) == 1
        with pytest.raises(StreamExhausted):
            await next_item(iterator)

    @pytest.mark.asyncio
    async def test_second_producer_rejected(self) -> None:
        proxy: StreamProxy[int] = StreamProxy("P")
        await proxy.run(lambda cancel: numbers(1, cancel))
        with pytest.raises(MultipleProducerFault):
            await proxy.run(lambda cancel: numbers(1, cancel))

    @pytest.mark.asyncio
    async def test_body_closed_on_completion(self) -> None:
        closed: list[bool] = []

        async def body(cancel: CancelToken | None) -> AsyncIterator[int]:
            try:
                yield 1
            finally:
                closed.append(True)

        proxy: StreamProxy[int] = StreamProxy("P")
        await proxy.run(body)
        assert closed == [True]


# ─────────────────────────────────────────────────────────────────────────────
# Cancellation
# ─────────────────────────────────────────────────────────────────────────────


class TestCancellation:
    """Token-driven cancellation of resolve and run."""

    @pytest.mark.asyncio
    async def test_cancel_pending_resolve(self) -> None:
        proxy: StreamProxy[int] = StreamProxy("P")
        token = CancelToken()
        resolver = asyncio.create_task(proxy.resolve(token))
        await asyncio.sleep(0)
        token.cancel("shutdown")
        with pytest.raises(Cancelled, match="shutdown"):
            await asyncio.wait_for(resolver, timeout=1.0)
        assert proxy.state is ProxyState.CANCELLED

    @pytest.mark.asyncio
    async def test_publish_after_cancel_rejected(self) -> None:
        """A later producer cannot overwrite a cancelled resolution."""
        proxy: StreamProxy[int] = StreamProxy("P")
        token = CancelToken()
        resolver = asyncio.create_task(proxy.resolve(token))
        await asyncio.sleep(0)
        token.cancel()
        with pytest.raises(Cancelled):
            await resolver

        with pytest.raises(Cancelled):
            await proxy.run(lambda cancel: numbers(3, cancel))
        assert proxy.state is ProxyState.CANCELLED
        with pytest.raises(Cancelled):
            await proxy.resolve()

    @pytest.mark.asyncio
    async def test_resolve_with_cancelled_token(self) -> None:
        proxy: StreamProxy[int] = StreamProxy("P")
        token = CancelToken()
        token.cancel()
        with pytest.raises(Cancelled):
            await proxy.resolve(token)
        assert proxy.state is ProxyState.CANCELLED

    @pytest.mark.asyncio
    async def test_task_cancel_leaves_proxy_usable(self) -> None:
        """Cancelling the awaiting task abandons that resolve only."""
        proxy: StreamProxy[int] = StreamProxy("P")
        resolver = asyncio.create_task(proxy.resolve())
        await asyncio.sleep(0)
        resolver.cancel()
        with pytest.raises(asyncio.CancelledError):
            await resolver
        assert proxy.state is ProxyState.UNRESOLVED
        await proxy.run(lambda cancel: numbers(1, cancel))
        assert await collect_stream(await proxy.resolve()) == [0]

    @pytest.mark.asyncio
    async def test_run_with_cancelled_token_cancels_proxy(self) -> None:
        """A producer that never starts must not leave readers waiting."""
        proxy: StreamProxy[int] = StreamProxy("P")
        resolver = asyncio.create_task(proxy.resolve())
        await asyncio.sleep(0)
        token = CancelToken()
        token.cancel("shutting down")
        with pytest.raises(Cancelled):
            await proxy.run(lambda cancel: numbers(1, cancel), token)
        assert proxy.started
        assert proxy.state is ProxyState.CANCELLED
        with pytest.raises(Cancelled, match="shutting down"):
            await asyncio.wait_for(resolver, timeout=1.0)
        with pytest.raises(Cancelled):
            await proxy.resolve()

    @pytest.mark.asyncio
    async def test_cancel_during_run_reaches_reader(self) -> None:
        async def forever(cancel: CancelToken | None) -> AsyncIterator[int]:
            i = 0
            while True:
                await asyncio.sleep(0.001)
                yield i
                i += 1

        proxy: StreamProxy[int] = StreamProxy("P")
        token = CancelToken()
        producer = asyncio.create_task(proxy.run(forever, token))
        reader = await proxy.resolve()
        token.cancel_after(20)

        with pytest.raises(Cancelled):
            await asyncio.wait_for(producer, timeout=2.0)
        received: list[int] = []
        with pytest.raises(Cancelled):
            async for item in reader:
                received.append(item)
        assert received == list(range(len(received)))


# ─────────────────────────────────────────────────────────────────────────────
# Faults
# ─────────────────────────────────────────────────────────────────────────────


class TestFaults:
    """Producer failures propagate to the runner and to readers."""

    @pytest.mark.asyncio
    async def test_fault_after_good_items(self) -> None:
        async def flaky(cancel: CancelToken | None) -> AsyncIterator[int]:
            yield 1
            yield 2
            raise ValueError("sensor offline")

        proxy: StreamProxy[int] = StreamProxy("P")
        producer = asyncio.create_task(proxy.run(flaky))
        reader = await proxy.resolve()

        received: list[int] = []
        with pytest.raises(ProducerFault) as reader_exc:
            async for item in reader:
                received.append(item)
        with pytest.raises(ProducerFault) as run_exc:
            await producer

        assert received == [1, 2]
        assert reader_exc.value is run_exc.value
        assert isinstance(run_exc.value.__cause__, ValueError)
        assert "P" in run_exc.value.component

    @pytest.mark.asyncio
    @pytest.mark.parametrize("result", [ValueError("setup failed"), 42])
    async def test_body_failing_on_call_closes_stream(self, result: object) -> None:
        """A body that raises when called, or returns a non-stream, still ends the published stream."""
        def broken(cancel: CancelToken | None) -> AsyncIterator[int]:
            if isinstance(result, Exception):
                raise result
            return result  # type: ignore[return-value]

        proxy: StreamProxy[int] = StreamProxy("P")
        producer = asyncio.create_task(proxy.run(broken))
        reader = await proxy.resolve()

        with pytest.raises(ProducerFault) as reader_exc:
            await asyncio.wait_for(collect_stream(reader), timeout=1.0)
        with pytest.raises(ProducerFault) as run_exc:
            await producer

        assert reader_exc.value is run_exc.value
        assert isinstance(run_exc.value.__cause__, ValueError if isinstance(result, Exception) else TypeError)
