"""Tests for combine / combine_async.

Validates:
- Exact round-robin order, including after a source is removed
- Output length m+n with per-source order preserved
- Release of every live cursor on early close and on fault
- Fault wrapping policy
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterator
from functools import partial

import pytest

from costep.foundation.errors import Cancelled, ProducerFault
from costep.runtime.concurrency import combine, combine_async


def letters(name: str, n: int, released: list[str] | None = None) -> Iterator[str]:
    try:
        for i in range(n):
            yield f"{name}{i}"
    finally:
        if released is not None:
            released.append(name)


def failing(name: str, good: int) -> Iterator[str]:
    for i in range(good):
        yield f"{name}{i}"
    raise ValueError(f"{name} broke")


async def aletters(name: str, n: int, released: list[str] | None = None) -> AsyncIterator[str]:
    try:
        for i in range(n):
            yield f"{name}{i}"
    finally:
        if released is not None:
            released.append(name)


# ─────────────────────────────────────────────────────────────────────────────
# Ordering
# ─────────────────────────────────────────────────────────────────────────────


class TestOrdering:
    """Round-robin fairness."""

    def test_two_five_element_sequences(self) -> None:
        combined = list(combine(partial(letters, "A", 5), partial(letters, "B", 5)))
        assert combined == ["A0", "B0", "A1", "B1", "A2", "B2", "A3", "B3", "A4", "B4"]

    def test_removal_does_not_skip_next_source(self) -> None:
        """When B is exhausted mid-pass, C still gets its turn in that pass."""
        combined = list(combine(
            partial(letters, "A", 3),
            partial(letters, "B", 1),
            partial(letters, "C", 3),
        ))
        assert combined == ["A0", "B0", "C0", "A1", "C1", "A2", "C2"]

    @pytest.mark.parametrize(("m", "n"), [(0, 0), (0, 3), (4, 1), (2, 7), (6, 6)])
    def test_length_and_relative_order(self, m: int, n: int) -> None:
        combined = list(combine(partial(letters, "A", m), partial(letters, "B", n)))
        assert len(combined) == m + n
        assert [v for v in combined if v[0] == "A"] == [f"A{i}" for i in range(m)]
        assert [v for v in combined if v[0] == "B"] == [f"B{i}" for i in range(n)]

    def test_round_robin_property(self) -> None:
        """No source emits its (i+1)-th value before every live source emitted its i-th."""
        lengths = {"A": 2, "B": 5, "C": 3}
        combined = list(combine(*(partial(letters, k, v) for k, v in lengths.items())))
        seen = {k: 0 for k in lengths}
        for value in combined:
            name, index = value[0], int(value[1:])
            for other, count in seen.items():
                if other != name and count < lengths[other]:
                    assert count >= index
            seen[name] += 1

    def test_empty(self) -> None:
        assert list(combine()) == []

    def test_lazy(self) -> None:
        """Factories run only when the combined sequence is first pulled."""
        calls: list[str] = []

        def factory() -> list[int]:
            calls.append("built")
            return [1]

        combined = combine(factory)
        assert calls == []
        assert next(combined) == 1
        assert calls == ["built"]

    def test_accepts_plain_iterables(self) -> None:
        assert list(combine(lambda: "abc", lambda: [1, 2])) == ["a", 1, "b", 2, "c"]


# ─────────────────────────────────────────────────────────────────────────────
# Release & faults
# ─────────────────────────────────────────────────────────────────────────────


class TestRelease:
    """Every live cursor is released on every exit path."""

    def test_early_close_releases_live_cursors(self) -> None:
        released: list[str] = []
        combined = combine(partial(letters, "A", 5, released), partial(letters, "B", 5, released))
        assert [next(combined) for _ in range(3)] == ["A0", "B0", "A1"]
        combined.close()
        assert sorted(released) == ["A", "B"]

    def test_exhausted_cursor_released_immediately(self) -> None:
        released: list[str] = []
        combined = combine(partial(letters, "A", 1, released), partial(letters, "B", 3, released))
        assert [next(combined) for _ in range(4)] == ["A0", "B0", "B1", "B2"]
        assert released == ["A"]
        combined.close()

    def test_fault_wrapped_and_cursors_released(self) -> None:
        released: list[str] = []
        combined = combine(partial(letters, "A", 5, released), partial(failing, "X", 1))
        produced: list[str] = []
        with pytest.raises(ProducerFault) as exc_info:
            for value in combined:
                produced.append(value)
        assert produced == ["A0", "X0", "A1"]
        assert released == ["A"]
        fault = exc_info.value
        assert isinstance(fault.__cause__, ValueError)
        assert fault.original is fault.__cause__
        assert fault.index == 1
        assert "X broke" in str(fault)

    def test_factory_fault_releases_built_cursors(self) -> None:
        released: list[str] = []

        def broken() -> Iterator[str]:
            raise RuntimeError("cannot build")

        combined = combine(partial(letters, "A", 3, released), broken)
        with pytest.raises(ProducerFault) as exc_info:
            next(combined)
        assert exc_info.value.index == 1
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    def test_cancelled_passes_through(self) -> None:
        def cancelled() -> Iterator[str]:
            yield "C0"
            raise Cancelled("stop")

        with pytest.raises(Cancelled):
            list(combine(cancelled, partial(letters, "A", 3)))


# ─────────────────────────────────────────────────────────────────────────────
# Async variant
# ─────────────────────────────────────────────────────────────────────────────


class TestCombineAsync:
    """Same algorithm over async iterables."""

    @pytest.mark.asyncio
    async def test_order(self) -> None:
        combined = [v async for v in combine_async(partial(aletters, "A", 3), partial(aletters, "B", 2))]
        assert combined == ["A0", "B0", "A1", "B1", "A2"]

    @pytest.mark.asyncio
    async def test_fault_releases_live_cursors(self) -> None:
        released: list[str] = []

        async def afailing() -> AsyncIterator[str]:
            yield "X0"
            raise KeyError("gone")

        with pytest.raises(ProducerFault) as exc_info:
            async for _ in combine_async(partial(aletters, "A", 5, released), afailing):
                pass
        assert released == ["A"]
        assert isinstance(exc_info.value.__cause__, KeyError)

    @pytest.mark.asyncio
    async def test_early_close(self) -> None:
        released: list[str] = []
        combined = combine_async(partial(aletters, "A", 5, released), partial(aletters, "B", 5, released))
        assert await combined.__anext__() == "A0"
        assert await combined.__anext__() == "B0"
        await combined.aclose()
        assert sorted(released) == ["A", "B"]
