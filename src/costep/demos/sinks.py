"""Per-step output sinks for the demo coroutines.

A demo coroutine renders one ``Frame`` per step: the full line it would
draw on its own console row. Sinks are plain callables, so any function
taking a frame (sync or async) works with the drivers.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from typing import TextIO


@dataclass(frozen=True, slots=True)
class Frame:
    """One rendered step.

    Attributes:
        name: Coroutine that produced the frame
        row: Console row the coroutine draws on
        text: Row content after the name
    """

    name: str
    row: int
    text: str

    def render(self) -> str:
        return f"{self.name}: {self.text}"


@dataclass(slots=True)
class ListSink:
    """Collects frames in delivery order. Used by tests."""

    frames: list[Frame] = field(default_factory=list)
    clears: int = 0

    def __call__(self, frame: Frame) -> None:
        self.frames.append(frame)

    def clear(self, cycle: int) -> None:
        self.clears += 1

    def by_name(self, name: str) -> list[Frame]:
        return [f for f in self.frames if f.name == name]

    def last(self, name: str) -> Frame | None:
        frames = self.by_name(name)
        return frames[-1] if frames else None


@dataclass(slots=True)
class ConsoleSink:
    """Writes one line per frame. Format: [row] name: text"""

    output: TextIO = field(default_factory=lambda: sys.stdout)

    def __call__(self, frame: Frame) -> None:
        print(f"[{frame.row}] {frame.render()}", file=self.output, flush=True)

    def clear(self, cycle: int) -> None:
        print(f"--- cycle {cycle} ---", file=self.output, flush=True)
