"""Demo coroutines for the three scheduling shapes.

    - pull: generators driven one step per timer tick through ``combine``
    - push: async generators paced by rate limiters, yielding to an idle signal
    - mutual: two async generators reading each other's stream through proxies
"""

from __future__ import annotations

from typing import Callable

from costep.runtime.concurrency import Driver, Sink

from . import mutual, pull, push
from .sinks import ConsoleSink, Frame, ListSink

DEMOS: dict[str, Callable[..., Callable]] = {
    "pull": pull.cycle_for,
    "push": push.cycle_for,
    "mutual": mutual.cycle_for,
}


def build_driver(
    name: str,
    sink: ListSink | ConsoleSink | Sink[Frame],
    *,
    max_cycles: int | None = None,
    **options: object,
) -> Driver:
    """Driver running the named demo, calling ``sink.clear`` before each cycle when available.

    Raises:
        KeyError: Unknown demo name
    """
    try:
        cycle_for = DEMOS[name]
    except KeyError:
        raise KeyError(f"unknown demo {name!r}; choose from {', '.join(DEMOS)}") from None
    return Driver(
        cycle_for(sink, **options),
        on_cycle=getattr(sink, "clear", None),
        max_cycles=max_cycles,
        name=f"demo-{name}",
    )


__all__ = ["DEMOS", "build_driver", "Frame", "ListSink", "ConsoleSink", "pull", "push", "mutual"]
