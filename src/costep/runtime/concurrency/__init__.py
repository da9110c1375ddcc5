"""Cooperative coroutine scheduling primitives.

All coroutines run on one asyncio loop; concurrency here means interleaving,
never parallelism. Every suspension point takes an optional ``CancelToken``.

Key Components:
    - CompletionSource: manually-resumable single-shot wait, the base of all suspension
    - Signal adapters: DelaySource, TimerSource, IdleSource over a YieldSignal
    - RateLimiter: minimum-interval pacing inside a step loop
    - combine / combine_async: fair round-robin interleaving of lazy sequences
    - Channel / StreamProxy: forward references to another coroutine's live stream
    - Driver: top-level loop with restart-on-exhaustion and clean cancellation

Example:
    >>> from costep.runtime.concurrency import CancelToken, Driver, combine, drive_ticks
    >>>
    >>> async def cycle(cancel):
    ...     await drive_ticks(combine(lambda: "abc", lambda: "xyz"), print, cancel=cancel)
    >>>
    >>> await Driver(cycle, max_cycles=1).run(CancelToken())
"""

from __future__ import annotations

# Cancellation
from .cancel import CancelToken, Registration, raise_if_cancelled

# Completion source
from .source import Completion, CompletionSource, SourceStatus

# Signal adapters
from .signals import (
    DelaySource,
    IdleSource,
    ManualYieldSignal,
    TimerSource,
    YieldSignal,
)

# Pacing
from .interval import RateLimiter

# Sequences and streams
from .combinator import combine, combine_async
from .channel import Channel, ChannelReader
from .proxy import CoroutineBody, ProxyState, StreamProxy, StreamSource
from .stream import aclose_iterator, collect_stream, for_each, next_item

# Tasks and driving
from .task import TaskGroup, TaskHandle, TaskState
from .driver import Driver, Sink, Supervisor, deliver, drive_streams, drive_ticks, run_mutual

__all__ = [
    # Cancellation
    "CancelToken", "Registration", "raise_if_cancelled",
    # Completion source
    "CompletionSource", "Completion", "SourceStatus",
    # Signal adapters
    "DelaySource", "TimerSource", "YieldSignal", "ManualYieldSignal", "IdleSource",
    # Pacing
    "RateLimiter",
    # Sequences and streams
    "combine", "combine_async",
    "Channel", "ChannelReader",
    "StreamProxy", "StreamSource", "ProxyState", "CoroutineBody",
    "aclose_iterator", "for_each", "next_item", "collect_stream",
    # Tasks and driving
    "TaskGroup", "TaskHandle", "TaskState",
    "Driver", "Supervisor", "Sink", "deliver", "drive_ticks", "drive_streams", "run_mutual",
]
