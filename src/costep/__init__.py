"""costep - cooperative coroutine scheduling on asyncio.

Small primitives that let independently-written coroutines interleave under
external control, read each other's live output, and be rate-limited, all on
one cooperative timeline.

Quick Start (pull-based, driven by a timer):
    >>> from costep import CancelToken, Driver, combine, drive_ticks
    >>>
    >>> def count(name):
    ...     for i in range(3):
    ...         yield f"{name}{i}"
    >>>
    >>> async def cycle(cancel):
    ...     await drive_ticks(combine(lambda: count("A"), lambda: count("B")), print, cancel=cancel)
    >>>
    >>> await Driver(cycle, max_cycles=1).run(CancelToken())
    A0
    B0
    A1
    ...

Mutual coroutines (each reads the other's stream):
    >>> from costep import StreamProxy, run_mutual
    >>> proxy_a, proxy_b = StreamProxy("A"), StreamProxy("B")
    >>> await run_mutual((proxy_a, body_reading(proxy_b)), (proxy_b, body_reading(proxy_a)))

Configuration:
    COSTEP_SCHEDULER_TICK_INTERVAL_MS=25
    COSTEP_PROXY_QUEUE_MAXSIZE=0
    COSTEP_LOG_FORMAT=json
"""

from __future__ import annotations

from .foundation import (
    Cancelled,
    CostepFault,
    CostepSettings,
    ErrorCode,
    FaultInfo,
    ProducerFault,
    clear_settings_cache,
    get_settings,
    is_cancellation,
)
from .runtime.concurrency import (
    CancelToken,
    Channel,
    ChannelReader,
    Completion,
    CompletionSource,
    DelaySource,
    Driver,
    IdleSource,
    ManualYieldSignal,
    ProxyState,
    RateLimiter,
    StreamProxy,
    StreamSource,
    Supervisor,
    TaskGroup,
    TimerSource,
    YieldSignal,
    combine,
    combine_async,
    deliver,
    drive_streams,
    drive_ticks,
    for_each,
    next_item,
    run_mutual,
)
from .runtime.observability import configure_logging, get_logger, log_context

__version__ = "0.1.0"

__all__ = [
    # Primitives
    "CancelToken", "CompletionSource", "Completion",
    "DelaySource", "TimerSource", "IdleSource", "YieldSignal", "ManualYieldSignal",
    "RateLimiter",
    # Sequences and streams
    "combine", "combine_async", "Channel", "ChannelReader",
    "StreamProxy", "StreamSource", "ProxyState", "for_each", "next_item",
    # Driving
    "TaskGroup", "Driver", "Supervisor", "deliver", "drive_ticks", "drive_streams", "run_mutual",
    # Faults
    "ErrorCode", "FaultInfo", "CostepFault", "Cancelled", "ProducerFault", "is_cancellation",
    # Config & logging
    "CostepSettings", "get_settings", "clear_settings_cache",
    "configure_logging", "get_logger", "log_context",
    "__version__",
]
