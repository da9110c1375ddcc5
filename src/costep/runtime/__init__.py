"""Runtime - scheduling primitives and observability."""

from __future__ import annotations

from .concurrency import (
    CancelToken,
    Channel,
    CompletionSource,
    Driver,
    RateLimiter,
    StreamProxy,
    Supervisor,
    combine,
    combine_async,
    drive_streams,
    drive_ticks,
    run_mutual,
)
from .observability import configure_logging, get_logger, log_context

__all__ = [
    "CancelToken", "Channel", "CompletionSource", "Driver", "RateLimiter", "StreamProxy", "Supervisor",
    "combine", "combine_async", "drive_streams", "drive_ticks", "run_mutual",
    "configure_logging", "get_logger", "log_context",
]
