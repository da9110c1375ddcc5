"""Foundation - fault taxonomy and configuration shared by every runtime module."""

from __future__ import annotations

from .config import CostepSettings, clear_settings_cache, get_settings
from .errors import (
    Cancelled,
    CostepFault,
    ErrorCode,
    FaultInfo,
    ProducerFault,
    is_cancellation,
)

__all__ = [
    "CostepSettings", "get_settings", "clear_settings_cache",
    "Cancelled", "CostepFault", "ErrorCode", "FaultInfo", "ProducerFault", "is_cancellation",
]
