"""Unified fault handling for costep.

- ErrorCode / FaultInfo: classification and structured payload
- CostepFault and its programming-error subclasses
- Cancelled: cooperative cancellation
- ProducerFault: wrapped coroutine body failures
"""

from .errors import (
    Cancelled,
    ChannelClosedFault,
    CostepFault,
    ErrorCode,
    FaultInfo,
    MultipleContinuationFault,
    MultipleProducerFault,
    NotReadyFault,
    ProducerFault,
    SourceClosedFault,
    StaleTokenFault,
    StreamExhausted,
    as_producer_fault,
    is_cancellation,
)
from .types import JsonDict, JsonPrimitive, JsonValue

__all__ = [
    # Codes & payload
    "ErrorCode", "FaultInfo",
    # Faults
    "CostepFault", "StaleTokenFault", "MultipleContinuationFault", "NotReadyFault",
    "SourceClosedFault", "MultipleProducerFault", "ChannelClosedFault", "StreamExhausted",
    "Cancelled", "ProducerFault",
    # Helpers
    "is_cancellation", "as_producer_fault",
    # Types
    "JsonDict", "JsonPrimitive", "JsonValue",
]
