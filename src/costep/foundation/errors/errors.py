"""Fault taxonomy for the coroutine scheduling core.

Three families:
    - Programming errors (misuse of a primitive): never retried, fatal for the run.
    - Cancelled: expected, cooperative, unwinds cleanly and is not logged as an error.
    - ProducerFault: a coroutine body raised; wraps the original as ``__cause__``.

Every fault carries a frozen ``FaultInfo`` payload so drivers can log and
classify failures without string matching.
"""

from __future__ import annotations

import asyncio
import traceback
from enum import StrEnum
from typing import Annotated, Self

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator


class ErrorCode(StrEnum):
    """Machine-readable fault codes."""
    STALE_TOKEN = "STALE_TOKEN"
    MULTIPLE_CONTINUATION = "MULTIPLE_CONTINUATION"
    NOT_READY = "NOT_READY"
    SOURCE_CLOSED = "SOURCE_CLOSED"
    MULTIPLE_PRODUCER = "MULTIPLE_PRODUCER"
    CHANNEL_CLOSED = "CHANNEL_CLOSED"
    STREAM_EXHAUSTED = "STREAM_EXHAUSTED"
    CANCELLED = "CANCELLED"
    PRODUCER_FAULT = "PRODUCER_FAULT"


_PROGRAMMING_CODES: frozenset[ErrorCode] = frozenset({
    ErrorCode.STALE_TOKEN,
    ErrorCode.MULTIPLE_CONTINUATION,
    ErrorCode.NOT_READY,
    ErrorCode.SOURCE_CLOSED,
    ErrorCode.MULTIPLE_PRODUCER,
    ErrorCode.CHANNEL_CLOSED,
})


class FaultInfo(BaseModel):
    """Structured description of a fault.

    Attributes:
        code: Machine-readable fault classification
        message: Human-readable message
        component: Primitive or coroutine that raised (e.g. "CompletionSource")
        recoverable: Whether a fresh run might succeed
        details: Optional extra info (e.g. formatted traceback of the cause)
    """

    model_config = ConfigDict(
        frozen=True,
        str_strip_whitespace=True,
        validate_default=True,
        json_schema_extra={
            "title": "Fault",
            "examples": [{
                "code": "MULTIPLE_CONTINUATION",
                "message": "wait() called while a wait is already pending",
                "component": "CompletionSource",
                "recoverable": False,
            }],
        },
    )

    code: ErrorCode
    message: Annotated[str, Field(min_length=1)]
    component: str = ""
    recoverable: bool = True
    details: str | None = Field(default=None, repr=False)

    @field_validator("message", mode="before")
    @classmethod
    def _ensure_message(cls, v: str | BaseException) -> str:
        """Accept exceptions and fall back to their type name when the message is empty."""
        if isinstance(v, BaseException):
            return str(v) or type(v).__name__
        return v

    @computed_field
    @property
    def is_programming_error(self) -> bool:
        """Whether this fault indicates misuse of a primitive."""
        return self.code in _PROGRAMMING_CODES

    @computed_field
    @property
    def severity(self) -> str:
        """Severity level for logging."""
        if self.code is ErrorCode.CANCELLED:
            return "info"
        if self.code is ErrorCode.STREAM_EXHAUSTED:
            return "warning"
        return "critical" if self.is_programming_error else "error"

    def render(self) -> str:
        where = f" [{self.component}]" if self.component else ""
        return f"{self.code}{where}: {self.message}"

    __str__ = render


class CostepFault(Exception):
    """Base exception carrying a ``FaultInfo``."""

    code: ErrorCode = ErrorCode.PRODUCER_FAULT
    recoverable: bool = True

    def __init__(self, message: str | FaultInfo, *, component: str = "", details: str | None = None) -> None:
        if isinstance(message, FaultInfo):
            self.error = message
        else:
            self.error = FaultInfo(
                code=self.code,
                message=message,
                component=component,
                recoverable=self.recoverable,
                details=details,
            )
        super().__init__(self.error.message)

    @classmethod
    def create(cls, message: str, *, component: str = "") -> Self:
        return cls(message, component=component)

    @property
    def component(self) -> str:
        return self.error.component


class StaleTokenFault(CostepFault):
    """A handle from an earlier generation tried to observe or resume a later wait."""
    code = ErrorCode.STALE_TOKEN
    recoverable = False


class MultipleContinuationFault(CostepFault):
    """A second continuation was registered while one is outstanding."""
    code = ErrorCode.MULTIPLE_CONTINUATION
    recoverable = False


class NotReadyFault(CostepFault):
    """The result of a wait was requested while it is still pending."""
    code = ErrorCode.NOT_READY
    recoverable = False


class SourceClosedFault(CostepFault):
    """A torn-down completion source was waited on."""
    code = ErrorCode.SOURCE_CLOSED
    recoverable = False


class MultipleProducerFault(CostepFault):
    """A stream proxy was run by more than one producer."""
    code = ErrorCode.MULTIPLE_PRODUCER
    recoverable = False


class ChannelClosedFault(CostepFault):
    """An item was sent into a closed channel."""
    code = ErrorCode.CHANNEL_CLOSED
    recoverable = False


class StreamExhausted(CostepFault):
    """A next item was demanded from a stream that has ended."""
    code = ErrorCode.STREAM_EXHAUSTED


class Cancelled(CostepFault):
    """Cooperative cancellation observed at a suspension point."""
    code = ErrorCode.CANCELLED

    def __init__(self, message: str | FaultInfo = "operation was cancelled", *, component: str = "",
                 details: str | None = None) -> None:
        super().__init__(message, component=component, details=details)


class ProducerFault(CostepFault):
    """A coroutine body raised; the original exception is kept as ``original`` and ``__cause__``."""
    code = ErrorCode.PRODUCER_FAULT

    def __init__(self, message: str | FaultInfo, *, component: str = "", details: str | None = None,
                 original: BaseException | None = None, index: int | None = None) -> None:
        super().__init__(message, component=component, details=details)
        self.original = original
        self.index = index

    @classmethod
    def wrap(cls, exc: BaseException, *, component: str = "", index: int | None = None) -> Self:
        """Wrap a producer exception, recording the formatted original traceback."""
        fault = cls(
            f"{type(exc).__name__}: {exc}" if str(exc) else type(exc).__name__,
            component=component,
            details="".join(traceback.format_exception(exc)),
            original=exc,
            index=index,
        )
        fault.__cause__ = exc
        return fault


def is_cancellation(exc: BaseException) -> bool:
    """Whether ``exc`` is cooperative (token) or asyncio task cancellation."""
    return isinstance(exc, (Cancelled, asyncio.CancelledError))


def as_producer_fault(exc: BaseException, *, component: str = "", index: int | None = None) -> BaseException:
    """Return ``exc`` unchanged if it is a costep fault, a cancellation or not an Exception, else wrap it."""
    if isinstance(exc, CostepFault) or not isinstance(exc, Exception):
        return exc
    return ProducerFault.wrap(exc, component=component, index=index)
