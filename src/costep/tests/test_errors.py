"""Tests for the fault taxonomy."""

from __future__ import annotations

import asyncio

import pytest
from pydantic import ValidationError

from costep.foundation.errors import (
    Cancelled,
    ChannelClosedFault,
    CostepFault,
    ErrorCode,
    FaultInfo,
    MultipleContinuationFault,
    ProducerFault,
    StaleTokenFault,
    StreamExhausted,
    as_producer_fault,
    is_cancellation,
)


class TestFaultInfo:
    """Structured payload."""

    def test_frozen(self) -> None:
        info = FaultInfo(code=ErrorCode.NOT_READY, message="still pending")
        with pytest.raises(ValidationError):
            info.message = "changed"  # type: ignore[misc]

    def test_empty_message_rejected(self) -> None:
        with pytest.raises(ValidationError):
            FaultInfo(code=ErrorCode.CANCELLED, message="")

    def test_message_from_exception(self) -> None:
        info = FaultInfo(code=ErrorCode.PRODUCER_FAULT, message=KeyError())
        assert info.message == "KeyError"

    @pytest.mark.parametrize(
        ("code", "severity", "programming"),
        [
            (ErrorCode.STALE_TOKEN, "critical", True),
            (ErrorCode.MULTIPLE_PRODUCER, "critical", True),
            (ErrorCode.CANCELLED, "info", False),
            (ErrorCode.STREAM_EXHAUSTED, "warning", False),
            (ErrorCode.PRODUCER_FAULT, "error", False),
        ],
    )
    def test_classification(self, code: ErrorCode, severity: str, programming: bool) -> None:
        info = FaultInfo(code=code, message="x")
        assert info.severity == severity
        assert info.is_programming_error is programming

    def test_render(self) -> None:
        info = FaultInfo(code=ErrorCode.NOT_READY, message="pending", component="CompletionSource")
        assert info.render() == "NOT_READY [CompletionSource]: pending"
        assert str(FaultInfo(code=ErrorCode.NOT_READY, message="pending")) == "NOT_READY: pending"


class TestFaults:
    """Exception classes."""

    def test_programming_faults_not_recoverable(self) -> None:
        for cls in (StaleTokenFault, MultipleContinuationFault, ChannelClosedFault):
            fault = cls("misuse", component="X")
            assert isinstance(fault, CostepFault)
            assert fault.error.recoverable is False
            assert fault.error.code is cls.code
            assert fault.component == "X"

    def test_cancelled_default_message(self) -> None:
        assert str(Cancelled()) == "operation was cancelled"
        assert Cancelled().error.code is ErrorCode.CANCELLED

    def test_create_factory(self) -> None:
        fault = StreamExhausted.create("done", component="stream")
        assert isinstance(fault, StreamExhausted)
        assert fault.error.component == "stream"

    def test_wrap_keeps_cause(self) -> None:
        try:
            raise ValueError("bad value")
        except ValueError as exc:
            fault = ProducerFault.wrap(exc, component="combine", index=2)
        assert fault.__cause__ is fault.original
        assert fault.index == 2
        assert str(fault) == "ValueError: bad value"
        assert fault.error.details is not None and "bad value" in fault.error.details

    def test_fault_info_passthrough(self) -> None:
        info = FaultInfo(code=ErrorCode.PRODUCER_FAULT, message="given")
        assert ProducerFault(info).error is info


class TestHelpers:
    """Classification helpers."""

    def test_is_cancellation(self) -> None:
        assert is_cancellation(Cancelled())
        assert is_cancellation(asyncio.CancelledError())
        assert not is_cancellation(ValueError())

    def test_as_producer_fault(self) -> None:
        cancelled = Cancelled()
        assert as_producer_fault(cancelled) is cancelled
        interrupt = KeyboardInterrupt()
        assert as_producer_fault(interrupt) is interrupt
        wrapped = as_producer_fault(OSError("disk"), component="P", index=0)
        assert isinstance(wrapped, ProducerFault)
        assert wrapped.component == "P"
