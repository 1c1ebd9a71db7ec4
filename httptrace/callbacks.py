"""Default callbacks run when a request arrives, a chunk is sent, a failure occurs or a stream ends.

Any callable with the same signature may be used in place of these defaults, and
``None`` disables a step.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, replace
from datetime import timedelta
from typing import Any

from .model import (
    DEFAULT_ERROR_LEVEL,
    DEFAULT_MESSAGE_LEVEL,
    LatencyUnit,
    Level,
    Request,
    Span,
    _emit_event,
    format_latency,
    grpc_status,
)

_REQUEST_LOGGER = logging.getLogger("httptrace.on_request")
_FAILURE_LOGGER = logging.getLogger("httptrace.on_failure")
_EOS_LOGGER = logging.getLogger("httptrace.on_eos")


@dataclass(frozen=True)
class DefaultOnRequest:
    """Logs ``started processing request`` when a request is received."""

    event_level: Level = DEFAULT_MESSAGE_LEVEL

    def level(self, level: Level) -> DefaultOnRequest:
        """Return a copy that logs at ``level``."""
        return replace(self, event_level=Level(level))

    def __call__(self, request: Request, span: Span) -> None:
        _emit_event(_REQUEST_LOGGER, self.event_level, "started processing request")


@dataclass(frozen=True)
class DefaultOnBodyChunk:
    """Does nothing when a body chunk is sent."""

    def __call__(self, chunk: Any, latency: float | timedelta, span: Span) -> None:
        return None


@dataclass(frozen=True)
class DefaultOnFailure:
    """Logs ``response failed`` with the failure class and the latency."""

    event_level: Level = DEFAULT_ERROR_LEVEL
    unit: LatencyUnit = LatencyUnit.MILLIS

    def level(self, level: Level) -> DefaultOnFailure:
        """Return a copy that logs at ``level``."""
        return replace(self, event_level=Level(level))

    def latency_unit(self, latency_unit: LatencyUnit) -> DefaultOnFailure:
        """Return a copy that reports latencies in ``latency_unit``."""
        return replace(self, unit=LatencyUnit(latency_unit))

    def __call__(
        self, failure_class: Any, latency: float | timedelta, span: Span
    ) -> None:
        _emit_event(
            _FAILURE_LOGGER,
            self.event_level,
            "response failed",
            classification=str(failure_class),
            latency=format_latency(latency, self.unit),
        )


@dataclass(frozen=True)
class DefaultOnEos:
    """Logs ``end of stream`` with the stream duration and any gRPC status of the trailers."""

    event_level: Level = DEFAULT_MESSAGE_LEVEL
    unit: LatencyUnit = LatencyUnit.MILLIS

    def level(self, level: Level) -> DefaultOnEos:
        """Return a copy that logs at ``level``."""
        return replace(self, event_level=Level(level))

    def latency_unit(self, latency_unit: LatencyUnit) -> DefaultOnEos:
        """Return a copy that reports durations in ``latency_unit``."""
        return replace(self, unit=LatencyUnit(latency_unit))

    def __call__(
        self,
        trailers: Mapping[str, Any] | None,
        stream_duration: float | timedelta,
        span: Span,
    ) -> None:
        fields: dict[str, Any] = {
            "stream_duration": format_latency(stream_duration, self.unit)
        }
        status = grpc_status(trailers)
        if status is not None:
            fields["status"] = status
        _emit_event(_EOS_LOGGER, self.event_level, "end of stream", **fields)