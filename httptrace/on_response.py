"""The default callback run when the inner service has produced a response."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import timedelta
from typing import Any

from .model import (
    DEFAULT_MESSAGE_LEVEL,
    LatencyUnit,
    Level,
    Response,
    Span,
    _emit_event,
    _get_header,
    format_latency,
    grpc_status,
)

_RESPONSE_LOGGER = logging.getLogger("httptrace.on_response")

_GRPC_CONTENT_TYPE = "application/grpc"


def _is_grpc(response: Response) -> bool:
    value = _get_header(response.headers, "content-type")
    if isinstance(value, (bytes, bytearray)):
        return bytes(value) == _GRPC_CONTENT_TYPE.encode("ascii")
    return value == _GRPC_CONTENT_TYPE


def response_status(response: Response) -> int | None:
    """The status to report for a response.

    For gRPC responses this is the ``grpc-status`` header, or ``None`` while a
    streaming response has no status yet; otherwise the HTTP status code.
    """
    if _is_grpc(response):
        return grpc_status(response.headers)
    return int(response.status)


@dataclass(frozen=True)
class DefaultOnResponse:
    """Logs ``finished processing request`` with the latency and status of a response."""

    event_level: Level = DEFAULT_MESSAGE_LEVEL
    unit: LatencyUnit = LatencyUnit.MILLIS
    headers_included: bool = False

    def level(self, level: Level) -> DefaultOnResponse:
        """Return a copy that logs at ``level``."""
        return replace(self, event_level=Level(level))

    def latency_unit(self, latency_unit: LatencyUnit) -> DefaultOnResponse:
        """Return a copy that reports latencies in ``latency_unit``."""
        return replace(self, unit=LatencyUnit(latency_unit))

    def include_headers(self, include_headers: bool) -> DefaultOnResponse:
        """Return a copy that does or does not log the response headers."""
        return replace(self, headers_included=bool(include_headers))

    def __call__(
        self, response: Response, latency: float | timedelta, span: Span
    ) -> None:
        fields: dict[str, Any] = {"latency": format_latency(latency, self.unit)}
        status = response_status(response)
        if status is not None:
            fields["status"] = status
        if self.headers_included:
            fields["response_headers"] = dict(response.headers)
        _emit_event(
            _RESPONSE_LOGGER,
            self.event_level,
            "finished processing request",
            **fields,
        )