"""A reusable description of tracing middleware that can wrap any number of services."""

from __future__ import annotations

import copy
import time
from collections.abc import Callable
from typing import Any

from .callbacks import DefaultOnBodyChunk, DefaultOnEos, DefaultOnFailure, DefaultOnRequest
from .make_span import DefaultMakeSpan
from .model import Request, Span
from .on_response import DefaultOnResponse
from .service import Service, Trace


class TraceLayer:
    """Wraps services in :class:`Trace` middleware sharing one configuration.

    ``make_classifier`` is either an object with a ``make_classifier(request)``
    method or a callable taking the request. Callbacks left out use the defaults;
    the builder methods return a copy, and passing ``None`` to them disables that
    step.
    """

    __slots__ = (
        "_make_classifier",
        "_make_span",
        "_on_request",
        "_on_response",
        "_on_body_chunk",
        "_on_eos",
        "_on_failure",
        "_clock",
    )

    def __init__(
        self,
        make_classifier: Any,
        *,
        make_span: Callable[[Request], Span] | None = None,
        on_request: Callable[..., Any] | None = None,
        on_response: Callable[..., Any] | None = None,
        on_body_chunk: Callable[..., Any] | None = None,
        on_eos: Callable[..., Any] | None = None,
        on_failure: Callable[..., Any] | None = None,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self._make_classifier = make_classifier
        self._make_span = make_span if make_span is not None else DefaultMakeSpan()
        self._on_request = on_request if on_request is not None else DefaultOnRequest()
        self._on_response = (
            on_response if on_response is not None else DefaultOnResponse()
        )
        self._on_body_chunk = (
            on_body_chunk if on_body_chunk is not None else DefaultOnBodyChunk()
        )
        self._on_eos = on_eos if on_eos is not None else DefaultOnEos()
        self._on_failure = on_failure if on_failure is not None else DefaultOnFailure()
        self._clock = clock

    def _with(self, attribute: str, value: Any) -> TraceLayer:
        clone = copy.copy(self)
        setattr(clone, attribute, value)
        return clone

    def on_request(self, on_request: Callable[..., Any] | None) -> TraceLayer:
        """Return a copy calling ``on_request(request, span)`` when a request arrives."""
        return self._with("_on_request", on_request)

    def on_response(self, on_response: Callable[..., Any] | None) -> TraceLayer:
        """Return a copy calling ``on_response(response, latency, span)``."""
        return self._with("_on_response", on_response)

    def on_body_chunk(self, on_body_chunk: Callable[..., Any] | None) -> TraceLayer:
        """Return a copy calling ``on_body_chunk(chunk, latency, span)``."""
        return self._with("_on_body_chunk", on_body_chunk)

    def on_eos(self, on_eos: Callable[..., Any] | None) -> TraceLayer:
        """Return a copy calling ``on_eos(trailers, stream_duration, span)``."""
        return self._with("_on_eos", on_eos)

    def on_failure(self, on_failure: Callable[..., Any] | None) -> TraceLayer:
        """Return a copy calling ``on_failure(failure_class, latency, span)``."""
        return self._with("_on_failure", on_failure)

    def make_span_with(self, make_span: Callable[[Request], Span]) -> TraceLayer:
        """Return a copy making the span of each request with ``make_span``."""
        if make_span is None:
            raise TypeError("make_span cannot be None")
        return self._with("_make_span", make_span)

    def layer(self, inner: Service) -> Trace:
        """Wrap ``inner`` in :class:`Trace` middleware with this configuration."""
        return (
            Trace(inner, self._make_classifier, clock=self._clock)
            .make_span_with(self._make_span)
            .on_request(self._on_request)
            .on_response(self._on_response)
            .on_body_chunk(self._on_body_chunk)
            .on_eos(self._on_eos)
            .on_failure(self._on_failure)
        )

    def __repr__(self) -> str:
        return f"TraceLayer(make_classifier={self._make_classifier!r})"