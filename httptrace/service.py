"""Middleware that wraps an asynchronous HTTP service with tracing callbacks."""

from __future__ import annotations

import copy
import dataclasses
import time
from collections.abc import Awaitable, Callable
from datetime import timedelta
from typing import Any

from .body import ResponseBody
from .callbacks import DefaultOnBodyChunk, DefaultOnEos, DefaultOnFailure, DefaultOnRequest
from .make_span import DefaultMakeSpan
from .model import ClassifiedResponse, Request, Response, Span
from .on_response import DefaultOnResponse

Service = Callable[[Request], Awaitable[Response]]


def _elapsed(now: float, since: float) -> timedelta:
    return timedelta(seconds=max(now - since, 0.0))


def _make_classifier(make_classifier: Any, request: Request) -> Any:
    if hasattr(make_classifier, "make_classifier"):
        return make_classifier.make_classifier(request)
    return make_classifier(request)


class Trace:
    """Wraps a service, running tracing callbacks around each request.

    ``inner`` is an async callable taking a :class:`Request` and returning a
    :class:`Response`. ``make_classifier`` is either an object with a
    ``make_classifier(request)`` method or a callable taking the request; it yields
    a classifier with ``classify_response(response)``, returning a
    :class:`ClassifiedResponse`, and ``classify_error(error)``, returning a failure
    class. Any callback set to ``None`` is skipped.
    """

    __slots__ = (
        "inner",
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
        inner: Service,
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
        self.inner = inner
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

    def _with(self, attribute: str, value: Any) -> Trace:
        clone = copy.copy(self)
        setattr(clone, attribute, value)
        return clone

    def on_request(self, on_request: Callable[..., Any] | None) -> Trace:
        """Return a copy calling ``on_request(request, span)`` when a request arrives."""
        return self._with("_on_request", on_request)

    def on_response(self, on_response: Callable[..., Any] | None) -> Trace:
        """Return a copy calling ``on_response(response, latency, span)``."""
        return self._with("_on_response", on_response)

    def on_body_chunk(self, on_body_chunk: Callable[..., Any] | None) -> Trace:
        """Return a copy calling ``on_body_chunk(chunk, latency, span)``."""
        return self._with("_on_body_chunk", on_body_chunk)

    def on_eos(self, on_eos: Callable[..., Any] | None) -> Trace:
        """Return a copy calling ``on_eos(trailers, stream_duration, span)``."""
        return self._with("_on_eos", on_eos)

    def on_failure(self, on_failure: Callable[..., Any] | None) -> Trace:
        """Return a copy calling ``on_failure(failure_class, latency, span)``."""
        return self._with("_on_failure", on_failure)

    def make_span_with(self, make_span: Callable[[Request], Span]) -> Trace:
        """Return a copy making the span of each request with ``make_span``."""
        if make_span is None:
            raise TypeError("make_span cannot be None")
        return self._with("_make_span", make_span)

    async def call(self, request: Request) -> Response:
        """Run the inner service on ``request``, tracing the request and its response."""
        clock = self._clock
        start = clock()
        span = self._make_span(request)
        classifier = _make_classifier(self._make_classifier, request)
        on_failure = self._on_failure

        with span.enter():
            if self._on_request is not None:
                self._on_request(request, span)
            try:
                response = await self.inner(request)
            except Exception as err:
                latency = _elapsed(clock(), start)
                if on_failure is not None:
                    on_failure(classifier.classify_error(err), latency, span)
                raise
            latency = _elapsed(clock(), start)

            classification: ClassifiedResponse = classifier.classify_response(response)
            if self._on_response is not None:
                self._on_response(response, latency, span)

            if classification.classify_eos is None:
                if classification.failure_class is not None and on_failure is not None:
                    on_failure(classification.failure_class, latency, span)
                body = ResponseBody(
                    response.body,
                    on_body_chunk=self._on_body_chunk,
                    on_failure=on_failure,
                    start=start,
                    span=span,
                    clock=clock,
                )
            else:
                body = ResponseBody(
                    response.body,
                    classify_eos=classification.classify_eos,
                    on_eos=self._on_eos,
                    stream_start=clock() if self._on_eos is not None else None,
                    on_body_chunk=self._on_body_chunk,
                    on_failure=on_failure,
                    start=start,
                    span=span,
                    clock=clock,
                )
        return dataclasses.replace(response, body=body)

    async def __call__(self, request: Request) -> Response:
        return await self.call(request)

    def __repr__(self) -> str:
        return f"Trace(inner={self.inner!r}, make_classifier={self._make_classifier!r})"