"""A response body that reports chunks, failures and the end of the stream."""

from __future__ import annotations

import time
from collections.abc import Callable, Mapping
from datetime import timedelta
from typing import Any

from .model import Span


def _elapsed(now: float, since: float) -> timedelta:
    return timedelta(seconds=max(now - since, 0.0))


class ResponseBody:
    """Wraps a body, calling the tracing callbacks as it is read.

    ``classify_eos`` is an object with ``classify_eos(trailers)``, returning a failure
    class or ``None`` on success, and ``classify_error(error)``. A callback set to
    ``None`` is skipped. Failures are reported at most once.
    """

    def __init__(
        self,
        inner: Any,
        *,
        classify_eos: Any = None,
        on_eos: Callable[..., Any] | None = None,
        stream_start: float | None = None,
        on_body_chunk: Callable[..., Any] | None = None,
        on_failure: Callable[..., Any] | None = None,
        start: float | None = None,
        span: Span | None = None,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.inner = inner
        self._clock = clock
        self._classify_eos = classify_eos
        if on_eos is not None:
            self._on_eos: tuple[Callable[..., Any], float] | None = (
                on_eos,
                clock() if stream_start is None else stream_start,
            )
        else:
            self._on_eos = None
        self._on_body_chunk = on_body_chunk
        self._on_failure = on_failure
        self._start = clock() if start is None else start
        self.span = span if span is not None else Span("request")

    def _take_failure_handlers(self) -> tuple[Any, Any] | None:
        classify_eos, on_failure = self._classify_eos, self._on_failure
        self._classify_eos = None
        self._on_failure = None
        if classify_eos is None or on_failure is None:
            return None
        return classify_eos, on_failure

    async def data(self) -> Any:
        """Return the next chunk, or ``None`` once the data is exhausted."""
        with self.span.enter():
            try:
                chunk = await self.inner.data()
            except Exception as err:
                now = self._clock()
                latency = _elapsed(now, self._start)
                self._start = now
                handlers = self._take_failure_handlers()
                if handlers is not None:
                    classify_eos, on_failure = handlers
                    on_failure(classify_eos.classify_error(err), latency, self.span)
                raise
            if chunk is None:
                return None
            now = self._clock()
            latency = _elapsed(now, self._start)
            self._start = now
            if self._on_body_chunk is not None:
                self._on_body_chunk(chunk, latency, self.span)
            return chunk

    async def trailers(self) -> Mapping[str, Any] | None:
        """Return the trailers, or ``None`` if there are none."""
        with self.span.enter():
            try:
                trailers = await self.inner.trailers()
            except Exception as err:
                now = self._clock()
                handlers = self._take_failure_handlers()
                if handlers is not None:
                    classify_eos, on_failure = handlers
                    on_failure(
                        classify_eos.classify_error(err),
                        _elapsed(now, self._start),
                        self.span,
                    )
                raise
            now = self._clock()
            handlers = self._take_failure_handlers()
            if handlers is not None:
                classify_eos, on_failure = handlers
                failure_class = classify_eos.classify_eos(trailers)
                if failure_class is not None:
                    on_failure(failure_class, _elapsed(now, self._start), self.span)
                if self._on_eos is not None:
                    on_eos, stream_start = self._on_eos
                    self._on_eos = None
                    on_eos(trailers, _elapsed(now, stream_start), self.span)
            return trailers

    def is_end_stream(self) -> bool:
        """Whether nothing more can be read from the inner body."""
        return self.inner.is_end_stream()

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        while (chunk := await self.data()) is not None:
            yield chunk