"""Core types shared by the tracing middleware: levels, spans, messages and bodies."""

from __future__ import annotations

import contextvars
import enum
import logging
import re
from collections import deque
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

TRACE_LOGGING_LEVEL = 5
logging.addLevelName(TRACE_LOGGING_LEVEL, "TRACE")


class Level(enum.Enum):
    """Verbosity of a span or event; values are :mod:`logging` levels."""

    ERROR = logging.ERROR
    WARN = logging.WARNING
    INFO = logging.INFO
    DEBUG = logging.DEBUG
    TRACE = TRACE_LOGGING_LEVEL


DEFAULT_MESSAGE_LEVEL = Level.DEBUG
DEFAULT_ERROR_LEVEL = Level.ERROR


class LatencyUnit(enum.Enum):
    """Unit in which latencies are reported; values are the printed suffixes."""

    SECONDS = "s"
    MILLIS = "ms"
    MICROS = "μs"
    NANOS = "ns"


_NANOS_PER_UNIT = {
    LatencyUnit.MILLIS: 1_000_000,
    LatencyUnit.MICROS: 1_000,
    LatencyUnit.NANOS: 1,
}


def format_latency(seconds: float | timedelta, unit: LatencyUnit) -> str:
    """Render a duration in seconds as text in the given unit.

    Seconds are printed as a float; the other units are truncated to whole numbers.
    """
    unit = LatencyUnit(unit)
    if isinstance(seconds, timedelta):
        seconds = seconds.total_seconds()
    seconds = float(seconds)
    if seconds < 0:
        raise ValueError("latency cannot be negative")
    if unit is LatencyUnit.SECONDS:
        text = repr(seconds)
        if text.endswith(".0"):
            text = text[:-2]
        return f"{text} s"
    nanos = round(seconds * 1_000_000_000)
    return f"{nanos // _NANOS_PER_UNIT[unit]} {unit.value}"


def _get_header(headers: Mapping[str, Any] | None, name: str) -> Any:
    """Look up a header case-insensitively; ``None`` when absent."""
    if not headers:
        return None
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            return value
    return None


_INT_PATTERN = re.compile(r"[+-]?[0-9]+")
_I32_MIN, _I32_MAX = -(2**31), 2**31 - 1


def grpc_status(headers: Mapping[str, Any] | None) -> int | None:
    """Read the ``grpc-status`` of a header map.

    Returns ``None`` when the header is missing, ``0`` on success or when the value
    cannot be read as an integer, and the status code otherwise.
    """
    if headers is None:
        return None
    value = _get_header(headers, "grpc-status")
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray)):
        try:
            value = bytes(value).decode("ascii")
        except UnicodeDecodeError:
            return 0
    if not isinstance(value, str) or not value.isprintable():
        return 0
    if not _INT_PATTERN.fullmatch(value):
        return 0
    code = int(value)
    if not _I32_MIN <= code <= _I32_MAX:
        return 0
    return code


def _render(value: Any) -> str:
    return value if isinstance(value, str) else repr(value)


_CURRENT_SPAN: contextvars.ContextVar[Span | None] = contextvars.ContextVar(
    "httptrace_current_span", default=None
)


class Span:
    """A named scope with fields that events emitted inside it are attached to.

    Fields must be declared when the span is made; a field declared with the value
    ``None`` is empty until recorded. Recording an undeclared field does nothing.
    """

    __slots__ = ("name", "level", "fields")

    def __init__(
        self,
        name: str,
        level: Level = Level.INFO,
        fields: Mapping[str, Any] | None = None,
    ) -> None:
        self.name = name
        self.level = Level(level)
        self.fields: dict[str, Any] = dict(fields or {})

    def record(self, name: str, value: Any) -> Span:
        """Set the value of a declared field."""
        if name in self.fields:
            self.fields[name] = value
        return self

    @contextmanager
    def enter(self) -> Iterator[Span]:
        """Make this the current span for the duration of the ``with`` block."""
        token = _CURRENT_SPAN.set(self)
        try:
            yield self
        finally:
            _CURRENT_SPAN.reset(token)

    def __call__(self, request: Request) -> Span:
        """Use a fixed span for every request."""
        return self

    def __str__(self) -> str:
        rendered = " ".join(
            f"{key}={_render(value)}"
            for key, value in self.fields.items()
            if value is not None
        )
        return f"{self.name}{{{rendered}}}" if rendered else self.name

    def __repr__(self) -> str:
        return f"Span(name={self.name!r}, level={self.level}, fields={self.fields!r})"


def _current_span() -> Span | None:
    return _CURRENT_SPAN.get()


def _emit_event(
    logger: logging.Logger, level: Level, message: str, **fields: Any
) -> None:
    """Log an event carrying its fields, prefixed by the current span."""
    level = Level(level)
    if not logger.isEnabledFor(level.value):
        return
    span = _CURRENT_SPAN.get()
    text = " ".join([message, *(f"{k}={_render(v)}" for k, v in fields.items())])
    if span is not None:
        text = f"{span}: {text}"
    logger.log(
        level.value,
        text,
        extra={"trace_span": span, "trace_fields": dict(fields), "trace_message": message},
    )


class Body:
    """An asynchronous HTTP body: a stream of chunks followed by optional trailers.

    ``chunks`` may be bytes, a string, an iterable or an async iterable. An exception
    among the chunks, or given as the trailers, is raised when it is reached.
    """

    def __init__(self, chunks: Any = (), trailers: Any = None) -> None:
        self._aiter = None
        if isinstance(chunks, str):
            chunks = chunks.encode("utf-8")
        if isinstance(chunks, (bytes, bytearray)):
            self._pending: deque[Any] = deque([bytes(chunks)] if chunks else [])
        elif hasattr(chunks, "__aiter__"):
            self._pending = deque()
            self._aiter = chunks.__aiter__()
        else:
            self._pending = deque(chunks)
        self._trailers = trailers
        self._trailers_taken = False

    @classmethod
    def empty(cls) -> Body:
        """A body with no data and no trailers."""
        return cls()

    async def data(self) -> Any:
        """Return the next chunk, or ``None`` once the data is exhausted."""
        if self._pending:
            item = self._pending.popleft()
        elif self._aiter is not None:
            try:
                item = await anext(self._aiter)
            except StopAsyncIteration:
                self._aiter = None
                return None
        else:
            return None
        if isinstance(item, BaseException):
            raise item
        return item

    async def trailers(self) -> Mapping[str, Any] | None:
        """Return the trailers, or ``None`` if there are none."""
        trailers = self._trailers
        self._trailers_taken = True
        self._trailers = None
        if isinstance(trailers, BaseException):
            raise trailers
        return trailers

    def is_end_stream(self) -> bool:
        """Whether nothing more can be read from the body."""
        return (
            not self._pending
            and self._aiter is None
            and (self._trailers is None or self._trailers_taken)
        )

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        while (chunk := await self.data()) is not None:
            yield chunk


@dataclass
class Request:
    """An HTTP request."""

    method: str = "GET"
    uri: str = "/"
    version: str = "HTTP/1.1"
    headers: dict[str, Any] = field(default_factory=dict)
    body: Any = field(default_factory=Body.empty)


@dataclass
class Response:
    """An HTTP response."""

    status: int = 200
    headers: dict[str, Any] = field(default_factory=dict)
    body: Any = field(default_factory=Body.empty)
    version: str = "HTTP/1.1"


@dataclass(frozen=True)
class ClassifiedResponse:
    """Result of classifying a response.

    Either the classification is ready (``failure_class`` is ``None`` on success),
    or the end of the stream must be classified with ``classify_eos``.
    """

    failure_class: Any = None
    classify_eos: Any = None

    def __post_init__(self) -> None:
        if self.failure_class is not None and self.classify_eos is not None:
            raise ValueError(
                "a classified response is either ready or requires end of stream"
            )