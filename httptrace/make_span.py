"""The default way spans are made for requests."""

from __future__ import annotations

from dataclasses import dataclass, replace

from .model import DEFAULT_MESSAGE_LEVEL, Level, Request, Span


@dataclass(frozen=True)
class DefaultMakeSpan:
    """Makes a ``request`` span with the method, URI and version of a request.

    Any callable taking a request and returning a :class:`Span` can be used instead.
    """

    span_level: Level = DEFAULT_MESSAGE_LEVEL
    headers_included: bool = False

    def level(self, level: Level) -> DefaultMakeSpan:
        """Return a copy that makes spans at ``level``."""
        return replace(self, span_level=Level(level))

    def include_headers(self, include_headers: bool) -> DefaultMakeSpan:
        """Return a copy that does or does not put request headers on the span."""
        return replace(self, headers_included=bool(include_headers))

    def __call__(self, request: Request) -> Span:
        fields = {
            "method": request.method,
            "uri": request.uri,
            "version": request.version,
        }
        if self.headers_included:
            fields["headers"] = dict(request.headers)
        return Span("request", self.span_level, fields)