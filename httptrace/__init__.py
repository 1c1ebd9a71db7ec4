"""Tracing middleware for asynchronous HTTP handlers.

Modules: model (levels, spans, messages, bodies), make_span, callbacks,
on_response, body (ResponseBody), service (Trace) and layer (TraceLayer).
"""

__version__ = "0.1.0"