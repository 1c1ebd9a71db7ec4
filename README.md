# httptrace

Middleware that wraps an asynchronous HTTP handler and reports, through the
standard `logging` module, what happens while a request is handled: when it
arrives, when a response is produced, each chunk the response body yields,
when a streaming body ends, and anything that is classified as a failure.

The package has no runtime dependencies.

## Installation

```
pip install httptrace
```

## Modules

- `httptrace.model`: `Level`, `LatencyUnit`, `Span`, `Request`, `Response`,
  `Body`, `ClassifiedResponse`, and the helpers `format_latency` and
  `grpc_status`.
- `httptrace.make_span`: `DefaultMakeSpan`.
- `httptrace.callbacks`: `DefaultOnRequest`, `DefaultOnBodyChunk`,
  `DefaultOnFailure`, `DefaultOnEos`.
- `httptrace.on_response`: `DefaultOnResponse` and `response_status`.
- `httptrace.body`: `ResponseBody`.
- `httptrace.service`: `Trace`.
- `httptrace.layer`: `TraceLayer`.

## Concepts

- A handler is an async callable taking a `Request` and returning a `Response`.
- **`TraceLayer(make_classifier)`** holds a tracing configuration. Its
  `layer(inner)` method wraps a handler and returns a **`Trace`** service.
  `Trace(inner, make_classifier)` can also be built directly.
- **`Trace`** is itself a handler. Awaiting `trace.call(request)` (or
  `trace(request)`) runs the inner handler and returns a copy of its `Response`
  whose body is a **`ResponseBody`**. Reading that body with `data()`,
  `trailers()` or `async for` fires the body-related callbacks.
- Every request is handled inside a **`Span`**, made from the request by the
  span factory and made current (with `span.enter()`) while callbacks run.
  Callbacks receive the span and may call `span.record(name, value)` to set a
  field that was declared when the span was made; recording an undeclared
  field does nothing. A `Span` instance can itself be used as the span
  factory, giving every request the same span.
- **`Body`** is a simple async body: its chunks may be given as bytes, a
  string, an iterable or an async iterable, followed by optional trailers (a
  header mapping). An exception placed among the chunks, or given as the
  trailers, is raised when reached. `Body.empty()` has neither.

## Classification

The package ships no ready-made classifiers; you supply one. `make_classifier`
is either an object with a `make_classifier(request)` method or a plain
callable taking the request. It must return a classifier with:

- `classify_response(response)` returning a `ClassifiedResponse`:
  `ClassifiedResponse()` for success, `ClassifiedResponse(failure_class=...)`
  for a failure, or `ClassifiedResponse(classify_eos=...)` when the outcome is
  only known at the end of the stream;
- `classify_error(error)` returning a failure class for an exception raised by
  the inner handler.

A `classify_eos` object must have `classify_eos(trailers)`, returning a failure
class or `None` on success, and `classify_error(error)` for errors raised while
reading the body.

```python
import asyncio
import logging

from httptrace.layer import TraceLayer
from httptrace.model import Body, ClassifiedResponse, Request, Response


class ServerErrorsAsFailures:
    def classify_response(self, response):
        if response.status >= 500:
            return ClassifiedResponse(failure_class=f"status code {response.status}")
        return ClassifiedResponse()

    def classify_error(self, error):
        return str(error)


async def handler(request):
    return Response(body=Body([b"one", b"two", b"three"]))


async def main():
    logging.basicConfig(level=logging.DEBUG)
    service = TraceLayer(lambda request: ServerErrorsAsFailures()).layer(handler)
    response = await service(Request(uri="/foo"))
    async for chunk in response.body:
        print(chunk)


asyncio.run(main())
```

## Customising the callbacks

Each step can be replaced with a builder method on either `TraceLayer` or
`Trace`; each method returns a new configuration and leaves the original alone.
The same callbacks can be passed as keyword arguments to the constructors.

| Method              | Called with                               | Default                |
|---------------------|-------------------------------------------|------------------------|
| `make_span_with`    | `(request)` and returns a `Span`          | `DefaultMakeSpan`      |
| `on_request`        | `(request, span)`                         | `DefaultOnRequest`     |
| `on_response`       | `(response, latency, span)`               | `DefaultOnResponse`    |
| `on_body_chunk`     | `(chunk, latency, span)`                  | `DefaultOnBodyChunk`   |
| `on_eos`            | `(trailers, stream_duration, span)`       | `DefaultOnEos`         |
| `on_failure`        | `(failure_class, latency, span)`          | `DefaultOnFailure`     |

Pass `None` to a builder method to switch that step off (`make_span_with`
refuses `None`). Latencies are passed as `datetime.timedelta` values.

The defaults are configured the same builder way:

```python
from httptrace.callbacks import DefaultOnFailure
from httptrace.make_span import DefaultMakeSpan
from httptrace.model import LatencyUnit, Level
from httptrace.on_response import DefaultOnResponse

make_span = DefaultMakeSpan().include_headers(True)
on_response = DefaultOnResponse().level(Level.INFO).latency_unit(LatencyUnit.MICROS)
on_failure = DefaultOnFailure().latency_unit(LatencyUnit.SECONDS)
```

## When the callbacks run

- `on_request` runs just before the request is passed to the inner handler.
- `on_response` runs once the inner handler returns a response, whether it is
  classified as a success or a failure.
- `on_body_chunk` runs for every chunk the response body yields, empty ones
  included. `latency` is the time since the response was produced or since the
  previous chunk.
- `on_eos` runs when the trailers of a body whose response needed end-of-stream
  classification are read, even when there are none.
- `on_failure` runs when the inner handler raises, when a response is
  classified as a failure, and, for responses needing end-of-stream
  classification, when reading the body or its trailers fails or the end of the
  stream is classified as a failure. The response body reports a failure at
  most once.

## What gets logged

The defaults log through these loggers: `httptrace.on_request`
(`started processing request`), `httptrace.on_response`
(`finished processing request` with `latency`, `status` and optionally
`response_headers`), `httptrace.on_failure` (`response failed` with
`classification` and `latency`) and `httptrace.on_eos` (`end of stream` with
`stream_duration` and, when the trailers carry one, `status`).
`DefaultOnBodyChunk` logs nothing.

Messages are prefixed by the current span, for example
`request{method=GET uri=/foo version=HTTP/1.1}: started processing request`.
Each record also carries `trace_span`, `trace_fields` and `trace_message`
attributes for custom handlers.

For gRPC responses (content type `application/grpc`) the reported status is the
`grpc-status` header, or nothing while a streaming response has none yet; a
value that cannot be read as an integer is reported as `0`. Otherwise the HTTP
status code is reported.

`Level` maps onto `logging` levels; `Level.TRACE` is level 5, registered with
`logging` under the name `TRACE`. Default messages are logged at debug level,
failures at error level. `LatencyUnit` selects seconds, milliseconds (the
default), microseconds or nanoseconds; `format_latency` renders a duration the
same way.

## What this package does not do

It is middleware only: it does not run an HTTP server, parse HTTP from a
socket, or provide ready-made HTTP or gRPC classifiers. Plug it in front of
your own async handlers and supply the classifier.

## Running the tests

```
pip install -e ".[test]"
pytest
```