import logging
from datetime import timedelta

import pytest

from httptrace.model import Body, ClassifiedResponse, Level, Request, Response, Span
from httptrace.service import Trace


class ServerErrorsAsFailures:
    def classify_response(self, response):
        if response.status >= 500:
            return ClassifiedResponse(failure_class=f"status {response.status}")
        return ClassifiedResponse()

    def classify_error(self, error):
        return f"error: {error}"


class TrailerClassifier:
    def classify_eos(self, trailers):
        if trailers and trailers.get("grpc-status", "0") != "0":
            return "eos failed"
        return None

    def classify_error(self, error):
        return f"eos error: {error}"


class StreamingClassifier:
    def classify_response(self, response):
        return ClassifiedResponse(classify_eos=TrailerClassifier())

    def classify_error(self, error):
        return f"error: {error}"


def make_http_classifier(request):
    return ServerErrorsAsFailures()


async def echo(request):
    return Response(body=request.body)


async def streaming_body(request):
    return Response(body=Body([b"one", b"two", b"three"]))


class Counters:
    def __init__(self):
        self.request = 0
        self.response = 0
        self.chunk = 0
        self.eos = 0
        self.failures = []

    def install(self, trace):
        def on_request(req, span):
            self.request += 1

        def on_response(res, latency, span):
            self.response += 1

        def on_body_chunk(chunk, latency, span):
            self.chunk += 1

        def on_eos(trailers, latency, span):
            self.eos += 1

        def on_failure(cls, latency, span):
            self.failures.append(cls)

        return (
            trace.on_request(on_request)
            .on_response(on_response)
            .on_body_chunk(on_body_chunk)
            .on_eos(on_eos)
            .on_failure(on_failure)
        )


async def read_all(body):
    return b"".join([chunk async for chunk in body])


@pytest.mark.asyncio
async def test_unary_request():
    counters = Counters()
    spans = []

    def make_span(req):
        span = Span("test-span", Level.INFO, {"foo": None})
        spans.append(span)
        return span

    def on_request(req, span):
        span.record("foo", 42)
        counters.request += 1

    svc = counters.install(Trace(echo, make_http_classifier)).make_span_with(make_span)
    svc = svc.on_request(on_request)

    res = await svc.call(Request(body=Body(b"foobar")))
    assert counters.request == 1
    assert counters.response == 1
    assert counters.chunk == 0
    assert counters.eos == 0
    assert counters.failures == []
    assert spans[0].fields["foo"] == 42

    assert await read_all(res.body) == b"foobar"
    assert counters.chunk == 1
    assert counters.eos == 0
    assert counters.failures == []


@pytest.mark.asyncio
async def test_streaming_response():
    counters = Counters()
    svc = counters.install(Trace(streaming_body, make_http_classifier))

    res = await svc(Request(body=Body.empty()))
    assert counters.request == 1
    assert counters.response == 1
    assert counters.chunk == 0
    assert counters.eos == 0
    assert counters.failures == []

    assert await read_all(res.body) == b"onetwothree"
    assert counters.chunk == 3
    assert counters.eos == 0
    assert counters.failures == []


@pytest.mark.asyncio
async def test_server_error_is_reported_after_response():
    events = []

    async def failing(request):
        return Response(status=503)

    svc = (
        Trace(failing, make_http_classifier)
        .on_response(lambda res, latency, span: events.append(("response", res.status)))
        .on_failure(lambda cls, latency, span: events.append(("failure", cls)))
    )
    res = await svc.call(Request())
    assert res.status == 503
    assert events == [("response", 503), ("failure", "status 503")]


@pytest.mark.asyncio
async def test_inner_error_is_classified_and_reraised():
    failures = []

    async def broken(request):
        raise RuntimeError("boom")

    svc = Trace(broken, make_http_classifier).on_failure(
        lambda cls, latency, span: failures.append(cls)
    )
    with pytest.raises(RuntimeError, match="boom"):
        await svc.call(Request())
    assert failures == ["error: boom"]


@pytest.mark.asyncio
async def test_make_classifier_object_is_used():
    class MakeClassifier:
        def __init__(self):
            self.requests = []

        def make_classifier(self, request):
            self.requests.append(request.uri)
            return ServerErrorsAsFailures()

    maker = MakeClassifier()
    svc = Trace(echo, maker)
    await svc.call(Request(uri="/foo"))
    assert maker.requests == ["/foo"]


@pytest.mark.asyncio
async def test_stream_classification_reports_eos_and_failure():
    eos_events = []
    failures = []

    async def grpc_stream(request):
        return Response(body=Body([b"a"], trailers={"grpc-status": "13"}))

    svc = (
        Trace(grpc_stream, lambda req: StreamingClassifier())
        .on_eos(lambda trailers, duration, span: eos_events.append(trailers))
        .on_failure(lambda cls, latency, span: failures.append(cls))
    )
    res = await svc.call(Request())
    assert await read_all(res.body) == b"a"
    assert failures == []
    trailers = await res.body.trailers()
    assert trailers == {"grpc-status": "13"}
    assert eos_events == [{"grpc-status": "13"}]
    assert failures == ["eos failed"]


@pytest.mark.asyncio
async def test_disabled_callbacks_are_skipped():
    async def failing(request):
        return Response(status=500, body=Body(b"x"))

    svc = (
        Trace(failing, make_http_classifier)
        .on_request(None)
        .on_response(None)
        .on_body_chunk(None)
        .on_failure(None)
    )
    res = await svc.call(Request())
    assert res.status == 500
    assert await read_all(res.body) == b"x"


@pytest.mark.asyncio
async def test_builders_leave_original_unchanged():
    calls = []
    original = Trace(echo, make_http_classifier).on_request(
        lambda req, span: calls.append("original")
    )
    changed = original.on_request(lambda req, span: calls.append("changed"))
    await original.call(Request())
    await changed.call(Request())
    assert calls == ["original", "changed"]


def test_make_span_with_none_is_rejected():
    with pytest.raises(TypeError):
        Trace(echo, make_http_classifier).make_span_with(None)


@pytest.mark.asyncio
async def test_latencies_come_from_clock():
    ticks = iter([0.0, 1.0, 2.0, 3.0])
    latencies = {}

    svc = (
        Trace(echo, make_http_classifier, clock=lambda: next(ticks))
        .on_response(lambda res, latency, span: latencies.update(response=latency))
        .on_body_chunk(lambda chunk, latency, span: latencies.update(chunk=latency))
    )
    res = await svc.call(Request(body=Body(b"data")))
    assert latencies["response"] == timedelta(seconds=1)
    assert await res.body.data() == b"data"
    assert latencies["chunk"] == timedelta(seconds=2)


@pytest.mark.asyncio
async def test_default_callbacks_log_inside_span(caplog):
    caplog.set_level(logging.DEBUG, logger="httptrace")
    svc = Trace(echo, make_http_classifier)
    await svc.call(Request(method="POST", uri="/items"))
    messages = [record.getMessage() for record in caplog.records]
    assert any("started processing request" in m for m in messages)
    finished = [m for m in messages if "finished processing request" in m]
    assert len(finished) == 1
    assert "status=200" in finished[0]
    assert finished[0].startswith("request{method=POST uri=/items")