from datetime import timedelta
import logging

import pytest

from httptrace.model import (
    TRACE_LOGGING_LEVEL,
    Body,
    ClassifiedResponse,
    LatencyUnit,
    Level,
    Request,
    Response,
    Span,
    format_latency,
    grpc_status,
    _emit_event,
)


async def _two_chunks():
    yield b"x"
    yield b"y"


def test_format_latency_seconds():
    assert format_latency(1.5, LatencyUnit.SECONDS) == "1.5 s"


def test_format_latency_millis_truncates():
    assert format_latency(0.0015, LatencyUnit.MILLIS) == "1 ms"


def test_format_latency_micros():
    assert format_latency(0.0015, LatencyUnit.MICROS) == "1500 μs"


@pytest.mark.parametrize("unit", list(LatencyUnit))
def test_format_latency_suffix_matches_unit(unit):
    assert format_latency(0.25, unit).endswith(" " + unit.value)


def test_format_latency_accepts_timedelta():
    for unit in LatencyUnit:
        assert format_latency(timedelta(milliseconds=7), unit) == format_latency(0.007, unit)


def test_format_latency_rejects_negative():
    with pytest.raises(ValueError):
        format_latency(-1.0, LatencyUnit.MILLIS)


def test_grpc_status_missing_is_none():
    assert grpc_status({"content-type": "application/grpc"}) is None
    assert grpc_status(None) is None


def test_grpc_status_ok_is_zero():
    assert grpc_status({"grpc-status": "0"}) == 0


def test_grpc_status_non_success_code():
    assert grpc_status({"Grpc-Status": "5"}) == 5


@pytest.mark.parametrize("value", ["abc", "", "1.5", b"\xff", "99999999999"])
def test_grpc_status_unreadable_is_zero(value):
    assert grpc_status({"grpc-status": value}) == 0


def test_grpc_status_bytes_value():
    assert grpc_status({"grpc-status": b"13"}) == 13


def test_span_record_declared_field():
    span = Span("test-span", Level.INFO, {"foo": None})
    span.record("foo", 42)
    assert span.fields["foo"] == 42


def test_span_record_undeclared_field_ignored():
    span = Span("test-span", Level.INFO, {})
    span.record("bar", 1)
    assert "bar" not in span.fields


def test_span_str_skips_empty_fields():
    span = Span("request", Level.DEBUG, {"method": "GET", "foo": None})
    assert str(span) == "request{method=GET}"


def test_span_enter_yields_span_and_prefixes_events(caplog):
    logger = logging.getLogger("httptrace.test")
    span = Span("request", Level.DEBUG, {"method": "GET"})
    with caplog.at_level(logging.DEBUG, logger="httptrace.test"):
        with span.enter() as entered:
            _emit_event(logger, Level.INFO, "hello", status=200)
        _emit_event(logger, Level.INFO, "outside")
    assert entered is span
    messages = [record.getMessage() for record in caplog.records]
    assert messages[0].startswith(str(span) + ": hello")
    assert messages[1] == "outside"


def test_span_as_make_span_returns_itself():
    span = Span("fixed")
    assert span(Request()) is span


def test_trace_level_events_sit_below_debug(caplog):
    logger = logging.getLogger("httptrace.test.trace")
    with caplog.at_level(TRACE_LOGGING_LEVEL, logger="httptrace.test.trace"):
        _emit_event(logger, Level.TRACE, "fine detail")
        _emit_event(logger, Level.DEBUG, "detail")
    levels = [record.levelno for record in caplog.records]
    assert levels == [TRACE_LOGGING_LEVEL, logging.DEBUG]
    assert levels[0] < levels[1]


@pytest.mark.asyncio
async def test_body_yields_chunks_then_none():
    body = Body([b"one", b"two", b"three"])
    got = [await body.data() for _ in range(3)]
    assert got == [b"one", b"two", b"three"]
    assert await body.data() is None
    assert body.is_end_stream()


@pytest.mark.asyncio
async def test_body_from_bytes_single_chunk():
    body = Body(b"foobar")
    assert [chunk async for chunk in body] == [b"foobar"]


@pytest.mark.asyncio
async def test_empty_body():
    body = Body.empty()
    assert body.is_end_stream()
    assert await body.data() is None
    assert await body.trailers() is None


@pytest.mark.asyncio
async def test_body_raises_error_chunk():
    body = Body([b"a", RuntimeError("boom")])
    assert await body.data() == b"a"
    with pytest.raises(RuntimeError, match="boom"):
        await body.data()


@pytest.mark.asyncio
async def test_body_trailers():
    body = Body([], trailers={"grpc-status": "0"})
    assert not body.is_end_stream()
    assert await body.trailers() == {"grpc-status": "0"}
    assert body.is_end_stream()


@pytest.mark.asyncio
async def test_body_trailers_error():
    body = Body([], trailers=ValueError("bad trailers"))
    with pytest.raises(ValueError, match="bad trailers"):
        await body.trailers()


@pytest.mark.asyncio
async def test_body_from_async_iterable():
    body = Body(_two_chunks())
    assert not body.is_end_stream()
    assert [chunk async for chunk in body] == [b"x", b"y"]
    assert body.is_end_stream()


def test_request_and_response_defaults():
    request = Request()
    response = Response()
    assert (request.method, request.uri) == ("GET", "/")
    assert response.status == 200
    assert request.body.is_end_stream() and response.body.is_end_stream()


def test_classified_response_cannot_be_both():
    with pytest.raises(ValueError):
        ClassifiedResponse(failure_class="oops", classify_eos=object())


def test_classified_response_ready_failure():
    classified = ClassifiedResponse(failure_class="something went wrong...")
    assert classified.failure_class == "something went wrong..."
    assert classified.classify_eos is None