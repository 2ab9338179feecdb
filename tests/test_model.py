import ipaddress
from datetime import datetime, timedelta, timezone

import pytest

from zipkintrace.model import (
    Annotation,
    Endpoint,
    Kind,
    Span,
    SpanContext,
    SpanModel,
    Tag,
    TraceID,
    format_id,
)


class _TagSpan(Span):
    def __init__(self):
        self.tags = {}

    def context(self):
        return SpanContext()

    def set_name(self, name):
        pass

    def set_remote_endpoint(self, endpoint):
        pass

    def annotate(self, timestamp, value):
        pass

    def tag(self, key, value):
        self.tags[key] = value

    def finish(self):
        pass

    def finish_with_duration(self, duration):
        pass

    def flush(self):
        pass


def test_trace_id_str_64bit():
    assert str(TraceID(low=5)) == "0000000000000005"


def test_trace_id_str_128bit():
    assert str(TraceID(high=123, low=456)) == "000000000000007b00000000000001c8"


def test_format_id():
    assert format_id(123) == "000000000000007b"


@pytest.mark.parametrize(
    "trace_id",
    [
        TraceID(low=1),
        TraceID(high=123, low=456),
        TraceID(high=0xFFFFFFFFFFFFFFFF, low=0xFFFFFFFFFFFFFFFF),
        TraceID(low=0xF7F6F5F4F3F2F1F0),
    ],
)
def test_trace_id_hex_round_trip(trace_id):
    assert TraceID.from_hex(str(trace_id)) == trace_id


def test_trace_id_from_short_hex():
    assert TraceID.from_hex("1") == TraceID(low=1)


@pytest.mark.parametrize("text", ["invalid_data", "", "0x12", "1" * 33, "-1", " 12"])
def test_trace_id_from_invalid_hex(text):
    with pytest.raises(ValueError):
        TraceID.from_hex(text)


def test_trace_id_empty():
    assert TraceID().empty()
    assert not TraceID(low=1).empty()
    assert not TraceID(high=1).empty()


def test_span_context_is_empty():
    assert SpanContext().is_empty()
    assert not SpanContext(debug=True).is_empty()
    assert not SpanContext(sampled=False).is_empty()
    assert not SpanContext(id=1).is_empty()


def _full_span():
    moment = datetime(2018, 10, 31, 19, 43, 35, 789, tzinfo=timezone.utc)
    return SpanModel(
        context=SpanContext(
            trace_id=TraceID(high=0x7F6F5F4F3F2F1F0F, low=0xF7F6F5F4F3F2F1F0),
            id=0x6766656463626160,
            parent_id=0x1716151413121110,
            debug=True,
        ),
        name="CacheWarmUp",
        kind=Kind.PRODUCER,
        timestamp=moment,
        duration=timedelta(seconds=7),
        shared=True,
        local_endpoint=Endpoint(
            service_name="search",
            ipv4=ipaddress.IPv4Address("10.0.0.13"),
            port=8009,
        ),
        remote_endpoint=Endpoint(
            service_name="redis",
            ipv6=ipaddress.IPv6Address("fe80::1453:a77c:da4d:d21b"),
            port=6379,
        ),
        annotations=[Annotation(moment, "DB reset"), Annotation(moment, "GC Cycle 39")],
        tags={"k": "v"},
    )


def test_span_model_dict_round_trip():
    span = _full_span()
    assert SpanModel.from_dict(span.to_dict()) == span


def test_span_model_dict_identifiers():
    span = _full_span()
    data = span.to_dict()
    assert data["traceId"] == str(span.context.trace_id)
    assert data["id"] == format_id(span.context.id)
    assert data["parentId"] == format_id(span.context.parent_id)
    assert data["kind"] == Kind.PRODUCER.value


def test_span_model_dict_omits_empty_fields():
    span = SpanModel(context=SpanContext(trace_id=TraceID(low=1), id=2))
    data = span.to_dict()
    for key in ("parentId", "tags", "annotations", "kind", "timestamp", "duration", "debug"):
        assert key not in data
    assert SpanModel.from_dict(data) == span


def test_tag_set_writes_to_span():
    span = _TagSpan()
    Tag.HTTP_METHOD.set(span, "GET")
    Tag.ERROR.set(span, "boom")
    assert span.tags == {Tag.HTTP_METHOD.value: "GET", Tag.ERROR.value: "boom"}


def test_span_is_abstract():
    with pytest.raises(TypeError):
        Span()