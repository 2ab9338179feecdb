import json
import threading
import time
import types
import urllib.request
from datetime import datetime, timezone
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest

from zipkintrace.http_reporter import HTTPReporter
from zipkintrace.model import Kind, SpanContext, SpanModel, TraceID
from zipkintrace.reporter import JSONSerializer


def _generate_spans(n):
    trace_id = TraceID(low=0x1234ABCD)
    return [
        SpanModel(
            context=SpanContext(trace_id=trace_id, id=i + 1),
            name="name",
            kind=Kind.CLIENT,
            timestamp=datetime.now(timezone.utc),
        )
        for i in range(n)
    ]


def _wait_for(predicate, timeout=3.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def collector():
    received = []
    lock = threading.Lock()

    class Handler(BaseHTTPRequestHandler):
        def do_POST(self):
            length = int(self.headers.get("Content-Length", 0))
            body = self.rfile.read(length)
            with lock:
                received.append((self.command, self.headers, body))
            self.send_response(202)
            self.end_headers()

        def log_message(self, *args):
            pass

    server = ThreadingHTTPServer(("127.0.0.1", 0), Handler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()

    def count():
        with lock:
            return sum(len(json.loads(body)) for _, _, body in received)

    yield types.SimpleNamespace(
        url=f"http://127.0.0.1:{server.server_address[1]}/api/v2/spans",
        received=received,
        count=count,
    )
    server.shutdown()
    server.server_close()


def _assert_payloads(received, spans, serializer):
    offset = 0
    for method, _, body in received:
        assert method == "POST"
        size = len(json.loads(body))
        assert body == serializer.serialize(spans[offset:offset + size])
        offset += size
    assert offset == len(spans)


def test_span_is_being_reported(collector):
    serializer = JSONSerializer()
    spans = _generate_spans(2)
    reporter = HTTPReporter(collector.url, serializer=serializer)
    for span in spans:
        reporter.send(span)
    reporter.close()

    assert collector.count() == 2
    _assert_payloads(collector.received, spans, serializer)


def test_span_is_reported_on_time(collector):
    serializer = JSONSerializer()
    spans = _generate_spans(2)
    reporter = HTTPReporter(collector.url, serializer=serializer, batch_interval=0.2)
    for span in spans:
        reporter.send(span)

    assert _wait_for(lambda: collector.count() == 2)
    reporter.close()
    _assert_payloads(collector.received, spans, serializer)


def test_span_is_reported_after_batch_size(collector):
    serializer = JSONSerializer()
    batch_size = 2
    spans = _generate_spans(6)
    reporter = HTTPReporter(
        collector.url, serializer=serializer, batch_size=batch_size, batch_interval=60.0
    )
    for span in spans[:batch_size]:
        reporter.send(span)

    assert _wait_for(lambda: collector.count() == batch_size)

    for span in spans[batch_size:]:
        reporter.send(span)
    reporter.close()

    assert collector.count() == 6
    _assert_payloads(collector.received, spans, serializer)


def test_span_custom_headers(collector):
    extra = {"Key1": "val1", "Key2": "val2"}

    def header_client(request, timeout):
        for key, value in extra.items():
            request.add_header(key, value)
        with urllib.request.urlopen(request, timeout=timeout) as response:
            return response.status

    reporter = HTTPReporter(collector.url, client=header_client)
    for span in _generate_spans(1):
        reporter.send(span)
    reporter.close()

    assert len(collector.received) == 1
    headers = collector.received[0][1]
    assert headers["Key1"] == "val1"
    assert headers["Key2"] == "val2"


def test_b3_sampling_header(collector):
    reporter = HTTPReporter(collector.url)
    for span in _generate_spans(1):
        reporter.send(span)
    reporter.close()

    headers = collector.received[0][1]
    assert headers.get_all("B3") == ["0"]
    assert headers["Content-Type"] == "application/json"


def test_request_callback_adjusts_request(collector):
    def callback(request):
        request.add_header("X-Extra", "added")

    reporter = HTTPReporter(collector.url, request_callback=callback)
    reporter.send(_generate_spans(1)[0])
    reporter.close()

    assert collector.received[0][1]["X-Extra"] == "added"


def test_backlog_drops_oldest_spans():
    calls = []

    def client(request, timeout):
        calls.append((request.data, timeout))
        return 202

    spans = _generate_spans(5)
    reporter = HTTPReporter(
        "http://localhost/api/v2/spans",
        client=client,
        max_backlog=2,
        batch_interval=60.0,
    )
    for span in spans:
        reporter.send(span)
    reporter.close()

    assert len(calls) == 1
    body, timeout = calls[0]
    assert body == JSONSerializer().serialize(spans[-2:])
    assert timeout == 5.0


def test_failed_status_still_clears_batch():
    calls = []

    def client(request, timeout):
        calls.append(request.data)
        return 500

    span = _generate_spans(1)[0]
    reporter = HTTPReporter("http://localhost/api/v2/spans", client=client, batch_interval=60.0)
    reporter.send(span)
    reporter.close()

    # a failed status is not retried: the span went out exactly once
    assert calls == [JSONSerializer().serialize([span])]


def test_transport_error_is_raised_on_close():
    def client(request, timeout):
        raise OSError("collector unreachable")

    reporter = HTTPReporter("http://localhost/api/v2/spans", client=client, batch_interval=60.0)
    reporter.send(_generate_spans(1)[0])
    with pytest.raises(OSError, match="collector unreachable"):
        reporter.close()


def test_send_after_close_raises():
    reporter = HTTPReporter("http://localhost/api/v2/spans", client=lambda r, t: 202)
    reporter.close()
    with pytest.raises(RuntimeError):
        reporter.send(_generate_spans(1)[0])


def test_close_without_spans_sends_nothing():
    calls = []
    reporter = HTTPReporter(
        "http://localhost/api/v2/spans", client=lambda r, t: calls.append(r) or 202
    )
    reporter.close()
    assert calls == []