# zipkintrace

A Zipkin tracer for Python. It starts spans, decides which traces to
sample, carries trace context between processes in B3 headers, and hands
finished spans to a reporter. Reporters can keep spans in memory, log them,
post them to a Zipkin V2 HTTP collector or publish them to RabbitMQ.

## Installation

```
pip install zipkintrace
```

To run the tests:

```
pip install "zipkintrace[test]"
pytest
```

## Starting spans

```python
from zipkintrace.tracer import Tracer
from zipkintrace.reporter import RecordingReporter
from zipkintrace.model import Kind, Tag

reporter = RecordingReporter()
tracer = Tracer(reporter, tags={"platform": "demo"})

span = tracer.start_span("get-user", kind=Kind.SERVER)
span.tag("user.id", "42")
Tag.HTTP_METHOD.set(span, "GET")
span.finish()

for recorded in reporter.flush():
    print(recorded.to_dict())
```

`Tracer` takes these keyword options: `local_endpoint`,
`extract_failure_policy`, `unsampled_noop`, `shared_spans` (default
`True`), `sampler` (default `always_sample`), `trace_id_128bit`,
`id_generator`, `tags` (default tags for every span) and `noop`.

`start_span(name, ...)` takes `kind`, `parent` (a `SpanContext`),
`start_time`, `remote_endpoint`, `tags`, `flush_on_finish` and
`custom_trace_id`. Without a parent, a span starts a new trace. With a
parent, it becomes a child span. The exception is a `Kind.SERVER` span
while shared spans are on: that span joins the parent's span id.

Spans are `RecordedSpan` objects. A `NoopSpan` is returned instead when
the tracer is in noop mode, or when `unsampled_noop=True` and the trace is
not sampled. For the `error` tag, the first value set is kept and later
ones are ignored. With `flush_on_finish=False`, `finish()` does not report
the span; call `span.flush()` to send it. `flush()` sends only sampled or
debug spans. `finish_with_duration(timedelta)` finishes a span with a
duration you give.

A tracer built without a reporter runs in noop mode unless `noop=False` is
passed. In noop mode it returns `NoopSpan`s and `extract()` returns an
empty context. `tracer.set_noop(True)` and `tracer.set_noop(False)` switch
noop mode on and off at run time. `tracer.local_endpoint()` returns a copy
of the configured endpoint.

### Extraction failures

`tracer.extract(extractor)` calls the extractor. If the extractor raises,
the exception is stored in the returned context's `err`. When such a
context is passed as `parent`, the tracer acts on its
`ExtractFailurePolicy`:

- `RESTART` (the default): start a new trace.
- `ERROR`: raise the stored exception.
- `TAG_AND_RESTART`: start a new trace and set the `error.extract` tag.

Any other policy value raises `InvalidExtractFailurePolicyError`.

### Identifiers

`RandomIDGenerator(trace_id_128bit)` makes random non-zero ids. A root
span's id equals the low 64 bits of its trace id. Any object with
`trace_id()` and `span_id(trace_id)` methods can be passed as
`id_generator`.

## Sampling

```python
from zipkintrace.sample import boundary_sampler, counting_sampler, modulo_sampler

tracer = Tracer(reporter, sampler=boundary_sampler(0.01, salt=0))
```

- `boundary_sampler(rate, salt)`: the rate must be 0.0 or between 0.0001
  and 1. The decision depends only on the trace id and the salt.
- `counting_sampler(rate)`: the rate must be 0.0 or between 0.01 and 1.
  In every run of 100 calls, `rate * 100` (rounded) return `True`.
- `modulo_sampler(mod)`: samples ids divisible by `mod`. Any `mod` below 2
  samples everything.
- `always_sample` and `never_sample`.

An invalid rate raises `ValueError`.

## B3 propagation

```python
from zipkintrace.b3_carriers import inject_http, extract_http

headers = {}
inject_http(headers, span.context())

# on the receiving side
parent = tracer.extract(lambda: extract_http(headers))
child = tracer.start_span("handle", parent=parent)
```

Module `zipkintrace.b3_carriers` works with three kinds of carrier:

- `inject_map` / `extract_map`: plain dictionaries with the exact
  lower-case B3 keys.
- `inject_http` / `extract_http`: HTTP headers. Names are matched without
  regard to case, and a value may be a string or a list of strings.
- `inject_grpc` / `extract_grpc`: gRPC-style metadata, which maps a key to
  a list of values. `get_grpc_header` returns the last value for a key.

Multiple headers are written by default. `single_header=True` also writes
the compact `b3` header, and `multi_header=False` turns the multiple
headers off. Extraction from maps and HTTP headers tries the `b3` header
first and falls back to the multiple headers. gRPC uses the multiple
headers only.

Module `zipkintrace.b3` holds the header names, plus `parse_headers`,
`parse_single_header` and `build_single_header`. All parsing and injection
errors are subclasses of `B3Error`, which is itself a `ValueError`.
Injecting an empty context raises `EmptyContextError`.

## Baggage

```python
from zipkintrace.baggage import Baggage

handler = Baggage("X-Request-Id")
fields = handler.new()
fields.add("x-request-id", "abc")
fields.get("X-Request-Id")        # ['abc']
```

Only registered keys are accepted, and keys are not case-sensitive.
`add`, `set` and `delete` return `False` for keys that are not registered.
`iterate()` yields `(key, values)` pairs and `keys()` yields the
registered keys.

## Reporters

A reporter has `send(span)` and `close()`, and works as a context manager.

- `RecordingReporter`: keeps spans in memory. `flush()` returns them and
  clears the store.
- `LogReporter(logger=None)`: logs each span as indented Zipkin V2 JSON at
  INFO level.
- `NoopReporter`: discards everything.
- `HTTPReporter(url, ...)` in `zipkintrace.http_reporter`: buffers spans
  and POSTs them to a collector such as
  `http://localhost:9411/api/v2/spans`. It sends a batch when
  `batch_size` spans are buffered or every `batch_interval` seconds. When
  more than `max_backlog` spans are buffered, it drops the oldest. Every
  request carries the header `b3: 0`.
  - `client`: a callable `(request, timeout) -> status code`. The default
    uses `urllib`.
  - `request_callback`: can change each request before it is sent.
  - `close()`: sends whatever is still buffered and raises the error of
    that final send, if there is one.
  - `send()`: raises `RuntimeError` once the reporter is closed.
- `AMQPReporter(address, ...)` in `zipkintrace.amqp_reporter`:
  - Connects with `pika`, unless you pass a `connection` or a `channel`.
  - On creation, declares the durable `zipkin` queue, the direct `zipkin`
    exchange and their binding.
  - Publishes each span as a one-element JSON list to the `zipkin`
    exchange with routing key `zipkin`. The `exchange` and `queue`
    arguments are stored, but they do not change where spans are
    published.
  - Logs publishing failures and does not raise them.

`JSONSerializer` encodes spans as Zipkin V2 JSON for `HTTPReporter`. A
custom `SpanSerializer` can be passed as `serializer`.
`SpanModel.to_dict()` and `SpanModel.from_dict()` convert one span to and
from that layout.

## What it does not do

- Spans are encoded only as Zipkin V2 JSON. There is no protobuf
  encoding.
- There is no Kafka reporter.
- There is no server or middleware that traces HTTP or gRPC calls by
  itself. Inject and extract context yourself with the functions above.
- There is no helper that keeps the current span in an implicit context.
  Pass parent contexts to `start_span` explicitly.