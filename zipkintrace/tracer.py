"""The tracer that starts spans, and the span implementations it hands out."""

from __future__ import annotations

import dataclasses
import enum
import random
import threading
from datetime import datetime, timedelta, timezone
from typing import Mapping, Optional, Protocol

from zipkintrace.model import (
    Annotation,
    Endpoint,
    Extractor,
    Kind,
    Span,
    SpanContext,
    SpanModel,
    Tag,
    TraceID,
)
from zipkintrace.reporter import NoopReporter, Reporter
from zipkintrace.sample import Sampler, always_sample


class ExtractFailurePolicy(enum.IntEnum):
    """What to do when a parent context carries an extraction error."""

    RESTART = 0
    ERROR = 1
    TAG_AND_RESTART = 2


class InvalidExtractFailurePolicyError(ValueError):
    """Raised for an extract failure policy outside the known values."""

    def __init__(self, message: str = "invalid extract failure policy provided") -> None:
        super().__init__(message)


class _IDGenerator(Protocol):
    def trace_id(self) -> TraceID: ...

    def span_id(self, trace_id: TraceID) -> int: ...


class RandomIDGenerator:
    """Generates random, non-zero 64 or 128 bit trace ids and 64 bit span ids."""

    def __init__(self, trace_id_128bit: bool = False) -> None:
        self.trace_id_128bit = trace_id_128bit
        self._random = random.Random()
        self._lock = threading.Lock()

    def _next(self) -> int:
        with self._lock:
            while True:
                value = self._random.getrandbits(64)
                if value:
                    return value

    def trace_id(self) -> TraceID:
        if self.trace_id_128bit:
            return TraceID(high=self._next(), low=self._next())
        return TraceID(low=self._next())

    def span_id(self, trace_id: TraceID) -> int:
        """Root spans reuse the low trace id bits; others get a fresh id."""
        if not trace_id.empty():
            return trace_id.low
        return self._next()


def _now_like(reference: Optional[datetime]) -> datetime:
    if reference is not None and reference.tzinfo is None:
        return datetime.now()
    return datetime.now(timezone.utc)


class RecordedSpan(Span):
    """A span whose data is collected and sent to the tracer's reporter."""

    def __init__(
        self,
        reporter: Reporter,
        model: SpanModel,
        must_collect: bool,
        flush_on_finish: bool = True,
    ) -> None:
        self.model = model
        self._reporter = reporter
        self._must_collect = must_collect
        self._flush_on_finish = flush_on_finish
        self._lock = threading.RLock()

    @property
    def must_collect(self) -> bool:
        """Whether the span is still due to be collected on finish."""
        return self._must_collect

    def _snapshot(self) -> SpanModel:
        m = self.model
        return dataclasses.replace(
            m,
            context=dataclasses.replace(m.context),
            annotations=list(m.annotations),
            tags=dict(m.tags),
        )

    def context(self) -> SpanContext:
        return dataclasses.replace(self.model.context)

    def set_name(self, name: str) -> None:
        with self._lock:
            self.model.name = name

    def set_remote_endpoint(self, endpoint: Optional[Endpoint]) -> None:
        with self._lock:
            self.model.remote_endpoint = (
                None if endpoint is None else dataclasses.replace(endpoint)
            )

    def annotate(self, timestamp: datetime, value: str) -> None:
        with self._lock:
            self.model.annotations.append(Annotation(timestamp=timestamp, value=value))

    def tag(self, key: str, value: str) -> None:
        with self._lock:
            if key == Tag.ERROR.value and key in self.model.tags:
                return
            self.model.tags[key] = value

    def _finish(self, duration: Optional[timedelta]) -> None:
        with self._lock:
            if not self._must_collect:
                return
            self._must_collect = False
            if duration is None:
                start = self.model.timestamp
                duration = _now_like(start) - start if start is not None else timedelta()
            self.model.duration = duration
            if self._flush_on_finish:
                self._reporter.send(self._snapshot())

    def finish(self) -> None:
        self._finish(None)

    def finish_with_duration(self, duration: timedelta) -> None:
        self._finish(duration)

    def flush(self) -> None:
        with self._lock:
            ctx = self.model.context
            if ctx.debug or ctx.sampled:
                self._reporter.send(self._snapshot())


class NoopSpan(Span):
    """A span that only carries its context and records nothing."""

    def __init__(self, context: Optional[SpanContext] = None) -> None:
        self._context = context if context is not None else SpanContext()

    def context(self) -> SpanContext:
        return dataclasses.replace(self._context)

    def set_name(self, name: str) -> None:
        pass

    def set_remote_endpoint(self, endpoint: Optional[Endpoint]) -> None:
        pass

    def annotate(self, timestamp: datetime, value: str) -> None:
        pass

    def tag(self, key: str, value: str) -> None:
        pass

    def finish(self) -> None:
        pass

    def finish_with_duration(self, duration: timedelta) -> None:
        pass

    def flush(self) -> None:
        pass


class Tracer:
    """Starts spans and hands finished ones to a reporter."""

    def __init__(
        self,
        reporter: Optional[Reporter] = None,
        *,
        local_endpoint: Optional[Endpoint] = None,
        extract_failure_policy: int = ExtractFailurePolicy.RESTART,
        unsampled_noop: bool = False,
        shared_spans: bool = True,
        sampler: Sampler = always_sample,
        trace_id_128bit: bool = False,
        id_generator: Optional[_IDGenerator] = None,
        tags: Optional[Mapping[str, str]] = None,
        noop: Optional[bool] = None,
    ) -> None:
        try:
            policy = ExtractFailurePolicy(extract_failure_policy)
        except ValueError:
            raise InvalidExtractFailurePolicyError() from None

        if reporter is None:
            reporter = NoopReporter()
            if noop is None:
                noop = True

        self._reporter = reporter
        self._noop = bool(noop)
        self._local_endpoint = (
            None if local_endpoint is None else dataclasses.replace(local_endpoint)
        )
        self._extract_failure_policy = policy
        self._unsampled_noop = unsampled_noop
        self._shared_spans = shared_spans
        self._sampler = sampler
        self._generate: _IDGenerator = (
            id_generator if id_generator is not None else RandomIDGenerator(trace_id_128bit)
        )
        self._default_tags: dict[str, str] = dict(tags or {})

    def _resolve_parent(
        self, parent: SpanContext, tags: dict[str, str]
    ) -> Optional[SpanContext]:
        if parent.err is None:
            return dataclasses.replace(parent)
        policy = self._extract_failure_policy
        if policy is ExtractFailurePolicy.ERROR:
            raise parent.err
        if policy is ExtractFailurePolicy.TAG_AND_RESTART:
            tags["error.extract"] = str(parent.err)
        return None

    def start_span(
        self,
        name: str,
        *,
        kind: Optional[Kind] = None,
        parent: Optional[SpanContext] = None,
        start_time: Optional[datetime] = None,
        remote_endpoint: Optional[Endpoint] = None,
        tags: Optional[Mapping[str, str]] = None,
        flush_on_finish: bool = True,
        custom_trace_id: Optional[TraceID] = None,
    ) -> Span:
        """Create and start a span."""
        if self._noop:
            context = None
            if parent is not None:
                context = self._resolve_parent(parent, {})
            return NoopSpan(context)

        model = SpanModel(
            name=name,
            kind=kind if kind is not None else Kind.UNDETERMINED,
            local_endpoint=self._local_endpoint,
        )
        for key, value in self._default_tags.items():
            if key == Tag.ERROR.value and key in model.tags:
                continue
            model.tags[key] = value

        if parent is not None:
            resolved = self._resolve_parent(parent, model.tags)
            if resolved is not None:
                model.context = resolved
        if start_time is not None:
            model.timestamp = start_time
        if remote_endpoint is not None:
            model.remote_endpoint = remote_endpoint
        if tags:
            model.tags.update(tags)

        ctx = model.context
        if ctx.trace_id.empty():
            ctx.trace_id = (
                custom_trace_id if custom_trace_id is not None else self._generate.trace_id()
            )
            ctx.id = self._generate.span_id(ctx.trace_id)
        elif self._shared_spans and model.kind is Kind.SERVER:
            model.shared = True
        else:
            ctx.parent_id = ctx.id
            ctx.id = self._generate.span_id(TraceID())

        if not ctx.debug and ctx.sampled is None:
            ctx.sampled = bool(self._sampler(ctx.trace_id.low))
            must_collect = ctx.sampled
        else:
            must_collect = ctx.debug or bool(ctx.sampled)

        if self._unsampled_noop and not must_collect:
            return NoopSpan(ctx)

        if model.timestamp is None:
            model.timestamp = datetime.now(timezone.utc)

        return RecordedSpan(self._reporter, model, must_collect, flush_on_finish)

    def extract(self, extractor: Extractor) -> SpanContext:
        """Run an extractor; its error is stored on the returned context."""
        if self._noop:
            return SpanContext()
        try:
            found = extractor()
        except Exception as exc:  # noqa: BLE001 - the error travels with the context
            return SpanContext(err=exc)
        if found is None:
            return SpanContext()
        return dataclasses.replace(found, err=None)

    def set_noop(self, noop: bool) -> None:
        """Switch tracing off (True) or back on (False)."""
        self._noop = bool(noop)

    def local_endpoint(self) -> Optional[Endpoint]:
        """Return a copy of the tracer's local endpoint."""
        if self._local_endpoint is None:
            return None
        return dataclasses.replace(self._local_endpoint)