"""Core span data types: identifiers, contexts, endpoints and the Span interface."""

from __future__ import annotations

import abc
import enum
import ipaddress
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional, Union

_MASK64 = (1 << 64) - 1
_HEX_RE = re.compile(r"[0-9a-fA-F]+")
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_MICROSECOND = timedelta(microseconds=1)


def format_id(value: int) -> str:
    """Render a 64-bit identifier as 16 lower-case hex digits."""
    return f"{value & _MASK64:016x}"


def _parse_hex64(text: str) -> int:
    if not _HEX_RE.fullmatch(text) or len(text) > 16:
        raise ValueError(f"invalid hex identifier: {text!r}")
    return int(text, 16)


@dataclass(frozen=True)
class TraceID:
    """A 64 or 128 bit trace identifier."""

    high: int = 0
    low: int = 0

    @classmethod
    def from_hex(cls, value: str) -> "TraceID":
        """Parse a trace id of up to 32 hex digits."""
        if len(value) > 32:
            raise ValueError(f"trace id too long: {value!r}")
        if len(value) > 16:
            split = len(value) - 16
            return cls(high=_parse_hex64(value[:split]), low=_parse_hex64(value[split:]))
        return cls(low=_parse_hex64(value))

    def empty(self) -> bool:
        return self.high == 0 and self.low == 0

    def __str__(self) -> str:
        if self.high:
            return format_id(self.high) + format_id(self.low)
        return format_id(self.low)


@dataclass
class SpanContext:
    """Identifying and sampling state that travels with a trace."""

    trace_id: TraceID = field(default_factory=TraceID)
    id: int = 0
    parent_id: Optional[int] = None
    debug: bool = False
    sampled: Optional[bool] = None
    err: Optional[BaseException] = None

    def is_empty(self) -> bool:
        return self == SpanContext()


class Kind(str, enum.Enum):
    UNDETERMINED = ""
    CLIENT = "CLIENT"
    SERVER = "SERVER"
    PRODUCER = "PRODUCER"
    CONSUMER = "CONSUMER"


@dataclass
class Endpoint:
    service_name: str = ""
    ipv4: Optional[ipaddress.IPv4Address] = None
    ipv6: Optional[ipaddress.IPv6Address] = None
    port: int = 0

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        if self.service_name:
            out["serviceName"] = self.service_name
        if self.ipv4 is not None:
            out["ipv4"] = str(self.ipv4)
        if self.ipv6 is not None:
            out["ipv6"] = str(self.ipv6)
        if self.port:
            out["port"] = self.port
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Endpoint":
        ipv4 = data.get("ipv4")
        ipv6 = data.get("ipv6")
        return cls(
            service_name=data.get("serviceName", ""),
            ipv4=ipaddress.IPv4Address(ipv4) if ipv4 else None,
            ipv6=ipaddress.IPv6Address(ipv6) if ipv6 else None,
            port=int(data.get("port", 0)),
        )


@dataclass(frozen=True)
class Annotation:
    timestamp: datetime
    value: str


def _to_micros(moment: datetime) -> int:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return (moment - _EPOCH) // _MICROSECOND


def _from_micros(micros: int) -> datetime:
    return _EPOCH + timedelta(microseconds=micros)


@dataclass
class SpanModel:
    """The span data that is handed to reporters."""

    context: SpanContext = field(default_factory=SpanContext)
    name: str = ""
    kind: Kind = Kind.UNDETERMINED
    timestamp: Optional[datetime] = None
    duration: timedelta = field(default_factory=timedelta)
    shared: bool = False
    local_endpoint: Optional[Endpoint] = None
    remote_endpoint: Optional[Endpoint] = None
    annotations: list[Annotation] = field(default_factory=list)
    tags: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Render the span in the Zipkin V2 JSON layout."""
        ctx = self.context
        out: dict[str, Any] = {"traceId": str(ctx.trace_id), "id": format_id(ctx.id)}
        if ctx.parent_id is not None:
            out["parentId"] = format_id(ctx.parent_id)
        if ctx.debug:
            out["debug"] = True
        if self.kind is not Kind.UNDETERMINED:
            out["kind"] = self.kind.value
        if self.name:
            out["name"] = self.name
        if self.timestamp is not None:
            out["timestamp"] = _to_micros(self.timestamp)
        micros = self.duration // _MICROSECOND
        if micros > 0:
            out["duration"] = micros
        if self.shared:
            out["shared"] = True
        if self.local_endpoint is not None:
            out["localEndpoint"] = self.local_endpoint.to_dict()
        if self.remote_endpoint is not None:
            out["remoteEndpoint"] = self.remote_endpoint.to_dict()
        if self.annotations:
            out["annotations"] = [
                {"timestamp": _to_micros(a.timestamp), "value": a.value}
                for a in self.annotations
            ]
        if self.tags:
            out["tags"] = dict(self.tags)
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SpanModel":
        """Build a span from its Zipkin V2 JSON layout."""
        parent = data.get("parentId")
        context = SpanContext(
            trace_id=TraceID.from_hex(data.get("traceId", "0")),
            id=_parse_hex64(data.get("id", "0")),
            parent_id=_parse_hex64(parent) if parent else None,
            debug=bool(data.get("debug", False)),
        )
        timestamp = data.get("timestamp")
        local = data.get("localEndpoint")
        remote = data.get("remoteEndpoint")
        return cls(
            context=context,
            name=data.get("name", ""),
            kind=Kind(data.get("kind", "")),
            timestamp=_from_micros(int(timestamp)) if timestamp is not None else None,
            duration=timedelta(microseconds=int(data.get("duration", 0))),
            shared=bool(data.get("shared", False)),
            local_endpoint=Endpoint.from_dict(local) if local is not None else None,
            remote_endpoint=Endpoint.from_dict(remote) if remote is not None else None,
            annotations=[
                Annotation(timestamp=_from_micros(int(a["timestamp"])), value=a["value"])
                for a in data.get("annotations", [])
            ],
            tags=dict(data.get("tags", {})),
        )


class Span(abc.ABC):
    """A span as returned by a tracer."""

    @abc.abstractmethod
    def context(self) -> SpanContext:
        """Return the span's context."""

    @abc.abstractmethod
    def set_name(self, name: str) -> None:
        """Update the span's name."""

    @abc.abstractmethod
    def set_remote_endpoint(self, endpoint: Optional[Endpoint]) -> None:
        """Update the span's remote endpoint."""

    @abc.abstractmethod
    def annotate(self, timestamp: datetime, value: str) -> None:
        """Add a timed event to the span."""

    @abc.abstractmethod
    def tag(self, key: str, value: str) -> None:
        """Set a tag; the first value of an error tag is kept."""

    @abc.abstractmethod
    def finish(self) -> None:
        """Finish the span and report it unless reporting was delayed."""

    @abc.abstractmethod
    def finish_with_duration(self, duration: timedelta) -> None:
        """Finish the span with an explicit duration."""

    @abc.abstractmethod
    def flush(self) -> None:
        """Send the span to the reporter whether finished or not."""


class Tag(str, enum.Enum):
    HTTP_METHOD = "http.method"
    HTTP_PATH = "http.path"
    HTTP_URL = "http.url"
    HTTP_ROUTE = "http.route"
    HTTP_STATUS_CODE = "http.status_code"
    HTTP_REQUEST_SIZE = "http.request.size"
    HTTP_RESPONSE_SIZE = "http.response.size"
    GRPC_STATUS_CODE = "grpc.status_code"
    SQL_QUERY = "sql.query"
    ERROR = "error"

    def set(self, span: Span, value: str) -> None:
        """Set this standard tag with a payload on the span."""
        span.tag(self.value, value)


# An extractor returns a context (or None) and raises on malformed input.
Extractor = Callable[[], Union[SpanContext, None]]
# An injector writes a context into a carrier and raises on failure.
Injector = Callable[[SpanContext], None]