"""B3 extraction and injection for plain maps, HTTP headers and gRPC metadata."""

from __future__ import annotations

from typing import Callable, Mapping, MutableMapping, Optional, Sequence, Union

from zipkintrace import b3
from zipkintrace.model import SpanContext

_Getter = Callable[[str], str]
_Setter = Callable[[str, str], None]


def _extract(get: _Getter) -> SpanContext:
    """Prefer the single header; fall back to the multi-header format."""
    single = get(b3.CONTEXT)
    single_error: Optional[b3.B3Error] = None
    if single:
        try:
            return b3.parse_single_header(single)
        except b3.B3Error as exc:
            single_error = exc

    try:
        return b3.parse_headers(
            get(b3.TRACE_ID),
            get(b3.SPAN_ID),
            get(b3.PARENT_SPAN_ID),
            get(b3.SAMPLED),
            get(b3.FLAGS),
        )
    except b3.B3Error:
        if single_error is not None:
            raise single_error from None
        raise


def _write_multi(context: SpanContext, put: _Setter) -> None:
    if context.debug:
        put(b3.FLAGS, "1")
    elif context.sampled is not None:
        # Debug implies sampled, so the sampled header is only sent without it.
        put(b3.SAMPLED, "1" if context.sampled else "0")

    if not context.trace_id.empty() and context.id > 0:
        put(b3.TRACE_ID, str(context.trace_id))
        put(b3.SPAN_ID, f"{context.id:016x}")
        if context.parent_id is not None:
            put(b3.PARENT_SPAN_ID, f"{context.parent_id:016x}")


def _inject(
    context: SpanContext, put: _Setter, single_header: bool, multi_header: bool
) -> None:
    if context.is_empty():
        raise b3.EmptyContextError()
    if multi_header:
        _write_multi(context, put)
    if single_header:
        put(b3.CONTEXT, b3.build_single_header(context))


def extract_map(carrier: Mapping[str, str]) -> SpanContext:
    """Extract a span context from a plain string map with exact B3 keys."""
    return _extract(lambda key: carrier.get(key, "") or "")


def inject_map(
    carrier: MutableMapping[str, str],
    context: SpanContext,
    *,
    single_header: bool = False,
    multi_header: bool = True,
) -> None:
    """Write a span context into a plain string map."""
    _inject(context, carrier.__setitem__, single_header, multi_header)


def _header_get(headers: Mapping[str, Union[str, Sequence[str]]], key: str) -> str:
    wanted = key.lower()
    for name, value in headers.items():
        if name.lower() != wanted:
            continue
        if isinstance(value, str):
            return value
        return value[0] if value else ""
    return ""


def _header_setter(headers: MutableMapping[str, str]) -> _Setter:
    def put(key: str, value: str) -> None:
        wanted = key.lower()
        for name in [n for n in headers if n.lower() == wanted and n != key]:
            del headers[name]
        headers[key] = value

    return put


def extract_http(headers: Mapping[str, Union[str, Sequence[str]]]) -> SpanContext:
    """Extract a span context from HTTP headers, matching names case-insensitively."""
    return _extract(lambda key: _header_get(headers, key))


def inject_http(
    headers: MutableMapping[str, str],
    context: SpanContext,
    *,
    single_header: bool = False,
    multi_header: bool = True,
) -> None:
    """Write a span context into HTTP headers, replacing any existing values."""
    if context.is_empty():
        raise b3.EmptyContextError()
    _inject(context, _header_setter(headers), single_header, multi_header)


def get_grpc_header(metadata: Mapping[str, Sequence[str]], key: str) -> str:
    """Return the last value stored under ``key``, or an empty string."""
    values = metadata.get(key)
    if not values:
        return ""
    return values[-1]


def extract_grpc(metadata: Mapping[str, Sequence[str]]) -> SpanContext:
    """Extract a span context from gRPC metadata in the multi-header format."""
    return b3.parse_headers(
        get_grpc_header(metadata, b3.TRACE_ID),
        get_grpc_header(metadata, b3.SPAN_ID),
        get_grpc_header(metadata, b3.PARENT_SPAN_ID),
        get_grpc_header(metadata, b3.SAMPLED),
        get_grpc_header(metadata, b3.FLAGS),
    )


def inject_grpc(metadata: MutableMapping[str, list[str]], context: SpanContext) -> None:
    """Append the span context's B3 values to gRPC metadata."""
    if context.is_empty():
        raise b3.EmptyContextError()
    _write_multi(context, lambda key, value: metadata.setdefault(key, []).append(value))