"""Parsing and building of Zipkin B3 propagation headers."""

from __future__ import annotations

import re
from typing import Optional

from zipkintrace.model import SpanContext, TraceID, format_id

TRACE_ID = "x-b3-traceid"
SPAN_ID = "x-b3-spanid"
PARENT_SPAN_ID = "x-b3-parentspanid"
SAMPLED = "x-b3-sampled"
FLAGS = "x-b3-flags"
CONTEXT = "b3"

_HEX_RE = re.compile(r"[0-9a-fA-F]+")
_MASK64 = (1 << 64) - 1


class B3Error(ValueError):
    """Base class for B3 extraction and injection errors."""

    message = "invalid B3 data"

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.message)


class InvalidSampledByteError(B3Error):
    message = "invalid B3 Sampled found"


class InvalidSampledHeaderError(B3Error):
    message = "invalid B3 Sampled header found"


class InvalidFlagsHeaderError(B3Error):
    message = "invalid B3 Flags header found"


class InvalidTraceIDHeaderError(B3Error):
    message = "invalid B3 TraceID header found"


class InvalidSpanIDHeaderError(B3Error):
    message = "invalid B3 SpanID header found"


class InvalidParentSpanIDHeaderError(B3Error):
    message = "invalid B3 ParentSpanID header found"


class InvalidScopeError(B3Error):
    message = "require either both TraceID and SpanID or none"


class InvalidScopeParentError(B3Error):
    message = "ParentSpanID requires both TraceID and SpanID to be available"


class InvalidScopeParentSingleError(B3Error):
    message = "ParentSpanID requires TraceID, SpanID and Sampled to be available"


class EmptyContextError(B3Error):
    message = "empty request context"


class InvalidTraceIDValueError(B3Error):
    message = "invalid B3 TraceID value found"


class InvalidSpanIDValueError(B3Error):
    message = "invalid B3 SpanID value found"


class InvalidParentSpanIDValueError(B3Error):
    message = "invalid B3 ParentSpanID value found"


def _parse_uint64(text: str) -> int:
    """Parse an unsigned 64-bit hex number, raising ValueError when invalid."""
    if not _HEX_RE.fullmatch(text):
        raise ValueError(f"invalid hex number: {text!r}")
    value = int(text, 16)
    if value > _MASK64:
        raise ValueError(f"hex number out of range: {text!r}")
    return value


def parse_headers(
    trace_id: str,
    span_id: str,
    parent_span_id: str,
    sampled: str,
    flags: str,
) -> SpanContext:
    """Rebuild a span context from the values of the multi-header B3 format."""
    context = SpanContext()

    # "true" and "false" are accepted for interoperability.
    sampled_value = sampled.lower()
    if sampled_value in ("0", "false"):
        context.sampled = False
    elif sampled_value in ("1", "true"):
        context.sampled = True
    elif sampled_value != "":
        raise InvalidSampledHeaderError()

    # Only "1" is meaningful for Flags; anything else is ignored.
    if flags == "1":
        context.debug = True
        context.sampled = None

    required = 0
    if trace_id:
        required += 1
        try:
            context.trace_id = TraceID.from_hex(trace_id)
        except ValueError:
            raise InvalidTraceIDHeaderError() from None

    if span_id:
        required += 1
        try:
            context.id = _parse_uint64(span_id)
        except ValueError:
            raise InvalidSpanIDHeaderError() from None

    if required not in (0, 2):
        raise InvalidScopeError()

    if parent_span_id:
        if required == 0:
            raise InvalidScopeParentError()
        try:
            context.parent_id = _parse_uint64(parent_span_id)
        except ValueError:
            raise InvalidParentSpanIDHeaderError() from None

    return context


def parse_single_header(header: str) -> SpanContext:
    """Rebuild a span context from the single "b3" header format."""
    if not header:
        raise EmptyContextError()

    context = SpanContext()
    sampling = ""
    length = len(header)

    if length == 1:
        sampling = header
    elif length in (16, 32):
        raise InvalidScopeError()
    elif length >= 16 + 16 + 1:
        high = 0
        pos = 0
        if header[16] != "-":
            # the trace id is 128 bits wide
            try:
                high = _parse_uint64(header[0:16])
            except ValueError:
                raise InvalidTraceIDValueError() from None
            pos = 16

        try:
            low = _parse_uint64(header[pos:pos + 16])
        except ValueError:
            raise InvalidTraceIDValueError() from None
        context.trace_id = TraceID(high=high, low=low)

        span_start = pos + 16 + 1
        span_end = span_start + 16
        raw_span = header[span_start:span_end]
        if len(raw_span) != 16:
            raise InvalidSpanIDValueError()
        try:
            context.id = _parse_uint64(raw_span)
        except ValueError:
            raise InvalidSpanIDValueError() from None

        if length > span_end:
            if length == span_end + 1:
                raise InvalidSampledByteError()
            if length == span_end + 1 + 1:
                sampling = header[span_end + 1]
            elif length == span_end + 1 + 16:
                raise InvalidScopeParentSingleError()
            elif length == span_end + 1 + 1 + 1 + 16:
                sampling = header[span_end + 1]
                try:
                    context.parent_id = _parse_uint64(header[span_end + 3:])
                except ValueError:
                    raise InvalidParentSpanIDValueError() from None
            else:
                raise InvalidParentSpanIDValueError()
    else:
        raise InvalidTraceIDValueError()

    if sampling == "d":
        context.debug = True
    elif sampling == "1":
        context.sampled = True
    elif sampling == "0":
        context.sampled = False
    elif sampling != "":
        raise InvalidSampledByteError()

    return context


def build_single_header(context: SpanContext) -> str:
    """Render a span context in the single "b3" header format."""
    parts: list[str] = []
    if not context.trace_id.empty() and context.id > 0:
        parts.extend((str(context.trace_id), format_id(context.id)))

    if context.debug:
        parts.append("d")
    elif context.sampled is not None:
        parts.append("1" if context.sampled else "0")

    if context.parent_id is not None:
        parts.append(format_id(context.parent_id))

    return "-".join(parts)