"""Reporters that receive finished spans, and span serializers."""

from __future__ import annotations

import abc
import json
import logging
import threading
from datetime import datetime
from typing import Iterable, Optional

from zipkintrace.model import SpanModel


class Reporter(abc.ABC):
    """Receives span data from a tracer."""

    @abc.abstractmethod
    def send(self, span: SpanModel) -> None:
        """Publish a span."""

    @abc.abstractmethod
    def close(self) -> None:
        """Release the reporter's resources."""

    def __enter__(self) -> "Reporter":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class NoopReporter(Reporter):
    """Reporter that discards everything."""

    def send(self, span: SpanModel) -> None:
        pass

    def close(self) -> None:
        pass


class SpanSerializer(abc.ABC):
    """Encodes a batch of spans for a transport."""

    @abc.abstractmethod
    def serialize(self, spans: Iterable[SpanModel]) -> bytes:
        """Encode the spans."""

    @abc.abstractmethod
    def content_type(self) -> str:
        """The content type of the encoding."""


class JSONSerializer(SpanSerializer):
    """Zipkin V2 JSON encoding."""

    def serialize(self, spans: Iterable[SpanModel]) -> bytes:
        payload = [span.to_dict() for span in spans]
        return json.dumps(payload, separators=(",", ":")).encode("utf-8")

    def content_type(self) -> str:
        return "application/json"


class RecordingReporter(Reporter):
    """Keeps reported spans in memory."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._spans: list[SpanModel] = []

    def send(self, span: SpanModel) -> None:
        with self._lock:
            self._spans.append(span)

    def flush(self) -> list[SpanModel]:
        """Return all recorded spans and clear the store."""
        with self._lock:
            spans, self._spans = self._spans, []
        return spans

    def close(self) -> None:
        self.flush()


class LogReporter(Reporter):
    """Writes spans as indented V2 JSON to a logger."""

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self._logger = logger if logger is not None else logging.getLogger(__name__)

    def send(self, span: SpanModel) -> None:
        try:
            body = json.dumps(span.to_dict(), indent=2)
        except (TypeError, ValueError):
            return
        self._logger.info("%s:\n%s\n", datetime.now(), body)

    def close(self) -> None:
        pass