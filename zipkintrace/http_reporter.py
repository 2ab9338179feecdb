"""Reporter that batches spans and posts them to a Zipkin V2 HTTP collector."""

from __future__ import annotations

import logging
import queue
import threading
import time
import urllib.error
import urllib.request
from typing import Callable, Optional

from zipkintrace.model import SpanModel
from zipkintrace.reporter import JSONSerializer, Reporter, SpanSerializer

# A client receives the prepared request and a timeout in seconds and returns
# the response status code; transport failures are raised.
HTTPClient = Callable[[urllib.request.Request, float], int]
RequestCallback = Callable[[urllib.request.Request], None]

DEFAULT_TIMEOUT = 5.0
DEFAULT_BATCH_INTERVAL = 1.0
DEFAULT_BATCH_SIZE = 100
DEFAULT_MAX_BACKLOG = 1000

_QUIT = object()
_SEND = object()


def _urllib_client(request: urllib.request.Request, timeout: float) -> int:
    try:
        with urllib.request.urlopen(request, timeout=timeout) as response:
            response.read()
            return response.status
    except urllib.error.HTTPError as exc:
        return exc.code


class HTTPReporter(Reporter):
    """Buffers spans and sends them in batches by size or on an interval."""

    def __init__(
        self,
        url: str,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        batch_size: int = DEFAULT_BATCH_SIZE,
        max_backlog: int = DEFAULT_MAX_BACKLOG,
        batch_interval: float = DEFAULT_BATCH_INTERVAL,
        client: Optional[HTTPClient] = None,
        request_callback: Optional[RequestCallback] = None,
        logger: Optional[logging.Logger] = None,
        serializer: Optional[SpanSerializer] = None,
    ) -> None:
        self.url = url
        self._timeout = timeout
        self._batch_size = batch_size
        self._max_backlog = max_backlog
        self._batch_interval = batch_interval
        self._client: HTTPClient = client if client is not None else _urllib_client
        self._request_callback = request_callback
        self._logger = logger if logger is not None else logging.getLogger(__name__)
        self._serializer: SpanSerializer = (
            serializer if serializer is not None else JSONSerializer()
        )

        self._batch: list[SpanModel] = []
        self._batch_lock = threading.Lock()
        self._spans: "queue.Queue[object]" = queue.Queue()
        self._send_requests: "queue.Queue[object]" = queue.Queue(maxsize=1)
        self._state_lock = threading.Lock()
        self._closed = False
        self._shutdown_error: Optional[BaseException] = None

        self._loop_thread = threading.Thread(
            target=self._loop, name="zipkin-http-batch", daemon=True
        )
        self._send_thread = threading.Thread(
            target=self._send_loop, name="zipkin-http-send", daemon=True
        )
        self._loop_thread.start()
        self._send_thread.start()

    def send(self, span: SpanModel) -> None:
        """Queue a span for reporting."""
        with self._state_lock:
            if self._closed:
                raise RuntimeError("reporter is closed")
            self._spans.put(span)

    def close(self) -> None:
        """Send what is buffered and stop; raises the final send's error."""
        with self._state_lock:
            if self._closed:
                return
            self._closed = True
            self._spans.put(_QUIT)
        self._send_thread.join()
        self._loop_thread.join()
        if self._shutdown_error is not None:
            raise self._shutdown_error

    def _loop(self) -> None:
        tick = max(self._batch_interval / 10, 0.001)
        next_send = time.monotonic() + self._batch_interval
        while True:
            try:
                item = self._spans.get(timeout=tick)
            except queue.Empty:
                item = None

            if item is _QUIT:
                self._send_requests.put(_QUIT)
                return

            if isinstance(item, SpanModel):
                if self._append(item) >= self._batch_size:
                    next_send = time.monotonic() + self._batch_interval
                    self._enqueue_send()
                    continue

            if time.monotonic() > next_send:
                next_send = time.monotonic() + self._batch_interval
                self._enqueue_send()

    def _send_loop(self) -> None:
        while self._send_requests.get() is not _QUIT:
            try:
                self._send_batch()
            except Exception:  # noqa: BLE001 - already logged; retried next round
                pass
        try:
            self._send_batch()
        except Exception as exc:  # noqa: BLE001 - handed back by close()
            self._shutdown_error = exc

    def _enqueue_send(self) -> None:
        try:
            self._send_requests.put_nowait(_SEND)
        except queue.Full:
            pass  # a send is already pending

    def _append(self, span: SpanModel) -> int:
        with self._batch_lock:
            self._batch.append(span)
            excess = len(self._batch) - self._max_backlog
            if excess > 0:
                self._logger.warning("backlog too long, disposing %d spans", excess)
                del self._batch[:excess]
            return len(self._batch)

    def _send_batch(self) -> None:
        with self._batch_lock:
            batch = list(self._batch)
        if not batch:
            return

        try:
            body = self._serializer.serialize(batch)
        except Exception as exc:
            self._logger.error("failed when marshalling the spans batch: %s", exc)
            raise

        request = urllib.request.Request(self.url, data=body, method="POST")
        # b3: 0 keeps proxies from tracing the reporting call itself.
        request.add_header("b3", "0")
        request.add_header("Content-Type", self._serializer.content_type())
        if self._request_callback is not None:
            self._request_callback(request)

        try:
            status = self._client(request, self._timeout)
        except Exception as exc:
            self._logger.error("failed to send the request: %s", exc)
            raise

        if not 200 <= status <= 299:
            self._logger.error("failed the request with status code %d", status)

        # Sent spans are dropped even when the collector refused them.
        with self._batch_lock:
            del self._batch[: len(batch)]