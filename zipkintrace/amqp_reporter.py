"""Reporter that publishes spans to a RabbitMQ exchange."""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

import pika

from zipkintrace.model import SpanModel
from zipkintrace.reporter import Reporter

DEFAULT_ROUTING_KEY = "zipkin"
DEFAULT_EXCHANGE = "zipkin"
DEFAULT_EXCHANGE_KIND = "direct"


class AMQPReporter(Reporter):
    """Publishes each span, wrapped in a JSON list, to the zipkin exchange.

    A connection is opened from ``address`` unless one is given, and a channel
    is opened on it unless one is given. The queue, exchange and binding are
    declared on creation; a failure there is raised.
    """

    def __init__(
        self,
        address: str,
        *,
        logger: Optional[logging.Logger] = None,
        exchange: str = DEFAULT_EXCHANGE,
        queue: str = DEFAULT_ROUTING_KEY,
        channel: Optional[Any] = None,
        connection: Optional[Any] = None,
    ) -> None:
        self.address = address
        self.exchange = exchange
        self.queue = queue
        self._logger = logger if logger is not None else logging.getLogger(__name__)

        if connection is None:
            connection = pika.BlockingConnection(pika.URLParameters(address))
        self._connection = connection

        if channel is None:
            channel = connection.channel()
        self._channel = channel

        self._declare_queue()
        self._declare_exchange()
        self._bind_queue()

    def _declare_queue(self) -> None:
        self._channel.queue_declare(
            queue=DEFAULT_EXCHANGE,
            durable=True,
            exclusive=False,
            auto_delete=False,
        )

    def _declare_exchange(self) -> None:
        self._channel.exchange_declare(
            exchange=DEFAULT_EXCHANGE,
            exchange_type=DEFAULT_EXCHANGE_KIND,
            durable=True,
            auto_delete=False,
            internal=False,
        )

    def _bind_queue(self) -> None:
        self._channel.queue_bind(
            queue=DEFAULT_ROUTING_KEY,
            exchange=DEFAULT_EXCHANGE,
            routing_key=DEFAULT_ROUTING_KEY,
        )

    def send(self, span: SpanModel) -> None:
        """Publish a span; failures are logged, not raised."""
        # Zipkin expects the message to be wrapped in an array.
        try:
            body = json.dumps([span.to_dict()], separators=(",", ":")).encode("utf-8")
        except (TypeError, ValueError) as exc:
            self._logger.error("failed when marshalling the span: %s", exc)
            return

        try:
            self._channel.basic_publish(
                exchange=DEFAULT_EXCHANGE,
                routing_key=DEFAULT_ROUTING_KEY,
                body=body,
                mandatory=False,
            )
        except Exception as exc:  # noqa: BLE001 - reported through the logger
            self._logger.error("failed when publishing the span: %s", exc)

    def close(self) -> None:
        """Close the channel, then the connection."""
        self._channel.close()
        self._connection.close()