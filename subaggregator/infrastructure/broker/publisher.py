"""
Notification publisher - JSON messages onto the notifications exchange.
"""
import logging
import threading
from typing import Any, Sequence

from kombu import Connection, Exchange, Producer
from kombu.exceptions import KombuError

from subaggregator.errors import PublishFailedError
from subaggregator.infrastructure.broker.connection import QueueConfig, broker_errors

logger = logging.getLogger(__name__)

PERSISTENT_DELIVERY_MODE = 2


def publish_message(producer: Producer, exchange: Exchange, routing_key: str, message: Any,
                    errors=(OSError, KombuError)) -> None:
    """
    Publish one persistent JSON message.

    Raises:
        PublishFailedError: broker rejected or failed the publish
    """
    try:
        producer.publish(
            message,
            exchange=exchange,
            routing_key=routing_key,
            serializer="json",
            delivery_mode=PERSISTENT_DELIVERY_MODE,
        )
    except errors as exc:
        raise PublishFailedError(f"publish to {routing_key} failed: {exc}") from exc


class KombuNotificationPublisher:
    """
    Owns the scanner's channel and connection for the process lifetime.

    The two scan loops share one channel; AMQP channels are not thread-safe,
    so publishes are serialized.
    """

    def __init__(self, connection: Connection, channel, exchange_name: str, queues: Sequence[QueueConfig]):
        self._connection = connection
        self._channel = channel
        self._exchange = Exchange(exchange_name, type="direct", durable=True)
        self._producer = Producer(channel, exchange=self._exchange)
        self._routes = {q.horizon: q.routing_key for q in queues}
        self._errors = broker_errors(connection)
        self._lock = threading.Lock()

    def publish(self, horizon: str, message: dict) -> None:
        routing_key = self._routes.get(horizon)
        if routing_key is None:
            raise PublishFailedError(f"no queue configured for horizon {horizon!r}")
        with self._lock:
            publish_message(self._producer, self._exchange, routing_key, message, self._errors)

    def close(self) -> None:
        """Close channel, then connection. Errors are logged, never raised."""
        try:
            self._channel.close()
        except self._errors:
            logger.error("failed to close channel", exc_info=True)
        try:
            self._connection.release()
        except self._errors:
            logger.error("failed to close connection", exc_info=True)
