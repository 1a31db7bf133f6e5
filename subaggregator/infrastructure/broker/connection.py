"""
RabbitMQ connection and topology (kombu).

connect() retries a fixed number of times with a fixed delay; setup_channel()
declares the durable direct exchange and one bound queue per horizon.
"""
import logging
import time
from dataclasses import dataclass
from typing import Callable, List, Sequence, Tuple

from kombu import Connection, Exchange, Queue
from kombu.exceptions import KombuError

from subaggregator.config import Settings
from subaggregator.domain.subscription import HORIZON_DUE_TODAY, HORIZON_DUE_TOMORROW
from subaggregator.errors import BrokerUnavailableError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueueConfig:
    name: str
    routing_key: str
    horizon: str


def notification_queues(settings: Settings) -> List[QueueConfig]:
    """Queue per horizon: "due tomorrow" and "due today"."""
    return [
        QueueConfig(settings.DUE_TOMORROW_QUEUE, settings.DUE_TOMORROW_ROUTING_KEY, HORIZON_DUE_TOMORROW),
        QueueConfig(settings.DUE_TODAY_QUEUE, settings.DUE_TODAY_ROUTING_KEY, HORIZON_DUE_TODAY),
    ]


def broker_errors(connection: Connection) -> Tuple[type, ...]:
    """Exceptions that mean the broker (not our code) failed."""
    return (
        (OSError, KombuError)
        + tuple(connection.connection_errors)
        + tuple(connection.channel_errors)
    )


def connect(
    url: str,
    max_retries: int,
    retry_delay: float,
    *,
    connection_factory: Callable[[str], Connection] = Connection,
    sleep: Callable[[float], None] = time.sleep,
) -> Connection:
    """
    Open a broker connection, trying up to max_retries times.

    Raises:
        BrokerUnavailableError: все попытки исчерпаны (последняя ошибка в __cause__)
    """
    last_exc = None
    for attempt in range(1, max_retries + 1):
        conn = connection_factory(url)
        try:
            conn.connect()
        except broker_errors(conn) as exc:
            last_exc = exc
            logger.warning(
                "broker connection attempt %d/%d failed: %s", attempt, max_retries, exc
            )
            conn.release()
            if attempt < max_retries:
                sleep(retry_delay)
            continue
        logger.info("connected to broker after %d attempt(s)", attempt)
        return conn

    raise BrokerUnavailableError(
        f"broker unreachable after {max_retries} attempts"
    ) from last_exc


def setup_channel(connection: Connection, exchange_name: str, queues: Sequence[QueueConfig]):
    """
    Open a channel and declare the notification topology on it.

    On failure the channel is closed; the connection is left to the caller.
    """
    errors = broker_errors(connection)
    try:
        channel = connection.channel()
    except errors as exc:
        raise BrokerUnavailableError(f"failed to open channel: {exc}") from exc

    exchange = Exchange(exchange_name, type="direct", durable=True)
    try:
        exchange(channel).declare()
        for q in queues:
            bound = Queue(q.name, exchange=exchange, routing_key=q.routing_key, durable=True)(channel)
            bound.declare()
            logger.info("declared queue %s (routing key %s)", q.name, q.routing_key)
    except errors as exc:
        try:
            channel.close()
        except errors:
            logger.error("failed to close channel", exc_info=True)
        raise BrokerUnavailableError(f"failed to declare queues: {exc}") from exc

    return channel
