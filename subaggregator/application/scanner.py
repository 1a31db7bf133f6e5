"""
Renewal scanner - finds subscriptions due today / tomorrow and publishes
one notification per match.

Read-only towards the repository, write-only towards the queue; never
touches the cache. A repeated scan on the same day re-publishes the same
entries, consumers must tolerate duplicates.
"""
import logging
import time
from datetime import date
from typing import Callable

from subaggregator.application.contracts import NotificationPublisher, SubscriptionRepository
from subaggregator.domain.subscription import NotificationEvent, target_date
from subaggregator.errors import PublishFailedError, StoreNotReadyError, StoreUnavailableError

logger = logging.getLogger(__name__)


class RenewalScanner:
    def __init__(
        self,
        repo: SubscriptionRepository,
        publisher: NotificationPublisher,
        today: Callable[[], date] = date.today,
    ):
        self.repo = repo
        self.publisher = publisher
        self.today = today

    def scan(self, horizon: str) -> int:
        """
        One scan cycle for a horizon.

        Returns the number of notifications published. Store errors end the
        cycle (logged), publish errors skip only the affected entry.
        """
        day = target_date(horizon, self.today())
        logger.info("scanning for subscriptions %s (next payment %s)", horizon, day)

        try:
            entries = self.repo.find_due_on(day)
        except StoreUnavailableError:
            logger.exception("failed to find subscriptions due on %s", day)
            return 0

        if not entries:
            logger.info("no subscriptions %s found", horizon)
            return 0

        logger.info("found %d subscriptions %s", len(entries), horizon)
        published = 0
        for entry in entries:
            event = NotificationEvent.for_entry(entry, horizon)
            try:
                self.publisher.publish(horizon, event.to_message())
            except PublishFailedError as exc:
                logger.error("failed to publish notification for id=%s: %s", entry.id, exc)
                continue
            published += 1

        logger.info("published %d of %d %s notifications", published, len(entries), horizon)
        return published


def wait_for_store(
    repo: SubscriptionRepository,
    max_retries: int,
    retry_delay: float,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    """
    Poll the store readiness probe.

    Raises:
        StoreNotReadyError: хранилище не ответило за max_retries попыток
    """
    last_exc = None
    for attempt in range(1, max_retries + 1):
        try:
            repo.check_ready()
        except StoreUnavailableError as exc:
            last_exc = exc
            logger.warning("store not ready (attempt %d/%d): %s", attempt, max_retries, exc)
            if attempt < max_retries:
                sleep(retry_delay)
            continue
        return

    raise StoreNotReadyError(f"database not ready after {max_retries} attempts") from last_exc
