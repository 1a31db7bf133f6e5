"""
Background schedulers (APScheduler).

SchedulerApp - the renewal scanner process:
  Connecting -> Provisioning -> Waiting-for-store -> Running -> Draining
  Two independent interval jobs, one per horizon, first run immediately.

start_maintenance_scheduler - runs inside the API process:
  - Next payment date rollover (daily, PAYMENT_ROLLOVER_HOUR UTC)
"""
import logging
import threading
import time
from datetime import date, datetime, timezone
from typing import Callable, Dict, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from kombu import Connection

from subaggregator.application.scanner import RenewalScanner, wait_for_store
from subaggregator.application.subscriptions import SubscriptionService
from subaggregator.config import Settings
from subaggregator.domain.subscription import HORIZON_DUE_TODAY, HORIZON_DUE_TOMORROW
from subaggregator.errors import BrokerUnavailableError, StoreNotReadyError
from subaggregator.infrastructure.broker.connection import (
    broker_errors, connect, notification_queues, setup_channel,
)
from subaggregator.infrastructure.broker.publisher import KombuNotificationPublisher

logger = logging.getLogger(__name__)


class SchedulerApp:
    """
    Renewal scanner process: owns the broker connection and both scan loops.

    Build with SchedulerApp.start(); any startup failure releases what was
    already acquired and re-raises.
    """

    def __init__(
        self,
        scanner: RenewalScanner,
        publisher,
        intervals: Dict[str, int],
        scheduler: Optional[BackgroundScheduler] = None,
    ):
        self.scanner = scanner
        self.publisher = publisher
        self.intervals = intervals
        self.scheduler = scheduler or BackgroundScheduler(daemon=True)

    @classmethod
    def start(
        cls,
        settings: Settings,
        repo,
        *,
        connection_factory: Callable[[str], Connection] = Connection,
        sleep: Callable[[float], None] = time.sleep,
        today: Callable[[], date] = date.today,
        scheduler: Optional[BackgroundScheduler] = None,
    ) -> "SchedulerApp":
        """
        Raises:
            BrokerUnavailableError: брокер недоступен / очереди не объявлены
            StoreNotReadyError: БД не готова
        """
        queues = notification_queues(settings)

        conn = connect(
            settings.RABBITMQ_URL,
            settings.RABBITMQ_MAX_RETRIES,
            settings.RABBITMQ_RETRY_DELAY,
            connection_factory=connection_factory,
            sleep=sleep,
        )

        try:
            channel = setup_channel(conn, settings.NOTIFICATIONS_EXCHANGE, queues)
        except BrokerUnavailableError:
            try:
                conn.release()
            except broker_errors(conn):
                logger.error("failed to close connection", exc_info=True)
            raise
        logger.info("broker channel ready")

        publisher = KombuNotificationPublisher(conn, channel, settings.NOTIFICATIONS_EXCHANGE, queues)

        try:
            wait_for_store(repo, settings.DB_READY_MAX_RETRIES, settings.DB_READY_RETRY_DELAY, sleep=sleep)
        except StoreNotReadyError:
            publisher.close()
            raise

        scanner = RenewalScanner(repo, publisher, today=today)
        intervals = {
            HORIZON_DUE_TOMORROW: settings.SCAN_TOMORROW_INTERVAL_SECONDS,
            HORIZON_DUE_TODAY: settings.SCAN_TODAY_INTERVAL_SECONDS,
        }
        return cls(scanner, publisher, intervals, scheduler=scheduler)

    def _run_scan(self, horizon: str) -> None:
        try:
            self.scanner.scan(horizon)
        except Exception:
            logger.exception("Renewal scan job failed (%s)", horizon)

    def launch(self) -> None:
        """Register one interval job per horizon and start them."""
        now = datetime.now(timezone.utc)
        for horizon, seconds in self.intervals.items():
            self.scheduler.add_job(
                self._run_scan,
                "interval",
                seconds=seconds,
                args=[horizon],
                id=f"scan_{horizon}",
                next_run_time=now,
                max_instances=1,
                coalesce=True,
                replace_existing=True,
            )
        self.scheduler.start()
        logger.info(
            "Scheduler started: %s",
            ", ".join(f"{h} (every {s}s)" for h, s in self.intervals.items()),
        )

    def shutdown(self) -> None:
        """Stop initiating scans, wait for running ones, then close the broker."""
        logger.info("shutting down scheduler service")
        if self.scheduler.running:
            self.scheduler.shutdown(wait=True)
        self.publisher.close()

    def run(self, stop_event: threading.Event) -> None:
        """Block until stop_event is set; shutdown always completes."""
        self.launch()
        try:
            stop_event.wait()
        finally:
            self.shutdown()


# ============================================================================
# API-process maintenance jobs
# ============================================================================


def start_maintenance_scheduler(service: SubscriptionService, settings: Settings) -> BackgroundScheduler:
    """Start the background scheduler with the payment date rollover job."""
    scheduler = BackgroundScheduler(daemon=True)

    def _run_payment_rollover():
        try:
            service.roll_forward_payment_dates()
        except Exception:
            logger.exception("Payment date rollover job failed")

    scheduler.add_job(
        _run_payment_rollover,
        CronTrigger(hour=settings.PAYMENT_ROLLOVER_HOUR, minute=0, timezone=timezone.utc),
        id="payment_rollover",
        replace_existing=True,
    )
    scheduler.start()
    logger.info("Scheduler started: payment_rollover (%02d:00 UTC)", settings.PAYMENT_ROLLOVER_HOUR)
    return scheduler


def shutdown_scheduler(scheduler: BackgroundScheduler) -> None:
    """Gracefully stop the scheduler."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
