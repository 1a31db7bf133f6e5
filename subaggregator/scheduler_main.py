"""
Renewal scanner process entry point.

Usage:
    subaggregator-scheduler
    python -m subaggregator.scheduler_main
"""
import logging
import signal
import sys
import threading

from subaggregator.application.scheduler import SchedulerApp
from subaggregator.config import get_settings
from subaggregator.errors import BrokerUnavailableError, StoreNotReadyError
from subaggregator.infrastructure.db.repository import SqlSubscriptionRepository
from subaggregator.infrastructure.db.session import get_session_factory

logger = logging.getLogger(__name__)


def main() -> int:
    logging.basicConfig(level=logging.INFO)
    settings = get_settings()
    logger.info("starting renewal scheduler")

    repo = SqlSubscriptionRepository(get_session_factory())
    try:
        app = SchedulerApp.start(settings, repo)
    except (BrokerUnavailableError, StoreNotReadyError):
        logger.exception("scheduler startup failed")
        return 1

    stop_event = threading.Event()

    def _handle_signal(signum, _frame):
        logger.info("received signal %s", signum)
        stop_event.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    app.run(stop_event)
    logger.info("scheduler stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
