"""Tests for RenewalScanner and store readiness polling."""
from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from subaggregator.application.scanner import RenewalScanner, wait_for_store
from subaggregator.domain.subscription import (
    HORIZON_DUE_TODAY, HORIZON_DUE_TOMORROW, SubscriptionEntry,
)
from subaggregator.errors import PublishFailedError, StoreNotReadyError, StoreUnavailableError


class RecordingPublisher:
    def __init__(self, fail_for=()):
        self.messages = []
        self.fail_for = set(fail_for)
        self.closed = False

    def publish(self, horizon, message):
        if message["subscription_id"] in self.fail_for:
            raise PublishFailedError("broker hiccup")
        self.messages.append((horizon, message))

    def close(self):
        self.closed = True


def _add(repo, next_payment, username="alice"):
    return repo.create(SubscriptionEntry(
        service_name="Netflix", price=100, username=username,
        start_date=next_payment - timedelta(days=30), counter_months=12,
        next_payment_date=next_payment,
    ))


class TestScan:
    def test_today_tomorrow_and_later(self, repo, today):
        due_today = _add(repo, today)
        due_tomorrow = _add(repo, today + timedelta(days=1))
        _add(repo, today + timedelta(days=5))
        publisher = RecordingPublisher()
        scanner = RenewalScanner(repo, publisher, today=lambda: today)

        assert scanner.scan(HORIZON_DUE_TOMORROW) == 1
        assert scanner.scan(HORIZON_DUE_TODAY) == 1

        assert [(h, m["subscription_id"]) for h, m in publisher.messages] == [
            (HORIZON_DUE_TOMORROW, due_tomorrow),
            (HORIZON_DUE_TODAY, due_today),
        ]
        assert publisher.messages[1][1]["next_payment_date"] == today.isoformat()

    def test_repeated_scan_republishes(self, repo, today):
        _add(repo, today)
        publisher = RecordingPublisher()
        scanner = RenewalScanner(repo, publisher, today=lambda: today)

        scanner.scan(HORIZON_DUE_TODAY)
        scanner.scan(HORIZON_DUE_TODAY)

        assert len(publisher.messages) == 2

    def test_publish_failure_skips_only_that_entry(self, repo, today, caplog):
        first = _add(repo, today)
        second = _add(repo, today, username="bob")
        publisher = RecordingPublisher(fail_for={first})
        scanner = RenewalScanner(repo, publisher, today=lambda: today)

        assert scanner.scan(HORIZON_DUE_TODAY) == 1
        assert [m["subscription_id"] for _, m in publisher.messages] == [second]
        assert f"failed to publish notification for id={first}" in caplog.text

    def test_store_failure_ends_cycle(self, today):
        repo = MagicMock()
        repo.find_due_on.side_effect = StoreUnavailableError("db down")
        publisher = RecordingPublisher()

        assert RenewalScanner(repo, publisher, today=lambda: today).scan(HORIZON_DUE_TODAY) == 0
        assert publisher.messages == []

    def test_nothing_due(self, repo, today):
        publisher = RecordingPublisher()
        assert RenewalScanner(repo, publisher, today=lambda: today).scan(HORIZON_DUE_TOMORROW) == 0


class TestWaitForStore:
    def test_ready_after_retries(self):
        repo = MagicMock()
        repo.check_ready.side_effect = [StoreUnavailableError("starting"), StoreUnavailableError("starting"), None]
        sleeps = []

        wait_for_store(repo, max_retries=3, retry_delay=2, sleep=sleeps.append)

        assert repo.check_ready.call_count == 3
        assert sleeps == [2, 2]

    def test_never_ready(self):
        repo = MagicMock()
        repo.check_ready.side_effect = StoreUnavailableError("down")

        with pytest.raises(StoreNotReadyError):
            wait_for_store(repo, max_retries=2, retry_delay=0, sleep=lambda _s: None)
        assert repo.check_ready.call_count == 2

