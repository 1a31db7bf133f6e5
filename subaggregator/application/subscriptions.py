"""
Subscription lifecycle use cases - CRUD over the store with a cache in front.

Reads are cache-aside (cache -> store -> refill). Writes go to the store
first, then the cache is refreshed (create/update) or invalidated (remove).
Store errors always propagate. Cache errors are swallowed on write/refill
paths and surfaced on the read path, where a backend failure cannot be told
apart from a miss.
"""
import logging
from datetime import date
from typing import Callable, List, Optional

from subaggregator.application.contracts import Cache, SubscriptionRepository
from subaggregator.domain.subscription import (
    AGGREGATOR_SERVICE_NAME,
    FilterSum,
    SubscriptionEntry,
    SubscriptionRequest,
    SumFilterRequest,
    add_months,
    cache_key,
    parse_start_date,
    validate_term,
)
from subaggregator.errors import CacheUnavailableError, InvalidTermError, StoreUnavailableError

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL = 3600


def _check_commercial_terms(request: SubscriptionRequest) -> None:
    if not request.service_name or not request.service_name.strip():
        raise InvalidTermError("service_name must not be empty")
    if request.price < 0:
        raise InvalidTermError("price must not be negative")


class SubscriptionService:
    """
    Subscription lifecycle service

    Все зависимости передаются явно (repo, cache) - глобального состояния нет.
    """

    def __init__(
        self,
        repo: SubscriptionRepository,
        cache: Cache,
        ttl: int = DEFAULT_CACHE_TTL,
        today: Callable[[], date] = date.today,
        admin_role: str = "admin",
    ):
        self.repo = repo
        self.cache = cache
        self.ttl = ttl
        self.today = today
        self.admin_role = admin_role

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def create(self, username: str, request: SubscriptionRequest, user_uid: Optional[str] = None) -> int:
        """
        Create a subscription and warm the cache with it.

        Raises:
            InvalidTermError: срок уже истёк или дата не распознана
            StoreUnavailableError: ошибка хранилища
        """
        _check_commercial_terms(request)
        start_date = parse_start_date(request.start_date)
        validate_term(start_date, request.counter_months, self.today())

        entry = SubscriptionEntry(
            service_name=request.service_name.strip(),
            price=request.price,
            username=username,
            user_uid=user_uid,
            start_date=start_date,
            counter_months=request.counter_months,
            next_payment_date=add_months(start_date, 1),
            is_active=True,
        )
        entry.id = self.repo.create(entry)
        logger.info("created subscription id=%d owner=%s", entry.id, username)

        self._cache_put(entry)
        return entry.id

    def create_aggregator_entry(self, username: str, user_uid: Optional[str] = None) -> int:
        """Free one-month "Subscription-Aggregator" entry for a newly registered user."""
        today = self.today()
        entry = SubscriptionEntry(
            service_name=AGGREGATOR_SERVICE_NAME,
            price=0,
            username=username,
            user_uid=user_uid,
            start_date=today,
            counter_months=1,
            next_payment_date=add_months(today, 1),
            is_active=True,
        )
        entry.id = self.repo.create(entry)
        logger.info("created aggregator subscription id=%d owner=%s", entry.id, username)

        self._cache_put(entry)
        return entry.id

    def update(
        self,
        subscription_id: int,
        username: str,
        request: SubscriptionRequest,
        user_uid: Optional[str] = None,
    ) -> int:
        """
        Replace a subscription with the request contents.

        The request must carry the full entry: fields are not merged with the
        stored row, the new value is rebuilt from the request and written
        through to the cache as-is.

        Returns:
            Number of rows updated (0 if the id does not exist)
        """
        _check_commercial_terms(request)
        start_date = parse_start_date(request.start_date)
        validate_term(start_date, request.counter_months, self.today())

        entry = SubscriptionEntry(
            id=subscription_id,
            service_name=request.service_name.strip(),
            price=request.price,
            username=username,
            user_uid=user_uid,
            start_date=start_date,
            counter_months=request.counter_months,
            next_payment_date=add_months(start_date, 1),
            is_active=request.is_active,
        )
        rows = self.repo.update(entry)
        logger.info("updated subscription id=%d rows=%d", subscription_id, rows)

        if rows:
            self._cache_put(entry)
        return rows

    def remove(self, subscription_id: int) -> int:
        """
        Delete a subscription.

        The cache key is dropped before and after the store delete, so a read
        racing with the delete cannot leave a resurrected entry behind once
        this call returns.
        """
        self._cache_drop(subscription_id)
        count = self.repo.remove(subscription_id)
        self._cache_drop(subscription_id)
        logger.info("removed subscription id=%d rows=%d", subscription_id, count)
        return count

    def roll_forward_payment_dates(self, today: Optional[date] = None) -> int:
        """
        Advance past-due next payment dates by whole months until they are
        today or later. Returns the number of entries moved.
        """
        if today is None:
            today = self.today()

        entries = self.repo.find_overdue(today)
        if not entries:
            logger.info("all next payment dates are up to date")
            return 0

        moved = 0
        for entry in entries:
            new_date = entry.next_payment_date
            while new_date < today:
                new_date = add_months(new_date, 1)
            try:
                self.repo.update_next_payment_date(entry.id, new_date)
            except StoreUnavailableError:
                logger.exception("failed to update next payment date for id=%d", entry.id)
                continue
            entry.next_payment_date = new_date
            self._cache_put(entry)
            moved += 1

        logger.info("rolled forward %d of %d next payment dates", moved, len(entries))
        return moved

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def read(self, subscription_id: int) -> SubscriptionEntry:
        """
        Cache-aside read.

        Raises:
            CacheUnavailableError: кеш недоступен (не путать с промахом)
            NotFoundError / StoreUnavailableError: из хранилища
        """
        key = cache_key(subscription_id)
        found, entry = self.cache.get(key, SubscriptionEntry.from_dict)
        if found:
            return entry

        entry = self.repo.read(subscription_id)
        self._cache_put(entry)
        return entry

    def list(self, username: str, role: str, limit: int, offset: int) -> List[SubscriptionEntry]:
        """Admins page through every entry; everyone else only through their own."""
        if role == self.admin_role:
            return self.repo.list_all(limit, offset)
        return self.repo.list(username, limit, offset)

    def count_sum_with_filter(self, username: str, request: SumFilterRequest) -> int:
        start_date = parse_start_date(request.start_date)
        if request.counter_months <= 0:
            raise InvalidTermError("counter_months must be a positive number of months")

        service_name = request.service_name.strip() if request.service_name else None
        filter_sum = FilterSum(
            username=username,
            service_name=service_name or None,
            start_date=start_date,
            counter_months=request.counter_months,
        )
        return self.repo.count_sum(filter_sum)

    # ------------------------------------------------------------------
    # Cache helpers (degraded mode: log and carry on)
    # ------------------------------------------------------------------

    def _cache_put(self, entry: SubscriptionEntry) -> None:
        key = cache_key(entry.id)
        try:
            self.cache.set(key, entry.to_dict(), self.ttl)
        except CacheUnavailableError as exc:
            logger.warning("failed to cache subscription key=%s: %s", key, exc)

    def _cache_drop(self, subscription_id: int) -> None:
        key = cache_key(subscription_id)
        try:
            self.cache.invalidate(key)
        except CacheUnavailableError as exc:
            logger.warning("failed to invalidate cache key=%s: %s", key, exc)
