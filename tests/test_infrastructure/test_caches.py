"""Tests for the Redis (fakeredis) and in-memory cache adapters."""
from datetime import date
from unittest.mock import MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from subaggregator.domain.subscription import SubscriptionEntry
from subaggregator.errors import CacheUnavailableError
from subaggregator.infrastructure.cache.memory_cache import MemoryCache
from subaggregator.infrastructure.cache.redis_cache import RedisCache

ENTRY = SubscriptionEntry(
    id=1, service_name="Netflix", price=1000, username="alice",
    start_date=date(2026, 1, 1), counter_months=12,
    next_payment_date=date(2026, 2, 1),
)


class TestRedisCache:
    def test_miss_is_not_an_error(self, redis_cache):
        assert redis_cache.get("subscription:1", SubscriptionEntry.from_dict) == (False, None)

    def test_set_get_with_ttl(self, redis_cache, redis_client):
        redis_cache.set("subscription:1", ENTRY.to_dict(), ttl=3600)

        found, value = redis_cache.get("subscription:1", SubscriptionEntry.from_dict)
        assert found is True
        assert value == ENTRY
        assert 0 < redis_client.ttl("subscription:1") <= 3600

    def test_invalidate_is_idempotent(self, redis_cache, redis_client):
        redis_cache.set("subscription:1", ENTRY.to_dict(), ttl=60)
        redis_cache.invalidate("subscription:1")
        redis_cache.invalidate("subscription:1")
        assert redis_client.get("subscription:1") is None

    def test_backend_error_on_get(self):
        client = MagicMock()
        client.get.side_effect = RedisConnectionError("connection refused")
        with pytest.raises(CacheUnavailableError):
            RedisCache(client).get("subscription:1", SubscriptionEntry.from_dict)

    def test_backend_error_on_set(self):
        client = MagicMock()
        client.set.side_effect = RedisConnectionError("connection refused")
        with pytest.raises(CacheUnavailableError):
            RedisCache(client).set("subscription:1", {"a": 1}, ttl=60)

    def test_corrupted_value(self, redis_cache, redis_client):
        redis_client.set("subscription:1", "{not json")
        with pytest.raises(CacheUnavailableError):
            redis_cache.get("subscription:1", SubscriptionEntry.from_dict)


class TestMemoryCache:
    def test_set_get_invalidate(self):
        cache = MemoryCache()
        cache.set("subscription:1", ENTRY.to_dict(), ttl=60)
        assert cache.get("subscription:1", SubscriptionEntry.from_dict) == (True, ENTRY)

        cache.invalidate("subscription:1")
        cache.invalidate("subscription:1")
        assert cache.get("subscription:1", SubscriptionEntry.from_dict) == (False, None)

    def test_entry_expires(self):
        now = [1000.0]
        cache = MemoryCache(timer=lambda: now[0])
        cache.set("subscription:1", ENTRY.to_dict(), ttl=60)

        now[0] += 59
        assert cache.get("subscription:1", SubscriptionEntry.from_dict)[0] is True
        now[0] += 2
        assert cache.get("subscription:1", SubscriptionEntry.from_dict) == (False, None)

    def test_returns_copies(self):
        cache = MemoryCache()
        cache.set("subscription:1", ENTRY.to_dict(), ttl=60)
        _, first = cache.get("subscription:1", SubscriptionEntry.from_dict)
        first.price = 1
        _, second = cache.get("subscription:1", SubscriptionEntry.from_dict)
        assert second.price == 1000

    def test_clear(self):
        cache = MemoryCache()
        cache.set("subscription:1", ENTRY.to_dict(), ttl=60)
        cache.set("subscription:2", ENTRY.to_dict(), ttl=60)

        cache.clear()

        assert cache.get("subscription:1", SubscriptionEntry.from_dict) == (False, None)
        assert cache.get("subscription:2", SubscriptionEntry.from_dict) == (False, None)
