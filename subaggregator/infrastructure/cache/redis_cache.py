"""
Redis-backed cache (redis-py).

Values are stored as JSON strings with an expiration; a missing key is a
clean miss, any client error surfaces as CacheUnavailableError.
"""
import json
import logging
from typing import Any, Callable, Optional, Tuple, TypeVar

import redis
from redis.exceptions import RedisError

from subaggregator.errors import CacheUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RedisCache:
    def __init__(self, client: redis.Redis):
        self._client = client

    @classmethod
    def from_url(cls, url: str, **kwargs: Any) -> "RedisCache":
        """Build a cache from a redis:// URL (connection is lazy)."""
        client = redis.Redis.from_url(url, decode_responses=True, **kwargs)
        return cls(client)

    def ping(self) -> None:
        try:
            self._client.ping()
        except RedisError as exc:
            raise CacheUnavailableError(f"cache.ping: {exc}") from exc

    def get(self, key: str, decode: Callable[[Any], T]) -> Tuple[bool, Optional[T]]:
        try:
            raw = self._client.get(key)
        except RedisError as exc:
            raise CacheUnavailableError(f"cache.get: {exc}") from exc
        if raw is None:
            return False, None
        try:
            return True, decode(json.loads(raw))
        except (ValueError, KeyError, TypeError) as exc:
            raise CacheUnavailableError(f"cache.get: undecodable value for {key}: {exc}") from exc

    def set(self, key: str, value: Any, ttl: int) -> None:
        try:
            payload = json.dumps(value)
        except (TypeError, ValueError) as exc:
            raise CacheUnavailableError(f"cache.set: {exc}") from exc
        try:
            self._client.set(key, payload, ex=ttl)
        except RedisError as exc:
            raise CacheUnavailableError(f"cache.set: {exc}") from exc

    def invalidate(self, key: str) -> None:
        # DEL on an absent key returns 0, not an error
        try:
            self._client.delete(key)
        except RedisError as exc:
            raise CacheUnavailableError(f"cache.invalidate: {exc}") from exc

    def close(self) -> None:
        try:
            self._client.close()
        except RedisError:
            logger.warning("failed to close redis client", exc_info=True)
