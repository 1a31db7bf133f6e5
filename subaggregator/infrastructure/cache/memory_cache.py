"""
In-process cache with per-key TTL (cachetools), for development without Redis.
"""
import json
import threading
import time
from typing import Any, Callable, Optional, Tuple, TypeVar

from cachetools import TLRUCache

from subaggregator.errors import CacheUnavailableError

T = TypeVar("T")


def _expires_at(_key, value, now):
    # value is (payload, ttl)
    return now + value[1]


class MemoryCache:
    """
    Same contract as RedisCache. Values are kept JSON-encoded so callers
    never share mutable objects with the cache.
    """

    def __init__(self, maxsize: int = 1024, timer: Callable[[], float] = time.monotonic):
        self._data = TLRUCache(maxsize=maxsize, ttu=_expires_at, timer=timer)
        # cachetools caches are not thread-safe
        self._lock = threading.Lock()

    def get(self, key: str, decode: Callable[[Any], T]) -> Tuple[bool, Optional[T]]:
        with self._lock:
            item = self._data.get(key)
        if item is None:
            return False, None
        try:
            return True, decode(json.loads(item[0]))
        except (ValueError, KeyError, TypeError) as exc:
            raise CacheUnavailableError(f"cache.get: undecodable value for {key}: {exc}") from exc

    def set(self, key: str, value: Any, ttl: int) -> None:
        try:
            payload = json.dumps(value)
        except (TypeError, ValueError) as exc:
            raise CacheUnavailableError(f"cache.set: {exc}") from exc
        with self._lock:
            self._data[key] = (payload, ttl)

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()
