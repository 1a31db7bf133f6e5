"""
Interfaces the application layer depends on.

Implementations live in subaggregator.infrastructure; tests substitute fakes.
"""
from datetime import date
from typing import Any, Callable, List, Optional, Protocol, Tuple, TypeVar

from subaggregator.domain.subscription import FilterSum, SubscriptionEntry

T = TypeVar("T")


class SubscriptionRepository(Protocol):
    """Durable store of subscription entries."""

    def create(self, entry: SubscriptionEntry) -> int: ...

    def read(self, subscription_id: int) -> SubscriptionEntry:
        """Raises NotFoundError when the id is absent."""
        ...

    def update(self, entry: SubscriptionEntry) -> int: ...

    def remove(self, subscription_id: int) -> int: ...

    def list(self, username: str, limit: int, offset: int) -> List[SubscriptionEntry]: ...

    def list_all(self, limit: int, offset: int) -> List[SubscriptionEntry]: ...

    def count_sum(self, filter_sum: FilterSum) -> int: ...

    def find_due_on(self, day: date) -> List[SubscriptionEntry]:
        """Active entries whose next payment date equals day."""
        ...

    def find_overdue(self, day: date) -> List[SubscriptionEntry]:
        """Active entries whose next payment date is before day."""
        ...

    def update_next_payment_date(self, subscription_id: int, next_payment_date: date) -> int: ...

    def check_ready(self) -> None:
        """Raises StoreUnavailableError when the store cannot serve queries."""
        ...


class Cache(Protocol):
    """
    Volatile key/value cache.

    get() returns (False, None) on a clean miss and raises
    CacheUnavailableError when the backend itself fails.
    """

    def get(self, key: str, decode: Callable[[Any], T]) -> Tuple[bool, Optional[T]]: ...

    def set(self, key: str, value: Any, ttl: int) -> None: ...

    def invalidate(self, key: str) -> None: ...


class NotificationPublisher(Protocol):
    """Outbound side of the notification queue."""

    def publish(self, horizon: str, message: dict) -> None:
        """Raises PublishFailedError."""
        ...

    def close(self) -> None: ...
