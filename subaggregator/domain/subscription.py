"""
Subscription domain entity and value objects.

SubscriptionEntry is what the repository persists and the cache stores.
Dates are calendar dates (no time-of-day); the cached value is a JSON dict
with ISO-formatted dates.
"""
import calendar
from dataclasses import dataclass, asdict
from datetime import date, datetime, timedelta
from typing import Any, Dict, Optional

from subaggregator.errors import InvalidTermError

# Notification horizons (which relative day a scan loop is responsible for)
HORIZON_DUE_TOMORROW = "due_tomorrow"
HORIZON_DUE_TODAY = "due_today"
HORIZONS = (HORIZON_DUE_TOMORROW, HORIZON_DUE_TODAY)

# Built-in entry created for every newly registered user
AGGREGATOR_SERVICE_NAME = "Subscription-Aggregator"

CACHE_KEY_PREFIX = "subscription:"

# Incoming dates are DD-MM-YYYY; ISO is accepted as well
_DATE_FORMATS = ("%d-%m-%Y", "%Y-%m-%d")


def cache_key(subscription_id: int) -> str:
    return f"{CACHE_KEY_PREFIX}{subscription_id}"


def add_months(d: date, n: int) -> date:
    """Add n calendar months, clamping the day to the end of the target month."""
    month = d.month - 1 + n
    year = d.year + month // 12
    month = month % 12 + 1
    day = min(d.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def parse_start_date(value: str) -> date:
    """
    Parse a start date coming from a request.

    Raises:
        InvalidTermError: если дата не распознана
    """
    text = (value or "").strip()
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    raise InvalidTermError(f"invalid start date: {value!r}")


def validate_term(start_date: date, counter_months: int, today: date) -> date:
    """
    Check that a term has not lapsed yet and return its end date.

    The end date may equal today; strictly earlier is rejected.
    """
    if counter_months <= 0:
        raise InvalidTermError("counter_months must be a positive number of months")
    end_date = add_months(start_date, counter_months)
    if end_date < today:
        raise InvalidTermError("subscription end date must not be earlier than today")
    return end_date


def count_months(sub_start: date, sub_months: int, filter_start: date) -> int:
    """
    Number of billable months of a subscription that remain at filter_start.

    0 when the filter starts on or after the subscription end, the full
    term when it starts on or before the subscription start.
    """
    sub_end = add_months(sub_start, sub_months)
    if filter_start >= sub_end:
        return 0
    if filter_start <= sub_start:
        return sub_months

    months_diff = (filter_start.year - sub_start.year) * 12 + filter_start.month - sub_start.month
    # A partially started month is already consumed
    if filter_start.day > sub_start.day:
        months_diff += 1

    return max(sub_months - months_diff, 0)


@dataclass
class SubscriptionEntry:
    """
    Subscription record (one owner per entry)

    price хранится в минимальных единицах валюты (копейки/центы).
    next_payment_date = start_date + 1 месяц, пересчитывается при update.
    """
    service_name: str
    price: int
    username: str
    start_date: date
    counter_months: int
    next_payment_date: Optional[date] = None
    is_active: bool = True
    user_uid: Optional[str] = None
    id: Optional[int] = None

    @property
    def end_date(self) -> date:
        return add_months(self.start_date, self.counter_months)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["start_date"] = self.start_date.isoformat()
        data["next_payment_date"] = (
            self.next_payment_date.isoformat() if self.next_payment_date else None
        )
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SubscriptionEntry":
        next_payment = data.get("next_payment_date")
        return cls(
            id=data.get("id"),
            service_name=data["service_name"],
            price=int(data["price"]),
            username=data["username"],
            user_uid=data.get("user_uid"),
            start_date=date.fromisoformat(data["start_date"]),
            counter_months=int(data["counter_months"]),
            next_payment_date=date.fromisoformat(next_payment) if next_payment else None,
            is_active=bool(data.get("is_active", True)),
        )


@dataclass
class SubscriptionRequest:
    """Create/update request shape, already validated by the HTTP layer."""
    service_name: str
    price: int
    start_date: str
    counter_months: int
    is_active: bool = True


@dataclass
class FilterSum:
    """Price aggregate filter (projection, never persisted)"""
    username: str
    service_name: Optional[str]
    start_date: date
    counter_months: int

    @property
    def end_date(self) -> date:
        return add_months(self.start_date, self.counter_months)


@dataclass
class SumFilterRequest:
    start_date: str
    counter_months: int
    service_name: Optional[str] = None


@dataclass
class NotificationEvent:
    """Message published for a subscription whose payment is due."""
    subscription_id: Optional[int]
    username: str
    service_name: str
    price: int
    next_payment_date: date
    horizon: str
    user_uid: Optional[str] = None

    @classmethod
    def for_entry(cls, entry: SubscriptionEntry, horizon: str) -> "NotificationEvent":
        return cls(
            subscription_id=entry.id,
            username=entry.username,
            user_uid=entry.user_uid,
            service_name=entry.service_name,
            price=entry.price,
            next_payment_date=entry.next_payment_date,
            horizon=horizon,
        )

    def to_message(self) -> Dict[str, Any]:
        data = asdict(self)
        data["next_payment_date"] = self.next_payment_date.isoformat()
        return data


def target_date(horizon: str, today: date) -> date:
    """Calendar day a horizon refers to."""
    if horizon == HORIZON_DUE_TODAY:
        return today
    if horizon == HORIZON_DUE_TOMORROW:
        return today + timedelta(days=1)
    raise ValueError(f"unknown horizon: {horizon}")
