"""
Subscription repository - durable CRUD and aggregate queries (SQLAlchemy)

One short-lived session per call, so a single repository instance can be
shared between request handlers and scheduler jobs.
"""
from contextlib import contextmanager
from datetime import date
from typing import Callable, Iterator, List

from sqlalchemy import delete, select, text, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from subaggregator.domain.subscription import FilterSum, SubscriptionEntry, count_months
from subaggregator.errors import NotFoundError, StoreUnavailableError
from subaggregator.infrastructure.db.models import SubscriptionModel


def _to_entry(row: SubscriptionModel) -> SubscriptionEntry:
    return SubscriptionEntry(
        id=row.id,
        service_name=row.service_name,
        price=row.price,
        username=row.username,
        user_uid=row.user_uid,
        start_date=row.start_date,
        counter_months=row.counter_months,
        next_payment_date=row.next_payment_date,
        is_active=row.is_active,
    )


class SqlSubscriptionRepository:
    """
    Repository для подписок

    Ошибки SQLAlchemy оборачиваются в StoreUnavailableError,
    отсутствие записи - NotFoundError.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    @contextmanager
    def _session(self, op: str) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
        except SQLAlchemyError as exc:
            db.rollback()
            raise StoreUnavailableError(f"{op}: {exc}") from exc
        finally:
            db.close()

    def create(self, entry: SubscriptionEntry) -> int:
        with self._session("storage.create") as db:
            row = SubscriptionModel(
                service_name=entry.service_name,
                price=entry.price,
                username=entry.username,
                user_uid=entry.user_uid,
                start_date=entry.start_date,
                counter_months=entry.counter_months,
                next_payment_date=entry.next_payment_date,
                is_active=entry.is_active,
            )
            db.add(row)
            db.flush()
            new_id = row.id
            db.commit()
            return new_id

    def read(self, subscription_id: int) -> SubscriptionEntry:
        with self._session("storage.read") as db:
            row = db.get(SubscriptionModel, subscription_id)
            if row is None:
                raise NotFoundError(f"subscription {subscription_id} not found")
            return _to_entry(row)

    def update(self, entry: SubscriptionEntry) -> int:
        """Overwrite every mutable column of entry.id; returns rows affected."""
        with self._session("storage.update") as db:
            result = db.execute(
                update(SubscriptionModel)
                .where(SubscriptionModel.id == entry.id)
                .values(
                    service_name=entry.service_name,
                    price=entry.price,
                    username=entry.username,
                    user_uid=entry.user_uid,
                    start_date=entry.start_date,
                    counter_months=entry.counter_months,
                    next_payment_date=entry.next_payment_date,
                    is_active=entry.is_active,
                )
            )
            db.commit()
            return result.rowcount

    def remove(self, subscription_id: int) -> int:
        with self._session("storage.remove") as db:
            result = db.execute(
                delete(SubscriptionModel).where(SubscriptionModel.id == subscription_id)
            )
            db.commit()
            return result.rowcount

    def list(self, username: str, limit: int, offset: int) -> List[SubscriptionEntry]:
        with self._session("storage.list") as db:
            rows = db.scalars(
                select(SubscriptionModel)
                .where(SubscriptionModel.username == username)
                .order_by(SubscriptionModel.id)
                .limit(limit)
                .offset(offset)
            ).all()
            return [_to_entry(r) for r in rows]

    def list_all(self, limit: int, offset: int) -> List[SubscriptionEntry]:
        with self._session("storage.list_all") as db:
            rows = db.scalars(
                select(SubscriptionModel)
                .order_by(SubscriptionModel.id)
                .limit(limit)
                .offset(offset)
            ).all()
            return [_to_entry(r) for r in rows]

    def count_sum(self, filter_sum: FilterSum) -> int:
        """
        Суммарная стоимость подписок владельца, пересекающихся с окном фильтра

        Каждая подписка даёт price * (оставшиеся месяцы на дату начала фильтра).
        """
        with self._session("storage.count_sum") as db:
            q = select(SubscriptionModel).where(
                SubscriptionModel.username == filter_sum.username,
                SubscriptionModel.is_active == True,  # noqa: E712
                SubscriptionModel.start_date < filter_sum.end_date,
            )
            if filter_sum.service_name is not None:
                q = q.where(SubscriptionModel.service_name == filter_sum.service_name)

            total = 0
            for row in db.scalars(q).all():
                # Rows that ended before the window contribute zero months
                total += row.price * count_months(row.start_date, row.counter_months, filter_sum.start_date)
            return total

    def find_due_on(self, day: date) -> List[SubscriptionEntry]:
        with self._session("storage.find_due_on") as db:
            rows = db.scalars(
                select(SubscriptionModel)
                .where(
                    SubscriptionModel.next_payment_date == day,
                    SubscriptionModel.is_active == True,  # noqa: E712
                )
                .order_by(SubscriptionModel.id)
            ).all()
            return [_to_entry(r) for r in rows]

    def find_overdue(self, day: date) -> List[SubscriptionEntry]:
        with self._session("storage.find_overdue") as db:
            rows = db.scalars(
                select(SubscriptionModel)
                .where(
                    SubscriptionModel.next_payment_date < day,
                    SubscriptionModel.is_active == True,  # noqa: E712
                )
                .order_by(SubscriptionModel.id)
            ).all()
            return [_to_entry(r) for r in rows]

    def update_next_payment_date(self, subscription_id: int, next_payment_date: date) -> int:
        with self._session("storage.update_next_payment_date") as db:
            result = db.execute(
                update(SubscriptionModel)
                .where(SubscriptionModel.id == subscription_id)
                .values(next_payment_date=next_payment_date)
            )
            db.commit()
            return result.rowcount

    def check_ready(self) -> None:
        with self._session("storage.check_ready") as db:
            db.execute(text("SELECT 1"))
