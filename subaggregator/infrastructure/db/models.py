"""
SQLAlchemy ORM models
"""
from datetime import date as date_type
from sqlalchemy import String, DateTime, Integer, Date, Boolean, TIMESTAMP, func, Index
from sqlalchemy.orm import Mapped, mapped_column

from subaggregator.infrastructure.db.session import Base


class SubscriptionModel(Base):
    """Recurring subscription of a single owner"""
    __tablename__ = "subscriptions"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    service_name: Mapped[str] = mapped_column(String(255), nullable=False)
    price: Mapped[int] = mapped_column(Integer, nullable=False)  # minor currency units
    username: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    user_uid: Mapped[str | None] = mapped_column(String(64), nullable=True)

    start_date: Mapped[date_type] = mapped_column(Date, nullable=False)
    counter_months: Mapped[int] = mapped_column(Integer, nullable=False)
    next_payment_date: Mapped[date_type | None] = mapped_column(Date, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")

    created_at: Mapped[DateTime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("ix_subscriptions_next_payment_date", "next_payment_date"),
    )
