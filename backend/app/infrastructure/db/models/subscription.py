"""
Subscription and Usage Database Models

SQLModel tables for per-user subscriptions and per-period search counters.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import DateTime, UniqueConstraint
from sqlmodel import Field

from app.infrastructure.db.models.base import TimestampMixin, UUIDMixin, tz_field


class UserSubscription(UUIDMixin, TimestampMixin, table=True):
    """
    One row per user. Maps to the 'user_subscriptions' table.

    Status and plan are stored as plain strings; the domain layer owns the
    enumerations.
    """

    __tablename__ = "user_subscriptions"

    user_id: UUID = Field(unique=True, index=True, nullable=False)
    plan_id: str = Field(default="trial", max_length=32)
    status: str = Field(default="trial", max_length=16, index=True)

    trial_start_date: Optional[datetime] = tz_field()
    trial_end_date: Optional[datetime] = tz_field(index=True)
    current_period_start: Optional[datetime] = tz_field()
    current_period_end: Optional[datetime] = tz_field()

    # Stripe IDs
    stripe_customer_id: Optional[str] = Field(default=None, index=True, max_length=255)
    stripe_subscription_id: Optional[str] = Field(default=None, index=True, max_length=255)


class MonthlyUsageRecord(UUIDMixin, TimestampMixin, table=True):
    """Search counter for one billing period. Maps to 'monthly_usage'."""

    __tablename__ = "monthly_usage"
    __table_args__ = (
        UniqueConstraint("user_id", "period_start", name="uq_monthly_usage_user_period"),
    )

    user_id: UUID = Field(index=True, nullable=False)
    period_start: datetime = Field(sa_type=DateTime(timezone=True), nullable=False)
    period_end: datetime = Field(sa_type=DateTime(timezone=True), nullable=False)
    searches_used: int = Field(default=0, ge=0)
    searches_limit: int = Field(default=0)
