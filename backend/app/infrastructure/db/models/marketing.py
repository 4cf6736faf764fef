"""
Marketing Database Models

Waitlist signups, email unsubscribes and discount coupons.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import DateTime
from sqlmodel import Field

from app.infrastructure.db.models.base import CreatedAtMixin, UUIDMixin, tz_field, utc_now


class WaitlistEntry(UUIDMixin, CreatedAtMixin, table=True):
    """Pre-launch signup. The early-access perk is granted once per entry."""

    __tablename__ = "waitlist"

    email: str = Field(unique=True, index=True)
    source: Optional[str] = Field(default=None)
    unsubscribe_token: UUID = Field(default_factory=uuid4, unique=True)
    bonus_granted_at: Optional[datetime] = tz_field()
    bonus_granted_user_id: Optional[UUID] = Field(default=None)
    bonus_code: Optional[str] = Field(default=None)


class Unsubscribe(UUIDMixin, table=True):
    """Address that opted out of marketing email."""

    __tablename__ = "unsubscribes"

    email: str = Field(index=True)
    token: Optional[UUID] = Field(default=None)
    ip_address: Optional[str] = Field(default=None)
    user_agent: Optional[str] = Field(default=None)
    unsubscribed_at: datetime = Field(
        default_factory=utc_now, sa_type=DateTime(timezone=True), nullable=False
    )


class Coupon(UUIDMixin, CreatedAtMixin, table=True):
    """Discount code. ``code`` is stored upper-cased."""

    __tablename__ = "coupons"

    code: str = Field(unique=True, index=True, max_length=64)
    discount_type: str = Field(max_length=16)
    discount_value: Optional[float] = Field(default=None)
    free_plan_id: Optional[str] = Field(default=None)
    max_uses: Optional[int] = Field(default=None)
    times_used: int = Field(default=0)
    valid_from: datetime = Field(
        default_factory=utc_now, sa_type=DateTime(timezone=True), nullable=False
    )
    valid_until: Optional[datetime] = tz_field()
    description: Optional[str] = Field(default=None)
    stripe_coupon_id: Optional[str] = Field(default=None)
    stripe_promotion_code: Optional[str] = Field(default=None)
    created_by: Optional[UUID] = Field(default=None)
