"""
Account-level Database Models

Admins, feedback, deletion requests and the read-only profile and
analysis tables shared with the analysis frontend.
"""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import DateTime
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Field, SQLModel

from app.infrastructure.db.models.base import CreatedAtMixin, UUIDMixin, tz_field, utc_now


class Admin(CreatedAtMixin, table=True):
    """Admin role assignment. One row per admin user."""

    __tablename__ = "admins"

    user_id: UUID = Field(primary_key=True)
    role: str = Field(max_length=32)
    email: Optional[str] = Field(default=None)


class UserFeedback(UUIDMixin, CreatedAtMixin, table=True):
    """In-app feedback message."""

    __tablename__ = "user_feedback"

    user_id: UUID = Field(index=True, nullable=False)
    user_email: Optional[str] = Field(default=None)
    category: str = Field(default="general", max_length=32, index=True)
    message: str = Field(max_length=2000)
    page_url: Optional[str] = Field(default=None)
    allow_contact: bool = Field(default=True)
    reward_granted: bool = Field(default=False)
    reward_amount: int = Field(default=0)
    archived: bool = Field(default=False, index=True)


class AccountDeletionRequest(UUIDMixin, table=True):
    """User-submitted account deletion request, processed by a super admin."""

    __tablename__ = "account_deletion_requests"

    user_id: UUID = Field(index=True, nullable=False)
    email: Optional[str] = Field(default=None)
    reason: Optional[str] = Field(default=None)
    status: str = Field(default="pending", max_length=16, index=True)
    subscription_status: Optional[str] = Field(default=None, max_length=16)
    admin_note: Optional[str] = Field(default=None, max_length=2000)
    requested_at: datetime = Field(
        default_factory=utc_now, sa_type=DateTime(timezone=True), nullable=False
    )
    processed_at: Optional[datetime] = tz_field()
    processed_by: Optional[UUID] = Field(default=None)
    processed_by_email: Optional[str] = Field(default=None)


class Profile(SQLModel, table=True):
    """Public profile row created by the auth trigger."""

    __tablename__ = "profiles"

    id: UUID = Field(primary_key=True)
    first_name: Optional[str] = Field(default=None)
    last_name: Optional[str] = Field(default=None)
    created_at: Optional[datetime] = tz_field()


class UserAnalysis(UUIDMixin, CreatedAtMixin, table=True):
    """A completed App Store review analysis."""

    __tablename__ = "user_analyses"

    user_id: UUID = Field(index=True, nullable=False)
    app_id: str = Field(index=True)
    app_name: Optional[str] = Field(default=None)
    review_count: int = Field(default=0)
    api_cost: float = Field(default=0)
    analysis: Optional[dict[str, Any]] = Field(default=None, sa_type=JSONB)
