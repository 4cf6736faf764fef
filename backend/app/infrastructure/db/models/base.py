"""
Base Model for SQLModel ORM

Provides common fields and behavior for all database models.
All timestamps are timezone-aware UTC.
"""

from datetime import datetime, timezone
from uuid import UUID, uuid4

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel


def utc_now() -> datetime:
    """Current time in UTC."""
    return datetime.now(timezone.utc)


class CreatedAtMixin(SQLModel):
    """Mixin providing a creation timestamp."""

    created_at: datetime = Field(
        default_factory=utc_now,
        sa_type=DateTime(timezone=True),
        nullable=False,
        description="Record creation timestamp (UTC)"
    )


class TimestampMixin(CreatedAtMixin):
    """Mixin providing creation and update timestamps."""

    updated_at: datetime = Field(
        default_factory=utc_now,
        sa_type=DateTime(timezone=True),
        nullable=False,
        sa_column_kwargs={"onupdate": utc_now},
        description="Last update timestamp (UTC)"
    )


class UUIDMixin(SQLModel):
    """Mixin providing a UUID primary key."""

    id: UUID = Field(
        default_factory=uuid4,
        primary_key=True,
        nullable=False,
        description="Unique identifier (UUID v4)"
    )


def tz_field(default=None, index: bool = False, **kwargs):
    """Nullable timezone-aware timestamp column."""
    return Field(
        default=default,
        sa_type=DateTime(timezone=True),
        index=index,
        **kwargs,
    )
