"""
Email Campaign Database Models

Campaigns, per-recipient delivery/tracking rows, reusable templates and
key/value email settings.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import Column, String
from sqlalchemy.dialects.postgresql import ARRAY
from sqlmodel import Field

from app.infrastructure.db.models.base import CreatedAtMixin, TimestampMixin, UUIDMixin, tz_field


class EmailCampaign(UUIDMixin, CreatedAtMixin, table=True):
    """One bulk send."""

    __tablename__ = "email_campaigns"

    subject: str
    html_content: str
    text_content: str = Field(default="")
    recipient_type: str = Field(max_length=32)
    adhoc_emails: Optional[list[str]] = Field(default=None, sa_column=Column(ARRAY(String)))
    reply_to_email: Optional[str] = Field(default=None)
    sent_by: Optional[UUID] = Field(default=None)
    total_recipients: int = Field(default=0)
    total_sent: int = Field(default=0)
    total_failed: int = Field(default=0)
    status: str = Field(default="draft", max_length=16)
    sent_at: Optional[datetime] = tz_field()


class EmailRecipient(UUIDMixin, CreatedAtMixin, table=True):
    """Delivery and open/click tracking for one address in one campaign."""

    __tablename__ = "email_recipients"

    campaign_id: UUID = Field(foreign_key="email_campaigns.id", index=True)
    email: str
    user_id: Optional[UUID] = Field(default=None)
    tracking_token: UUID = Field(default_factory=uuid4, unique=True, index=True)
    sent_status: str = Field(default="pending", max_length=16)
    sent_at: Optional[datetime] = tz_field()
    error_message: Optional[str] = Field(default=None)
    opened_at: Optional[datetime] = tz_field()
    opened_count: int = Field(default=0)
    clicked_at: Optional[datetime] = tz_field()
    clicked_count: int = Field(default=0)


class EmailTemplate(UUIDMixin, TimestampMixin, table=True):
    """Reusable campaign body."""

    __tablename__ = "email_templates"

    name: str
    subject: str
    html_content: str
    text_content: str = Field(default="")
    created_by: Optional[UUID] = Field(default=None)


class EmailSetting(UUIDMixin, TimestampMixin, table=True):
    """Key/value setting, e.g. ``reply_to_email``."""

    __tablename__ = "email_settings"

    setting_key: str = Field(unique=True, index=True)
    setting_value: str
    updated_by: Optional[UUID] = Field(default=None)
