"""
SQLModel ORM Models for App Ideas Finder

Exports all database models for Alembic autogenerate and application use.
Import models here to register them with SQLModel.metadata.
"""

from app.infrastructure.db.models.base import (
    CreatedAtMixin,
    TimestampMixin,
    UUIDMixin,
    utc_now,
)
from app.infrastructure.db.models.subscription import (
    UserSubscription,
    MonthlyUsageRecord,
)
from app.infrastructure.db.models.bonus import UserBonus
from app.infrastructure.db.models.account import (
    Admin,
    UserFeedback,
    AccountDeletionRequest,
    Profile,
    UserAnalysis,
)
from app.infrastructure.db.models.email import (
    EmailCampaign,
    EmailRecipient,
    EmailTemplate,
    EmailSetting,
)
from app.infrastructure.db.models.marketing import (
    WaitlistEntry,
    Unsubscribe,
    Coupon,
)
from app.infrastructure.db.models.webhook_event import ProcessedWebhookEvent


__all__ = [
    # Base
    "CreatedAtMixin",
    "TimestampMixin",
    "UUIDMixin",
    "utc_now",
    # Billing
    "UserSubscription",
    "MonthlyUsageRecord",
    "UserBonus",
    "ProcessedWebhookEvent",
    # Account
    "Admin",
    "UserFeedback",
    "AccountDeletionRequest",
    "Profile",
    "UserAnalysis",
    # Email
    "EmailCampaign",
    "EmailRecipient",
    "EmailTemplate",
    "EmailSetting",
    # Marketing
    "WaitlistEntry",
    "Unsubscribe",
    "Coupon",
]
