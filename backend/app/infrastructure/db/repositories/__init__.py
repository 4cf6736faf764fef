"""
Repository Layer for App Ideas Finder

Exports all repository classes for dependency injection.
"""

from app.infrastructure.db.repositories.base_repository import (
    BaseRepository,
    as_uuid,
)
from app.infrastructure.db.repositories.subscription_repository import (
    SubscriptionRepository,
    UsageRepository,
)
from app.infrastructure.db.repositories.bonus_repository import BonusRepository
from app.infrastructure.db.repositories.account_repository import (
    AdminRepository,
    FeedbackRepository,
    DeletionRequestRepository,
)
from app.infrastructure.db.repositories.analysis_repository import (
    AnalysisRepository,
    ProfileRepository,
)
from app.infrastructure.db.repositories.marketing_repository import (
    WaitlistRepository,
    UnsubscribeRepository,
    CouponRepository,
)
from app.infrastructure.db.repositories.email_repository import (
    EmailCampaignRepository,
    EmailRecipientRepository,
    EmailTemplateRepository,
    EmailSettingRepository,
    REPLY_TO_SETTING,
)
from app.infrastructure.db.repositories.webhook_event_repository import (
    WebhookEventRepository,
)


__all__ = [
    # Base
    "BaseRepository",
    "as_uuid",
    # Billing
    "SubscriptionRepository",
    "UsageRepository",
    "BonusRepository",
    "WebhookEventRepository",
    # Account
    "AdminRepository",
    "FeedbackRepository",
    "DeletionRequestRepository",
    "AnalysisRepository",
    "ProfileRepository",
    # Marketing
    "WaitlistRepository",
    "UnsubscribeRepository",
    "CouponRepository",
    # Email
    "EmailCampaignRepository",
    "EmailRecipientRepository",
    "EmailTemplateRepository",
    "EmailSettingRepository",
    "REPLY_TO_SETTING",
]
