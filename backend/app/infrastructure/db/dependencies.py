"""
Dependency Injection Providers for App Ideas Finder

FastAPI dependencies for the database session and one provider per
repository. Every repository shares the request's session.
"""

from typing import Annotated, AsyncGenerator

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.infrastructure.db.database import get_session
from app.infrastructure.db.repositories import (
    AdminRepository,
    AnalysisRepository,
    BonusRepository,
    CouponRepository,
    DeletionRequestRepository,
    EmailCampaignRepository,
    EmailRecipientRepository,
    EmailSettingRepository,
    EmailTemplateRepository,
    FeedbackRepository,
    ProfileRepository,
    SubscriptionRepository,
    UnsubscribeRepository,
    UsageRepository,
    WaitlistRepository,
    WebhookEventRepository,
)


# Type alias for session dependency
SessionDep = Annotated[AsyncSession, Depends(get_session)]


async def get_subscription_repository(
    session: SessionDep,
) -> AsyncGenerator[SubscriptionRepository, None]:
    """
    Dependency provider for SubscriptionRepository.

    Usage:
        @router.get("/subscription/usage")
        async def usage(repo: SubscriptionRepoDep):
            ...
    """
    yield SubscriptionRepository(session)


async def get_usage_repository(session: SessionDep) -> AsyncGenerator[UsageRepository, None]:
    yield UsageRepository(session)


async def get_bonus_repository(session: SessionDep) -> AsyncGenerator[BonusRepository, None]:
    yield BonusRepository(session)


async def get_webhook_event_repository(
    session: SessionDep,
) -> AsyncGenerator[WebhookEventRepository, None]:
    yield WebhookEventRepository(session)


async def get_admin_repository(session: SessionDep) -> AsyncGenerator[AdminRepository, None]:
    yield AdminRepository(session)


async def get_feedback_repository(session: SessionDep) -> AsyncGenerator[FeedbackRepository, None]:
    yield FeedbackRepository(session)


async def get_deletion_request_repository(
    session: SessionDep,
) -> AsyncGenerator[DeletionRequestRepository, None]:
    yield DeletionRequestRepository(session)


async def get_analysis_repository(session: SessionDep) -> AsyncGenerator[AnalysisRepository, None]:
    yield AnalysisRepository(session)


async def get_profile_repository(session: SessionDep) -> AsyncGenerator[ProfileRepository, None]:
    yield ProfileRepository(session)


async def get_waitlist_repository(session: SessionDep) -> AsyncGenerator[WaitlistRepository, None]:
    yield WaitlistRepository(session)


async def get_unsubscribe_repository(
    session: SessionDep,
) -> AsyncGenerator[UnsubscribeRepository, None]:
    yield UnsubscribeRepository(session)


async def get_coupon_repository(session: SessionDep) -> AsyncGenerator[CouponRepository, None]:
    yield CouponRepository(session)


async def get_email_campaign_repository(
    session: SessionDep,
) -> AsyncGenerator[EmailCampaignRepository, None]:
    yield EmailCampaignRepository(session)


async def get_email_recipient_repository(
    session: SessionDep,
) -> AsyncGenerator[EmailRecipientRepository, None]:
    yield EmailRecipientRepository(session)


async def get_email_template_repository(
    session: SessionDep,
) -> AsyncGenerator[EmailTemplateRepository, None]:
    yield EmailTemplateRepository(session)


async def get_email_setting_repository(
    session: SessionDep,
) -> AsyncGenerator[EmailSettingRepository, None]:
    yield EmailSettingRepository(session)


# Type aliases for repository dependencies
SubscriptionRepoDep = Annotated[SubscriptionRepository, Depends(get_subscription_repository)]
UsageRepoDep = Annotated[UsageRepository, Depends(get_usage_repository)]
BonusRepoDep = Annotated[BonusRepository, Depends(get_bonus_repository)]
WebhookEventRepoDep = Annotated[WebhookEventRepository, Depends(get_webhook_event_repository)]
AdminRepoDep = Annotated[AdminRepository, Depends(get_admin_repository)]
FeedbackRepoDep = Annotated[FeedbackRepository, Depends(get_feedback_repository)]
DeletionRequestRepoDep = Annotated[
    DeletionRequestRepository,
    Depends(get_deletion_request_repository)
]
AnalysisRepoDep = Annotated[AnalysisRepository, Depends(get_analysis_repository)]
ProfileRepoDep = Annotated[ProfileRepository, Depends(get_profile_repository)]
WaitlistRepoDep = Annotated[WaitlistRepository, Depends(get_waitlist_repository)]
UnsubscribeRepoDep = Annotated[UnsubscribeRepository, Depends(get_unsubscribe_repository)]
CouponRepoDep = Annotated[CouponRepository, Depends(get_coupon_repository)]
EmailCampaignRepoDep = Annotated[EmailCampaignRepository, Depends(get_email_campaign_repository)]
EmailRecipientRepoDep = Annotated[
    EmailRecipientRepository,
    Depends(get_email_recipient_repository)
]
EmailTemplateRepoDep = Annotated[EmailTemplateRepository, Depends(get_email_template_repository)]
EmailSettingRepoDep = Annotated[EmailSettingRepository, Depends(get_email_setting_repository)]
