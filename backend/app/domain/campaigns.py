"""
Email Campaign Service

Resolves recipient lists and delivers a campaign in batches, recording
per-recipient delivery so opens and clicks can be tracked afterwards.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from app.domain.models import RecipientType, SendCampaignRequest, is_valid_email
from app.domain.subscription import SubscriptionStatus
from app.infrastructure.auth import SupabaseAdminService
from app.infrastructure.db.models import EmailCampaign
from app.infrastructure.db.repositories import (
    EmailCampaignRepository,
    EmailRecipientRepository,
    EmailSettingRepository,
    REPLY_TO_SETTING,
    SubscriptionRepository,
    UnsubscribeRepository,
    WaitlistRepository,
    as_uuid,
)
from app.infrastructure.email import EmailService, render_campaign_html
from app.infrastructure.exceptions import (
    ConfigurationError,
    EmailServiceError,
    ValidationError,
)


logger = logging.getLogger(__name__)

SUBSCRIBER_STATUSES = [SubscriptionStatus.TRIAL.value, SubscriptionStatus.ACTIVE.value]
PREVIEW_LIMIT = 1000


def dedupe_emails(emails: list[str]) -> list[str]:
    """Drop blanks and case-insensitive repeats, keeping first-seen order."""
    seen: set[str] = set()
    result = []
    for email in emails:
        if not email:
            continue
        key = email.strip().lower()
        if key and key not in seen:
            seen.add(key)
            result.append(email.strip())
    return result


class RecipientResolver:
    """Turns a recipient type into addresses, minus everyone who opted out."""

    def __init__(
        self,
        waitlist: WaitlistRepository,
        subscriptions: SubscriptionRepository,
        unsubscribes: UnsubscribeRepository,
        supabase_admin: SupabaseAdminService,
    ):
        self._waitlist = waitlist
        self._subscriptions = subscriptions
        self._unsubscribes = unsubscribes
        self._supabase_admin = supabase_admin

    async def resolve(
        self,
        recipient_type: RecipientType,
        adhoc_emails: Optional[list[str]] = None,
    ) -> list[str]:
        if recipient_type == RecipientType.WAITLIST:
            emails = [entry.email for entry in await self._waitlist.list_all()]
        elif recipient_type == RecipientType.ALL_USERS:
            emails = [u.email for u in await self._supabase_admin.list_users() if u.email]
        elif recipient_type == RecipientType.SUBSCRIBERS:
            user_ids = set(await self._subscriptions.list_user_ids_with_status(SUBSCRIBER_STATUSES))
            emails = []
            if user_ids:
                emails = [
                    u.email for u in await self._supabase_admin.list_users()
                    if u.email and u.id in user_ids
                ]
        else:
            emails = [e for e in (adhoc_emails or []) if is_valid_email(e)]

        unsubscribed = await self._unsubscribes.email_set()
        return [e for e in dedupe_emails(emails) if e.lower() not in unsubscribed]


class CampaignService:
    """
    Sends a campaign to every resolved recipient.

    Recipients are inserted and mailed in batches with a pause in between
    to stay under the provider's rate limit. One failed address never
    stops the rest of the send.
    """

    BATCH_SIZE = 50
    BATCH_PAUSE_SECONDS = 1.0

    def __init__(
        self,
        resolver: RecipientResolver,
        campaigns: EmailCampaignRepository,
        recipients: EmailRecipientRepository,
        email_settings: EmailSettingRepository,
        email_service: EmailService,
        supabase_admin: SupabaseAdminService,
        site_url: str,
        default_reply_to: str,
    ):
        self._resolver = resolver
        self._campaigns = campaigns
        self._recipients = recipients
        self._settings = email_settings
        self._email = email_service
        self._supabase_admin = supabase_admin
        self._site_url = site_url
        self._default_reply_to = default_reply_to

    async def reply_to(self, override: Optional[str]) -> str:
        if override:
            return override
        return await self._settings.get_value(REPLY_TO_SETTING) or self._default_reply_to

    async def send(self, request: SendCampaignRequest, sent_by: str) -> dict[str, Any]:
        """
        Create the campaign record and deliver it.

        Raises:
            ValidationError: missing fields, bad recipient type, or nobody left to mail
            ConfigurationError: email delivery is not configured
        """
        recipient_type = request.validated_type()
        if not self._email.is_configured:
            raise ConfigurationError("Email is not configured", missing_keys=["RESEND_API_KEY"])

        emails = await self._resolver.resolve(recipient_type, request.adhoc_emails)
        if not emails:
            raise ValidationError("No valid recipients found")

        reply_to = await self.reply_to(request.reply_to)
        campaign = await self._campaigns.add(EmailCampaign(
            subject=request.subject,
            html_content=request.html_content,
            text_content=request.text_content or "",
            recipient_type=recipient_type.value,
            adhoc_emails=request.adhoc_emails if recipient_type == RecipientType.ADHOC else None,
            reply_to_email=reply_to,
            sent_by=as_uuid(sent_by),
            total_recipients=len(emails),
            status="sending",
        ))
        logger.info(f"Campaign {campaign.id} sending to {len(emails)} recipients")

        user_ids = {
            u.email.lower(): u.id for u in await self._supabase_admin.list_users() if u.email
        }

        sent = failed = 0
        for start in range(0, len(emails), self.BATCH_SIZE):
            batch = emails[start:start + self.BATCH_SIZE]
            rows = await self._recipients.create_batch(
                campaign.id, [(email, user_ids.get(email.lower())) for email in batch]
            )
            for row in rows:
                if await self._deliver(campaign, row, reply_to):
                    sent += 1
                else:
                    failed += 1
            if start + self.BATCH_SIZE < len(emails):
                await asyncio.sleep(self.BATCH_PAUSE_SECONDS)

        await self._campaigns.finish(campaign, sent, failed, datetime.now(timezone.utc))
        logger.info(f"Campaign {campaign.id} finished: {sent} sent, {failed} failed")
        return {
            "success": True,
            "campaignId": str(campaign.id),
            "totalRecipients": len(emails),
            "sent": sent,
            "failed": failed,
        }

    async def _deliver(self, campaign: EmailCampaign, row: Any, reply_to: str) -> bool:
        html = render_campaign_html(campaign.html_content, self._site_url, str(row.tracking_token))
        try:
            await self._email.send(
                to=row.email,
                subject=campaign.subject,
                html=html,
                text=campaign.text_content or None,
                reply_to=reply_to,
            )
        except EmailServiceError as e:
            await self._recipients.mark_failed(row, e.message)
            return False
        await self._recipients.mark_sent(row, datetime.now(timezone.utc))
        return True
