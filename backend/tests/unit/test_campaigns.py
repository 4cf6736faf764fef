"""
Unit tests for recipient resolution and campaign delivery.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from app.domain.campaigns import CampaignService, RecipientResolver, dedupe_emails
from app.domain.models import RecipientType, SendCampaignRequest
from app.domain.subscription import PlanId, Subscription, SubscriptionStatus
from app.infrastructure.auth import AuthUser
from app.infrastructure.db.models import WaitlistEntry
from app.infrastructure.exceptions import ConfigurationError, EmailServiceError, ValidationError
from tests.fakes import FakeSubscriptionRepository, FakeUnsubscribeRepository, FakeWaitlistRepository


def auth(user_id: str, email: str) -> AuthUser:
    return AuthUser(id=user_id, email=email, created_at=None, last_sign_in_at=None)


AUTH_USERS = [
    auth("u-trial", "trial@example.com"),
    auth("u-active", "active@example.com"),
    auth("u-expired", "expired@example.com"),
    auth("u-nosub", "nosub@example.com"),
]


def supabase_admin(users=AUTH_USERS) -> MagicMock:
    admin = MagicMock()
    admin.list_users = AsyncMock(return_value=list(users))
    return admin


def resolver(waitlist=(), unsubscribed=(), subscriptions=()) -> RecipientResolver:
    return RecipientResolver(
        FakeWaitlistRepository([WaitlistEntry(email=e) for e in waitlist]),
        FakeSubscriptionRepository(list(subscriptions)),
        FakeUnsubscribeRepository(list(unsubscribed)),
        supabase_admin(),
    )


class TestDedupe:
    def test_case_insensitive_first_seen_order(self):
        assert dedupe_emails(["B@x.com", "a@x.com", "b@X.com", "", " a@x.com "]) == [
            "B@x.com",
            "a@x.com",
        ]


class TestRecipientResolver:

    async def test_waitlist_minus_unsubscribed(self):
        r = resolver(waitlist=["one@x.com", "two@x.com"], unsubscribed=["TWO@x.com"])
        assert await r.resolve(RecipientType.WAITLIST) == ["one@x.com"]

    async def test_all_users(self):
        emails = await resolver(unsubscribed=["nosub@example.com"]).resolve(RecipientType.ALL_USERS)
        assert emails == ["trial@example.com", "active@example.com", "expired@example.com"]

    async def test_subscribers_are_trial_and_active(self):
        subs = [
            Subscription(user_id="u-trial", status=SubscriptionStatus.TRIAL),
            Subscription(user_id="u-active", plan_id=PlanId.CORE_MONTHLY, status=SubscriptionStatus.ACTIVE),
            Subscription(user_id="u-expired", status=SubscriptionStatus.EXPIRED),
        ]
        emails = await resolver(subscriptions=subs).resolve(RecipientType.SUBSCRIBERS)
        assert sorted(emails) == ["active@example.com", "trial@example.com"]

    async def test_no_subscribers_skips_user_lookup(self):
        r = resolver()
        assert await r.resolve(RecipientType.SUBSCRIBERS) == []
        r._supabase_admin.list_users.assert_not_awaited()

    async def test_adhoc_drops_invalid_addresses(self):
        emails = await resolver().resolve(
            RecipientType.ADHOC, ["ok@x.com", "not-an-email", "OK@x.com", "b@y.org"]
        )
        assert emails == ["ok@x.com", "b@y.org"]


class TestCampaignService:

    def build(self, emails, failing=(), configured=True, reply_to_setting=None):
        resolver = MagicMock()
        resolver.resolve = AsyncMock(return_value=list(emails))

        campaigns = MagicMock()
        campaigns.add = AsyncMock(side_effect=lambda campaign: campaign)
        campaigns.finish = AsyncMock()

        recipients = MagicMock()
        recipients.create_batch = AsyncMock(side_effect=lambda campaign_id, pairs: [
            SimpleNamespace(email=email, user_id=user_id, tracking_token=uuid4())
            for email, user_id in pairs
        ])
        recipients.mark_sent = AsyncMock()
        recipients.mark_failed = AsyncMock()

        email_settings = MagicMock()
        email_settings.get_value = AsyncMock(return_value=reply_to_setting)

        async def send(to, **kwargs):
            if to in failing:
                raise EmailServiceError("bounced", recipient=to)
            return "msg_1"

        email_service = MagicMock()
        email_service.is_configured = configured
        email_service.send = AsyncMock(side_effect=send)

        service = CampaignService(
            resolver,
            campaigns,
            recipients,
            email_settings,
            email_service,
            supabase_admin([auth("u-1", "a@x.com")]),
            site_url="https://www.appideasfinder.com",
            default_reply_to="info@appideasfinder.com",
        )
        service.BATCH_PAUSE_SECONDS = 0
        return service, campaigns, recipients, email_service

    def request(self, **overrides) -> SendCampaignRequest:
        values = {"subject": "Hello", "htmlContent": "<p>Hi</p>", "recipientType": "waitlist"}
        values.update(overrides)
        return SendCampaignRequest(**values)

    async def test_sends_in_batches_and_counts_failures(self):
        emails = [f"user{i}@x.com" for i in range(120)] + ["a@x.com"]
        service, campaigns, recipients, email_service = self.build(
            emails, failing={"user7@x.com"}
        )

        result = await service.send(self.request(), sent_by="22222222-2222-2222-2222-222222222222")

        assert result["totalRecipients"] == 121
        assert result["sent"] == 120
        assert result["failed"] == 1
        assert recipients.create_batch.await_count == 3
        assert recipients.mark_failed.await_count == 1
        campaign = campaigns.add.call_args.args[0]
        assert campaign.status == "sending"
        assert campaign.reply_to_email == "info@appideasfinder.com"
        campaigns.finish.assert_awaited_once()
        assert campaigns.finish.call_args.args[1:3] == (120, 1)

    async def test_known_users_linked_to_recipient_rows(self):
        service, _, recipients, _ = self.build(["A@x.com", "b@x.com"])

        await service.send(self.request(), sent_by="22222222-2222-2222-2222-222222222222")

        pairs = recipients.create_batch.call_args.args[1]
        assert pairs == [("A@x.com", "u-1"), ("b@x.com", None)]

    async def test_each_recipient_gets_its_own_tracking(self):
        service, _, _, email_service = self.build(["a@x.com"])

        await service.send(self.request(), sent_by="22222222-2222-2222-2222-222222222222")

        html = email_service.send.call_args.kwargs["html"]
        assert "/api/admin/email/track-open?token=" in html

    async def test_reply_to_precedence(self):
        service, _, _, _ = self.build([], reply_to_setting="team@appideasfinder.com")
        assert await service.reply_to("me@x.com") == "me@x.com"
        assert await service.reply_to(None) == "team@appideasfinder.com"

        fallback, _, _, _ = self.build([])
        assert await fallback.reply_to(None) == "info@appideasfinder.com"

    async def test_no_recipients_rejected(self):
        service, campaigns, _, _ = self.build([])
        with pytest.raises(ValidationError, match="No valid recipients found"):
            await service.send(self.request(), sent_by="22222222-2222-2222-2222-222222222222")
        campaigns.add.assert_not_awaited()

    async def test_unconfigured_email_rejected(self):
        service, _, _, _ = self.build(["a@x.com"], configured=False)
        with pytest.raises(ConfigurationError):
            await service.send(self.request(), sent_by="22222222-2222-2222-2222-222222222222")

    async def test_missing_fields_rejected(self):
        service, _, _, _ = self.build(["a@x.com"])
        with pytest.raises(ValidationError, match="Missing required fields"):
            await service.send(self.request(subject=""), sent_by="22222222-2222-2222-2222-222222222222")

    async def test_adhoc_needs_addresses(self):
        service, _, _, _ = self.build(["a@x.com"])
        with pytest.raises(ValidationError, match="Adhoc emails required"):
            await service.send(
                self.request(recipientType="adhoc"), sent_by="22222222-2222-2222-2222-222222222222"
            )
