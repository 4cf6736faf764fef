"""
Unit tests for Dependency Injection providers.

Validates that:
- Settings are cached via @lru_cache
- Service providers build a fresh instance per request from settings
- Repositories take only a session, so tests can hand them a mock
- Domain providers share the repositories they are given
"""

import inspect
from unittest.mock import MagicMock

from app.api.dependencies import (
    get_access_gate,
    get_bonus_service,
    get_trial_controller,
    get_usage_ledger,
)
from app.config.settings import get_settings
from app.infrastructure.ai import get_grok_service
from app.infrastructure.auth import get_supabase_admin
from app.infrastructure.email import get_email_service
from app.infrastructure.payments.stripe_service import StripeService, get_stripe_service
from tests.fakes import (
    FakeBonusRepository,
    FakeSubscriptionRepository,
    FakeUsageRepository,
    FakeWaitlistRepository,
)


class TestDIProviders:
    """Tests for provider functions."""

    def test_settings_are_cached(self):
        assert get_settings() is get_settings()

    def test_service_providers_build_per_request(self):
        settings = get_settings()
        for provider in (get_grok_service, get_email_service, get_stripe_service, get_supabase_admin):
            assert provider(settings) is not provider(settings)

    def test_services_have_no_singleton_pattern(self):
        assert StripeService.__new__ is object.__new__

    def test_unconfigured_stripe_is_reported(self):
        settings = get_settings().model_copy(update={"stripe_secret_key": None})
        assert StripeService(settings).is_configured is False

    async def test_subscription_create_forwards_idempotency_key(self):
        service = StripeService(get_settings())
        service._client = MagicMock()

        await service.create_subscription(
            "cus_123", "price_core_monthly", {"user_id": "u1"}, idempotency_key="trial-convert-u1"
        )

        _, kwargs = service._client.subscriptions.create.call_args
        assert kwargs["params"]["customer"] == "cus_123"
        assert kwargs["options"] == {"idempotency_key": "trial-convert-u1"}


class TestDomainWiring:
    """Domain services are assembled from the repositories FastAPI resolves."""

    def test_waitlist_bonus_size_comes_from_settings(self):
        settings = get_settings().model_copy(update={"waitlist_bonus_searches": 40})
        service = get_bonus_service(FakeBonusRepository(), FakeWaitlistRepository(), settings)
        assert service._waitlist_bonus_searches == 40

    def test_ledger_shares_repositories_with_gate(self):
        subscriptions, usage, bonuses = (
            FakeSubscriptionRepository(),
            FakeUsageRepository(),
            FakeBonusRepository(),
        )
        bonus_service = get_bonus_service(bonuses, FakeWaitlistRepository(), get_settings())
        gate = get_access_gate(subscriptions, usage, bonuses, bonus_service)

        ledger = get_usage_ledger(gate, subscriptions, usage, bonuses)

        assert ledger._gate is gate
        assert gate._subscriptions is ledger._subscriptions
        assert gate._bonus_service is bonus_service

    def test_trial_controller_wiring(self):
        stripe_service = MagicMock()
        bonus_service = MagicMock()
        controller = get_trial_controller(
            FakeSubscriptionRepository(), FakeUsageRepository(), bonus_service, stripe_service
        )
        assert controller._stripe is stripe_service
        assert controller._bonus_service is bonus_service


class TestDIOverrides:
    """Tests validating DI override pattern for testing."""

    def test_repositories_accept_only_session(self):
        from app.infrastructure.db import repositories

        for name in ("SubscriptionRepository", "UsageRepository", "BonusRepository", "WaitlistRepository"):
            params = list(inspect.signature(getattr(repositories, name).__init__).parameters)
            assert params == ["self", "session"], name
