"""
Test configuration and fixtures for App Ideas Finder.

Provides shared fixtures for unit and integration tests.
"""

import os
import time

# Settings are read at import time, so the environment must be in place
# before anything under ``app`` is imported.
os.environ.update({
    "SUPABASE_URL": "https://test-project.supabase.co",
    "SUPABASE_SERVICE_ROLE_KEY": "test-service-role-key",
    "SUPABASE_JWT_SECRET": "test-jwt-secret-that-is-long-enough-for-hs256",
    "ENVIRONMENT": "testing",
    "DATABASE_URL": "",
    "CRON_SECRET": "test-cron-secret",
    "SITE_URL": "https://www.appideasfinder.com",
})

import jwt
import pytest
from unittest.mock import MagicMock, patch

from fastapi.testclient import TestClient

from app.api.dependencies import get_current_user
from app.infrastructure.db import dependencies as db_deps
from tests.fakes import (
    FakeAdminRepository,
    FakeBonusRepository,
    FakeSubscriptionRepository,
    FakeUsageRepository,
    FakeWaitlistRepository,
    FakeWebhookEventRepository,
)


USER_ID = "11111111-1111-1111-1111-111111111111"
ADMIN_ID = "22222222-2222-2222-2222-222222222222"


# =============================================================================
# Auth Helpers
# =============================================================================

def make_token(user_id: str = USER_ID, email: str = "user@example.com", expires_in: int = 3600) -> str:
    """HS256 access token signed with the test JWT secret."""
    from app.config.settings import get_settings

    settings = get_settings()
    payload = {
        "sub": user_id,
        "email": email,
        "aud": "authenticated",
        "iss": f"{settings.supabase_url}/auth/v1",
        "exp": int(time.time()) + expires_in,
    }
    return jwt.encode(payload, settings.supabase_jwt_secret, algorithm="HS256")


def auth_headers(user_id: str = USER_ID, email: str = "user@example.com") -> dict:
    return {"Authorization": f"Bearer {make_token(user_id, email)}"}


@pytest.fixture(autouse=True)
def offline_jwks():
    """Tests never reach the Supabase JWKS endpoint; verification falls back to HS256."""
    with patch(
        "app.api.dependencies._decode_with_jwks",
        side_effect=jwt.exceptions.PyJWKClientError("JWKS unavailable in tests"),
    ):
        yield


# =============================================================================
# App Fixtures
# =============================================================================

@pytest.fixture
def app():
    """
    Get the FastAPI application with overrides cleared after each test.

    Repositories a test does not override get a MagicMock session, so a
    route never touches a real database.
    """
    from app.main import app

    async def mock_session():
        yield MagicMock()

    app.dependency_overrides[db_deps.get_session] = mock_session
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    """Get synchronous test client."""
    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture
def override(app):
    """Register a dependency override: ``override(provider, instance)``."""

    def _override(provider, value):
        app.dependency_overrides[provider] = lambda: value
        return value

    return _override


@pytest.fixture
def login(app):
    """Authenticate every request as the given user without a token."""
    from app.api.dependencies import AuthenticatedUser

    def _login(user_id: str = USER_ID, email: str = "user@example.com"):
        user = AuthenticatedUser(id=user_id, email=email)
        app.dependency_overrides[get_current_user] = lambda: user
        return user

    return _login


# =============================================================================
# Repository Fixtures
# =============================================================================

@pytest.fixture
def subscription_repo(override):
    return override(db_deps.get_subscription_repository, FakeSubscriptionRepository())


@pytest.fixture
def usage_repo(override):
    return override(db_deps.get_usage_repository, FakeUsageRepository())


@pytest.fixture
def bonus_repo(override):
    return override(db_deps.get_bonus_repository, FakeBonusRepository())


@pytest.fixture
def waitlist_repo(override):
    return override(db_deps.get_waitlist_repository, FakeWaitlistRepository())


@pytest.fixture
def webhook_event_repo(override):
    return override(db_deps.get_webhook_event_repository, FakeWebhookEventRepository())


@pytest.fixture
def admin_repo(override):
    return override(db_deps.get_admin_repository, FakeAdminRepository())


@pytest.fixture
def billing_repos(subscription_repo, usage_repo, bonus_repo, waitlist_repo):
    """The repositories behind the access gate and usage ledger."""
    return subscription_repo, usage_repo, bonus_repo, waitlist_repo
