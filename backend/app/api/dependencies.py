"""
API Dependencies

FastAPI dependency injection for authentication, admin permissions and the
subscription services.

Security: JWT tokens are verified cryptographically using Supabase JWKS (ES256)
with HS256 fallback via the JWT secret. Never decode without verification.
"""

import logging
from dataclasses import dataclass
from typing import Annotated, Callable, Optional

import jwt
from jwt import PyJWKClient
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.exc import SQLAlchemyError

from app.config.settings import Settings, get_settings
from app.domain.admin import AdminRole, Permission, has_permission
from app.domain.services import (
    AccessGate,
    BonusService,
    TrialLifecycleController,
    UsageLedger,
)
from app.infrastructure.db.dependencies import (
    AdminRepoDep,
    BonusRepoDep,
    SubscriptionRepoDep,
    UsageRepoDep,
    WaitlistRepoDep,
)
from app.infrastructure.exceptions import (
    AuthenticationError,
    AuthorizationError,
    DatabaseError,
)
from app.infrastructure.payments.stripe_service import StripeService, get_stripe_service


logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

# Cached JWKS client, built on first use.
# PyJWKClient caches keys internally and refreshes ~every 10 min.
_jwks_client: Optional[PyJWKClient] = None


@dataclass
class AuthenticatedUser:
    """Identity taken from a verified Supabase access token."""
    id: str
    email: Optional[str] = None


@dataclass
class AdminUser(AuthenticatedUser):
    """Authenticated user with an admin role."""
    role: AdminRole = AdminRole.SUPPORT


def _get_jwks_client() -> PyJWKClient:
    """Return a singleton PyJWKClient for the Supabase JWKS endpoint."""
    global _jwks_client
    if _jwks_client is None:
        settings = get_settings()
        jwks_url = f"{settings.supabase_url}/auth/v1/.well-known/jwks.json"
        _jwks_client = PyJWKClient(jwks_url, cache_keys=True)
    return _jwks_client


def _decode_with_jwks(token: str, issuer: str) -> dict:
    """Verify JWT using Supabase JWKS endpoint (ES256 asymmetric keys)."""
    client = _get_jwks_client()
    signing_key = client.get_signing_key_from_jwt(token)
    return jwt.decode(
        token,
        signing_key.key,
        algorithms=["ES256"],
        issuer=issuer,
        audience="authenticated",
        options={"require": ["exp", "sub", "iss"]},
    )


def _decode_with_secret(token: str, secret: str, issuer: str) -> dict:
    """Verify JWT using HS256 symmetric secret (legacy Supabase signing)."""
    return jwt.decode(
        token,
        secret,
        algorithms=["HS256"],
        issuer=issuer,
        audience="authenticated",
        options={"require": ["exp", "sub", "iss"]},
    )


def _extract_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials],
    settings: Settings,
) -> Optional[str]:
    """Bearer header first, then the browser session cookie."""
    if credentials and credentials.credentials:
        return credentials.credentials
    return request.cookies.get(settings.session_cookie_name) or None


def verify_token(token: str, settings: Settings) -> dict:
    """
    Verify a Supabase access token and return its claims.

    Verification strategy (in order):
      1. JWKS (ES256), following key rotation.
      2. HS256 with ``SUPABASE_JWT_SECRET`` for legacy-signed tokens.

    Raises:
        AuthenticationError: token expired, invalid or unverifiable
    """
    issuer = f"{settings.supabase_url}/auth/v1"
    payload: Optional[dict] = None

    # --- Strategy 1: JWKS (ES256) ---
    try:
        payload = _decode_with_jwks(token, issuer)
    except (jwt.exceptions.PyJWKClientError, jwt.InvalidTokenError) as jwks_err:
        logger.debug("JWKS verification failed, trying HS256 fallback: %s", jwks_err)

    # --- Strategy 2: HS256 fallback ---
    if payload is None and settings.supabase_jwt_secret:
        try:
            payload = _decode_with_secret(token, settings.supabase_jwt_secret, issuer)
        except jwt.ExpiredSignatureError as e:
            raise AuthenticationError("Token has expired", original_error=e)
        except jwt.InvalidTokenError as e:
            logger.warning("HS256 JWT verification also failed: %s", e)

    if payload is None:
        raise AuthenticationError("Invalid or unverifiable token")

    if not payload.get("sub"):
        raise AuthenticationError("Invalid token: missing user ID")

    return payload


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    settings: Settings = Depends(get_settings),
) -> AuthenticatedUser:
    """
    Authenticated user from the Authorization header or session cookie.

    Raises:
        AuthenticationError 401: token missing, expired, or invalid.
    """
    token = _extract_token(request, credentials, settings)
    if not token:
        raise AuthenticationError("Not authenticated")

    payload = verify_token(token, settings)
    return AuthenticatedUser(id=payload["sub"], email=payload.get("email"))


async def get_current_user_id(user: AuthenticatedUser = Depends(get_current_user)) -> str:
    return user.id


async def get_optional_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    settings: Settings = Depends(get_settings),
) -> Optional[AuthenticatedUser]:
    """
    Optionally authenticate.

    Returns ``None`` if no valid token is provided (for public endpoints).
    """
    try:
        return await get_current_user(request, credentials, settings)
    except AuthenticationError:
        return None


CurrentUser = Annotated[AuthenticatedUser, Depends(get_current_user)]
OptionalUser = Annotated[Optional[AuthenticatedUser], Depends(get_optional_user)]


# =============================================================================
# Admin permissions
# =============================================================================

def require_permission(permission: Permission) -> Callable:
    """
    Dependency factory gating a route on an admin permission.

    401 when unauthenticated, 403 for non-admins or roles lacking
    ``permission``, 500 when the role lookup fails.
    """

    async def dependency(user: CurrentUser, admins: AdminRepoDep) -> AdminUser:
        try:
            role = await admins.get_role(user.id)
        except SQLAlchemyError as e:
            logger.error(f"Admin lookup failed for user {user.id}: {e}")
            raise DatabaseError(
                "Failed to verify admin status",
                operation="select",
                table="admins",
                original_error=e,
            )

        if role is None:
            raise AuthorizationError("Admin access required")
        if not has_permission(role, permission):
            raise AuthorizationError(
                f"Role {role.value} lacks permission {permission.value}",
                permission=permission.value,
            )
        return AdminUser(id=user.id, email=user.email, role=role)

    return dependency


# =============================================================================
# Subscription services
# =============================================================================

def get_bonus_service(
    bonuses: BonusRepoDep,
    waitlist: WaitlistRepoDep,
    settings: Settings = Depends(get_settings),
) -> BonusService:
    return BonusService(bonuses, waitlist, settings.waitlist_bonus_searches)


BonusServiceDep = Annotated[BonusService, Depends(get_bonus_service)]


def get_access_gate(
    subscriptions: SubscriptionRepoDep,
    usage: UsageRepoDep,
    bonuses: BonusRepoDep,
    bonus_service: BonusServiceDep,
) -> AccessGate:
    return AccessGate(subscriptions, usage, bonuses, bonus_service)


AccessGateDep = Annotated[AccessGate, Depends(get_access_gate)]


def get_usage_ledger(
    gate: AccessGateDep,
    subscriptions: SubscriptionRepoDep,
    usage: UsageRepoDep,
    bonuses: BonusRepoDep,
) -> UsageLedger:
    return UsageLedger(gate, subscriptions, usage, bonuses)


UsageLedgerDep = Annotated[UsageLedger, Depends(get_usage_ledger)]


def get_trial_controller(
    subscriptions: SubscriptionRepoDep,
    usage: UsageRepoDep,
    bonus_service: BonusServiceDep,
    stripe_service: StripeService = Depends(get_stripe_service),
) -> TrialLifecycleController:
    return TrialLifecycleController(subscriptions, usage, bonus_service, stripe_service)


TrialControllerDep = Annotated[TrialLifecycleController, Depends(get_trial_controller)]


async def require_access(user: CurrentUser, gate: AccessGateDep) -> AuthenticatedUser:
    """Gate a route on the access check; 403 when it denies."""
    if not await gate.has_access(user.id, user.email):
        raise AuthorizationError("Active subscription or bonus searches required")
    return user


# =============================================================================
# Re-export DB dependencies for a single import source
# Routers should import from api.dependencies, not db.dependencies directly.
# =============================================================================
from app.infrastructure.db.dependencies import (  # noqa: E402, F401
    SessionDep,
    SubscriptionRepoDep,
    UsageRepoDep,
    BonusRepoDep,
    WebhookEventRepoDep,
    AdminRepoDep,
    FeedbackRepoDep,
    DeletionRequestRepoDep,
    AnalysisRepoDep,
    ProfileRepoDep,
    WaitlistRepoDep,
    UnsubscribeRepoDep,
    CouponRepoDep,
    EmailCampaignRepoDep,
    EmailRecipientRepoDep,
    EmailTemplateRepoDep,
    EmailSettingRepoDep,
)
