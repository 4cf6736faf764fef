"""
Subscription API Routes

Usage metering and trial lifecycle endpoints:
- GET  /subscription/usage
- POST /subscription/increment-usage
- POST /check-trial-expiry
- GET  /cron/convert-trials
"""

import logging
import secrets
from typing import Optional

from fastapi import APIRouter, Depends, Header

from app.api.dependencies import (
    CurrentUser,
    TrialControllerDep,
    UsageLedgerDep,
)
from app.config.settings import Settings, get_settings
from app.domain.subscription import UsageSummary
from app.infrastructure.exceptions import AuthenticationError


logger = logging.getLogger(__name__)

router = APIRouter()


# =============================================================================
# Usage Endpoints
# =============================================================================

@router.get("/subscription/usage", response_model=UsageSummary)
async def get_usage(user: CurrentUser, ledger: UsageLedgerDep):
    """Current plan, quota and bonus position of the signed-in user."""
    return await ledger.summary(user.id, user.email)


@router.post("/subscription/increment-usage")
async def increment_usage(user: CurrentUser, ledger: UsageLedgerDep):
    """
    Spend one search.

    Returns 403 when the access check denies or nothing is left to spend.
    """
    return await ledger.consume(user.id, user.email)


# =============================================================================
# Trial Lifecycle Endpoints
# =============================================================================

@router.post("/check-trial-expiry")
async def check_trial_expiry(user: CurrentUser, controller: TrialControllerDep):
    """Called when a user loads the app; converts their trial if it has ended."""
    result = await controller.check_user(user.id)
    return {
        "trialExpired": result.trial_expired,
        "converted": result.converted,
        "message": result.message,
    }


def verify_cron_secret(
    authorization: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> None:
    """Require ``Bearer <CRON_SECRET>`` when a secret is configured."""
    if not settings.cron_secret:
        return
    expected = f"Bearer {settings.cron_secret}"
    if not authorization or not secrets.compare_digest(authorization, expected):
        raise AuthenticationError("Unauthorized")


@router.get("/cron/convert-trials", dependencies=[Depends(verify_cron_secret)])
async def convert_trials(controller: TrialControllerDep):
    """Batch sweep over every trial whose window has closed."""
    result = await controller.sweep()
    return {
        "success": True,
        "message": result.message,
        "converted": result.converted,
        "expired": result.expired,
        "total": result.total,
        "errors": result.errors or None,
    }
