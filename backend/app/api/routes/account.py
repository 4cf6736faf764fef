"""
Account API Routes

Self-service account deletion requests. Requests are queued for a
super admin; nothing is deleted here.
"""

import logging

from fastapi import APIRouter, Depends

from app.api.dependencies import CurrentUser, DeletionRequestRepoDep, SubscriptionRepoDep
from app.domain.models import DeletionRequestCreate
from app.infrastructure.db.models import AccountDeletionRequest
from app.infrastructure.db.repositories import as_uuid
from app.infrastructure.email import EmailService, get_email_service


logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/account/deletion-request")
async def get_deletion_request(user: CurrentUser, requests: DeletionRequestRepoDep):
    """Latest deletion request of the signed-in user, if any."""
    return {"request": await requests.get_latest_for_user(user.id)}


@router.post("/account/deletion-request")
async def create_deletion_request(
    body: DeletionRequestCreate,
    user: CurrentUser,
    requests: DeletionRequestRepoDep,
    subscriptions: SubscriptionRepoDep,
    email_service: EmailService = Depends(get_email_service),
):
    """
    Queue an account deletion request.

    A user has at most one pending request; submitting again returns it.
    """
    pending = await requests.get_pending_for_user(user.id)
    if pending is not None:
        return {"message": "A deletion request is already pending.", "request": pending}

    subscription = await subscriptions.get_by_user_id(user.id)
    reason = body.trimmed_reason()
    created = await requests.add(AccountDeletionRequest(
        user_id=as_uuid(user.id),
        email=user.email,
        reason=reason,
        subscription_status=subscription.status.value if subscription else "none",
    ))
    logger.info(f"Deletion request {created.id} submitted by user {user.id}")

    await email_service.notify_admin(
        "Account deletion request",
        {
            "User ID": user.id,
            "Email": user.email,
            "Subscription": created.subscription_status,
        },
        body=reason,
        reply_to=user.email,
    )
    return {"message": "Deletion request submitted", "request": created}
