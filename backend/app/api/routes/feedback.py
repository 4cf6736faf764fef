"""
Feedback API Route

In-app feedback. Every accepted message earns one bonus search.
"""

import logging

from fastapi import APIRouter, Depends

from app.api.dependencies import BonusServiceDep, CurrentUser, FeedbackRepoDep
from app.domain.models import FeedbackCreate
from app.infrastructure.db.models import UserFeedback
from app.infrastructure.db.repositories import as_uuid
from app.infrastructure.email import EmailService, get_email_service


logger = logging.getLogger(__name__)

router = APIRouter()

FEEDBACK_REWARD_AMOUNT = 1


@router.post("/feedback")
async def submit_feedback(
    body: FeedbackCreate,
    user: CurrentUser,
    feedback: FeedbackRepoDep,
    bonus_service: BonusServiceDep,
    email_service: EmailService = Depends(get_email_service),
):
    message = body.validated_message()

    entry = await feedback.add(UserFeedback(
        user_id=as_uuid(user.id),
        user_email=user.email,
        category=body.category or "general",
        message=message,
        page_url=body.page_url,
        allow_contact=body.allow_contact,
    ))

    await bonus_service.grant_feedback_reward(user.id)
    await feedback.update_fields(entry, {
        "reward_granted": True,
        "reward_amount": FEEDBACK_REWARD_AMOUNT,
    })

    await email_service.notify_admin(
        f"New feedback: {entry.category}",
        {
            "User": user.email or user.id,
            "Page": body.page_url,
            "Contact allowed": "yes" if body.allow_contact else "no",
        },
        body=message,
        reply_to=user.email if body.allow_contact else None,
    )

    return {
        "success": True,
        "bonusGranted": True,
        "message": "Thanks for the feedback! We added +1 bonus search to your account.",
    }
