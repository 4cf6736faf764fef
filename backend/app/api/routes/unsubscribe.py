"""
Unsubscribe API Route

One-click opt-out from the waitlist mailing. The token is the waitlist
entry's unsubscribe token carried in every marketing email.
"""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Request
from sqlalchemy.exc import SQLAlchemyError

from app.api.dependencies import UnsubscribeRepoDep, WaitlistRepoDep
from app.domain.models import UnsubscribeRequest
from app.infrastructure.exceptions import ValidationError


logger = logging.getLogger(__name__)

router = APIRouter()


def client_ip(request: Request) -> Optional[str]:
    """First hop of X-Forwarded-For, then X-Real-IP, then the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    return request.client.host if request.client else None


@router.post("/unsubscribe")
async def unsubscribe(
    body: UnsubscribeRequest,
    request: Request,
    waitlist: WaitlistRepoDep,
    unsubscribes: UnsubscribeRepoDep,
):
    if not body.token:
        raise ValidationError("Unsubscribe token is required", field="token")
    try:
        token = str(UUID(body.token))
    except ValueError:
        raise ValidationError("Invalid unsubscribe token format", field="token")

    entry = await waitlist.get_by_unsubscribe_token(token)
    if entry is None:
        raise ValidationError("Invalid unsubscribe token", field="token")

    # The opt-out record is an audit trail; removing the entry is what counts.
    try:
        async with unsubscribes.savepoint():
            await unsubscribes.record(
                email=entry.email,
                token=token,
                ip_address=client_ip(request),
                user_agent=request.headers.get("user-agent"),
            )
    except SQLAlchemyError as e:
        logger.error(f"Failed to record unsubscribe for token {token[:8]}: {e}")

    await waitlist.remove(entry)
    logger.info(f"Unsubscribed waitlist entry {entry.id}")
    return {"success": True}
