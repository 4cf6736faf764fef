"""
Analysis API Routes

Endpoints the analysis client calls before and while running an App
Store review analysis. All of them sit behind the access check.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query

from app.api.dependencies import AnalysisRepoDep, AuthenticatedUser, require_access
from app.domain.models import GrokProxyRequest
from app.infrastructure.ai import GrokService, get_grok_service
from app.infrastructure.exceptions import ValidationError


logger = logging.getLogger(__name__)

router = APIRouter()

CACHE_WINDOW = timedelta(days=14)


@router.get("/check-cache")
async def check_cache(
    analyses: AnalysisRepoDep,
    user: AuthenticatedUser = Depends(require_access),
    app_id: Optional[str] = Query(default=None, alias="appId"),
):
    """Most recent analysis of the app by anyone in the last 14 days."""
    if not app_id:
        raise ValidationError("App ID required", field="appId")
    since = datetime.now(timezone.utc) - CACHE_WINDOW
    return {"cached": await analyses.get_recent_for_app(app_id, since)}


@router.get("/grok-key")
async def get_grok_key(
    user: AuthenticatedUser = Depends(require_access),
    grok: GrokService = Depends(get_grok_service),
):
    """Key for the client-side streaming path. 500 when unset."""
    return {"apiKey": grok.api_key}


@router.post("/grok-proxy")
async def grok_proxy(
    body: GrokProxyRequest,
    user: AuthenticatedUser = Depends(require_access),
    grok: GrokService = Depends(get_grok_service),
):
    """Forward a chat completion to Grok and return the first choice's content."""
    if not body.messages:
        raise ValidationError("Messages array required", field="messages")
    return await grok.complete(
        body.messages,
        model=body.model,
        temperature=body.temperature,
        max_tokens=body.max_tokens,
    )
