"""
Admin Email API Routes

Campaign sending, templates, settings and the public open/click tracking
endpoints embedded in sent mail.
"""

import logging
from typing import Annotated, Optional
from urllib.parse import urlparse
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from fastapi.responses import RedirectResponse
from sqlalchemy.exc import SQLAlchemyError

from app.api.dependencies import (
    AdminUser,
    EmailCampaignRepoDep,
    EmailRecipientRepoDep,
    EmailSettingRepoDep,
    EmailTemplateRepoDep,
    SubscriptionRepoDep,
    UnsubscribeRepoDep,
    WaitlistRepoDep,
    require_permission,
)
from app.config.settings import Settings, get_settings
from app.domain.admin import Permission
from app.domain.campaigns import PREVIEW_LIMIT, CampaignService, RecipientResolver
from app.domain.models import (
    EmailSettingsUpdate,
    PreviewRequest,
    RecipientType,
    SendCampaignRequest,
    TemplateCreate,
    TemplateUpdate,
    parse_recipient_type,
)
from app.infrastructure.auth import SupabaseAdminService, get_supabase_admin
from app.infrastructure.db.models import EmailTemplate
from app.infrastructure.db.repositories import REPLY_TO_SETTING, as_uuid
from app.infrastructure.email import EmailService, get_email_service, render_campaign_html
from app.infrastructure.email.templates import logo_url
from app.infrastructure.exceptions import NotFoundError, ValidationError


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/email")

EmailAdmin = Annotated[AdminUser, Depends(require_permission(Permission.MANAGE_EMAIL))]


# =============================================================================
# Service providers
# =============================================================================

def get_recipient_resolver(
    waitlist: WaitlistRepoDep,
    subscriptions: SubscriptionRepoDep,
    unsubscribes: UnsubscribeRepoDep,
    supabase_admin: SupabaseAdminService = Depends(get_supabase_admin),
) -> RecipientResolver:
    return RecipientResolver(waitlist, subscriptions, unsubscribes, supabase_admin)


def get_campaign_service(
    campaigns: EmailCampaignRepoDep,
    recipients: EmailRecipientRepoDep,
    email_settings: EmailSettingRepoDep,
    resolver: RecipientResolver = Depends(get_recipient_resolver),
    email_service: EmailService = Depends(get_email_service),
    supabase_admin: SupabaseAdminService = Depends(get_supabase_admin),
    settings: Settings = Depends(get_settings),
) -> CampaignService:
    return CampaignService(
        resolver,
        campaigns,
        recipients,
        email_settings,
        email_service,
        supabase_admin,
        site_url=settings.site_url,
        default_reply_to=settings.default_reply_to,
    )


# =============================================================================
# Campaigns
# =============================================================================

@router.post("/send")
async def send_campaign(
    request: SendCampaignRequest,
    admin: EmailAdmin,
    service: CampaignService = Depends(get_campaign_service),
):
    return await service.send(request, sent_by=admin.id)


@router.get("/campaigns")
async def list_campaigns(
    admin: EmailAdmin,
    campaigns: EmailCampaignRepoDep,
    campaign_id: Optional[str] = Query(default=None, alias="id"),
):
    """All campaigns, or one campaign with its delivery stats when ``id`` is given."""
    if campaign_id:
        campaign = await campaigns.get_by_id(campaign_id)
        if campaign is None:
            raise NotFoundError("Campaign not found", table="email_campaigns")
        return {"campaign": campaign, "stats": await campaigns.recipient_stats(campaign.id)}
    return {"campaigns": await campaigns.get_all(limit=100)}


@router.get("/recipients")
async def preview_recipients(
    admin: EmailAdmin,
    recipient_type: Optional[str] = Query(default=None, alias="type"),
    resolver: RecipientResolver = Depends(get_recipient_resolver),
):
    """Who a send to ``type`` would reach. Ad-hoc lists are typed in by hand."""
    parsed = parse_recipient_type(recipient_type)
    emails = [] if parsed == RecipientType.ADHOC else await resolver.resolve(parsed)
    return {"count": len(emails), "emails": emails[:PREVIEW_LIMIT]}


@router.post("/preview")
async def preview_email(
    request: PreviewRequest,
    admin: EmailAdmin,
    settings: Settings = Depends(get_settings),
):
    if not request.html_content:
        raise ValidationError("htmlContent is required", field="htmlContent")
    return {"previewHTML": render_campaign_html(request.html_content, settings.site_url)}


# =============================================================================
# Templates
# =============================================================================

@router.get("/templates")
async def list_templates(admin: EmailAdmin, templates: EmailTemplateRepoDep):
    return {"templates": await templates.list_recent()}


@router.post("/templates")
async def create_template(
    request: TemplateCreate,
    admin: EmailAdmin,
    templates: EmailTemplateRepoDep,
):
    if not request.name or not request.subject or not request.html_content:
        raise ValidationError("Name, subject, and htmlContent are required")
    template = await templates.add(EmailTemplate(
        name=request.name,
        subject=request.subject,
        html_content=request.html_content,
        text_content=request.text_content or "",
        created_by=as_uuid(admin.id),
    ))
    return {"template": template}


@router.patch("/templates")
async def update_template(
    request: TemplateUpdate,
    admin: EmailAdmin,
    templates: EmailTemplateRepoDep,
):
    if not request.id:
        raise ValidationError("Template ID required", field="id")
    template = await templates.get_by_id(request.id)
    if template is None:
        raise NotFoundError("Template not found", table="email_templates")
    return {"template": await templates.update_fields(template, request.changes())}


@router.delete("/templates")
async def delete_template(
    admin: EmailAdmin,
    templates: EmailTemplateRepoDep,
    template_id: Optional[str] = Query(default=None, alias="id"),
):
    if not template_id:
        raise ValidationError("Template ID required", field="id")
    if not await templates.delete(template_id):
        raise NotFoundError("Template not found", table="email_templates")
    return {"success": True}


# =============================================================================
# Settings
# =============================================================================

@router.get("/settings")
async def get_email_settings(admin: EmailAdmin, email_settings: EmailSettingRepoDep):
    return {"settings": await email_settings.as_dict()}


@router.patch("/settings")
async def update_email_settings(
    request: EmailSettingsUpdate,
    admin: EmailAdmin,
    email_settings: EmailSettingRepoDep,
):
    reply_to = request.validated_email()
    await email_settings.set_value(REPLY_TO_SETTING, reply_to, updated_by=admin.id)
    return {"success": True, "replyToEmail": reply_to}


# =============================================================================
# Tracking (public, embedded in sent mail)
# =============================================================================

def _parse_token(token: Optional[str]) -> Optional[str]:
    if not token:
        return None
    try:
        return str(UUID(token))
    except ValueError:
        return None


def _safe_redirect_target(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return None
    return url


@router.get("/track-open")
async def track_open(
    recipients: EmailRecipientRepoDep,
    token: Optional[str] = None,
    settings: Settings = Depends(get_settings),
):
    """Count an open and hand back the logo the tracking URL stands in for."""
    parsed = _parse_token(token)
    if parsed:
        try:
            async with recipients.savepoint():
                await recipients.record_open(parsed)
        except SQLAlchemyError as e:
            logger.error(f"Failed to record open for token {parsed[:8]}: {e}")
    return RedirectResponse(logo_url(settings.site_url))


@router.get("/track-click")
async def track_click(
    recipients: EmailRecipientRepoDep,
    token: Optional[str] = None,
    url: Optional[str] = None,
    settings: Settings = Depends(get_settings),
):
    """Count a click and redirect to the original link; bad links go to the site root."""
    target = _safe_redirect_target(url)
    parsed = _parse_token(token)
    if target is None or parsed is None:
        return RedirectResponse(settings.site_url)

    try:
        async with recipients.savepoint():
            await recipients.record_click(parsed)
    except SQLAlchemyError as e:
        logger.error(f"Failed to record click for token {parsed[:8]}: {e}")
    return RedirectResponse(target)
