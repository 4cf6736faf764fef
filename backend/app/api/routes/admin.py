"""
Admin API Routes

Dashboard, user and waitlist views plus bonus, coupon, feedback and
deletion-request management. Every route is gated on an admin permission
via ``require_permission``.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query

from app.api.dependencies import (
    AdminUser,
    AnalysisRepoDep,
    BonusServiceDep,
    CouponRepoDep,
    DeletionRequestRepoDep,
    FeedbackRepoDep,
    ProfileRepoDep,
    WaitlistRepoDep,
    require_permission,
)
from app.domain import analytics
from app.domain.admin import Permission, has_permission
from app.domain.bonus import AwardBonusRequest
from app.domain.models import (
    CouponCreate,
    DeletionRequestUpdate,
    DeletionStatus,
    DiscountType,
    FeedbackUpdate,
    WaitlistAddRequest,
)
from app.infrastructure.auth import SupabaseAdminService, get_supabase_admin
from app.infrastructure.db.models import Coupon
from app.infrastructure.db.repositories import as_uuid
from app.infrastructure.exceptions import NotFoundError


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin")

ACTIVE_USER_WINDOW = timedelta(days=30)


# =============================================================================
# Dashboard
# =============================================================================

@router.get("/stats")
async def get_stats(
    profiles: ProfileRepoDep,
    analyses: AnalysisRepoDep,
    admin: AdminUser = Depends(require_permission(Permission.VIEW_DASHBOARD)),
):
    """Headline numbers for the admin dashboard. API cost needs VIEW_COSTS."""
    now = datetime.now(timezone.utc)
    recent_analyses = await analyses.recent(10)

    stats = {
        "totalUsers": await profiles.count(),
        "activeUsers": await analyses.count_active_users(now - ACTIVE_USER_WINDOW),
        "totalAnalyses": await analyses.count(),
        "recentSignups": await profiles.recent(10),
        "recentAnalyses": [
            {
                "id": str(a.id),
                "app_name": a.app_name,
                "review_count": a.review_count,
                "api_cost": a.api_cost,
                "created_at": a.created_at,
            }
            for a in recent_analyses
        ],
    }
    if has_permission(admin.role, Permission.VIEW_COSTS):
        stats["totalApiCost"] = await analyses.total_api_cost()
    return stats


@router.get("/users")
async def list_users(
    profiles: ProfileRepoDep,
    analyses: AnalysisRepoDep,
    admin: AdminUser = Depends(require_permission(Permission.VIEW_USERS)),
    supabase_admin: SupabaseAdminService = Depends(get_supabase_admin),
    search: str = "",
    provider: str = "",
    activity: str = "",
):
    users = analytics.user_rows(
        await supabase_admin.list_users(),
        await profiles.by_id(),
        await analyses.activity_by_user(),
        search=search,
        provider=provider,
        activity_filter=activity,
    )
    return {"users": users, "total": len(users)}


# =============================================================================
# Bonuses
# =============================================================================

@router.post("/bonuses")
async def award_bonus(
    request: AwardBonusRequest,
    bonus_service: BonusServiceDep,
    admin: AdminUser = Depends(require_permission(Permission.AWARD_BONUSES)),
):
    """Award a bonus grant to a user."""
    grant = await bonus_service.award(request, awarded_by=admin.id)
    return {"success": True, "bonus": grant}


# =============================================================================
# Waitlist
# =============================================================================

@router.get("/waitlist")
async def get_waitlist(
    waitlist: WaitlistRepoDep,
    admin: AdminUser = Depends(require_permission(Permission.MANAGE_WAITLIST)),
):
    entries = await waitlist.list_all()
    return analytics.waitlist_stats(entries, datetime.now(timezone.utc))


@router.post("/waitlist")
async def add_to_waitlist(
    request: WaitlistAddRequest,
    waitlist: WaitlistRepoDep,
    admin: AdminUser = Depends(require_permission(Permission.MANAGE_WAITLIST)),
):
    """Manually add an address. 409 when it is already listed."""
    entry = await waitlist.create(request.validated_email(), source=request.source)
    logger.info(f"Admin {admin.id} added waitlist entry {entry.id}")
    return {"success": True, "data": entry}


@router.get("/waitlist/users")
async def get_waitlist_users(
    waitlist: WaitlistRepoDep,
    analyses: AnalysisRepoDep,
    admin: AdminUser = Depends(require_permission(Permission.MANAGE_WAITLIST)),
    supabase_admin: SupabaseAdminService = Depends(get_supabase_admin),
):
    """Which waitlist addresses signed up, logged in and searched."""
    activity = await analyses.activity_by_user()
    return analytics.waitlist_users(
        await waitlist.list_all(),
        await supabase_admin.list_users(),
        {user_id: count for user_id, (count, _) in activity.items()},
    )


# =============================================================================
# Coupons
# =============================================================================

@router.get("/coupons")
async def list_coupons(
    coupons: CouponRepoDep,
    admin: AdminUser = Depends(require_permission(Permission.MANAGE_COUPONS)),
):
    return {"coupons": await coupons.get_all(limit=100)}


@router.post("/coupons", status_code=201)
async def create_coupon(
    request: CouponCreate,
    coupons: CouponRepoDep,
    admin: AdminUser = Depends(require_permission(Permission.MANAGE_COUPONS)),
):
    discount_type = request.validated_type()
    free_plan = discount_type == DiscountType.FREE_PLAN

    coupon = Coupon(
        code=request.code.strip().upper(),
        discount_type=discount_type.value,
        discount_value=None if free_plan else request.discount_value,
        free_plan_id=request.free_plan_id if free_plan else None,
        max_uses=request.max_uses,
        valid_until=request.valid_until,
        description=request.description,
        stripe_coupon_id=request.stripe_coupon_id,
        stripe_promotion_code=request.stripe_promotion_code,
        created_by=as_uuid(admin.id),
    )
    if request.valid_from is not None:
        coupon.valid_from = request.valid_from

    created = await coupons.create(coupon)
    logger.info(f"Admin {admin.id} created coupon {created.code}")
    return {"coupon": created}


@router.delete("/coupons/{coupon_id}")
async def delete_coupon(
    coupon_id: str,
    coupons: CouponRepoDep,
    admin: AdminUser = Depends(require_permission(Permission.MANAGE_COUPONS)),
):
    if not await coupons.delete(coupon_id):
        raise NotFoundError(f"Coupon {coupon_id} not found", table="coupons")
    return {"success": True}


# =============================================================================
# Feedback moderation
# =============================================================================

@router.get("/feedback")
async def list_feedback(
    feedback: FeedbackRepoDep,
    admin: AdminUser = Depends(require_permission(Permission.MANAGE_FEEDBACK)),
    category: Optional[str] = None,
    archived: Optional[str] = None,
):
    """Feedback newest first; archived items only when ``archived=true``."""
    items = await feedback.list_filtered(
        category=None if category in (None, "", "all") else category,
        archived=archived == "true",
    )
    return {
        "feedback": items,
        "stats": {"total": len(items), "categories": analytics.category_counts(items)},
    }


@router.patch("/feedback/{feedback_id}")
async def update_feedback(
    feedback_id: str,
    request: FeedbackUpdate,
    feedback: FeedbackRepoDep,
    admin: AdminUser = Depends(require_permission(Permission.MANAGE_FEEDBACK)),
):
    item = await feedback.get_by_id(feedback_id)
    if item is None:
        raise NotFoundError(f"Feedback {feedback_id} not found", table="user_feedback")
    await feedback.update_fields(item, {"archived": request.archived})
    return {"success": True, "archived": request.archived}


@router.delete("/feedback/{feedback_id}")
async def delete_feedback(
    feedback_id: str,
    feedback: FeedbackRepoDep,
    admin: AdminUser = Depends(require_permission(Permission.MANAGE_FEEDBACK)),
):
    if not await feedback.delete(feedback_id):
        raise NotFoundError(f"Feedback {feedback_id} not found", table="user_feedback")
    return {"success": True}


# =============================================================================
# Account deletion requests
# =============================================================================

@router.get("/deletion-requests")
async def list_deletion_requests(
    requests: DeletionRequestRepoDep,
    admin: AdminUser = Depends(require_permission(Permission.VIEW_DELETIONS)),
    status: Optional[str] = Query(default=None),
):
    items = await requests.list_by_status(status if status and status != "all" else None)
    counts = await requests.status_counts()
    return {
        "requests": items,
        "stats": {s.value: counts.get(s.value, 0) for s in DeletionStatus},
    }


@router.patch("/deletion-requests/{request_id}")
async def process_deletion_request(
    request_id: str,
    body: DeletionRequestUpdate,
    requests: DeletionRequestRepoDep,
    admin: AdminUser = Depends(require_permission(Permission.PROCESS_DELETIONS)),
):
    """Record a super admin's decision on a deletion request."""
    status = body.validated_status()
    item = await requests.get_by_id(request_id)
    if item is None:
        raise NotFoundError(
            f"Deletion request {request_id} not found", table="account_deletion_requests"
        )

    updated = await requests.process(
        item,
        status=status.value,
        admin_note=body.trimmed_note(),
        processed_by=admin.id,
        processed_by_email=admin.email,
        now=datetime.now(timezone.utc),
    )
    logger.info(f"Deletion request {request_id} set to {status.value} by {admin.id}")
    return {"request": updated}
