"""
Admin Roles and Permissions

Closed role enumeration and the capability set each role holds.
"""

from enum import Enum
from typing import Optional


class AdminRole(str, Enum):
    """Roles stored in the admins table."""
    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    SUPPORT = "support"


class Permission(str, Enum):
    """Capabilities checked by admin routes."""
    VIEW_DASHBOARD = "view_dashboard"
    VIEW_USERS = "view_users"
    EDIT_USERS = "edit_users"
    AWARD_BONUSES = "award_bonuses"
    VIEW_COSTS = "view_costs"
    MANAGE_WAITLIST = "manage_waitlist"
    MANAGE_EMAIL = "manage_email"
    MANAGE_COUPONS = "manage_coupons"
    MANAGE_FEEDBACK = "manage_feedback"
    VIEW_DELETIONS = "view_deletions"
    PROCESS_DELETIONS = "process_deletions"


ROLE_PERMISSIONS: dict[AdminRole, frozenset[Permission]] = {
    AdminRole.SUPER_ADMIN: frozenset(Permission),
    AdminRole.ADMIN: frozenset(Permission) - {Permission.PROCESS_DELETIONS},
    AdminRole.SUPPORT: frozenset(Permission) - {
        Permission.AWARD_BONUSES,
        Permission.EDIT_USERS,
        Permission.VIEW_COSTS,
        Permission.PROCESS_DELETIONS,
    },
}


def has_permission(role: Optional[AdminRole], permission: Permission) -> bool:
    """Whether ``role`` holds ``permission``. No role holds nothing."""
    if role is None:
        return False
    return permission in ROLE_PERMISSIONS.get(role, frozenset())


def parse_role(value: Optional[str]) -> Optional[AdminRole]:
    """Parse a stored role string; unknown values are treated as no role."""
    if not value:
        return None
    try:
        return AdminRole(value)
    except ValueError:
        return None
