from app.infrastructure.auth.supabase_admin import (
    AuthUser,
    SupabaseAdminService,
    get_supabase_admin,
)

__all__ = ["AuthUser", "SupabaseAdminService", "get_supabase_admin"]
