"""
Supabase Auth Admin Service

Read access to Supabase Auth users (email, provider, sign-in times) for
the admin dashboard. Uses the service-role key; never exposed to clients.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from fastapi import Depends
from supabase import Client, create_client
from supabase.lib.client_options import ClientOptions

from app.config.settings import Settings, get_settings
from app.infrastructure.exceptions import DependencyError


logger = logging.getLogger(__name__)


@dataclass
class AuthUser:
    """Subset of a Supabase Auth user record."""
    id: str
    email: Optional[str]
    created_at: Optional[datetime]
    last_sign_in_at: Optional[datetime]
    provider: str = "email"


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


def to_auth_user(raw: Any) -> AuthUser:
    """Normalize a gotrue User object (or dict) into an AuthUser."""
    get = raw.get if isinstance(raw, dict) else lambda key: getattr(raw, key, None)
    app_metadata = get("app_metadata") or {}
    return AuthUser(
        id=str(get("id")),
        email=get("email"),
        created_at=_parse_datetime(get("created_at")),
        last_sign_in_at=_parse_datetime(get("last_sign_in_at")),
        provider=app_metadata.get("provider") or "email",
    )


class SupabaseAdminService:
    """Lists auth users page by page through the admin API."""

    PAGE_SIZE = 1000

    def __init__(self, settings: Settings):
        self._url = settings.supabase_url
        self._key = settings.supabase_service_role_key
        self._client: Optional[Client] = None

    @property
    def client(self) -> Client:
        if self._client is None:
            options = ClientOptions(postgrest_client_timeout=30)
            self._client = create_client(self._url, self._key, options)
        return self._client

    async def list_users(self) -> list[AuthUser]:
        """All auth users, following pagination until a short page."""
        users: list[AuthUser] = []
        page = 1
        try:
            while True:
                batch = await asyncio.to_thread(
                    lambda: self.client.auth.admin.list_users(page=page, per_page=self.PAGE_SIZE)
                )
                users.extend(to_auth_user(u) for u in batch)
                if len(batch) < self.PAGE_SIZE:
                    break
                page += 1
        except Exception as e:
            logger.error(f"Failed to list auth users: {e}")
            raise DependencyError("Failed to list users", original_error=e)
        return users


def get_supabase_admin(settings: Settings = Depends(get_settings)) -> SupabaseAdminService:
    """Per-request SupabaseAdminService built from settings."""
    return SupabaseAdminService(settings)
