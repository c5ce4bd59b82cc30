"""
Supabase client construction.
Clients are built from Settings at startup and handed to whoever needs them.
"""

from typing import Optional

from supabase import Client, create_client

from portal.config import Settings


def create_user_client(settings: Settings) -> Optional[Client]:
    """Client for user-level operations (anon key + RLS), used to verify tokens."""
    if not settings.supabase_url or not settings.supabase_key:
        return None
    return create_client(settings.supabase_url, settings.supabase_key)


def create_admin_client(settings: Settings) -> Optional[Client]:
    """Admin client for service-level operations (bypasses RLS)."""
    if not settings.supabase_url or not settings.supabase_service_key:
        return None
    return create_client(settings.supabase_url, settings.supabase_service_key)
