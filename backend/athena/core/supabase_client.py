from typing import Optional
import logging
from supabase import create_client, Client
from athena.core.config import (
    SUPABASE_URL,
    SUPABASE_ANON_KEY,
    SUPABASE_SERVICE_ROLE_KEY,
)


_logger = logging.getLogger(__name__)
_service_client: Optional[Client] = None
_anon_client: Optional[Client] = None


def get_supabase_service() -> Client:
    """Service client using service role key (bypasses RLS). For admin/background work only."""
    global _service_client
    if _service_client is not None:
        return _service_client

    if not SUPABASE_URL or not SUPABASE_SERVICE_ROLE_KEY:
        raise RuntimeError("Supabase not configured. Set SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY in env.")

    _service_client = create_client(SUPABASE_URL, SUPABASE_SERVICE_ROLE_KEY)
    _logger.info("Supabase service client initialized (service role)")
    return _service_client


def get_supabase_anon() -> Client:
    """Anonymous client for public reads (pool search, community patterns)."""
    global _anon_client
    if _anon_client is not None:
        return _anon_client

    if not SUPABASE_URL or not SUPABASE_ANON_KEY:
        raise RuntimeError("Supabase not configured. Set SUPABASE_URL and SUPABASE_ANON_KEY in env.")

    _anon_client = create_client(SUPABASE_URL, SUPABASE_ANON_KEY)
    return _anon_client


def get_supabase_for_user(jwt_token: str) -> Client:
    """Creates a per-request client authenticated as the user to enforce RLS."""
    if not SUPABASE_URL or not SUPABASE_ANON_KEY:
        raise RuntimeError("Supabase not configured. Set SUPABASE_URL and SUPABASE_ANON_KEY in env.")

    # Anon key + user JWT so Row Level Security applies
    client = create_client(SUPABASE_URL, SUPABASE_ANON_KEY)
    client.postgrest.auth(jwt_token)
    return client
