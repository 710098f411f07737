# supabase_client/config.py
from supabase import Client, create_client

from core.config import SUPABASE_ANON_KEY, SUPABASE_URL

_client = None


def is_supabase_configured() -> bool:
    return bool(SUPABASE_URL and SUPABASE_ANON_KEY)


def get_supabase_client() -> Client:
    """Return a cached Supabase client if credentials are set."""
    global _client
    if not is_supabase_configured():
        raise RuntimeError("Supabase credentials not set in environment variables.")
    if _client is None:
        _client = create_client(SUPABASE_URL, SUPABASE_ANON_KEY)
    return _client
