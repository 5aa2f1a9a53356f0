# src/services/supabase_utils.py
"""
Supabase client with the service key, for the functions app only.
Browser-facing code never sees this key.

Aliases supported:
- SUPABASE_URL  or SUPABASE__URL
- SUPABASE_SERVICE_KEY  or SUPABASE__SUPABASE_SERVICE_KEY  or SUPABASE_SERVICE_ROLE_KEY
"""

from __future__ import annotations

from functools import lru_cache

from supabase import Client, create_client

from services.settings import sget


def _missing_msg(missing: list[str]) -> str:
    return (
        "Missing required secrets: "
        + ", ".join(missing)
        + "\nAdd them in Streamlit Cloud -> Settings -> Secrets (TOML) or export as env vars.\n"
        "Aliases supported for Supabase: SUPABASE__URL, SUPABASE__SUPABASE_SERVICE_KEY."
    )


def service_credentials() -> tuple[str, str]:
    url = sget("SUPABASE_URL", "SUPABASE__URL")
    key = sget("SUPABASE_SERVICE_KEY", "SUPABASE__SUPABASE_SERVICE_KEY", "SUPABASE_SERVICE_ROLE_KEY")

    missing = []
    if not url:
        missing.append("SUPABASE_URL")
    if not key:
        missing.append("SUPABASE_SERVICE_KEY")
    if missing:
        raise RuntimeError(_missing_msg(missing))
    return url, key


@lru_cache(maxsize=1)
def get_service_client() -> Client:
    """Create a cached Supabase client with the service key."""
    url, key = service_credentials()
    return create_client(url, key)
