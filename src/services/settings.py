# src/services/settings.py
"""
Secrets helper + environment resolver.

Resolution order for secrets:
1) st.secrets (Streamlit Cloud / local .streamlit/secrets.toml)
2) Environment variables (.env, Netlify/Docker env)

Aliases supported:
- SUPABASE_URL       or SUPABASE__URL
- SUPABASE_ANON_KEY  or SUPABASE_KEY
- GEMINI_API_KEY     or GEMINI__API_KEY
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

import streamlit as st
from dotenv import load_dotenv

from services.log import get_logger

load_dotenv()

logger = get_logger(__name__)

# Placeholder meaning "credentials live behind the proxy"
SECURE_PROXY_ENDPOINT = "SECURE_PROXY_ENDPOINT"

DEFAULT_PROXY_URL = "https://radiant-dodol-0c0bca.netlify.app"

CHATBOT_ENDPOINT = "/.netlify/functions/chatbot"
DATABASE_ENDPOINT = "/.netlify/functions/database"
ADMIN_AUTH_ENDPOINT = "/.netlify/functions/admin-auth"


def sget(*names: str) -> str | None:
    """
    Return the first non-empty value among names,
    checking Streamlit secrets first, then environment.
    """
    for n in names:
        try:
            if hasattr(st, "secrets") and n in st.secrets:
                v = st.secrets[n]
                if v:
                    return str(v)
        except Exception:
            # no secrets.toml outside Streamlit
            pass
        v = os.getenv(n)
        if v:
            return v
    return None


def _lookup(env: Optional[Mapping[str, str]], *names: str) -> str | None:
    if env is None:
        return sget(*names)
    for n in names:
        v = env.get(n)
        if v:
            return str(v)
    return None


@dataclass
class ApiConfig:
    mode: str
    use_proxy: bool
    proxy_url: Optional[str] = None
    gemini_key: Optional[str] = None
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None

    def endpoint_url(self, endpoint: str) -> Optional[str]:
        """Full proxy URL for an endpoint, None in direct mode."""
        if not self.use_proxy:
            return None
        return f"{(self.proxy_url or '').rstrip('/')}{endpoint}"


@dataclass
class DatabaseConfig:
    provider: str = "supabase"
    enabled: bool = True
    supabase_url: str = SECURE_PROXY_ENDPOINT
    supabase_key: str = SECURE_PROXY_ENDPOINT


def is_local_environment(hostname: Optional[str], protocol: str = "https:") -> bool:
    if protocol == "file:":
        return True
    host = (hostname or "").split(":")[0].lower()
    return (
        host in ("localhost", "127.0.0.1", "")
        or host.startswith("192.168.")
        or host.startswith("10.")
        or "local" in host
    )


def _proxy_config(mode: str, proxy_url: Optional[str]) -> ApiConfig:
    return ApiConfig(mode=mode, use_proxy=True, proxy_url=proxy_url or DEFAULT_PROXY_URL)


def _resolve(hostname: Optional[str], protocol: str, env: Optional[Mapping[str, str]]) -> ApiConfig:
    if not is_local_environment(hostname, protocol):
        return _proxy_config("production", _lookup(env, "NETLIFY_PROXY_URL"))

    mode = (_lookup(env, "ENVIRONMENT_MODE") or "").lower()
    if mode == "proxy":
        return _proxy_config("local-proxy", _lookup(env, "NETLIFY_PROXY_URL"))

    if mode == "local":
        gemini_key = _lookup(env, "GEMINI_API_KEY", "GEMINI__API_KEY")
        supabase_url = _lookup(env, "SUPABASE_URL", "SUPABASE__URL")
        supabase_key = _lookup(env, "SUPABASE_ANON_KEY", "SUPABASE_KEY")
        if gemini_key and supabase_url and supabase_key:
            return ApiConfig(
                mode="local-direct",
                use_proxy=False,
                gemini_key=gemini_key,
                supabase_url=supabase_url,
                supabase_key=supabase_key,
            )
        logger.warning("ENVIRONMENT_MODE=local but credentials are incomplete, using proxy")

    return _proxy_config("local-proxy", None)


def load_api_config(
    hostname: Optional[str] = None,
    protocol: str = "https:",
    env: Optional[Mapping[str, str]] = None,
    origin: Optional[str] = None,
) -> ApiConfig:
    """Pick direct-API or proxy mode for the current host."""
    try:
        config = _resolve(hostname, protocol, env)
    except Exception as e:
        logger.warning("API configuration failed, using fallback: %s", e)
        config = ApiConfig(mode="fallback", use_proxy=True, proxy_url=origin or DEFAULT_PROXY_URL)
    logger.info("API configuration: %s mode", config.mode)
    return config


def _as_bool(value: Optional[str], default: bool) -> bool:
    if value is None:
        return default
    return str(value).strip().lower() in ("1", "true", "yes", "y", "on")


def load_database_config(env: Optional[Mapping[str, str]] = None) -> DatabaseConfig:
    return DatabaseConfig(
        provider=(_lookup(env, "DATABASE_PROVIDER") or "supabase").lower(),
        enabled=_as_bool(_lookup(env, "DATABASE_ENABLED"), True),
        supabase_url=_lookup(env, "DATABASE_SUPABASE_URL") or SECURE_PROXY_ENDPOINT,
        supabase_key=_lookup(env, "DATABASE_SUPABASE_KEY") or SECURE_PROXY_ENDPOINT,
    )


def is_proxy_mode(config: Optional[DatabaseConfig]) -> bool:
    if not config or not config.enabled or config.provider != "supabase":
        return False
    return (
        config.supabase_url == SECURE_PROXY_ENDPOINT
        or config.supabase_key == SECURE_PROXY_ENDPOINT
    )


def get_gemini_api_key(required: bool = True) -> str | None:
    """Returns Gemini key from secrets/env; raises if required and missing."""
    key = sget("GEMINI_API_KEY", "GEMINI__API_KEY")
    if required and not key:
        raise RuntimeError("Missing Gemini API key. Set GEMINI_API_KEY in secrets or env.")
    return key


def get_admin_jwt_secret(required: bool = True) -> str | None:
    key = sget("ADMIN_JWT_SECRET", "JWT_SECRET")
    if required and not key:
        raise RuntimeError("Missing ADMIN_JWT_SECRET. Set it in secrets or env.")
    return key
