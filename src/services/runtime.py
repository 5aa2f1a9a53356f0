# src/services/runtime.py
"""Per-process singletons for the Streamlit pages."""

from __future__ import annotations

from typing import Dict, Optional

import streamlit as st

from services.database import DatabaseClient, DatabaseError, build_database
from services.log import get_logger
from services.settings import ApiConfig, load_api_config, load_database_config

logger = get_logger(__name__)


def request_headers() -> Dict[str, str]:
    try:
        return dict(st.context.headers)
    except Exception:
        # bare mode / tests, no request context
        return {}


def request_host() -> str:
    return request_headers().get("Host", "")


@st.cache_resource(show_spinner=False)
def _api_config_for(host: str) -> ApiConfig:
    return load_api_config(hostname=host.split(":")[0] or None)


def get_api_config() -> ApiConfig:
    return _api_config_for(request_host())


@st.cache_resource(show_spinner=False)
def _database_for(host: str) -> Optional[DatabaseClient]:
    try:
        return build_database(load_database_config(), _api_config_for(host))
    except DatabaseError as e:
        logger.warning("Database disabled: %s", e)
        return None


def get_database() -> Optional[DatabaseClient]:
    """Shared database client, None when the database is off or misconfigured."""
    return _database_for(request_host())
