# src/services/tracking.py
from __future__ import annotations

import re
import time
from datetime import datetime, timezone
from typing import Any, Dict, MutableMapping, Optional

from services.database import DatabaseClient
from services.identity import get_or_create_session_id, get_or_create_visitor_id
from services.log import get_logger
from services.schemas import PageView

logger = get_logger(__name__)

PAGE_TABLE = "page_analytics"
TIME_ON_PAGE_KEY = "dc_time_on_page"

BOT_PATTERNS = (
    "googlebot", "bingbot", "slurp", "duckduckbot", "baiduspider",
    "yandexbot", "facebookexternalhit", "twitterbot", "linkedinbot",
    "whatsapp", "telegram", "crawler", "spider", "bot",
)

_MOBILE_RE = re.compile(r"Android|webOS|iPhone|iPad|iPod|BlackBerry|IEMobile|Opera Mini", re.I)


def detect_bot(user_agent: Optional[str]) -> bool:
    ua = (user_agent or "").lower()
    return any(p in ua for p in BOT_PATTERNS)


def is_mobile(user_agent: Optional[str]) -> bool:
    return bool(_MOBILE_RE.search(user_agent or ""))


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class AnalyticsTracker:
    """
    Page-view collector. Best effort: a failed insert is logged and dropped,
    a broken setup disables the tracker.
    """

    def __init__(self, db: Optional[DatabaseClient], store: MutableMapping[str, str], user_agent: str = ""):
        self.db = db
        self.store = store
        self.user_agent = user_agent or ""
        self.start_time = time.time()
        self.is_bot = detect_bot(self.user_agent)
        self.disabled = db is None
        try:
            self.visitor_id = get_or_create_visitor_id(store)
            self.session_id = get_or_create_session_id(store)
        except Exception as e:
            logger.warning("Analytics tracker initialization failed: %s", e)
            self.visitor_id = self.session_id = ""
            self.disabled = True

    def build_page_view(
        self,
        page_url: str,
        page_title: str = "",
        referrer: Optional[str] = None,
        device: Optional[Dict[str, Any]] = None,
    ) -> PageView:
        device = device or {}
        return PageView(
            page_url=page_url,
            page_title=page_title,
            visitor_id=self.visitor_id,
            session_id=self.session_id,
            referrer=referrer or None,
            is_bot=self.is_bot,
            timestamp=utc_now_iso(),
            screen_width=device.get("screen_width"),
            screen_height=device.get("screen_height"),
            viewport_width=device.get("viewport_width"),
            viewport_height=device.get("viewport_height"),
            language=device.get("language") or "unknown",
            timezone=device.get("timezone") or "unknown",
            is_mobile=is_mobile(self.user_agent),
            user_agent=self.user_agent,
        )

    def track_page_view(self, page_url: str, page_title: str = "", referrer: Optional[str] = None,
                        device: Optional[Dict[str, Any]] = None) -> bool:
        """Returns True when a row was written."""
        if self.disabled or self.is_bot:
            return False
        row = self.build_page_view(page_url, page_title, referrer, device)
        try:
            self.db.insert(PAGE_TABLE, row.model_dump())
            return True
        except Exception as e:
            logger.warning("Analytics request failed: %s", e)
            return False

    def time_on_page(self) -> int:
        seconds = round(time.time() - self.start_time)
        self.store[TIME_ON_PAGE_KEY] = str(seconds)
        return seconds


def log_once_per_page(page_name: str, page_url: Optional[str] = None, extra_fields: Optional[Dict[str, Any]] = None):
    """
    Logs a visit only once per Streamlit session for a specific page.
    Prevents repeated inserts during Streamlit reruns.
    """
    import streamlit as st
    from services.runtime import get_database, request_headers

    visit_key = f"visited_{page_name}"
    if st.session_state.get(visit_key):
        return
    st.session_state[visit_key] = True

    headers = request_headers()
    tracker = AnalyticsTracker(get_database(), st.session_state, user_agent=headers.get("User-Agent", ""))
    host = headers.get("Host", "")
    device = {"language": (headers.get("Accept-Language") or "unknown").split(",")[0]}
    if extra_fields:
        device.update(extra_fields)
    tracker.track_page_view(
        page_url=page_url or f"https://{host}/{page_name}",
        page_title=page_name,
        referrer=headers.get("Referer"),
        device=device,
    )
