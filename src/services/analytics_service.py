# src/services/analytics_service.py
"""
Dashboard aggregation over page_analytics / chatbot_analytics / feedback.

Rows are pulled once per request, bounded to [start, end] on the timestamp
column by the query itself and checked again in memory, so proxy and direct
transports give the same numbers. Local-development traffic is dropped before
anything is counted.
"""

from __future__ import annotations

import math
import time
from collections import Counter, OrderedDict, defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Union
from urllib.parse import urlparse

import pandas as pd

from services.chatbot_analytics import CHAT_TABLE
from services.database import DatabaseClient
from services.feedback import FeedbackService
from services.log import get_logger
from services.tracking import PAGE_TABLE

logger = get_logger(__name__)

CACHE_TTL_SECONDS = 5 * 60
CACHE_MAX_ENTRIES = 50
DEFAULT_DAYS = 30
DEFAULT_SITE_OWNER = "David Cit"

LOCAL_DEV_MARKERS = (
    "/C:/",
    "%C4%8D",
    "Ove%C4%8Dky",
    "localhost",
    "127.0.0.1",
    "/work/webpages/",
    "daiviis.github.io-master",
)

SOURCE_RULES = (
    (("google",), "Google"),
    (("bing",), "Bing"),
    (("yahoo",), "Yahoo"),
    (("duckduckgo",), "DuckDuckGo"),
    (("facebook",), "Facebook"),
    (("twitter", "t.co"), "Twitter"),
    (("linkedin",), "LinkedIn"),
    (("github",), "GitHub"),
)

PAGE_COLUMNS = (
    "id, visitor_id, session_id, timestamp, is_bot, page_url, page_title, "
    "referrer, is_mobile, screen_width, screen_height"
)
CHAT_COLUMNS = (
    "chat_session_id, visitor_id, event_type, message_sender, message_count, "
    "session_duration, has_error, error_type, timestamp"
)

DateLike = Union[str, datetime, None]


# ---------- helpers ----------
def _round(x: float) -> int:
    """Half-up rounding for percentages and durations."""
    return int(math.floor(x + 0.5))


def parse_timestamp(value: DateLike) -> Optional[datetime]:
    """Any ISO-ish timestamp to an aware UTC datetime, None if unparseable."""
    if value is None or value == "":
        return None
    try:
        ts = pd.Timestamp(value)
    except (ValueError, TypeError):
        return None
    if pd.isna(ts):
        return None
    ts = ts.tz_localize("UTC") if ts.tzinfo is None else ts.tz_convert("UTC")
    return ts.to_pydatetime()


def is_local_development_url(url: Optional[str]) -> bool:
    if not url:
        return False
    if url.startswith("file://"):
        return True
    return any(marker in url for marker in LOCAL_DEV_MARKERS)


def filter_local_development_data(rows: Any) -> Any:
    """Drop rows with any string field pointing at a dev machine. Non-lists pass through."""
    if not isinstance(rows, list):
        return rows
    return [
        row for row in rows
        if not any(isinstance(v, str) and is_local_development_url(v) for v in row.values())
    ]


def clean_url(url: str) -> str:
    parsed = urlparse(url or "")
    if not parsed.scheme or not (parsed.netloc or parsed.scheme == "file"):
        return url
    return "/index.html" if parsed.path in ("", "/") else parsed.path


def clean_page_title(title: str, owner: str = DEFAULT_SITE_OWNER) -> str:
    return (title or "").replace(f" - {owner}", "").replace(f"{owner} - ", "").strip() or "Home"


def categorize_traffic_source(referrer: Optional[str]) -> str:
    if not referrer or is_local_development_url(referrer):
        return "Direct"
    try:
        domain = (urlparse(referrer).hostname or "").lower()
    except ValueError:
        return "Unknown"
    if not domain:
        return "Unknown"
    for needles, name in SOURCE_RULES:
        if any(n in domain for n in needles):
            return name
    return domain


def _bucket(dt: datetime, interval: str) -> str:
    if interval == "hour":
        return dt.strftime("%Y-%m-%dT%H:00:00Z")
    if interval == "week":
        # weeks start on Sunday
        start = dt - timedelta(days=(dt.weekday() + 1) % 7)
        return start.strftime("%Y-%m-%d")
    return dt.strftime("%Y-%m-%d")


def group_by_time_interval(rows: Iterable[Dict[str, Any]], interval: str = "day",
                           value_name: str = "views") -> List[Dict[str, Any]]:
    counts: Counter = Counter()
    for row in rows:
        dt = parse_timestamp(row.get("timestamp"))
        if dt is not None:
            counts[_bucket(dt, interval)] += 1
    return [{"date": k, value_name: counts[k]} for k in sorted(counts)]


def calculate_bounce_rate(rows: Iterable[Dict[str, Any]]) -> int:
    """Percent of sessions with exactly one page view."""
    per_session = Counter(row.get("session_id") for row in rows)
    if not per_session:
        return 0
    single = sum(1 for n in per_session.values() if n == 1)
    return _round(single / len(per_session) * 100)


def calculate_avg_session_duration(rows: Iterable[Dict[str, Any]]) -> int:
    """Mean of last-minus-first view time (seconds) over sessions with two or more views."""
    spans: Dict[str, List[datetime]] = defaultdict(list)
    for row in rows:
        dt = parse_timestamp(row.get("timestamp"))
        if dt is not None:
            spans[row.get("session_id")].append(dt)
    durations = [(max(v) - min(v)).total_seconds() for v in spans.values() if len(v) > 1]
    return _round(sum(durations) / len(durations)) if durations else 0


def _ranked(counter: Counter, key: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
    return [{key: k, "count": n} for k, n in counter.most_common(limit)]


def empty_chatbot_stats() -> Dict[str, Any]:
    return {
        "total_chat_sessions": 0,
        "total_messages": 0,
        "user_messages": 0,
        "bot_messages": 0,
        "unique_chat_users": 0,
        "chat_usage_percentage": 0,
        "avg_session_duration": 0,
        "chat_sessions_over_time": [],
        "conversation_starters": 0,
        "error_statistics": {"total_errors": 0, "error_rate": 0, "top_error_types": []},
    }


# ---------- service ----------
class AnalyticsService:
    def __init__(self, db: DatabaseClient, site_owner: str = DEFAULT_SITE_OWNER,
                 clock: Callable[[], float] = time.time):
        self.db = db
        self.site_owner = site_owner
        self.clock = clock
        self._cache: "OrderedDict[tuple, tuple]" = OrderedDict()

    # ---------- cache ----------
    def _get_cached(self, key: tuple) -> Optional[Dict[str, Any]]:
        hit = self._cache.get(key)
        if hit and self.clock() - hit[0] < CACHE_TTL_SECONDS:
            return hit[1]
        return None

    def _set_cached(self, key: tuple, data: Dict[str, Any]) -> None:
        self._cache[key] = (self.clock(), data)
        while len(self._cache) > CACHE_MAX_ENTRIES:
            self._cache.popitem(last=False)

    def clear_cache(self) -> None:
        self._cache.clear()

    def get_analytics(self, start: DateLike = None, end: DateLike = None,
                      page_url: Optional[str] = None, group_by: str = "day") -> Dict[str, Any]:
        key = (str(start), str(end), page_url, group_by)
        cached = self._get_cached(key)
        if cached is not None:
            return cached
        data = self.fetch_analytics(start, end, page_url, group_by)
        self._set_cached(key, data)
        return data

    # ---------- fetch ----------
    def _window(self, start: DateLike, end: DateLike):
        end_dt = parse_timestamp(end) or datetime.fromtimestamp(self.clock(), tz=timezone.utc)
        start_dt = parse_timestamp(start) or end_dt - timedelta(days=DEFAULT_DAYS)
        return start_dt, end_dt

    @staticmethod
    def _in_window(rows: Sequence[Dict[str, Any]], start: datetime, end: datetime) -> List[Dict[str, Any]]:
        out = []
        for row in rows or []:
            dt = parse_timestamp(row.get("timestamp"))
            if dt is not None and start <= dt <= end:
                out.append(row)
        return out

    def page_rows(self, start: datetime, end: datetime) -> List[Dict[str, Any]]:
        rows = self.db.select(PAGE_TABLE, PAGE_COLUMNS, {"is_bot": False}, order="timestamp",
                              since=start.isoformat(), until=end.isoformat())
        rows = filter_local_development_data(self._in_window(rows, start, end))
        return sorted(rows, key=lambda r: parse_timestamp(r["timestamp"]))

    def chat_rows(self, start: datetime, end: datetime) -> List[Dict[str, Any]]:
        rows = self.db.select(CHAT_TABLE, CHAT_COLUMNS, order="timestamp",
                              since=start.isoformat(), until=end.isoformat())
        return self._in_window(rows, start, end)

    def fetch_analytics(self, start: DateLike = None, end: DateLike = None,
                        page_url: Optional[str] = None, group_by: str = "day") -> Dict[str, Any]:
        start_dt, end_dt = self._window(start, end)
        all_rows = self.page_rows(start_dt, end_dt)
        rows = [r for r in all_rows if r.get("page_url") == page_url] if page_url else all_rows

        return {
            "stats": self.total_stats(rows),
            "views_over_time": group_by_time_interval(rows, group_by),
            "top_pages": self.top_pages(all_rows),
            "traffic_sources": self.traffic_sources(rows),
            "device_breakdown": self.device_breakdown(rows),
            "visitor_flow": self.visitor_flow(all_rows),
            "chatbot": self.chatbot_analytics(start_dt, end_dt, all_rows),
            "feedback": self.feedback_summary(),
            "period": {"start_date": start_dt.isoformat(), "end_date": end_dt.isoformat()},
        }

    # ---------- page aggregations ----------
    @staticmethod
    def total_stats(rows: List[Dict[str, Any]]) -> Dict[str, Any]:
        return {
            "total_views": len(rows),
            "unique_visitors": len({r.get("visitor_id") for r in rows}),
            "unique_sessions": len({r.get("session_id") for r in rows}),
            "avg_session_duration": calculate_avg_session_duration(rows),
            "bounce_rate": calculate_bounce_rate(rows),
        }

    def top_pages(self, rows: List[Dict[str, Any]], limit: int = 10) -> List[Dict[str, Any]]:
        pages: Dict[str, Dict[str, Any]] = {}
        for row in rows:
            url = clean_url(row.get("page_url") or "")
            if url not in pages:
                pages[url] = {
                    "url": url,
                    "title": clean_page_title(row.get("page_title") or url, self.site_owner),
                    "views": 0,
                }
            pages[url]["views"] += 1
        return sorted(pages.values(), key=lambda p: p["views"], reverse=True)[:limit]

    @staticmethod
    def traffic_sources(rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return _ranked(Counter(categorize_traffic_source(r.get("referrer")) for r in rows), "source")

    @staticmethod
    def device_breakdown(rows: List[Dict[str, Any]]) -> Dict[str, Any]:
        devices = {"mobile": 0, "desktop": 0, "tablet": 0}
        resolutions: Counter = Counter()
        for row in rows:
            width = row.get("screen_width") or 0
            if row.get("is_mobile"):
                devices["tablet" if 768 <= width < 1024 else "mobile"] += 1
            else:
                devices["desktop"] += 1
            if row.get("screen_width") and row.get("screen_height"):
                resolutions[f"{row['screen_width']}x{row['screen_height']}"] += 1
        return {"devices": devices, "top_resolutions": _ranked(resolutions, "resolution", 5)}

    @staticmethod
    def visitor_flow(rows: List[Dict[str, Any]], limit: int = 10) -> List[Dict[str, Any]]:
        """Most common consecutive page pairs within a session. Rows must be time-ordered."""
        sessions: Dict[str, List[str]] = defaultdict(list)
        for row in rows:
            sessions[row.get("session_id")].append(clean_url(row.get("page_url") or ""))
        paths: Counter = Counter()
        for pages in sessions.values():
            for src, dst in zip(pages, pages[1:]):
                if is_local_development_url(src) or is_local_development_url(dst):
                    continue
                paths[f"{src} → {dst}"] += 1
        return _ranked(paths, "path", limit)

    # ---------- chatbot ----------
    def chatbot_analytics(self, start: datetime, end: datetime,
                          page_rows: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
        try:
            events = self.chat_rows(start, end)
        except Exception as e:
            logger.error("Error fetching chatbot analytics: %s", e)
            return empty_chatbot_stats()
        if page_rows is None:
            page_rows = self.page_rows(start, end)
        return summarize_chat_events(events, page_rows)

    # ---------- feedback ----------
    def feedback_summary(self) -> Optional[Dict[str, Any]]:
        try:
            return FeedbackService(self.db).analytics()
        except Exception as e:
            logger.error("Error loading feedback analytics: %s", e)
            return None


def summarize_chat_events(events: List[Dict[str, Any]], page_rows: List[Dict[str, Any]]) -> Dict[str, Any]:
    starts = [e for e in events if e.get("event_type") == "chat_session_start"]
    messages = [e for e in events if e.get("event_type") == "message"]
    ends = [e for e in events if e.get("event_type") == "chat_session_end"]
    errors = [e for e in events if e.get("has_error")]

    unique_chat_users = len({e.get("visitor_id") for e in starts})
    unique_visitors = len({r.get("visitor_id") for r in page_rows})
    durations = [e["session_duration"] for e in ends if (e.get("session_duration") or 0) > 0]

    total_messages = len(messages)
    error_types = Counter(e.get("error_type") or "unknown" for e in errors)

    return {
        "total_chat_sessions": len(starts),
        "total_messages": total_messages,
        "user_messages": sum(1 for m in messages if m.get("message_sender") == "user"),
        "bot_messages": sum(1 for m in messages if m.get("message_sender") == "assistant"),
        "unique_chat_users": unique_chat_users,
        "chat_usage_percentage": _round(unique_chat_users / unique_visitors * 100) if unique_visitors else 0,
        "avg_session_duration": _round(sum(durations) / len(durations)) if durations else 0,
        "chat_sessions_over_time": group_by_time_interval(starts, "day", value_name="sessions"),
        "conversation_starters": sum(
            1 for m in messages if m.get("message_sender") == "user" and m.get("message_count") == 1
        ),
        "error_statistics": {
            "total_errors": len(errors),
            "error_rate": _round(len(errors) / total_messages * 100) if total_messages else 0,
            "top_error_types": [{"type": t, "count": n} for t, n in error_types.most_common(5)],
        },
    }
