# src/services/chatbot_analytics.py
from __future__ import annotations

import time
from typing import Any, Dict, MutableMapping, Optional, Tuple

import requests

from services.database import DatabaseClient
from services.identity import generate_id, get_or_create_session_id, get_or_create_visitor_id
from services.log import get_logger
from services.schemas import ChatEvent
from services.tracking import utc_now_iso

logger = get_logger(__name__)

CHAT_TABLE = "chatbot_analytics"


def classify_error(error: BaseException) -> Tuple[str, Optional[str]]:
    """Coarse error tag for analytics: (error_type, error_code)."""
    msg = str(error or "")
    status = getattr(error, "status", None)
    if isinstance(error, requests.Timeout) or "timeout" in msg.lower():
        return "timeout_error", None
    if isinstance(error, requests.ConnectionError) or "fetch" in msg or "Connection" in msg:
        return "network_error", None
    if "API key" in msg or "403" in msg:
        return "auth_error", None
    if "quota" in msg or "limit" in msg or "429" in msg:
        return "quota_error", None
    if status:
        return "http_error", str(status)
    return "api_error", None


class ChatbotAnalytics:
    def __init__(self, db: Optional[DatabaseClient], store: MutableMapping[str, str],
                 page_url: Optional[str] = None, user_agent: Optional[str] = None,
                 language: Optional[str] = None, timezone: Optional[str] = None):
        self.db = db
        self.disabled = db is None
        if self.disabled:
            logger.warning("Database not available for chatbot analytics")
        self.visitor_id = get_or_create_visitor_id(store)
        self.session_id = get_or_create_session_id(store)
        self.page_url = page_url
        self.user_agent = user_agent
        self.language = language
        self.timezone = timezone

        self.chat_session_id: Optional[str] = None
        self.message_count = 0
        self.session_start: Optional[float] = None
        self.is_session_active = False

    def session_duration(self) -> int:
        if not self.session_start:
            return 0
        return int(time.time() - self.session_start)

    def track_session_start(self) -> None:
        if self.disabled or self.is_session_active:
            return
        self.chat_session_id = "chat_" + generate_id()
        self.session_start = time.time()
        self.message_count = 0
        self.is_session_active = True
        self._send({"event_type": "chat_session_start", "message_count": 0, "session_duration": 0})
        logger.info("Chatbot session started: %s", self.chat_session_id)

    def track_message(self, sender: str, message: str, error_info: Optional[Dict[str, Any]] = None) -> None:
        if self.disabled:
            return
        if not self.is_session_active:
            self.track_session_start()
        self.message_count += 1
        event = {
            "event_type": "message",
            "message_sender": sender,
            "message_length": len(message or ""),
            "message_count": self.message_count,
            "session_duration": self.session_duration(),
        }
        if error_info:
            event.update(
                has_error=True,
                error_type=error_info.get("type"),
                error_message=error_info.get("message"),
                error_code=error_info.get("code"),
            )
        self._send(event)

    def track_session_end(self, reason: str = "user_action") -> None:
        if not self.is_session_active:
            return
        self._send({
            "event_type": "chat_session_end",
            "message_count": self.message_count,
            "session_duration": self.session_duration(),
            "end_reason": reason,
        })
        logger.info("Chatbot session ended: %s (%s messages, %s)",
                    self.chat_session_id, self.message_count, reason)
        self.is_session_active = False
        self.chat_session_id = None
        self.message_count = 0
        self.session_start = None

    def track_error(self, error_type: str, error_message: str, error_code: Optional[str] = None) -> None:
        if self.disabled:
            return
        if not self.is_session_active:
            self.track_session_start()
        self._send({
            "event_type": "error",
            "message_count": self.message_count,
            "session_duration": self.session_duration(),
            "has_error": True,
            "error_type": error_type,
            "error_message": error_message,
            "error_code": error_code,
        })

    def track_reset(self) -> None:
        self.track_session_end("chat_reset")

    def _send(self, event: Dict[str, Any]) -> None:
        if self.disabled:
            return
        row = ChatEvent(
            visitor_id=self.visitor_id,
            session_id=self.session_id,
            chat_session_id=self.chat_session_id,
            timestamp=utc_now_iso(),
            page_url=self.page_url,
            user_agent=self.user_agent,
            language=self.language,
            timezone=self.timezone,
            **event,
        )
        try:
            self.db.insert(CHAT_TABLE, row.model_dump())
        except Exception as e:
            logger.error("Error sending chatbot analytics: %s", e)
