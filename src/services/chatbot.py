# src/services/chatbot.py
"""
FAQ chatbot session: linear history in the client store, LLM call through
ChatbotClient, connection status and analytics side effects.
"""

from __future__ import annotations

import html
import json
import re
from typing import Any, Dict, List, MutableMapping, Optional

from services.api_client import ChatbotClient, extract_text
from services.chatbot_analytics import ChatbotAnalytics, classify_error
from services.log import get_logger
from services.tracking import utc_now_iso

logger = get_logger(__name__)

HISTORY_KEY = "faq_chatbot_conversation"

DEFAULT_SYSTEM_PROMPT = (
    "You are a friendly FAQ assistant for a freelance web developer's portfolio site. "
    "Answer questions about services, pricing, timelines and process. "
    "Keep answers to two or three sentences and reply in the user's language."
)

WELCOME_MESSAGE = (
    "Hi! I'm here to help answer questions about web design and development services. "
    "Feel free to ask about pricing, services, project timelines, or anything else!"
)

CHECKING, ONLINE, OFFLINE = "checking", "online", "offline"

_MD_RULES = [
    (re.compile(r"```([\s\S]*?)```"), r"<pre><code>\1</code></pre>"),
    (re.compile(r"`([^`]+)`"), r"<code>\1</code>"),
    (re.compile(r"\*\*\*(.+?)\*\*\*"), r"<strong><em>\1</em></strong>"),
    (re.compile(r"\*\*(.+?)\*\*"), r"<strong>\1</strong>"),
    (re.compile(r"\*(.+?)\*"), r"<em>\1</em>"),
    (re.compile(r"___(.+?)___"), r"<strong><em>\1</em></strong>"),
    (re.compile(r"__(.+?)__"), r"<strong>\1</strong>"),
    (re.compile(r"_(.+?)_"), r"<em>\1</em>"),
    (re.compile(r"~~(.+?)~~"), r"<del>\1</del>"),
    (
        re.compile(r"\[([^\]]+)\]\(((?:https?://|mailto:)[^)\s]+)\)"),
        r'<a href="\2" target="_blank" rel="noopener noreferrer">\1</a>',
    ),
    (re.compile(r"\n"), "<br>"),
]


def parse_markdown(text: str) -> str:
    """Small regex markdown renderer for chat bubbles. Rules apply in order to the escaped text."""
    out = html.escape(text or "")
    for pattern, repl in _MD_RULES:
        out = pattern.sub(repl, out)
    return out


class FAQChatbot:
    def __init__(
        self,
        client: ChatbotClient,
        store: MutableMapping[str, str],
        analytics: Optional[ChatbotAnalytics] = None,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        contact_email: Optional[str] = None,
    ):
        self.client = client
        self.store = store
        self.analytics = analytics
        self.system_prompt = system_prompt
        self.contact_email = contact_email
        self.connection_status = CHECKING
        self.is_typing = False
        self.history: List[Dict[str, Any]] = self.load_history()

    # ---------- history ----------
    def load_history(self) -> List[Dict[str, Any]]:
        raw = self.store.get(HISTORY_KEY)
        if not raw:
            return []
        try:
            data = json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.error("Failed to load conversation history: %s", e)
            return []
        return data if isinstance(data, list) else []

    def save_history(self) -> None:
        self.store[HISTORY_KEY] = json.dumps(self.history)

    def add_message(self, sender: str, message: str) -> Dict[str, Any]:
        entry = {"sender": sender, "message": message, "timestamp": utc_now_iso()}
        self.history.append(entry)
        self.save_history()
        return entry

    def clear_history(self) -> None:
        self.store.pop(HISTORY_KEY, None)
        self.history = []

    # ---------- LLM ----------
    @property
    def fallback_message(self) -> str:
        msg = "I'm sorry, I'm having trouble connecting right now. Please try again later"
        if self.contact_email:
            return f"{msg} or reach out directly at {self.contact_email}."
        return msg + "."

    def build_prompt(self, user_message: str) -> str:
        return f"{self.system_prompt}\n\nUser: {user_message}\nAssistant:"

    def ask(self, user_message: str) -> str:
        try:
            data = self.client.call(self.build_prompt(user_message), self.history)
            return extract_text(data)
        except Exception:
            if self.connection_status == ONLINE:
                self.connection_status = OFFLINE
                logger.info("Connection status updated to offline due to API failure")
            raise

    def send(self, message: str) -> Optional[str]:
        """Handle one user turn. Returns the assistant reply (or the apology on failure)."""
        message = (message or "").strip()
        if not message or self.is_typing:
            return None

        if self.analytics:
            self.analytics.track_message("user", message)
        self.add_message("user", message)

        self.is_typing = True
        try:
            reply = self.ask(message)
        except Exception as e:
            logger.error("Chatbot API error: %s", e)
            self.connection_status = OFFLINE
            reply = self.fallback_message
            if self.analytics:
                error_type, error_code = classify_error(e)
                error_message = str(e) or "Unknown API error"
                self.analytics.track_error(error_type, error_message, error_code)
                self.analytics.track_message(
                    "assistant", reply,
                    error_info={"type": error_type, "message": error_message, "code": error_code},
                )
        else:
            if self.connection_status == OFFLINE:
                logger.info("Chatbot connection restored")
            self.connection_status = ONLINE
            if self.analytics:
                self.analytics.track_message("assistant", reply)
        finally:
            self.is_typing = False

        self.add_message("assistant", reply)
        return reply

    def test_connection(self) -> str:
        self.connection_status = CHECKING
        try:
            data = self.client.call(self.build_prompt("test"), [])
            extract_text(data)
            self.connection_status = ONLINE
        except Exception as e:
            logger.error("Chatbot connection test failed: %s", e)
            self.connection_status = OFFLINE
        return self.connection_status

    def reset(self) -> None:
        if self.analytics:
            self.analytics.track_reset()
        self.clear_history()
        self.add_message("assistant", WELCOME_MESSAGE)
