# src/services/api_client.py
"""Chatbot transport: proxy function or Gemini directly."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import requests

from services.log import get_logger
from services.settings import CHATBOT_ENDPOINT, ApiConfig

logger = get_logger(__name__)

GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta/models/gemini-2.5-flash:generateContent"

GENERATION_CONFIG = {
    "temperature": 0.7,
    "topK": 40,
    "topP": 0.95,
    "maxOutputTokens": 2048,
}


class ChatbotError(Exception):
    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


def gemini_payload(message: str) -> Dict[str, Any]:
    return {
        "contents": [{"parts": [{"text": message}]}],
        "generationConfig": dict(GENERATION_CONFIG),
    }


def extract_text(data: Any) -> str:
    """candidates[0].content.parts[0].text, or ChatbotError."""
    try:
        text = data["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        text = None
    if not isinstance(text, str):
        raise ChatbotError("Invalid API response structure - missing text content")
    return text


def call_gemini(api_key: str, message: str, session=None, timeout: float = 30) -> Dict[str, Any]:
    http = session or requests
    resp = http.post(
        GEMINI_URL,
        params={"key": api_key},
        json=gemini_payload(message),
        headers={"Content-Type": "application/json"},
        timeout=timeout,
    )
    if not resp.ok:
        raise ChatbotError(f"Direct Gemini API error: {resp.status_code}", status=resp.status_code)
    return resp.json()


class ChatbotClient:
    def __init__(self, config: ApiConfig, session: Optional[requests.Session] = None, timeout: float = 30):
        self.config = config
        self.session = session or requests.Session()
        self.timeout = timeout

    def call(self, message: str, history: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
        if self.config.use_proxy:
            resp = self.session.post(
                self.config.endpoint_url(CHATBOT_ENDPOINT),
                json={"message": message, "conversationHistory": history or []},
                timeout=self.timeout,
            )
            if not resp.ok:
                logger.error("Chatbot API error %s: %s", resp.status_code, resp.text)
                raise ChatbotError(f"Chatbot API error: {resp.status_code} - {resp.text}", status=resp.status_code)
            return resp.json()

        if not self.config.gemini_key:
            raise ChatbotError("No API key available for direct calls")
        return call_gemini(self.config.gemini_key, message, session=self.session, timeout=self.timeout)
