# widgets/chat.py
from __future__ import annotations

import html

import streamlit as st

from services.api_client import ChatbotClient
from services.chatbot import CHECKING, ONLINE, WELCOME_MESSAGE, FAQChatbot, parse_markdown
from services.chatbot_analytics import ChatbotAnalytics
from services.runtime import get_api_config, get_database, request_headers
from services.settings import sget

_BOT_KEY = "faq_bot"

_STATUS_LABEL = {CHECKING: "🟡 Connecting…", ONLINE: "🟢 Online"}


def _get_bot() -> FAQChatbot:
    bot = st.session_state.get(_BOT_KEY)
    if bot is None:
        headers = request_headers()
        analytics = ChatbotAnalytics(
            get_database(),
            st.session_state,
            page_url=f"https://{headers.get('Host', '')}/",
            user_agent=headers.get("User-Agent"),
            language=(headers.get("Accept-Language") or "").split(",")[0] or None,
        )
        bot = FAQChatbot(
            ChatbotClient(get_api_config()),
            st.session_state,
            analytics=analytics,
            contact_email=sget("CONTACT_EMAIL"),
        )
        if not bot.history:
            bot.add_message("assistant", WELCOME_MESSAGE)
        bot.test_connection()
        st.session_state[_BOT_KEY] = bot
    return bot


def _bubble(sender: str, message: str) -> None:
    # user text is escaped, assistant text goes through the markdown renderer
    body = html.escape(message) if sender == "user" else parse_markdown(message)
    st.markdown(f'<div class="pf-bubble {sender}">{body}</div>', unsafe_allow_html=True)


def render_chatbot() -> None:
    bot = _get_bot()

    top = st.columns([4, 1])
    top[0].markdown(
        f'<span class="pf-status">{_STATUS_LABEL.get(bot.connection_status, "🔴 Offline")}</span>',
        unsafe_allow_html=True,
    )
    if top[1].button("Reset", key="chat_reset"):
        bot.reset()
        st.rerun()

    for entry in bot.history:
        _bubble(entry["sender"], entry["message"])

    prompt = st.chat_input("Ask about pricing, services, timelines…")
    if prompt:
        with st.spinner("Typing…"):
            bot.send(prompt)
        st.rerun()
