# widgets/ui.py
from __future__ import annotations
import os
from contextlib import contextmanager

import streamlit as st

from functions.autostart_api import ensure_functions_api, local_target
from services.runtime import get_api_config

# ---- Theme tokens (edit here to restyle the whole app) -----------------------
THEME = {
    "font_family": "Inter, system-ui, -apple-system, Segoe UI, Roboto",
    "bg": "#F8FAFC",
    "panel": "#FFFFFF",
    "primary": "#2563EB",
    "accent": "#D97706",       # non-USD prices
    "star": "#FACC15",
    "text": "#0F172A",
    "muted": "#64748B",
    "radius": "12px",
}

PAGES = [
    ("Home.py", "Home"),
    ("pages/1_Feedback.py", "Feedback"),
    ("pages/2_Admin_Dashboard.py", "Admin Dashboard"),
]


def inject_styles() -> None:
    """Design tokens + chat bubbles, stars and cards."""
    st.markdown(
        f"""
        <style>
          :root {{
            --pf-bg: {THEME['bg']};
            --pf-panel: {THEME['panel']};
            --pf-primary: {THEME['primary']};
            --pf-accent: {THEME['accent']};
            --pf-star: {THEME['star']};
            --pf-text: {THEME['text']};
            --pf-muted: {THEME['muted']};
            --pf-radius: {THEME['radius']};
            --pf-font: {THEME['font_family']};
          }}
          html, body, [data-testid="stAppViewContainer"] {{
            background: var(--pf-bg) !important;
            color: var(--pf-text);
            font-family: var(--pf-font);
          }}
          .pf-card-header {{ font-weight: 700; margin: .15rem 0 .35rem; }}
          .pf-card-sub {{ color: var(--pf-muted); font-size:.95rem; margin-top:-.2rem; margin-bottom:.35rem; }}

          .pf-bubble {{ border-radius: var(--pf-radius); padding:.55rem .8rem; margin:.25rem 0; max-width: 85%; }}
          .pf-bubble.user {{ background: var(--pf-primary); color:#fff; margin-left:auto; }}
          .pf-bubble.assistant {{ background: var(--pf-panel); border:1px solid #E2E8F0; }}
          .pf-status {{ font-size:.8rem; color: var(--pf-muted); }}

          .star.full, .star .fill {{ color: var(--pf-star); }}
          .star.empty, .star .empty {{ color: #D1D5DB; }}

          .pf-price {{ font-size:1.6rem; font-weight:700; }}
          .pf-price.converted {{ color: var(--pf-accent); font-weight:600; }}
        </style>
        """,
        unsafe_allow_html=True,
    )


@contextmanager
def card(title: str, subtitle: str | None = None, *, border: bool = True):
    """Consistent panel used across pages."""
    with st.container(border=border):
        st.markdown(f'<div class="pf-card-header">{title}</div>', unsafe_allow_html=True)
        if subtitle:
            st.markdown(f'<div class="pf-card-sub">{subtitle}</div>', unsafe_allow_html=True)
        yield


def render_sidebar(active: str) -> None:
    with st.sidebar:
        for path, label in PAGES:
            st.page_link(path, label=label, disabled=(active == label))


def page_setup(active: str, page_title: str = "Web Design & Development") -> None:
    st.set_page_config(page_title=page_title, page_icon="💻", layout="centered")
    inject_styles()
    render_sidebar(active)

    # local proxy mode pointed at this machine: run the functions app next to Streamlit
    config = get_api_config()
    target = local_target(config.proxy_url) if config.use_proxy else None
    if target:
        info = ensure_functions_api(host=target[0], port=target[1])
        if os.getenv("FUNCTIONS_API_SHOW_STATUS", "0").lower() in ("1", "true", "yes"):
            st.sidebar.caption(f"Functions: {info['status']} → {info['url'] or 'disabled'}")
