# widgets/prices.py
from __future__ import annotations

import streamlit as st

from services.currency import CURRENCIES, CurrencySwitcher
from services.runtime import request_headers

_SWITCHER_KEY = "currency_switcher"

# (package, USD price, blurb)
PACKAGES = [
    ("Landing page", 499, "One responsive page, contact form, basic SEO."),
    ("Business website", 1299, "Up to 8 pages, CMS, analytics and chatbot."),
    ("Web application", 3499, "Custom features, database, admin dashboard."),
]


def _get_switcher() -> CurrencySwitcher:
    switcher = st.session_state.get(_SWITCHER_KEY)
    if switcher is None:
        switcher = CurrencySwitcher(st.session_state)
        switcher.init(locale=request_headers().get("Accept-Language"))
        st.session_state[_SWITCHER_KEY] = switcher
    return switcher


def render_prices() -> None:
    switcher = _get_switcher()

    labels = {"AUTO": "🌍 Auto", **{c: f"{i['flag']} {c}" for c, i in CURRENCIES.items()}}
    for col, code in zip(st.columns(len(labels)), labels):
        active = code == switcher.current
        if col.button(labels[code], key=f"currency_{code}", type="primary" if active else "secondary"):
            switcher.switch(code)
            st.rerun()

    cols = st.columns(len(PACKAGES))
    converted = "converted" if switcher.current != "USD" else ""
    for col, (name, usd, blurb) in zip(cols, PACKAGES):
        with col:
            st.markdown(f"**{name}**")
            st.markdown(f'<div class="pf-price {converted}">{switcher.display(usd)}</div>', unsafe_allow_html=True)
            st.caption(blurb)

    if switcher.current != "USD":
        st.caption("Prices are converted from USD at daily rates and are approximate. Invoices are issued in USD.")
