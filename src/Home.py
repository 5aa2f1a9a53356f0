import streamlit as st

from services.tracking import log_once_per_page
from widgets.chat import render_chatbot
from widgets.prices import render_prices
from widgets.rating import render_quick_rating, render_rating_summary
from widgets.ui import card, page_setup

page_setup("Home")
log_once_per_page("Home")

st.title("Web Design & Development")
st.caption("Fast, accessible websites for small businesses and freelancers.")
render_rating_summary()

with card("Pricing", "Fixed-price packages. Pick your currency."):
    render_prices()

with card("FAQ assistant", "Ask anything about services, pricing or timelines."):
    render_chatbot()

render_quick_rating()

st.page_link("pages/1_Feedback.py", label="Worked with me? Leave detailed feedback →")
