# widgets/rating.py
from __future__ import annotations

import streamlit as st
import streamlit.components.v1 as components

from services.feedback import FeedbackError, FeedbackService, quick_rating, rating_label, store_local_history
from services.log import get_logger
from services.rich_snippets import json_ld_script, load_summary, stars_html
from services.runtime import get_database, request_headers

logger = get_logger(__name__)


def render_rating_summary() -> None:
    summary = load_summary(get_database())
    st.markdown(
        f"{stars_html(summary.rating_value)} "
        f"<b>{summary.rating_value:.1f}</b> "
        f'<span class="pf-card-sub">({summary.review_count} reviews)</span>',
        unsafe_allow_html=True,
    )
    components.html(json_ld_script(summary), height=0)


def render_quick_rating() -> None:
    """Collapsed star widget; submits an anonymous single-score review."""
    with st.expander("⭐ Rate your experience"):
        rating = st.feedback("stars", key="quick_rating_stars")
        stars = rating + 1 if rating is not None else 0
        st.caption(rating_label(stars))
        comment = st.text_area("Comment (optional)", max_chars=1000, key="quick_rating_comment")

        if st.button("Submit rating", key="quick_rating_submit", disabled=not stars):
            headers = request_headers()
            try:
                submission = quick_rating(
                    stars,
                    comment,
                    page_url=f"https://{headers.get('Host', '')}/",
                    user_agent=headers.get("User-Agent"),
                )
            except FeedbackError as e:
                st.warning(str(e))
                return
            try:
                FeedbackService(get_database()).save(submission)
            except Exception as e:
                logger.warning("Quick rating not saved: %s", e)
                st.error("Sorry, your rating could not be saved. Please try again later.")
                return
            store_local_history(st.session_state, submission)
            st.success("Thank you for your feedback!")
