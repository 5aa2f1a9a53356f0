# pages/1_Feedback.py
import streamlit as st

from services.feedback import (
    NO_REFERENCE,
    SHARE_THRESHOLD,
    FeedbackError,
    FeedbackForm,
    FeedbackService,
    customer_ref_from_params,
    mark_submitted,
    previous_submission,
    rating_label,
    store_local_history,
)
from services.log import get_logger
from services.runtime import get_database, request_headers
from services.tracking import log_once_per_page
from widgets.ui import card, page_setup

logger = get_logger(__name__)

page_setup("Feedback", page_title="Customer Feedback")
log_once_per_page("Feedback")

st.title("📝 Customer Feedback")

customer_ref = customer_ref_from_params(st.query_params.to_dict())
if customer_ref != NO_REFERENCE:
    st.caption(f"Reference: `{customer_ref}`")

earlier = previous_submission(st.session_state, customer_ref)
if earlier:
    st.info(
        f"You already submitted feedback on {earlier:%B %d, %Y}. "
        "You can submit again, but we'd suggest waiting 30 days between reviews."
    )

QUESTIONS = [
    ("process", "How smooth was the collaboration process?"),
    ("product", "How happy are you with the final product?"),
    ("recommendation", "How likely are you to recommend me?"),
]

with card("Your ratings", "1 = very poor, 5 = excellent"):
    ratings = {}
    for name, question in QUESTIONS:
        picked = st.feedback("stars", key=f"fb_{name}")
        st.caption(f"{question} · {rating_label(picked + 1 if picked is not None else 0)}")
        ratings[name] = picked + 1 if picked is not None else 0

form = FeedbackForm(**ratings, customer_ref=customer_ref)

with st.form("feedback_form"):
    form.customer_name = st.text_input("Name (optional)")
    form.customer_website = st.text_input("Website (optional)")
    form.comments = st.text_area("Comments (optional)", max_chars=1000)
    if form.overall:
        st.caption(f"Overall rating: {form.overall}/5")
    share = st.checkbox(
        "You may publish my feedback as a testimonial",
        disabled=not form.can_share,
        help=f"Available when the overall rating is above {SHARE_THRESHOLD}.",
    )
    submitted = st.form_submit_button("Submit feedback")

if submitted:
    headers = request_headers()
    form.share_permission = share
    form.page_url = f"https://{headers.get('Host', '')}/feedback"
    form.user_agent = headers.get("User-Agent")
    try:
        submission = form.to_submission()
    except FeedbackError as e:
        st.warning(str(e))
        st.stop()

    try:
        FeedbackService(get_database()).save(submission)
    except Exception as e:
        logger.warning("Feedback not saved: %s", e)
        st.error("Sorry, your feedback could not be saved. Please try again later.")
        st.stop()

    if customer_ref != NO_REFERENCE:
        mark_submitted(st.session_state, customer_ref)
    store_local_history(st.session_state, submission)
    st.success("Thank you! Your feedback was received.")
    st.balloons()
