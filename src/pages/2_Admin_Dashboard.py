# pages/2_Admin_Dashboard.py
from datetime import date, datetime, time, timedelta, timezone

import pandas as pd
import streamlit as st

from services.admin_auth import AdminAuth, AuthError
from services.analytics_service import AnalyticsService
from services.runtime import get_api_config, get_database
from services.settings import get_admin_jwt_secret
from widgets.ui import card, page_setup

page_setup("Admin Dashboard", page_title="Admin Dashboard")

st.title("📊 Admin Dashboard")

db = get_database()
auth = AdminAuth(db, st.session_state, get_api_config(), secret=get_admin_jwt_secret(required=False))

# -------------------------
# LOGIN
# -------------------------
if not auth.check_existing_session():
    with st.form("admin_login"):
        email = st.text_input("Email")
        password = st.text_input("Password", type="password")
        go = st.form_submit_button("Log in")
    if go:
        try:
            auth.login(email.strip(), password)
            st.rerun()
        except AuthError as e:
            st.error(str(e))
    st.stop()

top = st.columns([4, 1])
top[0].caption(f"Signed in as **{auth.current_user.full_name or auth.current_user.email}**")
if top[1].button("Log out"):
    auth.logout()
    st.rerun()

if db is None:
    st.warning("Database is not configured, analytics are unavailable.")
    st.stop()


@st.cache_resource(show_spinner=False)
def _service_for(authorization: str) -> AnalyticsService:
    return AnalyticsService(db.authorized({"Authorization": authorization}))


def _service() -> AnalyticsService:
    return _service_for(auth.auth_headers().get("Authorization", ""))


# -------------------------
# FILTERS
# -------------------------
c1, c2, c3 = st.columns(3)
start_day = c1.date_input("From", date.today() - timedelta(days=30))
end_day = c2.date_input("To", date.today())
group_by = c3.selectbox("Group by", ["day", "hour", "week"])
page_filter = st.text_input("Only this page URL (optional)") or None

if st.button("Refresh"):
    _service().clear_cache()

start = datetime.combine(start_day, time.min, tzinfo=timezone.utc)
end = datetime.combine(end_day, time.max, tzinfo=timezone.utc)

try:
    data = _service().get_analytics(start.isoformat(), end.isoformat(), page_filter, group_by)
except Exception as e:
    st.error(f"Could not load analytics: {e}")
    st.stop()

# -------------------------
# TRAFFIC
# -------------------------
stats = data["stats"]
m = st.columns(5)
m[0].metric("Page views", stats["total_views"])
m[1].metric("Visitors", stats["unique_visitors"])
m[2].metric("Sessions", stats["unique_sessions"])
m[3].metric("Avg session", f"{stats['avg_session_duration']}s")
m[4].metric("Bounce rate", f"{stats['bounce_rate']}%")

with card("Views over time"):
    views = pd.DataFrame(data["views_over_time"])
    if views.empty:
        st.info("No page views in this period.")
    else:
        st.line_chart(views.set_index("date")["views"])

left, right = st.columns(2)
with left:
    with card("Top pages"):
        st.dataframe(pd.DataFrame(data["top_pages"]), use_container_width=True, hide_index=True)
with right:
    with card("Traffic sources"):
        sources = pd.DataFrame(data["traffic_sources"])
        if not sources.empty:
            st.bar_chart(sources.set_index("source")["count"])

left, right = st.columns(2)
with left:
    with card("Devices"):
        devices = data["device_breakdown"]["devices"]
        st.bar_chart(pd.Series(devices, name="views"))
        st.dataframe(pd.DataFrame(data["device_breakdown"]["top_resolutions"]),
                     use_container_width=True, hide_index=True)
with right:
    with card("Visitor flow", "Most common page-to-page moves"):
        st.dataframe(pd.DataFrame(data["visitor_flow"]), use_container_width=True, hide_index=True)

# -------------------------
# CHATBOT
# -------------------------
chat = data["chatbot"]
with card("Chatbot"):
    m = st.columns(4)
    m[0].metric("Chat sessions", chat["total_chat_sessions"])
    m[1].metric("Messages", chat["total_messages"])
    m[2].metric("Chat users", f"{chat['unique_chat_users']} ({chat['chat_usage_percentage']}%)")
    m[3].metric("Avg chat", f"{chat['avg_session_duration']}s")
    st.caption(
        f"User messages: {chat['user_messages']} · Bot replies: {chat['bot_messages']} · "
        f"Conversations started: {chat['conversation_starters']}"
    )
    over_time = pd.DataFrame(chat["chat_sessions_over_time"])
    if not over_time.empty:
        st.bar_chart(over_time.set_index("date")["sessions"])
    errs = chat["error_statistics"]
    st.caption(f"Errors: {errs['total_errors']} ({errs['error_rate']}% of messages)")
    if errs["top_error_types"]:
        st.dataframe(pd.DataFrame(errs["top_error_types"]), use_container_width=True, hide_index=True)

# -------------------------
# FEEDBACK
# -------------------------
fb = data["feedback"]
with card("Feedback"):
    if not fb:
        st.info("Unable to load feedback right now.")
    else:
        m = st.columns(3)
        m[0].metric("Submissions", fb["total_submissions"])
        m[1].metric("Average rating", fb["average_rating"])
        m[2].metric("Shareable testimonials", fb["shareable_testimonials"])
        if fb["recent_submissions"]:
            st.dataframe(pd.DataFrame(fb["recent_submissions"]), use_container_width=True, hide_index=True)
