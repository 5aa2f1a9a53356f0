# src/services/feedback.py
"""
Customer feedback: full three-question form, the quick star widget,
the advisory 30-day resubmission guard and the submissions table.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Mapping, MutableMapping, Optional

from services.database import DatabaseClient
from services.log import get_logger
from services.schemas import FeedbackSubmission

logger = get_logger(__name__)

FEEDBACK_TABLE = "feedback_submissions"

NO_REFERENCE = "Direct access - no reference"
RESUBMIT_WINDOW_DAYS = 30
MAX_COMMENT_LENGTH = 1000
MAX_LOCAL_HISTORY = 100
SHARE_THRESHOLD = 3.5

HISTORY_KEY = "feedback_history"
SITE_AVERAGE_KEY = "site_average_rating"
SITE_COUNT_KEY = "site_review_count"

RATING_LABELS = {1: "Very Poor", 2: "Poor", 3: "Average", 4: "Good", 5: "Excellent"}


class FeedbackError(ValueError):
    pass


def _half_up(value: float, places: int = 0) -> Decimal:
    quantum = Decimal(1).scaleb(-places)
    return Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP)


def average_rating(process: int, product: int, recommendation: int) -> float:
    """Arithmetic mean of the three answers, one decimal."""
    return float(_half_up((process + product + recommendation) / 3, 1))


def overall_rating(process: int, product: int, recommendation: int) -> int:
    return int(_half_up((process + product + recommendation) / 3))


def rating_label(rating: int) -> str:
    return f"{rating}/5 - {RATING_LABELS[rating]}" if rating in RATING_LABELS else "Click a star to rate"


def customer_ref_from_params(params: Mapping[str, Any]) -> str:
    for name in ("customer", "ref", "id"):
        value = params.get(name)
        if isinstance(value, list):
            value = value[0] if value else None
        if value:
            return str(value)
    return NO_REFERENCE


@dataclass
class FeedbackForm:
    process: int = 0
    product: int = 0
    recommendation: int = 0
    customer_name: str = ""
    customer_website: str = ""
    customer_ref: str = NO_REFERENCE
    comments: str = ""
    share_permission: bool = False
    page_url: Optional[str] = None
    user_agent: Optional[str] = None
    submitted_at: datetime = field(default_factory=datetime.now)

    @property
    def overall(self) -> int:
        if self.process and self.product and self.recommendation:
            return overall_rating(self.process, self.product, self.recommendation)
        return 0

    @property
    def can_share(self) -> bool:
        return self.overall > SHARE_THRESHOLD

    def validate(self) -> None:
        if not self.overall:
            raise FeedbackError("Please rate all three questions before submitting.")
        for name in ("process", "product", "recommendation"):
            if getattr(self, name) not in RATING_LABELS:
                raise FeedbackError(f"{name} rating must be between 1 and 5")

    def to_submission(self) -> FeedbackSubmission:
        self.validate()
        return FeedbackSubmission(
            customer_name=self.customer_name.strip() or "Not provided",
            customer_website=self.customer_website.strip() or "Not provided",
            customer_ref=self.customer_ref or NO_REFERENCE,
            process_rating=self.process,
            product_rating=self.product,
            recommendation_rating=self.recommendation,
            overall_rating=self.overall,
            average_rating=average_rating(self.process, self.product, self.recommendation),
            comments=(self.comments or "")[:MAX_COMMENT_LENGTH] or "No additional comments",
            share_permission=bool(self.share_permission and self.can_share),
            submission_date=self.submitted_at.strftime("%Y-%m-%d"),
            submission_time=self.submitted_at.strftime("%H:%M:%S"),
            page_url=self.page_url,
            user_agent=self.user_agent,
        )


def quick_rating(rating: int, comment: str = "", page_url: Optional[str] = None,
                 user_agent: Optional[str] = None) -> FeedbackSubmission:
    """The collapsed star widget: one rating fills all four fields."""
    if rating not in RATING_LABELS:
        raise FeedbackError("Click a star to rate")
    now = datetime.now()
    return FeedbackSubmission(
        customer_name="Anonymous User",
        customer_website="",
        customer_ref=f"quick_{int(time.time() * 1000)}",
        process_rating=rating,
        product_rating=rating,
        recommendation_rating=rating,
        overall_rating=rating,
        average_rating=float(rating),
        comments=(comment or "").strip()[:MAX_COMMENT_LENGTH],
        share_permission=False,
        submission_date=now.strftime("%Y-%m-%d"),
        submission_time=now.strftime("%H:%M:%S"),
        page_url=page_url,
        user_agent=user_agent,
    )


# ---------- client-side guard (advisory only) ----------
def _submission_key(ref: str) -> str:
    return f"feedback_submitted_{ref}"


def previous_submission(store: Mapping[str, str], ref: str, now: Optional[float] = None) -> Optional[datetime]:
    """Date of a submission for this ref within the last 30 days, else None."""
    if not ref or ref == NO_REFERENCE:
        return None
    stamp = store.get(_submission_key(ref))
    if not stamp:
        return None
    try:
        submitted_ms = int(stamp)
    except (TypeError, ValueError):
        return None
    current = time.time() if now is None else now
    days_since = (current * 1000 - submitted_ms) / (1000 * 60 * 60 * 24)
    if days_since < RESUBMIT_WINDOW_DAYS:
        return datetime.fromtimestamp(submitted_ms / 1000)
    return None


def mark_submitted(store: MutableMapping[str, str], ref: str, now: Optional[float] = None) -> None:
    current = time.time() if now is None else now
    store[_submission_key(ref)] = str(int(current * 1000))


def store_local_history(store: MutableMapping[str, str], submission: FeedbackSubmission) -> List[Dict[str, Any]]:
    """Keep the last 100 submissions and the derived site average/count."""
    try:
        history = json.loads(store.get(HISTORY_KEY) or "[]")
    except ValueError:
        history = []
    history.append({**submission.to_row(), "timestamp": int(time.time() * 1000)})
    history = history[-MAX_LOCAL_HISTORY:]
    store[HISTORY_KEY] = json.dumps(history)

    total = sum(float(h.get("average_rating") or 0) for h in history)
    store[SITE_AVERAGE_KEY] = f"{total / len(history):.1f}"
    store[SITE_COUNT_KEY] = str(len(history))
    return history


class FeedbackService:
    def __init__(self, db: Optional[DatabaseClient]):
        self.db = db

    def save(self, submission: FeedbackSubmission) -> Optional[List[Dict[str, Any]]]:
        if self.db is None:
            logger.info("No database configured - skipping database save")
            return None
        result = self.db.insert(FEEDBACK_TABLE, submission.to_row())
        logger.info("Feedback saved for %s", submission.customer_ref)
        return result

    def recent(self, limit: int = 100,
               columns: str = "customer_name, average_rating, comments, share_permission, created_at") -> List[Dict[str, Any]]:
        rows = self.db.select(FEEDBACK_TABLE, columns, order="created_at", desc=True, limit=limit)
        # the proxy may ignore ordering, sort again locally
        rows = sorted(rows, key=lambda r: r.get("created_at") or "", reverse=True)
        return rows[:limit]

    def analytics(self) -> Dict[str, Any]:
        rows = self.recent()
        total = len(rows)
        avg = sum(float(r.get("average_rating") or 0) for r in rows) / total if total else 0.0
        return {
            "total_submissions": total,
            "average_rating": round(avg, 1),
            "shareable_testimonials": sum(1 for r in rows if r.get("share_permission")),
            "recent_submissions": rows[:10],
        }
