# src/services/rich_snippets.py
"""
Aggregate rating for the site's JSON-LD (LocalBusiness / Organization)
computed from the feedback table. Database only, defaults on any failure.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from services.database import DatabaseClient
from services.feedback import FEEDBACK_TABLE
from services.log import get_logger

logger = get_logger(__name__)

MIN_REVIEWS_FOR_UPDATE = 1
DEFAULT_RATING = 5.0
DEFAULT_REVIEW_COUNT = 1

SITE_JSON_LD = {
    "@context": "https://schema.org",
    "@type": "LocalBusiness",
    "name": "Web Design & Development",
    "description": "Fast, accessible websites for small businesses and freelancers.",
    "priceRange": "$$",
    "aggregateRating": {
        "@type": "AggregateRating",
        "ratingValue": str(DEFAULT_RATING),
        "reviewCount": str(DEFAULT_REVIEW_COUNT),
        "bestRating": "5",
        "worstRating": "1",
    },
}


@dataclass
class RatingSummary:
    rating_value: float = DEFAULT_RATING
    review_count: int = DEFAULT_REVIEW_COUNT
    should_update: bool = False
    source: str = "defaults"


def aggregate(rows: Iterable[Dict[str, Any]]) -> RatingSummary:
    ratings: List[float] = []
    for row in rows or []:
        value = row.get("average_rating") or row.get("overall_rating") or 4
        try:
            ratings.append(float(value))
        except (TypeError, ValueError):
            continue
    if len(ratings) < MIN_REVIEWS_FOR_UPDATE:
        return RatingSummary()
    return RatingSummary(
        rating_value=round(sum(ratings) / len(ratings), 1),
        review_count=len(ratings),
        should_update=True,
        source="database",
    )


def _update_item(item: Any, summary: RatingSummary) -> bool:
    if not isinstance(item, dict):
        return False
    updated = False
    if item.get("@type") in ("LocalBusiness", "Organization") and isinstance(item.get("aggregateRating"), dict):
        item["aggregateRating"]["ratingValue"] = str(summary.rating_value)
        item["aggregateRating"]["reviewCount"] = str(summary.review_count)
        updated = True
    if item.get("@type") == "AggregateRating":
        item["ratingValue"] = str(summary.rating_value)
        item["reviewCount"] = str(summary.review_count)
        updated = True
    return updated


def update_structured_data(doc: Any, summary: RatingSummary) -> bool:
    """Mutates a JSON-LD object (or list of them) in place. True if anything changed."""
    items = doc if isinstance(doc, list) else [doc]
    changed = [_update_item(item, summary) for item in items]
    return any(changed)


def update_json_ld(text: str, summary: RatingSummary) -> str:
    """Same as update_structured_data, for the raw <script> body."""
    try:
        doc = json.loads(text)
    except ValueError as e:
        logger.warning("Skipping invalid JSON-LD block: %s", e)
        return text
    if not update_structured_data(doc, summary):
        return text
    return json.dumps(doc, indent=2)


def json_ld_script(summary: RatingSummary, template: Any = None) -> str:
    text = update_json_ld(json.dumps(SITE_JSON_LD if template is None else template), summary)
    # "</" would close the script element early
    return '<script type="application/ld+json">' + text.replace("</", "<\\/") + "</script>"


def stars_html(rating: float) -> str:
    stars = []
    for i in range(1, 6):
        if i <= math.floor(rating):
            stars.append('<span class="star full">★</span>')
        elif i == math.ceil(rating) and rating % 1:
            pct = round((rating % 1) * 100)
            stars.append(
                '<span class="star partial" style="position:relative">'
                '<span class="empty">★</span>'
                f'<span class="fill" style="position:absolute;left:0;width:{pct}%;overflow:hidden">★</span>'
                "</span>"
            )
        else:
            stars.append('<span class="star empty">★</span>')
    return "".join(stars)


def load_summary(db: Optional[DatabaseClient]) -> RatingSummary:
    if db is None:
        return RatingSummary()
    try:
        rows = db.select(
            FEEDBACK_TABLE,
            "average_rating, created_at, share_permission, customer_name, comments",
            order="created_at",
            desc=True,
            limit=100,
        )
    except Exception as e:
        logger.error("Error fetching feedback for rich snippets: %s", e)
        return RatingSummary()
    summary = aggregate(rows)
    logger.info("Rich snippet rating: %s from %s reviews (%s)",
                summary.rating_value, summary.review_count, summary.source)
    return summary
