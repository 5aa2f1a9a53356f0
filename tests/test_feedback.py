import json
import time
import unittest
from datetime import datetime

from pydantic import ValidationError

from helpers import MemoryDatabase
from services.schemas import FeedbackSubmission
from services.feedback import (
    FEEDBACK_TABLE,
    HISTORY_KEY,
    NO_REFERENCE,
    SITE_AVERAGE_KEY,
    SITE_COUNT_KEY,
    FeedbackError,
    FeedbackForm,
    FeedbackService,
    average_rating,
    customer_ref_from_params,
    mark_submitted,
    overall_rating,
    previous_submission,
    quick_rating,
    rating_label,
    store_local_history,
)

DAY = 24 * 60 * 60


class RatingMathTestCase(unittest.TestCase):
    def test_average_one_decimal(self):
        self.assertEqual(average_rating(5, 4, 4), 4.3)
        self.assertEqual(average_rating(5, 5, 4), 4.7)
        self.assertEqual(average_rating(3, 3, 3), 3.0)

    def test_overall_rounds_half_up(self):
        self.assertEqual(overall_rating(5, 4, 4), 4)
        self.assertEqual(overall_rating(5, 5, 4), 5)
        self.assertEqual(overall_rating(1, 2, 2), 2)

    def test_labels(self):
        self.assertEqual(rating_label(5), "5/5 - Excellent")
        self.assertEqual(rating_label(0), "Click a star to rate")


class FeedbackFormTestCase(unittest.TestCase):
    def test_submission_fields(self):
        form = FeedbackForm(
            process=5, product=5, recommendation=4,
            customer_name="  Ada ", customer_ref="acme-42",
            comments="x" * 1500, share_permission=True,
            submitted_at=datetime(2024, 3, 1, 9, 30, 0),
        )
        sub = form.to_submission()
        self.assertEqual(sub.customer_name, "Ada")
        self.assertEqual(sub.customer_website, "Not provided")
        self.assertEqual(sub.overall_rating, 5)
        self.assertEqual(sub.average_rating, 4.7)
        self.assertEqual(len(sub.comments), 1000)
        self.assertTrue(sub.share_permission)
        self.assertEqual(sub.submission_date, "2024-03-01")
        self.assertEqual(sub.submission_time, "09:30:00")

    def test_share_permission_needs_high_rating(self):
        form = FeedbackForm(process=3, product=4, recommendation=3, share_permission=True)
        self.assertFalse(form.can_share)
        self.assertFalse(form.to_submission().share_permission)

    def test_all_questions_required(self):
        with self.assertRaises(FeedbackError):
            FeedbackForm(process=5, product=5).to_submission()

    def test_empty_comment_placeholder(self):
        sub = FeedbackForm(process=4, product=4, recommendation=4).to_submission()
        self.assertEqual(sub.comments, "No additional comments")


class QuickRatingTestCase(unittest.TestCase):
    def test_all_ratings_equal(self):
        sub = quick_rating(4, " nice ")
        self.assertEqual(
            {sub.process_rating, sub.product_rating, sub.recommendation_rating, sub.overall_rating}, {4}
        )
        self.assertEqual(sub.average_rating, 4.0)
        self.assertTrue(sub.customer_ref.startswith("quick_"))
        self.assertFalse(sub.share_permission)
        self.assertEqual(sub.comments, "nice")

    def test_out_of_range(self):
        with self.assertRaises(FeedbackError):
            quick_rating(0)
        with self.assertRaises(FeedbackError):
            FeedbackForm(process=6, product=6, recommendation=6).to_submission()
        row = quick_rating(5).to_row()
        row["process_rating"] = 6
        with self.assertRaises(ValidationError):
            FeedbackSubmission(**row)


class SubmissionGuardTestCase(unittest.TestCase):
    def test_reference_from_params(self):
        self.assertEqual(customer_ref_from_params({"ref": "r1", "id": "i1"}), "r1")
        self.assertEqual(customer_ref_from_params({"customer": ["c1"]}), "c1")
        self.assertEqual(customer_ref_from_params({}), NO_REFERENCE)

    def test_thirty_day_window(self):
        store, now = {}, time.time()
        mark_submitted(store, "acme", now=now - 29 * DAY)
        self.assertIsNotNone(previous_submission(store, "acme", now=now))
        mark_submitted(store, "acme", now=now - 31 * DAY)
        self.assertIsNone(previous_submission(store, "acme", now=now))

    def test_direct_access_never_blocked(self):
        store = {}
        mark_submitted(store, NO_REFERENCE)
        self.assertIsNone(previous_submission(store, NO_REFERENCE))

    def test_local_history_capped(self):
        store = {}
        for i in range(105):
            store_local_history(store, quick_rating(5 if i % 2 else 3))
        history = json.loads(store[HISTORY_KEY])
        self.assertEqual(len(history), 100)
        self.assertEqual(store[SITE_COUNT_KEY], "100")
        self.assertEqual(store[SITE_AVERAGE_KEY], "4.0")


class FeedbackServiceTestCase(unittest.TestCase):
    def test_save_inserts_row(self):
        db = MemoryDatabase()
        FeedbackService(db).save(quick_rating(5))
        self.assertEqual(db.tables[FEEDBACK_TABLE][0]["overall_rating"], 5)

    def test_save_without_database_is_noop(self):
        self.assertIsNone(FeedbackService(None).save(quick_rating(5)))

    def test_analytics(self):
        rows = [
            {"average_rating": 5.0, "share_permission": True, "created_at": "2024-01-03T00:00:00Z"},
            {"average_rating": 4.0, "share_permission": False, "created_at": "2024-01-01T00:00:00Z"},
            {"average_rating": 3.5, "share_permission": True, "created_at": "2024-01-02T00:00:00Z"},
        ]
        stats = FeedbackService(MemoryDatabase({FEEDBACK_TABLE: rows})).analytics()
        self.assertEqual(stats["total_submissions"], 3)
        self.assertEqual(stats["average_rating"], 4.2)
        self.assertEqual(stats["shareable_testimonials"], 2)
        self.assertEqual(stats["recent_submissions"][0]["created_at"], "2024-01-03T00:00:00Z")

    def test_analytics_empty(self):
        stats = FeedbackService(MemoryDatabase()).analytics()
        self.assertEqual(stats["total_submissions"], 0)
        self.assertEqual(stats["average_rating"], 0.0)


if __name__ == "__main__":
    unittest.main()
