import unittest
from unittest import mock

from fastapi.testclient import TestClient

from functions import api
from helpers import MemoryDatabase
from services.admin_auth import decode_token, issue_token
from services.api_client import ChatbotError
from services.database import DirectDatabase
from services.schemas import AdminUser
from services.settings import ADMIN_AUTH_ENDPOINT, CHATBOT_ENDPOINT, DATABASE_ENDPOINT

SECRET = "unit-test-secret-0123456789abcdef"

ADMIN_ROW = {
    "id": 7,
    "email": "admin@example.com",
    "full_name": "Admin",
    "role": "admin",
    "is_active": True,
    "password_hash": "$2a$hash",
    "last_login": None,
}


class FunctionsApiTestCase(unittest.TestCase):
    def setUp(self):
        self.db = MemoryDatabase({
            "page_analytics": [{"id": 1, "page_url": "https://example.com/", "is_bot": False}],
            "admin_users": [dict(ADMIN_ROW)],
        })
        self.gemini_key = "gemini-key"
        self.secret = SECRET
        api.app.dependency_overrides[api.get_db] = lambda: self.db
        api.app.dependency_overrides[api.get_gemini_key] = lambda: self.gemini_key
        api.app.dependency_overrides[api.get_jwt_secret] = lambda: self.secret
        self.client = TestClient(api.app)

    def tearDown(self):
        api.app.dependency_overrides.clear()


class HealthRouteTestCase(FunctionsApiTestCase):
    def test_health(self):
        resp = self.client.get("/health")
        self.assertEqual(resp.status_code, 200)
        self.assertTrue(resp.json()["ok"])


class ChatbotRouteTestCase(FunctionsApiTestCase):
    def test_empty_message(self):
        resp = self.client.post(CHATBOT_ENDPOINT, json={"message": "   "})
        self.assertEqual(resp.status_code, 400)

    def test_missing_key(self):
        self.gemini_key = None
        resp = self.client.post(CHATBOT_ENDPOINT, json={"message": "hi"})
        self.assertEqual(resp.status_code, 500)

    def test_relays_gemini_response(self):
        body = {"candidates": [{"content": {"parts": [{"text": "Hello"}]}}]}
        with mock.patch.object(api, "call_gemini", return_value=body) as call:
            resp = self.client.post(CHATBOT_ENDPOINT, json={"message": "hi", "conversationHistory": []})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), body)
        call.assert_called_once_with("gemini-key", "hi")

    def test_upstream_status_passed_through(self):
        with mock.patch.object(api, "call_gemini", side_effect=ChatbotError("rate limited", status=429)):
            resp = self.client.post(CHATBOT_ENDPOINT, json={"message": "hi"})
        self.assertEqual(resp.status_code, 429)


class DatabaseRouteTestCase(FunctionsApiTestCase):
    def admin_headers(self, secret=SECRET):
        token = issue_token(AdminUser(id=7, email="admin@example.com"), secret)
        return {"Authorization": f"Bearer {token}"}

    def post(self, payload, headers=None):
        return self.client.post(DATABASE_ENDPOINT, json=payload, headers=headers or {})

    def test_select(self):
        resp = self.post({"operation": "select", "table": "page_analytics", "filters": {"is_bot": False}},
                         self.admin_headers())
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(len(resp.json()), 1)

    def test_visitor_data_needs_admin_token(self):
        payload = {"operation": "select", "table": "page_analytics"}
        self.assertEqual(self.post(payload).status_code, 401)
        self.assertEqual(self.post(payload, {"Authorization": "Bearer nonsense"}).status_code, 401)
        wrong = self.admin_headers("another-secret-0123456789abcdefgh")
        self.assertEqual(self.post(payload, wrong).status_code, 401)
        self.assertEqual(self.db.calls, [])

    def test_feedback_select_is_public(self):
        resp = self.post({"operation": "select", "table": "feedback_submissions", "select": "average_rating"})
        self.assertEqual(resp.status_code, 200)

    def test_time_range_forwarded(self):
        self.db.tables["page_analytics"] = [
            {"id": 1, "is_bot": False, "timestamp": "2024-04-01T00:00:00Z"},
            {"id": 2, "is_bot": False, "timestamp": "2024-05-06T00:00:00Z"},
        ]
        resp = self.post({
            "operation": "select", "table": "page_analytics",
            "since": "2024-05-01T00:00:00+00:00", "until": "2024-05-31T00:00:00+00:00",
        }, self.admin_headers())
        self.assertEqual([r["id"] for r in resp.json()], [2])
        self.assertEqual(self.db.selects[0]["since"], "2024-05-01T00:00:00+00:00")

    def test_insert(self):
        resp = self.post({"operation": "insert", "table": "feedback_submissions", "data": {"overall_rating": 5}})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(self.db.tables["feedback_submissions"][0]["overall_rating"], 5)

    def test_unknown_operation(self):
        self.assertEqual(self.post({"operation": "drop", "table": "page_analytics"}).status_code, 400)

    def test_forbidden_operations(self):
        for payload in (
            {"operation": "delete", "table": "page_analytics"},
            {"operation": "select", "table": "secrets"},
            {"operation": "select", "table": "admin_users", "select": "id, email"},
            {"operation": "select", "table": "admin_users", "select": "email, password_hash", "filters": {"id": 7}},
            {"operation": "select", "table": "admin_users", "select": "id", "filters": {"password_hash": "$2a$hash"}},
            {"operation": "select", "table": "admin_users", "select": "id", "filters": {"id": 7},
             "order": "password_hash"},
            {"operation": "select", "table": "page_analytics", "since": "a", "range_column": "page_url"},
            {"operation": "update", "table": "admin_users", "data": {"role": "owner"}, "filters": {"id": 7}},
            {"operation": "update", "table": "admin_users", "data": {"last_login": "now"}},
            {"operation": "update", "table": "admin_users", "data": {"last_login": "now"},
             "filters": {"password_hash": "$2a$hash"}},
        ):
            resp = self.post(payload, self.admin_headers())
            self.assertEqual(resp.status_code, 403, payload)
        self.assertEqual(self.db.calls, [])

    def test_admin_lookup_by_id(self):
        resp = self.post({"operation": "select", "table": "admin_users", "select": "is_active",
                          "filters": {"id": 7}}, self.admin_headers())
        self.assertEqual(resp.json(), [{"is_active": True}])
        self.assertEqual(self.post({"operation": "select", "table": "admin_users", "select": "is_active",
                                    "filters": {"id": 7}}).status_code, 401)

    def test_admin_rows_never_expose_hash(self):
        resp = self.post({
            "operation": "update", "table": "admin_users",
            "data": {"last_login": "2024-05-01T00:00:00Z"}, "filters": {"id": 7},
        }, self.admin_headers())
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()[0]["last_login"], "2024-05-01T00:00:00Z")
        self.assertNotIn("password_hash", resp.json()[0])

    def test_limit_bounds(self):
        resp = self.post({"operation": "select", "table": "page_analytics", "limit": 5000}, self.admin_headers())
        self.assertEqual(resp.status_code, 422)

    def test_database_failure(self):
        self.db.fail = True
        resp = self.post({"operation": "select", "table": "page_analytics"}, self.admin_headers())
        self.assertEqual(resp.status_code, 500)


class AdminAuthRouteTestCase(FunctionsApiTestCase):
    def setUp(self):
        super().setUp()
        self.admin_db = mock.MagicMock(spec=DirectDatabase)
        self.admin_db.select.return_value = [dict(ADMIN_ROW)]
        self.admin_db.rpc.return_value = True
        self.admin_db.update.return_value = []
        api.app.dependency_overrides[api.get_db] = lambda: self.admin_db

    def test_login_issues_token(self):
        resp = self.client.post(ADMIN_AUTH_ENDPOINT, json={"email": "admin@example.com", "password": "pw"})
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertTrue(body["success"])
        self.assertEqual(decode_token(body["token"], SECRET)["email"], "admin@example.com")
        self.assertNotIn("password_hash", body["user"])

    def test_bad_password(self):
        self.admin_db.rpc.return_value = False
        resp = self.client.post(ADMIN_AUTH_ENDPOINT, json={"email": "admin@example.com", "password": "x"})
        self.assertEqual(resp.status_code, 401)
        self.assertEqual(resp.json(), {"success": False, "error": "Invalid email or password"})

    def test_unsupported_action(self):
        resp = self.client.post(ADMIN_AUTH_ENDPOINT, json={"email": "a@example.com", "password": "x", "action": "reset"})
        self.assertEqual(resp.status_code, 400)

    def test_missing_secret(self):
        self.secret = None
        resp = self.client.post(ADMIN_AUTH_ENDPOINT, json={"email": "admin@example.com", "password": "pw"})
        self.assertEqual(resp.status_code, 500)


if __name__ == "__main__":
    unittest.main()
