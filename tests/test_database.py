import unittest
from unittest import mock

import requests

from helpers import fake_supabase, response
from services.database import (
    DatabaseError,
    DirectDatabase,
    ProxyDatabase,
    UnsupportedOperation,
    build_database,
)
from services.settings import ApiConfig, DatabaseConfig


class DirectDatabaseTestCase(unittest.TestCase):
    def test_select_builds_query(self):
        client, query = fake_supabase(data=[{"id": 1}])
        db = DirectDatabase(client)
        rows = db.select("page_analytics", "id, page_url", {"is_bot": False}, order="timestamp", desc=True, limit=5)

        self.assertEqual(rows, [{"id": 1}])
        client.table.assert_called_once_with("page_analytics")
        names = [op[0] for op in query.ops]
        self.assertEqual(names, ["select", "eq", "order", "limit"])
        self.assertEqual(query.ops[1][1], ("is_bot", False))
        self.assertEqual(query.ops[2][2], {"desc": True})

    def test_select_time_range(self):
        client, query = fake_supabase(data=[])
        DirectDatabase(client).select(
            "page_analytics", "*", {"is_bot": False}, order="timestamp",
            since="2024-05-01T00:00:00+00:00", until="2024-05-31T23:59:59+00:00",
        )
        self.assertEqual([op[0] for op in query.ops], ["select", "eq", "gte", "lte", "order"])
        self.assertEqual(query.ops[2][1], ("timestamp", "2024-05-01T00:00:00+00:00"))
        self.assertEqual(query.ops[3][1], ("timestamp", "2024-05-31T23:59:59+00:00"))

    def test_insert_wraps_row_in_list(self):
        client, query = fake_supabase(data=[{"id": 7}])
        DirectDatabase(client).insert("feedback_submissions", {"a": 1})
        self.assertEqual(query.ops[0], ("insert", ([{"a": 1}],), {}))

    def test_errors_become_database_error(self):
        client, _ = fake_supabase(error=RuntimeError("down"))
        with self.assertRaises(DatabaseError):
            DirectDatabase(client).delete("page_analytics", {"id": 1})

    def test_execute_dispatch(self):
        client, query = fake_supabase(data=[])
        db = DirectDatabase(client)
        db.execute("update", "admin_users", data={"last_login": "x"}, filters={"id": 1})
        self.assertEqual([op[0] for op in query.ops], ["update", "eq"])
        with self.assertRaises(UnsupportedOperation):
            db.execute("upsert", "admin_users")

    def test_rpc_returns_data(self):
        client, _ = fake_supabase(rpc_data=True)
        self.assertTrue(DirectDatabase(client).rpc("verify_password", {"input_password": "p", "stored_hash": "h"}))


class ProxyDatabaseTestCase(unittest.TestCase):
    def setUp(self):
        self.session = mock.MagicMock()
        self.db = ProxyDatabase("https://proxy.example/", session=self.session)

    def test_select_payload(self):
        self.session.post.return_value = response(200, [{"id": 1}])
        rows = self.db.select("chatbot_analytics", "visitor_id", {"event_type": "message"}, limit=10)

        self.assertEqual(rows, [{"id": 1}])
        url = self.session.post.call_args[0][0]
        payload = self.session.post.call_args[1]["json"]
        self.assertEqual(url, "https://proxy.example/.netlify/functions/database")
        self.assertEqual(payload["operation"], "select")
        self.assertEqual(payload["filters"], {"event_type": "message"})
        self.assertEqual(payload["select"], "visitor_id")
        self.assertEqual(payload["limit"], 10)
        self.assertNotIn("order", payload)

    def test_select_range_forwarded(self):
        self.session.post.return_value = response(200, [])
        self.db.select("feedback_submissions", since="2024-01-01", range_column="created_at")
        payload = self.session.post.call_args[1]["json"]
        self.assertEqual((payload["since"], payload["until"], payload["range_column"]),
                         ("2024-01-01", None, "created_at"))

    def test_authorized_client_sends_headers(self):
        self.session.post.return_value = response(200, [])
        self.db.select("page_analytics")
        self.assertIsNone(self.session.post.call_args[1]["headers"])

        admin = self.db.authorized({"Authorization": "Bearer t"})
        admin.select("page_analytics")
        self.assertEqual(self.session.post.call_args[1]["headers"], {"Authorization": "Bearer t"})
        self.assertIs(admin.session, self.session)
        self.assertEqual(admin.url, self.db.url)

    def test_single_object_becomes_list(self):
        self.session.post.return_value = response(200, {"id": 3})
        self.assertEqual(self.db.insert("page_analytics", {"x": 1}), [{"id": 3}])

    def test_http_error(self):
        self.session.post.return_value = response(500, {"error": "x"})
        with self.assertRaises(DatabaseError) as ctx:
            self.db.delete("page_analytics", {"id": 1})
        self.assertIn("500", str(ctx.exception))

    def test_network_error(self):
        self.session.post.side_effect = requests.ConnectionError("refused")
        with self.assertRaises(DatabaseError):
            self.db.insert("page_analytics", {})


class BuildDatabaseTestCase(unittest.TestCase):
    def setUp(self):
        self.factory = mock.MagicMock(return_value=object())

    def test_explicit_credentials_go_direct(self):
        cfg = DatabaseConfig(supabase_url="https://x.supabase.co", supabase_key="anon")
        db = build_database(cfg, client_factory=self.factory)
        self.assertIsInstance(db, DirectDatabase)
        self.factory.assert_called_once_with("https://x.supabase.co", "anon")

    def test_proxy_placeholder_with_proxy_api(self):
        api = ApiConfig(mode="production", use_proxy=True, proxy_url="https://proxy.example")
        db = build_database(DatabaseConfig(), api, client_factory=self.factory)
        self.assertIsInstance(db, ProxyDatabase)
        self.factory.assert_not_called()

    def test_proxy_placeholder_with_local_direct_api(self):
        api = ApiConfig(mode="local-direct", use_proxy=False, supabase_url="https://l.supabase.co", supabase_key="k")
        db = build_database(DatabaseConfig(), api, client_factory=self.factory)
        self.assertIsInstance(db, DirectDatabase)
        self.factory.assert_called_once_with("https://l.supabase.co", "k")

    def test_missing_credentials_or_disabled(self):
        api = ApiConfig(mode="local-direct", use_proxy=False)
        with self.assertRaises(DatabaseError):
            build_database(DatabaseConfig(), api, client_factory=self.factory)
        with self.assertRaises(DatabaseError):
            build_database(DatabaseConfig(enabled=False), api, client_factory=self.factory)
        with self.assertRaises(DatabaseError):
            build_database(DatabaseConfig(), None, client_factory=self.factory)


if __name__ == "__main__":
    unittest.main()
