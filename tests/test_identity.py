import unittest

from services.identity import (
    SESSION_KEY,
    SESSION_TIME_KEY,
    SESSION_TIMEOUT_MS,
    VISITOR_KEY,
    generate_id,
    get_or_create_session_id,
    get_or_create_visitor_id,
    session_expired,
)


class IdentityTestCase(unittest.TestCase):
    def test_generate_id_starts_with_base36_timestamp(self):
        ident = generate_id(ts_ms=36 ** 3)
        self.assertTrue(ident.startswith("1000"))
        self.assertEqual(len(ident), 4 + 11)
        self.assertRegex(ident, r"^[0-9a-z]+$")

    def test_visitor_id_is_created_once(self):
        store = {}
        first = get_or_create_visitor_id(store)
        self.assertTrue(first.startswith("v_"))
        self.assertEqual(store[VISITOR_KEY], first)
        self.assertEqual(get_or_create_visitor_id(store), first)

    def test_session_reused_within_timeout_and_touched(self):
        store = {}
        now = 1_700_000_000_000
        sid = get_or_create_session_id(store, now=now)
        self.assertTrue(sid.startswith("s_"))

        later = now + SESSION_TIMEOUT_MS - 1
        self.assertEqual(get_or_create_session_id(store, now=later), sid)
        self.assertEqual(store[SESSION_TIME_KEY], str(later))

    def test_session_regenerated_after_thirty_minutes(self):
        store = {}
        now = 1_700_000_000_000
        sid = get_or_create_session_id(store, now=now)
        self.assertTrue(session_expired(store, now + SESSION_TIMEOUT_MS + 1))
        new_sid = get_or_create_session_id(store, now=now + SESSION_TIMEOUT_MS + 1)
        self.assertNotEqual(new_sid, sid)
        self.assertEqual(store[SESSION_KEY], new_sid)

    def test_corrupt_timestamp_starts_new_session(self):
        store = {SESSION_KEY: "s_old", SESSION_TIME_KEY: "not-a-number"}
        self.assertTrue(session_expired(store))
        self.assertNotEqual(get_or_create_session_id(store), "s_old")


if __name__ == "__main__":
    unittest.main()
