# src/services/identity.py
"""
Visitor and session ids kept in a client-side key/value store.

The store is any MutableMapping of str -> str (a dict in tests,
st.session_state in the app). Ids are unauthenticated and can be reset
by the client at will.
"""

from __future__ import annotations

import random
import string
import time
from typing import MutableMapping, Optional

VISITOR_KEY = "dc_visitor_id"
SESSION_KEY = "dc_session_id"
SESSION_TIME_KEY = "dc_session_time"

SESSION_TIMEOUT_MS = 30 * 60 * 1000

_B36 = string.digits + string.ascii_lowercase


def now_ms() -> int:
    return int(time.time() * 1000)


def _base36(n: int) -> str:
    if n == 0:
        return "0"
    out = []
    while n:
        n, r = divmod(n, 36)
        out.append(_B36[r])
    return "".join(reversed(out))


def generate_id(ts_ms: Optional[int] = None) -> str:
    """Base-36 timestamp plus a random base-36 tail."""
    ts = now_ms() if ts_ms is None else ts_ms
    tail = "".join(random.choices(_B36, k=11))
    return _base36(ts) + tail


def get_or_create_visitor_id(store: MutableMapping[str, str]) -> str:
    visitor_id = store.get(VISITOR_KEY)
    if not visitor_id:
        visitor_id = "v_" + generate_id()
        store[VISITOR_KEY] = visitor_id
    return visitor_id


def session_expired(store: MutableMapping[str, str], now: Optional[int] = None) -> bool:
    stamp = store.get(SESSION_TIME_KEY)
    if not store.get(SESSION_KEY) or not stamp:
        return True
    try:
        last = int(stamp)
    except (TypeError, ValueError):
        return True
    current = now_ms() if now is None else now
    return current - last > SESSION_TIMEOUT_MS


def get_or_create_session_id(store: MutableMapping[str, str], now: Optional[int] = None) -> str:
    """Reuse the stored session unless it is older than 30 minutes; always touch the timestamp."""
    current = now_ms() if now is None else now
    if session_expired(store, current):
        store[SESSION_KEY] = "s_" + generate_id(current)
    store[SESSION_TIME_KEY] = str(current)
    return store[SESSION_KEY]
