# src/services/database.py
"""
One database interface, two transports.

DirectDatabase talks to Supabase with the python client (keys held locally).
ProxyDatabase forwards the same calls to the functions app, which holds the
service key. build_database() picks one at startup.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional

import requests
from supabase import create_client

from services.log import get_logger
from services.settings import (
    DATABASE_ENDPOINT,
    ApiConfig,
    DatabaseConfig,
    is_proxy_mode,
)

logger = get_logger(__name__)

OPERATIONS = ("insert", "select", "update", "delete")

Filters = Optional[Dict[str, Any]]

DEFAULT_RANGE_COLUMN = "timestamp"


class DatabaseError(Exception):
    pass


class UnsupportedOperation(DatabaseError):
    pass


class DatabaseClient:
    """
    insert/select/update/delete against a named table, equality filters only.

    select() also takes an inclusive [since, until] bound on one time column
    (`range_column`, default "timestamp") so large tables are cut server side.
    """

    mode = "base"

    def insert(self, table: str, data: Dict[str, Any]) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def select(
        self,
        table: str,
        columns: str = "*",
        filters: Filters = None,
        order: Optional[str] = None,
        desc: bool = False,
        limit: Optional[int] = None,
        since: Optional[str] = None,
        until: Optional[str] = None,
        range_column: str = DEFAULT_RANGE_COLUMN,
    ) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def update(self, table: str, data: Dict[str, Any], filters: Filters = None) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def delete(self, table: str, filters: Filters = None) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def authorized(self, headers: Optional[Dict[str, str]]) -> "DatabaseClient":
        """Client that sends the admin's auth headers. Only the proxy transport uses them."""
        return self

    def execute(
        self,
        operation: str,
        table: str,
        data: Optional[Dict[str, Any]] = None,
        filters: Filters = None,
        select: Optional[str] = None,
        order: Optional[str] = None,
        desc: bool = False,
        limit: Optional[int] = None,
        since: Optional[str] = None,
        until: Optional[str] = None,
        range_column: str = DEFAULT_RANGE_COLUMN,
    ) -> List[Dict[str, Any]]:
        """Dispatch by operation name, as the proxy endpoint receives it."""
        if operation == "insert":
            return self.insert(table, data or {})
        if operation == "select":
            return self.select(table, select or "*", filters, order=order, desc=desc, limit=limit,
                               since=since, until=until, range_column=range_column)
        if operation == "update":
            return self.update(table, data or {}, filters)
        if operation == "delete":
            return self.delete(table, filters)
        raise UnsupportedOperation(f"Unsupported operation: {operation}")


class DirectDatabase(DatabaseClient):
    mode = "direct"

    def __init__(self, client):
        self.client = client

    @staticmethod
    def _apply_filters(query, filters: Filters):
        for key, value in (filters or {}).items():
            query = query.eq(key, value)
        return query

    @staticmethod
    def _run(query, what: str) -> List[Dict[str, Any]]:
        try:
            res = query.execute()
        except Exception as e:
            raise DatabaseError(f"Supabase {what} failed: {e}") from e
        return getattr(res, "data", None) or []

    def insert(self, table, data):
        return self._run(self.client.table(table).insert([data]), f"insert into {table}")

    def select(self, table, columns="*", filters=None, order=None, desc=False, limit=None,
               since=None, until=None, range_column=DEFAULT_RANGE_COLUMN):
        q = self._apply_filters(self.client.table(table).select(columns or "*"), filters)
        if since:
            q = q.gte(range_column, since)
        if until:
            q = q.lte(range_column, until)
        if order:
            q = q.order(order, desc=desc)
        if limit:
            q = q.limit(limit)
        return self._run(q, f"select from {table}")

    def update(self, table, data, filters=None):
        q = self._apply_filters(self.client.table(table).update(data), filters)
        return self._run(q, f"update {table}")

    def delete(self, table, filters=None):
        q = self._apply_filters(self.client.table(table).delete(), filters)
        return self._run(q, f"delete from {table}")

    def rpc(self, name: str, params: Dict[str, Any]) -> Any:
        try:
            res = self.client.rpc(name, params).execute()
        except Exception as e:
            raise DatabaseError(f"Supabase rpc {name} failed: {e}") from e
        return getattr(res, "data", None)


class ProxyDatabase(DatabaseClient):
    mode = "proxy"

    def __init__(self, proxy_url: str, session: Optional[requests.Session] = None, timeout: float = 15,
                 headers: Optional[Dict[str, str]] = None):
        self.proxy_url = proxy_url
        self.url = f"{proxy_url.rstrip('/')}{DATABASE_ENDPOINT}"
        self.session = session or requests.Session()
        self.timeout = timeout
        self.headers = dict(headers or {})

    def authorized(self, headers):
        return ProxyDatabase(self.proxy_url, session=self.session, timeout=self.timeout, headers=headers)

    def _call(self, payload: Dict[str, Any]) -> List[Dict[str, Any]]:
        try:
            resp = self.session.post(self.url, json=payload, headers=self.headers or None, timeout=self.timeout)
        except requests.RequestException as e:
            raise DatabaseError(f"Database proxy unreachable: {e}") from e
        if not resp.ok:
            raise DatabaseError(f"Database API error: {resp.status_code}")
        body = resp.json()
        if body is None:
            return []
        return body if isinstance(body, list) else [body]

    def insert(self, table, data):
        return self._call({"operation": "insert", "table": table, "data": data, "filters": {}, "select": "*"})

    def select(self, table, columns="*", filters=None, order=None, desc=False, limit=None,
               since=None, until=None, range_column=DEFAULT_RANGE_COLUMN):
        payload = {
            "operation": "select",
            "table": table,
            "data": None,
            "filters": filters or {},
            "select": columns or "*",
        }
        if order:
            payload["order"] = order
            payload["desc"] = desc
        if limit:
            payload["limit"] = limit
        if since or until:
            payload.update(since=since, until=until, range_column=range_column)
        return self._call(payload)

    def update(self, table, data, filters=None):
        return self._call({"operation": "update", "table": table, "data": data, "filters": filters or {}})

    def delete(self, table, filters=None):
        return self._call({"operation": "delete", "table": table, "data": None, "filters": filters or {}})


def build_database(
    db_config: DatabaseConfig,
    api_config: Optional[ApiConfig] = None,
    client_factory: Callable = create_client,
    session: Optional[requests.Session] = None,
) -> DatabaseClient:
    """Choose the transport once; callers never branch on mode again."""
    if not db_config or not db_config.enabled or db_config.provider != "supabase":
        raise DatabaseError("Database not configured or not using Supabase")

    if not is_proxy_mode(db_config):
        logger.info("Database: using direct mode")
        return DirectDatabase(client_factory(db_config.supabase_url, db_config.supabase_key))

    if api_config is None:
        raise DatabaseError("API configuration required for proxy mode")

    if api_config.use_proxy:
        logger.info("Database: using secure proxy mode")
        return ProxyDatabase(api_config.proxy_url, session=session)

    if not api_config.supabase_url or not api_config.supabase_key:
        raise DatabaseError("No Supabase credentials available for direct calls")
    logger.info("Database: using direct mode with local credentials")
    return DirectDatabase(client_factory(api_config.supabase_url, api_config.supabase_key))
