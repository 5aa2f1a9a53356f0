"""Test doubles shared by the suites: an in-memory table store and a Supabase query stub."""

import copy
import itertools
from types import SimpleNamespace
from unittest import mock

from services.analytics_service import parse_timestamp
from services.database import DatabaseClient, DatabaseError


class MemoryDatabase(DatabaseClient):
    mode = "memory"

    def __init__(self, tables=None, fail=False, row_cap=None):
        self.tables = {k: [dict(r) for r in v] for k, v in (tables or {}).items()}
        self.fail = fail
        self.calls = []
        self.selects = []
        self.row_cap = row_cap
        self._ids = itertools.count(1)

    def _check(self, op, table):
        self.calls.append((op, table))
        if self.fail:
            raise DatabaseError("boom")

    @staticmethod
    def _match(row, filters):
        return all(row.get(k) == v for k, v in (filters or {}).items())

    @staticmethod
    def _project(row, columns):
        if not columns or columns.strip() == "*":
            return dict(row)
        names = [c.strip() for c in columns.split(",")]
        return {n: row.get(n) for n in names}

    def insert(self, table, data):
        self._check("insert", table)
        row = dict(data)
        row.setdefault("id", next(self._ids))
        self.tables.setdefault(table, []).append(row)
        return [dict(row)]

    @staticmethod
    def _in_range(row, column, since, until):
        value = parse_timestamp(row.get(column))
        if since and (value is None or value < parse_timestamp(since)):
            return False
        if until and (value is None or value > parse_timestamp(until)):
            return False
        return True

    def select(self, table, columns="*", filters=None, order=None, desc=False, limit=None,
               since=None, until=None, range_column="timestamp"):
        self._check("select", table)
        self.selects.append({"table": table, "since": since, "until": until, "range_column": range_column})
        rows = [
            r for r in self.tables.get(table, [])
            if self._match(r, filters) and self._in_range(r, range_column, since, until)
        ]
        if order:
            rows = sorted(rows, key=lambda r: r.get(order) or "", reverse=desc)
        if limit:
            rows = rows[:limit]
        if self.row_cap:
            rows = rows[:self.row_cap]
        return [self._project(r, columns) for r in rows]

    def update(self, table, data, filters=None):
        self._check("update", table)
        out = []
        for row in self.tables.get(table, []):
            if self._match(row, filters):
                row.update(data)
                out.append(dict(row))
        return out

    def delete(self, table, filters=None):
        self._check("delete", table)
        keep, gone = [], []
        for row in self.tables.get(table, []):
            (gone if self._match(row, filters) else keep).append(row)
        self.tables[table] = keep
        return gone


class FakeQuery:
    """Chainable stand-in for a supabase-py query builder."""

    def __init__(self, data=None, error=None):
        self.ops = []
        self.data = data if data is not None else []
        self.error = error

    def __getattr__(self, name):
        def record(*args, **kwargs):
            self.ops.append((name, args, kwargs))
            return self
        return record

    def execute(self):
        if self.error:
            raise self.error
        return SimpleNamespace(data=copy.deepcopy(self.data))


def fake_supabase(data=None, error=None, rpc_data=None):
    query = FakeQuery(data, error)
    client = mock.MagicMock()
    client.table.return_value = query
    client.rpc.return_value.execute.return_value = SimpleNamespace(data=rpc_data)
    return client, query


def response(status=200, payload=None, text=""):
    resp = mock.MagicMock()
    resp.status_code = status
    resp.ok = 200 <= status < 300
    resp.text = text
    if isinstance(payload, Exception):
        resp.json.side_effect = payload
    else:
        resp.json.return_value = payload
    return resp
