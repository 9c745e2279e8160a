from __future__ import annotations

import copy
import itertools
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from athena.core.auth import get_current_user
from athena.main import app
from athena.services import pool, supabase_repo

USER_ID = "aaaaaaaa-aaaa-aaaa-aaaa-aaaaaaaaaaaa"
OTHER_USER_ID = "bbbbbbbb-bbbb-bbbb-bbbb-bbbbbbbbbbbb"
ORG_ID = "org-1"

_BASE_TIME = datetime(2026, 1, 1, tzinfo=timezone.utc)


class FakeResponse:
    def __init__(self, data: List[Dict[str, Any]], count: Optional[int] = None):
        self.data = data
        self.count = count


def _like_to_regex(pattern: str) -> re.Pattern:
    parts = [re.escape(p) for p in pattern.split("%")]
    return re.compile(".*".join(parts), re.IGNORECASE | re.DOTALL)


class FakeQuery:
    """Enough of the postgrest query builder for the repository functions."""

    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table_name = table
        self.op = "select"
        self.payload: Any = None
        self.on_conflict: Optional[str] = None
        self.filters: List[Callable[[Dict[str, Any]], bool]] = []
        self.orders: List[tuple] = []
        self.count_mode: Optional[str] = None
        self._range: Optional[tuple] = None
        self._limit: Optional[int] = None

    # Operations
    def select(self, columns: str = "*", count: Optional[str] = None):
        self.count_mode = count
        return self

    def insert(self, rows):
        self.op, self.payload = "insert", rows
        return self

    def update(self, values: Dict[str, Any]):
        self.op, self.payload = "update", values
        return self

    def upsert(self, rows, on_conflict: Optional[str] = None):
        self.op, self.payload, self.on_conflict = "upsert", rows, on_conflict
        return self

    def delete(self):
        self.op = "delete"
        return self

    # Filters
    def eq(self, column: str, value: Any):
        self.filters.append(lambda r: r.get(column) == value)
        return self

    def neq(self, column: str, value: Any):
        self.filters.append(lambda r: r.get(column) != value)
        return self

    def gte(self, column: str, value: Any):
        self.filters.append(lambda r: r.get(column) is not None and r.get(column) >= value)
        return self

    def ilike(self, column: str, pattern: str):
        regex = _like_to_regex(pattern)
        self.filters.append(lambda r: r.get(column) is not None and bool(regex.fullmatch(str(r.get(column)))))
        return self

    def or_(self, expression: str):
        checks = []
        for clause in expression.split(","):
            column, op, value = clause.split(".", 2)
            if op == "ilike":
                regex = _like_to_regex(value)
                checks.append(lambda r, c=column, rx=regex: r.get(c) is not None and bool(rx.fullmatch(str(r.get(c)))))
            elif op == "eq":
                checks.append(lambda r, c=column, v=value: str(r.get(c)) == v)
            else:
                raise NotImplementedError(op)
        self.filters.append(lambda r: any(check(r) for check in checks))
        return self

    def order(self, column: str, desc: bool = False):
        self.orders.append((column, desc))
        return self

    def range(self, start: int, end: int):
        self._range = (start, end)
        return self

    def limit(self, n: int):
        self._limit = n
        return self

    # Execution
    def _matches(self) -> List[Dict[str, Any]]:
        rows = self.db.tables.setdefault(self.table_name, [])
        return [r for r in rows if all(f(r) for f in self.filters)]

    def execute(self) -> FakeResponse:
        rows = self.db.tables.setdefault(self.table_name, [])

        if self.op == "insert":
            payload = self.payload if isinstance(self.payload, list) else [self.payload]
            inserted = [self.db.new_row(self.table_name, row) for row in payload]
            return FakeResponse(copy.deepcopy(inserted))

        if self.op == "upsert":
            payload = self.payload if isinstance(self.payload, list) else [self.payload]
            keys = [k.strip() for k in (self.on_conflict or "id").split(",")]
            result = []
            for row in payload:
                existing = next((r for r in rows if all(r.get(k) == row.get(k) for k in keys)), None)
                if existing is not None:
                    existing.update(copy.deepcopy(row))
                    result.append(existing)
                else:
                    result.append(self.db.new_row(self.table_name, row))
            return FakeResponse(copy.deepcopy(result))

        matched = self._matches()

        if self.op == "update":
            for r in matched:
                r.update(copy.deepcopy(self.payload))
            return FakeResponse(copy.deepcopy(matched))

        if self.op == "delete":
            self.db.tables[self.table_name] = [r for r in rows if r not in matched]
            return FakeResponse(copy.deepcopy(matched))

        for column, desc in reversed(self.orders):
            present = [r for r in matched if r.get(column) is not None]
            missing = [r for r in matched if r.get(column) is None]
            matched = sorted(present, key=lambda r: r[column], reverse=desc) + missing

        count = len(matched) if self.count_mode else None
        if self._range is not None:
            start, end = self._range
            matched = matched[start:end + 1]
        if self._limit is not None:
            matched = matched[: self._limit]
        return FakeResponse(copy.deepcopy(matched), count)


class FakeSupabase:
    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self._ids = itertools.count(1)

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def new_row(self, table: str, values: Dict[str, Any]) -> Dict[str, Any]:
        n = next(self._ids)
        row = copy.deepcopy(values)
        row.setdefault("id", f"{table}-{n}")
        row.setdefault("created_at", (_BASE_TIME + timedelta(seconds=n)).isoformat())
        self.tables.setdefault(table, []).append(row)
        return row

    def seed(self, table: str, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return [self.new_row(table, row) for row in rows]


@pytest.fixture
def fake_db(monkeypatch) -> FakeSupabase:
    db = FakeSupabase()
    monkeypatch.setattr(supabase_repo, "get_supabase_service", lambda: db)
    monkeypatch.setattr(supabase_repo, "get_supabase_anon", lambda: db)
    monkeypatch.setattr(supabase_repo, "get_supabase_for_user", lambda jwt: db)
    return db


@pytest.fixture(autouse=True)
def _reset_pool_rate_limits():
    pool.reset_rate_limits()
    yield
    pool.reset_rate_limits()


@pytest.fixture
def make_client(fake_db):
    """
    TestClient authenticated as USER_ID with a user_profiles row of the given role.
    """
    created: List[TestClient] = []

    def _make(role: Optional[str] = "marketer", status: str = "active", user_id: str = USER_ID) -> TestClient:
        if role is not None:
            fake_db.seed("user_profiles", [{"id": user_id, "role": role, "status": status, "org_id": ORG_ID}])
        app.dependency_overrides[get_current_user] = lambda: {
            "user_id": user_id,
            "claims": {"sub": user_id, "email": "user@example.com"},
            "token": "test-token",
        }
        client = TestClient(app)
        created.append(client)
        return client

    yield _make
    app.dependency_overrides.clear()


@pytest.fixture
def client(make_client) -> TestClient:
    return make_client("marketer")


@pytest.fixture
def anon_client(fake_db) -> TestClient:
    app.dependency_overrides.clear()
    return TestClient(app)
