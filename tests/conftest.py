# tests/conftest.py
import fnmatch
import itertools
import json
import re

import httpx
import pytest
from fastapi.testclient import TestClient

from app.main import app
from recipehub.store_factory import get_store
from recipehub.store_rest import RecipeStore
from recipehub.telemetry import Telemetry

_RESERVED = {"select", "order", "limit", "offset", "or", "on_conflict"}
_UNIQUE = {"follows": ("follower_id", "following_id")}


def _text(v):
    if isinstance(v, bool):
        return "true" if v else "false"
    return "" if v is None else str(v)


def _parse_in(expr):
    inner = expr[len("in.("):-1]
    return [p.strip().strip('"') for p in inner.split(",") if p.strip()]


def _match(row, col, expr):
    v = row.get(col)
    if expr.startswith("eq."):
        return _text(v) == expr[3:]
    if expr.startswith("in.("):
        return _text(v) in _parse_in(expr)
    if expr.startswith("ilike."):
        pattern = _unquote(expr[len("ilike."):]).replace("*", "%").replace("%", "*").lower()
        return fnmatch.fnmatchcase(_text(v).lower(), pattern)
    if expr == "is.null":
        return v is None
    if expr.startswith("cs."):
        wanted = json.loads(expr[3:])
        return all(w in (v or []) for w in wanted)
    raise AssertionError(f"unsupported filter {col}={expr}")


def _unquote(value):
    if len(value) >= 2 and value[0] == value[-1] == '"':
        return re.sub(r"\\(.)", r"\1", value[1:-1])
    return value


def _split_top(body):
    """Split on commas outside double quotes."""
    parts, buf, quoted, escaped = [], "", False, False
    for ch in body:
        if escaped:
            escaped = False
        elif ch == "\\":
            escaped = True
        elif ch == '"':
            quoted = not quoted
        elif ch == "," and not quoted:
            parts.append(buf)
            buf = ""
            continue
        buf += ch
    parts.append(buf)
    return parts


def _match_or(row, expr):
    assert expr.startswith("(") and expr.endswith(")"), expr
    for part in _split_top(expr[1:-1]):
        col, rest = part.split(".", 1)
        if _match(row, col, rest):
            return True
    return False


class FakeREST:
    """In-memory stand-in for SupabaseREST speaking the same PostgREST params."""

    def __init__(self, tables=None):
        self.tables = {k: [dict(r) for r in v] for k, v in (tables or {}).items()}
        self.calls = []
        self._ids = itertools.count(1000)

    def _filter(self, table, params):
        rows = list(self.tables.get(table, []))
        for col, expr in (params or {}).items():
            if col in _RESERVED:
                continue
            rows = [r for r in rows if _match(r, col, expr)]
        if params and "or" in params:
            rows = [r for r in rows if _match_or(r, params["or"])]
        return rows

    async def select(self, table, params=None):
        params = params or {}
        self.calls.append(("select", table, dict(params)))
        rows = self._filter(table, params)
        for key in reversed((params.get("order") or "").split(",")):
            if not key:
                continue
            col, _, direction = key.partition(".")
            rows.sort(key=lambda r: (r.get(col) is None, "" if r.get(col) is None else r.get(col)), reverse=direction == "desc")
        offset = int(params.get("offset", 0))
        if "limit" in params:
            rows = rows[offset:offset + int(params["limit"])]
        else:
            rows = rows[offset:]
        return [dict(r) for r in rows]

    async def count(self, table, filters=None):
        self.calls.append(("count", table, dict(filters or {})))
        return len(self._filter(table, filters))

    async def insert(self, table, payload, *, upsert=False, on_conflict=None, return_representation=True, params=None):
        self.calls.append(("insert", table, payload))
        rows = payload if isinstance(payload, list) else [payload]
        out = []
        for row in rows:
            row = dict(row)
            unique = _UNIQUE.get(table)
            if unique and any(all(r.get(c) == row.get(c) for c in unique) for r in self.tables.get(table, [])):
                req = httpx.Request("POST", f"http://fake/rest/v1/{table}")
                resp = httpx.Response(409, json={"code": "23505", "message": "duplicate key"}, request=req)
                raise httpx.HTTPStatusError(f"Insert {table} failed: 409", request=req, response=resp)
            row.setdefault("id", f"{table}-{next(self._ids)}")
            row.setdefault("created_at", "2024-06-01T00:00:00Z")
            self.tables.setdefault(table, []).append(row)
            out.append(dict(row))
        return out if return_representation else []

    async def update(self, table, filters, payload, *, params=None, return_representation=True):
        self.calls.append(("update", table, dict(filters)))
        hits = self._filter(table, filters)
        for r in hits:
            r.update(payload)
        return [dict(r) for r in hits] if return_representation else []

    async def delete(self, table, filters=None, *, return_representation=True):
        self.calls.append(("delete", table, dict(filters or {})))
        hits = self._filter(table, filters)
        self.tables[table] = [r for r in self.tables.get(table, []) if r not in hits]
        return [dict(r) for r in hits] if return_representation else []


def seed_tables():
    return {
        "profiles": [
            {"id": "u1", "username": "alice", "avatar_url": "a.png"},
            {"id": "u2", "username": "bob", "avatar_url": None},
            {"id": "u3", "username": "carol", "avatar_url": "c.png"},
        ],
        "categories": [
            {"id": "c-main", "name": "主菜", "slug": "main", "sort_order": 1},
            {"id": "c-soup", "name": "湯品", "slug": "soup", "sort_order": 2},
            {"id": "c-dessert", "name": "甜點", "slug": "dessert", "sort_order": 3},
        ],
        "recipes": [
            {
                "id": "r1", "user_id": "u1", "title": "番茄蛋花湯", "description": "家常湯",
                "difficulty": "easy", "category_id": "c-soup", "tags": ["湯", "家常菜"],
                "ingredients": [{"name": "番茄", "amount": "2"}, {"name": "雞蛋", "amount": "1"}],
                "steps": [{"step_number": 1, "instruction": "煮滾"}],
                "status": "published", "is_public": True, "created_at": "2024-05-03T10:00:00Z",
            },
            {
                "id": "r2", "user_id": "u2", "title": "紅燒牛肉", "description": None,
                "difficulty": None, "category_id": "c-main", "tags": ["韓式料理"],
                "ingredients": [{"name": "牛肉", "amount": "300g"}],
                "steps": [], "status": None, "is_public": None, "created_at": "2024-05-02T10:00:00Z",
            },
            {
                "id": "r3", "user_id": "u1", "title": "巧克力蛋糕", "description": "甜點",
                "difficulty": "hard", "category_id": "c-dessert", "tags": ["甜點"],
                "ingredients": [{"name": "巧克力", "amount": "100g"}],
                "steps": [], "status": "draft", "is_public": True, "created_at": "2024-05-01T10:00:00Z",
            },
        ],
        "recipe_ratings": [
            {"recipe_id": "r1", "rating": 4},
            {"recipe_id": "r1", "rating": 5},
        ],
        "recipe_favorites": [{"recipe_id": "r1"}],
        "tags": [
            {"id": "t1", "name": "家常菜", "slug": "家常菜", "usage_count": 1},
            {"id": "t2", "name": "Quick Meals", "slug": "quick-meals", "usage_count": 0},
        ],
        "recipe_tags": [
            {"recipe_id": "r1", "tag_id": "t1", "created_at": "2024-05-03T10:00:00Z"},
        ],
        "comments": [
            {"id": "k1", "recipe_id": "r1", "user_id": "u1", "content": "first", "created_at": "2024-05-04T08:00:00Z"},
            {"id": "k2", "recipe_id": "r1", "user_id": "u2", "content": "second", "created_at": "2024-05-04T09:00:00Z"},
            {"id": "k3", "recipe_id": "r1", "user_id": "u3", "content": "reply to first", "parent_id": "k1", "created_at": "2024-05-04T10:00:00Z"},
            {"id": "k4", "recipe_id": "r1", "user_id": "u9", "content": "reply to gone", "parent_id": "deleted", "created_at": "2024-05-04T11:00:00Z"},
        ],
        "follows": [
            {"follower_id": "u2", "following_id": "u1", "created_at": "2024-05-01T00:00:00Z"},
            {"follower_id": "u3", "following_id": "u1", "created_at": "2024-05-02T00:00:00Z"},
        ],
        "user_events": [],
    }


@pytest.fixture
def fake_rest():
    return FakeREST(seed_tables())


@pytest.fixture
def store(fake_rest):
    return RecipeStore(fake_rest)


@pytest.fixture
def telemetry(store):
    return Telemetry(sink=store.insert_events, enabled=False)


@pytest.fixture
def client(store, telemetry):
    app.dependency_overrides[get_store] = lambda: store
    app.state.telemetry = telemetry
    try:
        yield TestClient(app, base_url="http://testserver")
    finally:
        app.dependency_overrides.clear()
