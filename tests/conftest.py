"""
Global test fixtures for the MongoDB Dashboard backend.

This module provides:
- An in-memory async stand-in for the pymongo client, evaluating the query
  shapes the pagination builder produces ($and, $or, $lt, $regex, equality)
- Settings isolated from the environment
- A FastAPI TestClient wired to the fake store
"""

import copy
import re
from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Any, Dict, Generator, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

from mongodash.config import Settings
from mongodash.main import create_app


# =============================================================================
# In-memory store
# =============================================================================

_MISSING = object()


def get_path(doc: Dict[str, Any], path: str) -> Any:
    current: Any = doc
    for part in path.split("."):
        if isinstance(current, dict) and part in current:
            current = current[part]
        else:
            return _MISSING
    return current


def _comparable(a: Any, b: Any) -> bool:
    if isinstance(a, bool) or isinstance(b, bool):
        return False
    if isinstance(a, (int, float)) and isinstance(b, (int, float)):
        return True
    return type(a) is type(b)


def match_value(value: Any, cond: Any) -> bool:
    if isinstance(cond, dict) and cond and all(k.startswith("$") for k in cond):
        for op, arg in cond.items():
            if op == "$options":
                continue
            if op == "$regex":
                flags = re.IGNORECASE if "i" in cond.get("$options", "") else 0
                candidates = value if isinstance(value, list) else [value]
                if not any(isinstance(v, str) and re.search(arg, v, flags) for v in candidates):
                    return False
            elif op in ("$lt", "$gt"):
                if value is _MISSING or value is None or not _comparable(value, arg):
                    return False
                if op == "$lt" and not value < arg:
                    return False
                if op == "$gt" and not value > arg:
                    return False
            else:
                raise NotImplementedError(op)
        return True
    if cond is None:
        return value is _MISSING or value is None
    if value is _MISSING:
        return False
    if isinstance(value, list) and not isinstance(cond, list):
        return cond in value
    return value == cond


def matches(doc: Dict[str, Any], query: Optional[Dict[str, Any]]) -> bool:
    for key, cond in (query or {}).items():
        if key == "$and":
            if not all(matches(doc, q) for q in cond):
                return False
        elif key == "$or":
            if not any(matches(doc, q) for q in cond):
                return False
        elif not match_value(get_path(doc, key), cond):
            return False
    return True


def _sort_key(field: str):
    def key(doc):
        value = get_path(doc, field)
        if value is _MISSING or value is None:
            return (0,)
        return (1, value)
    return key


class FakeCursor:
    def __init__(self, docs: List[Dict[str, Any]]):
        self._docs = docs
        self._limit: Optional[int] = None

    def sort(self, keys):
        for field, direction in reversed(list(keys)):
            self._docs.sort(key=_sort_key(field), reverse=direction < 0)
        return self

    def limit(self, n: int):
        self._limit = n
        return self

    async def to_list(self, length: Optional[int] = None):
        docs = self._docs if self._limit is None else self._docs[: self._limit]
        if length is not None:
            docs = docs[:length]
        return [copy.deepcopy(d) for d in docs]


class FakeCollection:
    def __init__(self, name: str):
        self.name = name
        self.docs: List[Dict[str, Any]] = []

    def find(self, query=None, projection=None):
        return FakeCursor([d for d in self.docs if matches(d, query)])

    async def find_one(self, query=None, projection=None):
        for doc in self.docs:
            if matches(doc, query):
                out = copy.deepcopy(doc)
                if projection and projection.get("_id") == 0:
                    out.pop("_id", None)
                return out
        return None

    async def insert_one(self, doc):
        doc = copy.deepcopy(doc)
        doc.setdefault("_id", ObjectId())
        self.docs.append(doc)
        return SimpleNamespace(inserted_id=doc["_id"])

    async def replace_one(self, query, replacement):
        for i, doc in enumerate(self.docs):
            if matches(doc, query):
                new_doc = {"_id": doc["_id"], **copy.deepcopy(replacement)}
                modified = int(new_doc != doc)
                self.docs[i] = new_doc
                return SimpleNamespace(matched_count=1, modified_count=modified)
        return SimpleNamespace(matched_count=0, modified_count=0)

    async def delete_one(self, query):
        for i, doc in enumerate(self.docs):
            if matches(doc, query):
                del self.docs[i]
                return SimpleNamespace(deleted_count=1)
        return SimpleNamespace(deleted_count=0)

    async def estimated_document_count(self):
        return len(self.docs)

    def add(self, **fields) -> Dict[str, Any]:
        """Synchronous insert for test setup."""
        fields.setdefault("_id", ObjectId())
        self.docs.append(fields)
        return fields


class FakeDatabase:
    def __init__(self, name: str):
        self.name = name
        self.collections: Dict[str, FakeCollection] = {}

    def __getitem__(self, name: str) -> FakeCollection:
        if name not in self.collections:
            self.collections[name] = FakeCollection(name)
        return self.collections[name]

    async def list_collection_names(self):
        return list(self.collections.keys())


class FakeCommandCursor:
    def __init__(self, items):
        self._items = items

    async def to_list(self, length=None):
        return list(self._items)


class FakeMongoClient:
    def __init__(self):
        self.databases: Dict[str, FakeDatabase] = {}
        self.admin = MagicMock()
        self.admin.command = AsyncMock(return_value={"ok": 1.0})
        self.close = AsyncMock()

    def __getitem__(self, name: str) -> FakeDatabase:
        if name not in self.databases:
            self.databases[name] = FakeDatabase(name)
        return self.databases[name]

    async def list_databases(self):
        return FakeCommandCursor([
            {"name": name, "sizeOnDisk": 8192.0, "empty": not any(c.docs for c in db.collections.values())}
            for name, db in self.databases.items()
        ])


# =============================================================================
# Fixtures
# =============================================================================

FAKE_URI = "mongodb://fake-host:27017"


@pytest.fixture
def store() -> FakeMongoClient:
    """Fresh in-memory MongoDB stand-in."""
    return FakeMongoClient()


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, mongo_uri=None, log_level="WARNING")


@pytest.fixture
def app(settings, store):
    return create_app(settings, client_factory=lambda uri, **options: store)


@pytest.fixture
def client(app) -> Generator:
    """TestClient for the app, not yet connected to the store."""
    with TestClient(app) as c:
        yield c


@pytest.fixture
def connected_client(client) -> TestClient:
    response = client.post("/api/connect", json={"connectionString": FAKE_URI})
    assert response.status_code == 200
    return client


@pytest.fixture
def base_time() -> datetime:
    return datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


