# tests/conftest.py
import copy
import threading
from types import SimpleNamespace

import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

from main import create_app
from settings import Settings


# --- In-memory stand-in for a pymongo collection ---
def _matches(doc, filt):
    for key, cond in filt.items():
        value = doc.get(key)
        if isinstance(cond, dict):
            for op, operand in cond.items():
                if op == "$gte":
                    if value is None or value < operand:
                        return False
                else:
                    raise NotImplementedError(op)
        elif value != cond:
            return False
    return True


class FakeCursor:

    def __init__(self, docs):
        self._docs = docs

    def sort(self, key, direction=1):
        # stable sort keeps insertion order for ties
        self._docs = sorted(self._docs, key=lambda d: d.get(key, 0), reverse=direction < 0)
        return self

    def limit(self, n):
        self._docs = self._docs[:n]
        return self

    def __iter__(self):
        return iter(copy.deepcopy(self._docs))


class FakeCollection:

    def __init__(self, name):
        self.name = name
        self.docs = []
        self.fail_on = set()
        # when set, every find_one waits here before returning
        self.read_barrier = None
        self._lock = threading.Lock()

    def _check(self, op):
        if op in self.fail_on:
            from pymongo.errors import ServerSelectionTimeoutError

            raise ServerSelectionTimeoutError(f"{self.name}.{op} unavailable")

    def find(self, filt=None):
        self._check("find")
        with self._lock:
            return FakeCursor([d for d in self.docs if _matches(d, filt or {})])

    def find_one(self, filt=None):
        self._check("find_one")
        with self._lock:
            found = next((d for d in self.docs if _matches(d, filt or {})), None)
            found = copy.deepcopy(found)
        if self.read_barrier is not None:
            self.read_barrier.wait()
        return found

    def insert_one(self, doc):
        self._check("insert_one")
        with self._lock:
            doc.setdefault("_id", ObjectId())
            self.docs.append(copy.deepcopy(doc))
        return SimpleNamespace(inserted_id=doc["_id"])

    def _apply(self, doc, update):
        for op, fields in update.items():
            if op != "$inc":
                raise NotImplementedError(op)
            for key, amount in fields.items():
                doc[key] = doc.get(key, 0) + amount

    def update_one(self, filt, update):
        self._check("update_one")
        with self._lock:
            for doc in self.docs:
                if _matches(doc, filt):
                    self._apply(doc, update)
                    return SimpleNamespace(matched_count=1, modified_count=1)
        return SimpleNamespace(matched_count=0, modified_count=0)

    def find_one_and_update(self, filt, update, return_document=None):
        self._check("find_one_and_update")
        with self._lock:
            for doc in self.docs:
                if _matches(doc, filt):
                    self._apply(doc, update)
                    return copy.deepcopy(doc)
        return None


class FakeDatabase:

    def __init__(self):
        self.foods = FakeCollection("all-foods")
        self.purchases = FakeCollection("purchases")
        self.closed = False

    def close(self):
        self.closed = True


@pytest.fixture
def fake_db():
    return FakeDatabase()


@pytest.fixture
def settings():
    return Settings(_env_file=None, db_user="tester", db_pass="secret")


def _client(settings, fake_db):
    app = create_app(settings=settings, connect=lambda s: fake_db)
    return TestClient(app)


@pytest.fixture
def client(settings, fake_db):
    with _client(settings, fake_db) as c:
        yield c


@pytest.fixture
def atomic_client(fake_db):
    atomic = Settings(_env_file=None, db_user="tester", db_pass="secret", atomic_purchases=True)
    with _client(atomic, fake_db) as c:
        yield c


def _food_payload(**overrides):
    payload = {
        "name": "Pad Thai",
        "price": 12.5,
        "quantity": 5,
        "foodImage": "https://example.com/padthai.jpg",
        "category": "Noodles",
        "description": "Stir-fried rice noodles",
        "foodOrigin": "Thailand",
        "userEmail": "chef@example.com",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def food_payload():
    return _food_payload


@pytest.fixture
def add_food(fake_db):
    """Insert a food document directly and return its id."""

    def _add(**overrides):
        doc = _food_payload(**overrides)
        doc.setdefault("purchases", 0)
        result = fake_db.foods.insert_one(doc)
        return result.inserted_id

    return _add
