"""
Fixtures communes: base Mongo en mémoire branchée à la place de `db`
dans chaque service, + fabrique de leads.
"""

import copy
import os
import sys
import uuid
from types import SimpleNamespace

import pytest
import pytest_asyncio
from pymongo.errors import DuplicateKeyError

# Add backend to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import config  # noqa: E402
from services import activity_logger, lead_scoring, rdv_workflow, script_catalog, script_engine  # noqa: E402

PATCHED_MODULES = [config, activity_logger, lead_scoring, rdv_workflow, script_catalog, script_engine]


# ==================== MONGO EN MÉMOIRE ====================

def _matches(doc: dict, query: dict) -> bool:
    for key, expected in query.items():
        value = doc.get(key)
        if isinstance(expected, dict) and expected and all(k.startswith("$") for k in expected):
            for op, arg in expected.items():
                if op == "$ne" and value == arg:
                    return False
                if op == "$in" and value not in arg:
                    return False
                if op == "$nin" and value in arg:
                    return False
                if op == "$lte" and (value is None or value > arg):
                    return False
                if op == "$gte" and (value is None or value < arg):
                    return False
        elif value != expected:
            return False
    return True


def _project(doc: dict, projection) -> dict:
    doc = copy.deepcopy(doc)
    if not projection:
        return doc

    hide_id = projection.get("_id", 1) == 0
    fields = {k: v for k, v in projection.items() if k != "_id"}

    if any(fields.values()):
        projected = {k: doc[k] for k in fields if k in doc}
        if not hide_id and "_id" in doc:
            projected["_id"] = doc["_id"]
        return projected

    for key in fields:
        doc.pop(key, None)
    if hide_id:
        doc.pop("_id", None)
    return doc


class FakeCursor:
    def __init__(self, docs):
        self._docs = docs
        self._skip = 0
        self._limit = 0

    def sort(self, key, direction=1):
        present = [d for d in self._docs if d.get(key) is not None]
        missing = [d for d in self._docs if d.get(key) is None]
        present.sort(key=lambda d: d[key], reverse=direction == -1)
        self._docs = missing + present if direction == 1 else present + missing
        return self

    def skip(self, n):
        self._skip = n
        return self

    def limit(self, n):
        self._limit = n
        return self

    async def to_list(self, length=None):
        docs = self._docs[self._skip:]
        if self._limit:
            docs = docs[:self._limit]
        if length:
            docs = docs[:length]
        return docs


class FakeCollection:
    def __init__(self, name):
        self.name = name
        self.docs = []
        self.indexes = []
        self.unique = None

    async def insert_one(self, doc):
        if self.unique and any(all(d.get(k) == doc.get(k) for k in self.unique) for d in self.docs):
            raise DuplicateKeyError(f"E11000 duplicate key {self.name} {self.unique}", code=11000)
        doc["_id"] = str(uuid.uuid4())
        self.docs.append(copy.deepcopy(doc))
        return SimpleNamespace(inserted_id=doc["_id"])

    async def find_one(self, query=None, projection=None):
        for doc in self.docs:
            if _matches(doc, query or {}):
                return _project(doc, projection)
        return None

    def find(self, query=None, projection=None):
        return FakeCursor([_project(d, projection) for d in self.docs if _matches(d, query or {})])

    async def count_documents(self, query):
        return len([d for d in self.docs if _matches(d, query)])

    def _apply(self, doc, update):
        for key, value in update.get("$set", {}).items():
            doc[key] = copy.deepcopy(value)
        for key, value in update.get("$inc", {}).items():
            doc[key] = (doc.get(key) or 0) + value

    async def update_one(self, query, update):
        for doc in self.docs:
            if _matches(doc, query):
                self._apply(doc, update)
                return SimpleNamespace(matched_count=1, modified_count=1)
        return SimpleNamespace(matched_count=0, modified_count=0)

    async def update_many(self, query, update):
        matched = [d for d in self.docs if _matches(d, query)]
        for doc in matched:
            self._apply(doc, update)
        return SimpleNamespace(matched_count=len(matched), modified_count=len(matched))

    async def delete_one(self, query):
        for i, doc in enumerate(self.docs):
            if _matches(doc, query):
                del self.docs[i]
                return SimpleNamespace(deleted_count=1)
        return SimpleNamespace(deleted_count=0)

    async def create_index(self, keys, **kwargs):
        self.indexes.append((keys, kwargs))
        return str(keys)

    def get(self, **query):
        """Accès direct au document stocké (assertions)"""
        for doc in self.docs:
            if _matches(doc, query):
                return doc
        return None


class FakeDatabase:
    def __init__(self):
        self._collections = {}

    def __getattr__(self, name):
        if name.startswith("_"):
            raise AttributeError(name)
        if name not in self._collections:
            self._collections[name] = FakeCollection(name)
        return self._collections[name]

    def __getitem__(self, name):
        return getattr(self, name)


@pytest_asyncio.fixture
async def fake_db(monkeypatch):
    database = FakeDatabase()
    database.script_responses.unique = ("execution_id", "seq")
    for module in PATCHED_MODULES:
        monkeypatch.setattr(module, "db", database)
    yield database
    await lead_scoring.wait_for_pending_refreshes()


# ==================== FABRIQUES ====================

@pytest.fixture
def make_lead(fake_db):
    """Insère un lead et retourne son document stocké"""
    def _make(status="RDV_PLANIFIE", relance_count=0, **extra):
        lead = {
            "id": str(uuid.uuid4()),
            "organization_id": "org-test",
            "nom": "Martin",
            "prenom": "Julie",
            "status": status,
            "relance_count": relance_count,
            "notes": "",
            **extra,
        }
        fake_db.leads.docs.append(copy.deepcopy(lead))
        return fake_db.leads.get(id=lead["id"])
    return _make

