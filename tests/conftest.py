import itertools
from typing import Any, Dict, List, Optional

import pytest
from bson import ObjectId
from fastapi.testclient import TestClient
from pydantic import BaseModel

import main


class FakeStore:
    """In-memory stand-in for the pymongo helpers in database.py."""

    def __init__(self):
        self.collections: Dict[str, List[Dict[str, Any]]] = {}
        self._clock = itertools.count(1)

    def _coll(self, name):
        return self.collections.setdefault(name, [])

    @staticmethod
    def _matches(doc, filt):
        for key, cond in filt.items():
            value = doc.get(key)
            if isinstance(cond, dict):
                for op, arg in cond.items():
                    if op == "$gte" and not value >= arg:
                        return False
                    if op == "$lt" and not value < arg:
                        return False
                    if op == "$in" and value not in arg:
                        return False
            elif value != cond:
                return False
        return True

    def _find(self, name, document_id):
        oid = ObjectId(document_id)
        return next((d for d in self._coll(name) if d["_id"] == oid), None)

    def create_document(self, collection_name, data):
        doc = data.model_dump() if isinstance(data, BaseModel) else dict(data)
        doc["_id"] = ObjectId()
        doc["created_at"] = next(self._clock)
        self._coll(collection_name).append(doc)
        return str(doc["_id"])

    def get_documents(self, collection_name, filter_dict=None, limit=None, sort=None):
        docs = [dict(d) for d in self._coll(collection_name) if self._matches(d, filter_dict or {})]
        for key, direction in reversed(list(sort or [])):
            docs.sort(key=lambda d: d[key], reverse=direction < 0)
        if limit:
            docs = docs[:limit]
        return docs

    def get_document(self, collection_name, document_id) -> Optional[Dict[str, Any]]:
        doc = self._find(collection_name, document_id)
        return dict(doc) if doc else None

    def update_document(self, collection_name, document_id, updates):
        doc = self._find(collection_name, document_id)
        if doc is None:
            return 0
        doc.update(updates)
        return 1

    def delete_document(self, collection_name, document_id):
        doc = self._find(collection_name, document_id)
        if doc is None:
            return 0
        self._coll(collection_name).remove(doc)
        return 1


@pytest.fixture
def store(monkeypatch):
    fake = FakeStore()
    for name in ("create_document", "get_documents", "get_document", "update_document", "delete_document"):
        monkeypatch.setattr(main, name, getattr(fake, name))
    return fake


@pytest.fixture
def client(store):
    return TestClient(main.app)
