"""Shared pytest fixtures for testing the triage portal services."""

from types import SimpleNamespace

import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

from triage_portal.main import api_application
from triage_portal.services.features import VitalsSnapshot

SERVICE_MODULES = [
    "triage_portal.services.assessment_service",
    "triage_portal.services.booking_service",
    "triage_portal.services.notification_service",
    "triage_portal.services.reschedule_service",
    "triage_portal.services.slot_service",
]


def _matches(document, query):
    return all(document.get(key) == value for key, value in (query or {}).items())


class FakeCursor:
    """Small stand-in for a Motor cursor supporting sort() and to_list()."""

    def __init__(self, documents):
        self._documents = documents

    def sort(self, key, direction=1):
        self._documents = sorted(
            self._documents, key=lambda doc: doc.get(key), reverse=direction < 0
        )
        return self

    async def to_list(self, length=None):
        documents = self._documents if length is None else self._documents[:length]
        return [dict(doc) for doc in documents]


class FakeCollection:
    """In-memory collection with the subset of the Motor API the services use."""

    def __init__(self):
        self.documents = []

    def find(self, query=None):
        return FakeCursor([doc for doc in self.documents if _matches(doc, query)])

    async def find_one(self, query=None, sort=None):
        found = [doc for doc in self.documents if _matches(doc, query)]
        for key, direction in reversed(sort or []):
            found = sorted(found, key=lambda doc: doc.get(key), reverse=direction < 0)
        return dict(found[0]) if found else None

    async def count_documents(self, query):
        return sum(1 for doc in self.documents if _matches(doc, query))

    async def insert_one(self, document):
        stored = dict(document)
        stored.setdefault("_id", ObjectId())
        self.documents.append(stored)
        return SimpleNamespace(inserted_id=stored["_id"])

    async def update_one(self, query, update):
        for doc in self.documents:
            if _matches(doc, query):
                doc.update(update.get("$set", {}))
                return SimpleNamespace(matched_count=1, modified_count=1)
        return SimpleNamespace(matched_count=0, modified_count=0)

    async def create_index(self, keys):
        return "_".join(f"{key}_{direction}" for key, direction in keys)


class FakeDatabase(dict):
    """Dictionary of collections that creates collections on first access."""

    def __missing__(self, name):
        collection = FakeCollection()
        self[name] = collection
        return collection


@pytest.fixture
def fake_db(monkeypatch):
    """
    Replace `get_database` in every service module with an in-memory store.

    Returns
    -------
    FakeDatabase
        The shared in-memory database so tests can seed and inspect it.
    """
    database = FakeDatabase()
    for module_name in SERVICE_MODULES:
        monkeypatch.setattr(f"{module_name}.get_database", lambda: database)
    return database


@pytest.fixture
def client():
    """Provide a synchronous test client for the FastAPI application."""
    api_application.state.risk_classifier = None
    return TestClient(api_application)


@pytest.fixture
def normal_vitals():
    """A healthy adult with every vital sign inside normal bounds."""
    return VitalsSnapshot(
        age=35,
        sex="female",
        systolic_bp=115,
        diastolic_bp=75,
        heart_rate=72,
        temperature_c=36.8,
    )


def make_snapshot(**overrides):
    """Build a snapshot from normal vitals with selected fields changed."""
    values = {
        "age": 35,
        "sex": "female",
        "systolic_bp": 115,
        "diastolic_bp": 75,
        "heart_rate": 72,
        "temperature_c": 36.8,
        "symptoms": frozenset(),
        "conditions": frozenset(),
    }
    values.update(overrides)
    values["symptoms"] = frozenset(values["symptoms"])
    values["conditions"] = frozenset(values["conditions"])
    return VitalsSnapshot(**values)


@pytest.fixture
def vitals():
    """Factory fixture building snapshots from normal vitals plus overrides."""
    return make_snapshot
