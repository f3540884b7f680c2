"""Pytest fixtures.

Each test gets its own in-memory mongomock database, patched in as
``database.db`` so the API and the helper functions both see it.
"""

from __future__ import annotations

import mongomock
import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

import database
from database import ensure_indexes
from helpers import register


@pytest.fixture
def mongo_db(monkeypatch: pytest.MonkeyPatch):
    db = mongomock.MongoClient()["finance_test"]
    ensure_indexes(db)
    monkeypatch.setattr(database, "db", db)
    return db


@pytest.fixture
def collection(mongo_db):
    return mongo_db["transaction"]


@pytest.fixture
def owner_id() -> ObjectId:
    return ObjectId()


@pytest.fixture
def other_owner_id() -> ObjectId:
    return ObjectId()


@pytest.fixture
def client(mongo_db) -> TestClient:
    from main import app

    return TestClient(app)


@pytest.fixture
def auth_headers(client: TestClient) -> dict:
    return register(client, "alice@example.com", username="alice")


@pytest.fixture
def other_headers(client: TestClient) -> dict:
    return register(client, "bob@example.com", username="bob")
