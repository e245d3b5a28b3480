import os
import uuid

import pytest

# Settings are read at import time, so these must be in place before the app is imported
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("AUTH_RATE_LIMIT", "5/minute")
os.environ["APP_ENV"] = "test"

from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

from main import app, app_state
from routes import limiter


@pytest.fixture
def db():
    """In-memory Mongo database wired into the app state the request middleware reads from."""
    client = AsyncMongoMockClient()
    database = client[f"expense_tracker_test_{uuid.uuid4().hex[:8]}"]
    app_state.update(
        db_client=client,
        users_collection=database["users"],
        expenses_collection=database["expenses"],
    )
    yield database
    app_state.clear()


@pytest.fixture
def client(db):
    # Lifespan is not entered, so no real MongoDB connection is attempted
    limiter.enabled = False
    yield TestClient(app)
    limiter.enabled = True


@pytest.fixture
def user_factory(client):
    def _create(email: str = "alice@example.com", name: str = "Alice", password: str = "Secret123"):
        r = client.post("/api/users/register", json={"name": name, "email": email, "password": password})
        assert r.status_code == 201, r.text
        data = r.json()["data"]
        data["headers"] = {"Authorization": f"Bearer {data['token']}"}
        return data
    return _create


@pytest.fixture
def auth_headers(user_factory):
    return user_factory()["headers"]


@pytest.fixture
def expense_factory(client, auth_headers):
    def _create(headers=None, **fields):
        payload = {"title": "Lunch", "amount": 12.5, "category": "Food", "date": "2024-03-10"}
        payload.update(fields)
        r = client.post("/api/expenses", json=payload, headers=headers or auth_headers)
        assert r.status_code == 201, r.text
        return r.json()["data"]
    return _create
