from bson import ObjectId
from fastapi.testclient import TestClient
from pymongo.errors import ServerSelectionTimeoutError

import config
from main import app, app_state
from routes import limiter
from services import expenses_service, users_service
from utils.security import create_access_token


async def _explode(*args, **kwargs):
    raise RuntimeError("something broke")


class UnreachableCollection:
    def find(self, *args, **kwargs):
        raise ServerSelectionTimeoutError("no servers available")


def test_route_failure_returns_server_error_envelope(client, auth_headers, monkeypatch):
    monkeypatch.setattr(expenses_service, "list_expenses", _explode)
    r = client.get("/api/expenses", headers=auth_headers)
    assert r.status_code == 500
    assert r.json() == {"success": False, "message": "Server error", "error": "something broke"}


def test_server_error_hides_details_in_production(client, auth_headers, monkeypatch):
    monkeypatch.setattr(expenses_service, "get_expense_summary", _explode)
    monkeypatch.setattr(config, "IS_PRODUCTION", True)
    r = client.get("/api/expenses/summary", headers=auth_headers)
    assert r.status_code == 500
    assert r.json() == {"success": False, "message": "Server error"}


def test_unhandled_exception_uses_envelope(db, monkeypatch):
    monkeypatch.setattr(users_service, "get_user_by_id", _explode)
    client = TestClient(app, raise_server_exceptions=False)
    token = create_access_token(str(ObjectId()))
    r = client.get("/api/users/me", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 500
    assert r.json() == {"success": False, "message": "Server error", "error": "something broke"}

    monkeypatch.setattr(config, "IS_PRODUCTION", True)
    r = client.get("/api/users/me", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 500
    assert "error" not in r.json()


def test_database_errors_map_to_503(client, auth_headers):
    app_state["expenses_collection"] = UnreachableCollection()
    r = client.get("/api/expenses", headers=auth_headers)
    assert r.status_code == 503
    body = r.json()
    assert body["success"] is False
    assert body["message"].startswith("Database error fetching expenses")


def test_login_is_rate_limited(client):
    limiter.reset()
    limiter.enabled = True
    try:
        allowed = int(config.AUTH_RATE_LIMIT.split("/")[0])
        payload = {"email": "ghost@example.com", "password": "Secret123"}
        for _ in range(allowed):
            assert client.post("/api/users/login", json=payload).status_code == 401
        assert client.post("/api/users/login", json=payload).status_code == 429
    finally:
        limiter.enabled = False
        limiter.reset()
