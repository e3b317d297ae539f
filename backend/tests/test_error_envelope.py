from unittest.mock import patch

from fastapi.testclient import TestClient

from backend.app import app
from backend.auth.deps import create_access_token, get_current_user
from backend.models.user import User


def test_not_found_envelope(client):
    r = client.get("/api/standard-items/does-not-exist")
    assert r.status_code == 404
    j = r.json()
    assert j["success"] is False
    assert j["code"] == "NOT_FOUND"
    assert j["trace_id"]


def test_trace_id_is_echoed(client):
    r = client.get("/api/standard-items/nope", headers={"x-trace-id": "trace-abc"})
    assert r.headers["x-trace-id"] == "trace-abc"
    assert r.json()["trace_id"] == "trace-abc"


def test_request_validation_envelope(client):
    r = client.post("/api/test-results", json={"test_date": "2024-05-01", "items": []})
    assert r.status_code == 422
    j = r.json()
    assert j["code"] == "UNPROCESSABLE_ENTITY"
    assert any("items" in e["loc"] for e in j["details"])


def test_service_validation_error_is_400(client):
    r = client.post("/api/test-results", json={
        "test_date": "2024-05-01",
        "items": [{"raw_item_name": "Result", "raw_value": "1"}],
    })
    assert r.status_code == 400
    assert r.json()["code"] == "BAD_REQUEST"


def test_missing_token_is_401(client, monkeypatch):
    monkeypatch.delitem(app.dependency_overrides, get_current_user)
    r = client.get("/api/standard-items")
    assert r.status_code == 401
    j = r.json()
    assert j["code"] == "UNAUTHORIZED"
    assert j["message"] == "Missing bearer token"
    assert r.headers["www-authenticate"] == "Bearer"


def test_valid_token_resolves_user(client, db, monkeypatch):
    db.add(User(email="vet@example.com"))
    db.commit()
    monkeypatch.delitem(app.dependency_overrides, get_current_user)
    token = create_access_token("vet@example.com")
    r = client.get("/api/standard-items", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 200
    assert r.json()["data"] == []

    r = client.get("/api/standard-items", headers={"Authorization": "Bearer garbage"})
    assert r.status_code == 401


def test_unhandled_exception_envelope():
    client = TestClient(app, raise_server_exceptions=False)
    with patch("backend.services.item_resolver.list_user_items", side_effect=ValueError("boom")):
        r = client.get("/api/standard-items")
    assert r.status_code == 500
    j = r.json()
    assert j["code"] == "INTERNAL_SERVER_ERROR"
    assert j["details"] == "boom"
    assert "trace_id" in j
