from fastapi.testclient import TestClient

from conftest import PASSWORD
from snapforge.core.settings import settings


def _register(client, email, password=PASSWORD, **extra):
    return client.post("/auth/register", json={"email": email, "password": password, **extra})


def test_first_user_becomes_admin(client):
    r = _register(client, "First@Example.com")
    assert r.status_code == 201
    user = r.json()["user"]
    assert user["email"] == "first@example.com"
    assert user["role"] == "admin"
    assert "session=" in r.headers["set-cookie"]
    assert "HttpOnly" in r.headers["set-cookie"]
    assert client.get("/auth/me").json()["user"]["id"] == user["id"]


def test_registration_closed_after_first_user(app, client):
    assert _register(client, "admin@example.com").status_code == 201
    r = _register(TestClient(app), "second@example.com")
    assert r.status_code == 403
    assert r.json() == {"error": "Registration is disabled"}


def test_open_registration_and_duplicates(app, client):
    _register(client, "admin@example.com")
    r = client.put("/api/admin/settings/general", json={"allow_registration": True})
    assert r.status_code == 200
    other = TestClient(app)
    r = _register(other, "user@example.com")
    assert r.status_code == 201
    assert r.json()["user"]["role"] == "user"
    assert _register(TestClient(app), "USER@example.com").status_code == 409


def test_register_validation(client):
    assert _register(client, "not-an-email").status_code == 400
    assert _register(client, "a@example.com", password="short").status_code == 400
    r = client.post("/auth/register", json={"email": "a@example.com"})
    assert r.status_code == 400
    assert "error" in r.json()


def test_login_logout(app, owner):
    c = TestClient(app)
    assert c.get("/auth/me").status_code == 401
    r = c.post("/auth/login", json={"email": "OWNER@example.com", "password": PASSWORD})
    assert r.status_code == 200
    assert c.get("/auth/me").status_code == 200
    assert c.post("/auth/logout").status_code == 204
    assert c.get("/auth/me").status_code == 401


def test_bad_credentials_and_rate_limit(app, owner):
    c = TestClient(app)
    for _ in range(settings.RATE_LIMIT_LOGIN_ATTEMPTS):
        r = c.post("/auth/login", json={"email": "owner@example.com", "password": "wrong-password"})
        assert r.status_code == 401
        assert r.json() == {"error": "Invalid credentials"}
    r = c.post("/auth/login", json={"email": "owner@example.com", "password": PASSWORD})
    assert r.status_code == 429


def test_unknown_email_looks_like_bad_password(app):
    r = TestClient(app).post("/auth/login", json={"email": "ghost@example.com", "password": "whatever1"})
    assert r.status_code == 401
    assert r.json() == {"error": "Invalid credentials"}


def test_invalid_cookie_is_cleared(app):
    c = TestClient(app)
    c.cookies.set("session", "forged")
    r = c.get("/auth/me")
    assert r.status_code == 401
    assert 'session=""' in r.headers["set-cookie"] or "Max-Age=0" in r.headers["set-cookie"]


def test_password_change_rotates_sessions(app, owner, login_client):
    first = login_client(owner)
    second = login_client(owner)
    r = first.post(
        "/auth/password",
        json={"currentPassword": PASSWORD, "newPassword": "a-brand-new-password"},
    )
    assert r.status_code == 200
    assert first.get("/auth/me").status_code == 200
    assert second.get("/auth/me").status_code == 401
    bad = first.post("/auth/password", json={"currentPassword": "nope", "newPassword": "whatever123"})
    assert bad.status_code == 400
