from fastapi.testclient import TestClient

from snapforge import __version__
from snapforge.models import AppErrorLog


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok", "database": True, "version": __version__}
    assert client.get("/health.txt").text == "ok"


def test_request_id_is_propagated(client):
    assert client.get("/health", headers={"X-Request-ID": "abc-123"}).headers["x-request-id"] == "abc-123"
    assert len(client.get("/health").headers["x-request-id"]) == 36


def test_security_headers(client):
    r = client.get("/health")
    assert r.headers["x-frame-options"] == "DENY"
    assert r.headers["x-content-type-options"] == "nosniff"
    assert "default-src 'none'" in r.headers["content-security-policy"]


def test_admin_requires_admin_role(make_user, login_client):
    c = login_client(make_user("plain@example.com"))
    assert c.get("/api/admin/settings").status_code == 403


def test_admin_settings(owner_client):
    settings = owner_client.get("/api/admin/settings").json()["settings"]
    assert set(settings) == {"general", "storage", "images", "smtp"}
    assert settings["smtp"]["password"] is False

    r = owner_client.put("/api/admin/settings/images", json={"thumb_size": 200})
    assert r.status_code == 200
    assert r.json()["value"]["thumb_size"] == 200
    assert r.json()["restartRequired"] is False

    r = owner_client.put("/api/admin/settings/storage", json={"s3_secret_key": "hidden"})
    assert r.json()["restartRequired"] is True
    assert r.json()["value"]["s3_secret_key"] is True

    assert owner_client.put("/api/admin/settings/bogus", json={}).status_code == 404
    assert owner_client.put("/api/admin/settings/images", json={"thumb_size": 2}).status_code == 400


def test_unhandled_error_is_logged_and_hidden(app, db_session):
    def explode():
        raise RuntimeError("secret internals")

    app.add_api_route("/boom", explode)
    c = TestClient(app, raise_server_exceptions=False)
    r = c.get("/boom", headers={"X-Request-ID": "req-500"})
    assert r.status_code == 500
    assert r.json() == {"error": "Internal server error"}
    assert "secret" not in r.text
    row = db_session.query(AppErrorLog).one()
    assert row.RequestID == "req-500"
    assert row.Path == "/boom"
    assert row.StatusCode == 500
    assert row.ExceptionType == "RuntimeError"
    assert "secret internals" in row.StackTrace


def test_unknown_route_uses_error_shape(client):
    r = client.get("/nope")
    assert r.status_code == 404
    assert r.json() == {"error": "Not Found"}
