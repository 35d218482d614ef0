import io
import os
import tempfile

# Configure the environment before any application module reads Settings
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("STORAGE_TYPE", "local")
os.environ.setdefault("STORAGE_PATH", tempfile.mkdtemp(prefix="snapforge-test-"))
os.environ.setdefault("LOG_FILE", "")
os.environ.setdefault("LOG_JSON", "false")
os.environ.setdefault("SESSION_CLEANUP_INTERVAL_SECONDS", "0")
os.environ.setdefault("ALLOW_REGISTRATION", "false")
os.environ.setdefault("SENTRY_DSN", "")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from PIL import Image as PILImage  # noqa: E402

from main import create_app  # noqa: E402
from snapforge.models import User  # noqa: E402
from snapforge.services import galleries as gallery_service  # noqa: E402
from snapforge.services.passwords import hash_password  # noqa: E402
from snapforge.services.storage import LocalStorage  # noqa: E402

PASSWORD = "correct-horse-battery"


def make_image_bytes(width=64, height=48, fmt="JPEG", color=(200, 30, 30), mode="RGB", **save_kwargs):
    """Encode a solid-colour Pillow image."""
    im = PILImage.new(mode, (width, height), color)
    buf = io.BytesIO()
    im.save(buf, format=fmt, **save_kwargs)
    return buf.getvalue()


def make_mpo_bytes(width=64, height=48):
    """Two-frame multi-picture JPEG, as written by many phone cameras."""
    frames = [PILImage.new("RGB", (width, height), c) for c in ((200, 30, 30), (30, 30, 200))]
    buf = io.BytesIO()
    frames[0].save(buf, format="MPO", save_all=True, append_images=frames[1:])
    return buf.getvalue()


@pytest.fixture
def jpeg_factory():
    return make_image_bytes


@pytest.fixture
def storage(tmp_path):
    return LocalStorage(str(tmp_path / "blobs"))


@pytest.fixture
def app(storage):
    return create_app(database_url="sqlite://", storage=storage)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def db_session(app):
    """Session on the same in-memory database the app uses.

    Requests share the underlying connection, so anything set up here must be
    committed before calling the API, and ``expire_all()`` is needed to see
    changes made by a request.
    """
    session = app.state.session_factory()
    try:
        yield session
    finally:
        session.close()


def _make_user(db, email, role="user", max_galleries=10):
    user = User(
        Email=email,
        HashedPassword=hash_password(PASSWORD),
        Role=role,
        MaxGalleries=max_galleries,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def make_user(db_session):
    def factory(email, role="user", max_galleries=10):
        return _make_user(db_session, email, role, max_galleries)

    return factory


@pytest.fixture
def owner(make_user):
    return make_user("owner@example.com", role="admin")


@pytest.fixture
def gallery(db_session, owner):
    return gallery_service.create_gallery(db_session, owner.UserID, "Holiday")


@pytest.fixture
def login_client(app):
    """TestClient carrying a valid session cookie for ``user``."""

    def factory(user):
        c = TestClient(app)
        r = c.post("/auth/login", json={"email": user.Email, "password": PASSWORD})
        assert r.status_code == 200, r.text
        return c

    return factory


@pytest.fixture
def owner_client(login_client, owner):
    return login_client(owner)


@pytest.fixture
def api_client(client, gallery):
    """TestClient sending the gallery access token as a bearer header."""
    client.headers["Authorization"] = f"Bearer {gallery.AccessToken}"
    return client
