import io

import pytest
from sqlalchemy import select
from werkzeug.security import generate_password_hash

from app.blog import create_app
from app.blog.db import session_scope
from app.blog.models import AdminLog, Base, Permission, Role, User


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("CONTENT_DIR", str(tmp_path / "posts"))
    monkeypatch.setenv("MEDIA_ROOT", str(tmp_path / "media"))
    for k in ("S3_ENDPOINT", "S3_REGION", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY", "SMTP_HOST"):
        monkeypatch.delenv(k, raising=False)

    app = create_app()

    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        p = Permission(key="admin.view", name="Admin: view dashboard")
        r = Role(key="admin", name="Administrator")
        r.permissions.append(p)
        user_role = Role(key="user", name="User")
        u = User(email="admin@example.com", name="Admin", password_hash=generate_password_hash("pw"), is_active=True)
        u.roles.append(r)
        s.add_all([p, r, user_role, u])

    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["ok"] is True


def test_healthz_plain(client):
    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.data == b"ok"


def test_api_health_reports_checks(client):
    r = client.get("/api/health")
    assert r.status_code == 200
    assert r.json["status"] == "healthy"
    assert r.json["checks"] == {"database": True, "auth": True, "api": True}
    assert r.json["version"] == "1.0.0"


def test_api_health_degraded_with_default_secret(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "change-me")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'h.db'}")
    monkeypatch.setenv("ENV", "test")
    app = create_app()
    r = app.test_client().get("/api/health")
    assert r.status_code == 503
    assert r.json["status"] == "degraded"
    assert r.json["checks"]["auth"] is False


def test_login_and_admin_access(client):
    # Anonymous should be redirected to login
    r = client.get("/admin/")
    assert r.status_code in (302, 403)

    r = client.post("/auth/login", data={"email": "admin@example.com", "password": "pw"}, follow_redirects=False)
    assert r.status_code == 302

    r = client.get("/admin/")
    assert r.status_code == 200
    assert "Yönetim paneli" in r.get_data(as_text=True)


def test_login_failure_is_logged(app, client):
    r = client.post("/auth/login", data={"email": "admin@example.com", "password": "wrong"})
    assert r.status_code == 302
    assert "/auth/login" in r.headers["Location"]

    with session_scope(app) as s:
        actions = [a.action for a in s.scalars(select(AdminLog)).all()]
    assert "auth.login_failed" in actions


def test_login_rate_limited_after_five_attempts(client):
    for _ in range(5):
        client.post("/auth/login", data={"email": "admin@example.com", "password": "wrong"})
    r = client.post("/auth/login", data={"email": "admin@example.com", "password": "pw"})
    assert r.status_code == 429


def test_login_ignores_offsite_next(client):
    r = client.post(
        "/auth/login",
        data={"email": "admin@example.com", "password": "pw", "next": "https://evil.example.com/"},
    )
    assert r.status_code == 302
    assert "evil.example.com" not in r.headers["Location"]


def test_session_endpoint(client):
    assert client.get("/auth/session").json == {"user": None}
    client.post("/auth/login", data={"email": "admin@example.com", "password": "pw"})
    user = client.get("/auth/session").json["user"]
    assert user["email"] == "admin@example.com"
    assert user["role"] == "ADMIN"


def test_register_logs_in_with_user_role(app, client):
    r = client.post(
        "/auth/register",
        data={"email": "New@Example.com", "name": "Yeni Kullanıcı", "password": "longpassword", "password_confirm": "longpassword"},
    )
    assert r.status_code == 302
    user = client.get("/auth/session").json["user"]
    assert user["email"] == "new@example.com"
    assert user["role"] == "USER"

    # second registration with the same address is refused
    client.get("/auth/logout")
    r = client.post(
        "/auth/register",
        data={"email": "new@example.com", "password": "longpassword", "password_confirm": "longpassword"},
    )
    assert r.status_code == 400


def test_register_rejects_short_password(client):
    r = client.post("/auth/register", data={"email": "x@example.com", "password": "short", "password_confirm": "short"})
    assert r.status_code == 400


def test_logout_clears_session(client):
    client.post("/auth/login", data={"email": "admin@example.com", "password": "pw"})
    r = client.get("/auth/logout")
    assert r.status_code == 302
    assert client.get("/auth/session").json == {"user": None}


def test_public_pages_render(client):
    for path in ("/", "/blog", "/categories", "/about", "/contact", "/auth/login", "/auth/register"):
        r = client.get(path)
        assert r.status_code == 200, path


def test_unknown_page_404(client):
    r = client.get("/no-such-page")
    assert r.status_code == 404
    assert "text/html" in r.headers["Content-Type"]


def test_unknown_api_route_returns_json_404(client):
    r = client.get("/api/no-such-endpoint")
    assert r.status_code == 404
    assert r.json == {"success": False, "error": "Not found"}


def test_profile_requires_login(client):
    r = client.get("/profile")
    assert r.status_code == 302
    assert "/auth/login" in r.headers["Location"]


def test_profile_update(app, client):
    client.post("/auth/login", data={"email": "admin@example.com", "password": "pw"})
    r = client.post("/profile", data={"name": "Eren", "bio": "AI researcher", "website": "https://erenailab.com"})
    assert r.status_code == 302

    with session_scope(app) as s:
        u = s.scalars(select(User).where(User.email == "admin@example.com")).one()
        assert u.name == "Eren"
        assert u.website == "https://erenailab.com"


def test_profile_rejects_bad_website(client):
    client.post("/auth/login", data={"email": "admin@example.com", "password": "pw"})
    r = client.post("/profile", data={"name": "Eren", "website": "javascript:alert(1)"})
    assert r.status_code == 400


def test_avatar_upload_and_serve(app, client, tmp_path):
    client.post("/auth/login", data={"email": "admin@example.com", "password": "pw"})
    r = client.post(
        "/profile/avatar",
        data={"avatar": (io.BytesIO(b"\x89PNG fake"), "me.png", "image/png")},
        content_type="multipart/form-data",
    )
    assert r.status_code == 302

    with session_scope(app) as s:
        image = s.scalars(select(User.image).where(User.email == "admin@example.com")).one()
    assert image.startswith("/media/avatars/")
    assert list((tmp_path / "media" / "avatars").rglob("me.png"))

    r = client.get(image)
    assert r.status_code == 200
    assert r.data == b"\x89PNG fake"


def test_avatar_upload_rejects_bad_type(app, client):
    client.post("/auth/login", data={"email": "admin@example.com", "password": "pw"})
    client.post(
        "/profile/avatar",
        data={"avatar": (io.BytesIO(b"MZ"), "evil.exe", "application/x-msdownload")},
        content_type="multipart/form-data",
    )
    with session_scope(app) as s:
        assert s.scalars(select(User.image).where(User.email == "admin@example.com")).one() is None


def test_media_only_serves_avatars(client):
    assert client.get("/media/secrets.txt").status_code == 404


def test_new_avatar_replaces_old_file(app, client, tmp_path):
    client.post("/auth/login", data={"email": "admin@example.com", "password": "pw"})
    for name in ("first.png", "second.png"):
        client.post(
            "/profile/avatar",
            data={"avatar": (io.BytesIO(b"\x89PNG fake"), name, "image/png")},
            content_type="multipart/form-data",
        )
    avatars = tmp_path / "media" / "avatars"
    assert not list(avatars.rglob("first.png"))
    assert list(avatars.rglob("second.png"))


def test_failed_login_with_long_email_is_logged_truncated(app, client):
    email = "a" * 300 + "@example.com"
    r = client.post("/auth/login", data={"email": email, "password": "wrong"})
    assert r.status_code == 302
    with session_scope(app) as s:
        row = s.scalars(select(AdminLog).where(AdminLog.action == "auth.login_failed")).one()
    assert len(row.target_id) == 128
