"""Tests for the admin dashboard: stats, user management and the admin log."""
import pytest
from sqlalchemy import select
from werkzeug.security import generate_password_hash

from app.blog import create_app
from app.blog.db import session_scope
from app.blog.models import AdminLog, Base, Role, User
from app.blog.modules.analytics.models import PageView
from app.blog.modules.comments.models import Comment
from app.blog.modules.newsletter.models import Newsletter
from app.blog.admin import _trend
from app.blog.rbac import primary_role
from scripts.init_db import seed


def _user(s, email, role_keys, name, *, active=True):
    u = User(email=email, name=name, password_hash=generate_password_hash("pw"), is_active=active)
    for key in role_keys:
        u.roles.append(s.scalars(select(Role).where(Role.key == key)).one())
    s.add(u)
    return u


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("CONTENT_DIR", str(tmp_path / "posts"))

    app = create_app()
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        seed(s)
        _user(s, "admin@example.com", ["admin"], "Admin")
        _user(s, "editor@example.com", ["editor"], "Editor")
        _user(s, "alice@example.com", ["user"], "Alice")
        _user(s, "ghost@example.com", ["user"], "Ghost", active=False)

    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def _login(client, email="admin@example.com"):
    client.post("/auth/login", data={"email": email, "password": "pw"}, follow_redirects=True)


def _id(app, email):
    with session_scope(app) as s:
        return s.scalars(select(User.id).where(User.email == email)).one()


def test_primary_role_uses_highest_rank(app):
    with session_scope(app) as s:
        u = _user(s, "multi@example.com", ["user", "moderator"], "Multi")
        assert primary_role(u) == "moderator"
        assert primary_role(None) == "user"


def test_admin_dashboard_requires_permission(client):
    r = client.get("/admin/")
    assert r.status_code == 302

    _login(client, "alice@example.com")
    r = client.get("/admin/")
    assert r.status_code == 403


def test_editor_sees_dashboard(client):
    _login(client, "editor@example.com")
    assert client.get("/admin/").status_code == 200


def test_stats_payload(app, client):
    alice = _id(app, "alice@example.com")
    with session_scope(app) as s:
        for status in ("PENDING", "PENDING", "APPROVED", "SPAM"):
            s.add(Comment(content="c", post_slug="my-post", user_id=alice, status=status))
        s.add_all([PageView(slug="my-post"), PageView(slug="my-post"), PageView(slug="other")])
        s.add(Newsletter(email="reader@example.com", confirmed=True, token="t1"))

    _login(client)
    r = client.get("/api/admin/stats")
    assert r.status_code == 200
    data = r.json["data"]
    assert data["overview"]["totalUsers"] == 4
    assert data["overview"]["activeUsers"] == 3
    assert data["overview"]["inactiveUsers"] == 1
    assert data["overview"]["totalComments"] == 4
    assert data["overview"]["pendingComments"] == 2
    assert data["overview"]["totalPageViews"] == 3
    assert data["overview"]["newsletterSubscribers"] == 1
    assert data["trends"]["commentsToday"] == 4
    assert data["trends"]["commentsThisWeek"] == 4
    assert data["trends"]["commentTrend"] == 600
    assert data["distributions"]["commentsByStatus"]["SPAM"] == 1
    assert data["distributions"]["usersByRole"]["ADMIN"] == 1
    assert data["topPosts"][0] == {"slug": "my-post", "views": 2}
    assert data["alerts"]["newSpamComments"] is True
    assert data["alerts"]["highPendingComments"] is False


def test_users_api_forbidden_for_editor(client):
    _login(client, "editor@example.com")
    # editors can open the dashboard but not manage users
    assert client.get("/api/admin/users").status_code == 403


def test_users_list_and_filters(client):
    _login(client)
    r = client.get("/api/admin/users")
    assert r.status_code == 200
    data = r.json["data"]
    assert data["pagination"]["totalCount"] == 4
    assert data["stats"]["inactiveUsers"] == 1
    assert data["stats"]["roleDistribution"]["USER"] == 2

    r = client.get("/api/admin/users?role=EDITOR")
    assert [u["email"] for u in r.json["data"]["users"]] == ["editor@example.com"]

    r = client.get("/api/admin/users?isActive=false")
    assert [u["email"] for u in r.json["data"]["users"]] == ["ghost@example.com"]

    r = client.get("/api/admin/users?search=ali")
    assert [u["email"] for u in r.json["data"]["users"]] == ["alice@example.com"]

    assert client.get("/api/admin/users?role=ROOT").status_code == 400


def test_user_detail(app, client):
    alice = _id(app, "alice@example.com")
    with session_scope(app) as s:
        s.add(Comment(content="merhaba", post_slug="my-post", user_id=alice, status="APPROVED"))

    _login(client)
    r = client.get(f"/api/admin/users/{alice}")
    assert r.status_code == 200
    assert r.json["data"]["counts"]["comments"] == 1
    assert r.json["data"]["comments"][0]["content"] == "merhaba"
    assert client.get("/api/admin/users/9999").status_code == 404


def test_update_user_role_and_status(app, client):
    alice = _id(app, "alice@example.com")
    _login(client)
    r = client.put(f"/api/admin/users/{alice}", json={"role": "MODERATOR", "isActive": False, "reason": "terfi"})
    assert r.status_code == 200
    assert r.json["data"]["role"] == "MODERATOR"
    assert r.json["data"]["isActive"] is False

    with session_scope(app) as s:
        log = s.scalars(select(AdminLog).where(AdminLog.action == "user_updated")).one()
        assert "role: USER → MODERATOR" in log.details
        assert "status: active → inactive" in log.details


def test_update_user_validation(app, client):
    alice = _id(app, "alice@example.com")
    admin = _id(app, "admin@example.com")
    _login(client)
    assert client.put(f"/api/admin/users/{alice}", json={"role": "ROOT"}).status_code == 400
    assert client.put(f"/api/admin/users/{alice}", json={"isActive": "no"}).status_code == 400

    r = client.put(f"/api/admin/users/{admin}", json={"isActive": False})
    assert r.status_code == 400
    assert r.json["error"] == "Cannot deactivate your own account"
    r = client.put(f"/api/admin/users/{admin}", json={"role": "USER"})
    assert r.json["error"] == "Cannot change your own admin role"


def test_delete_user(app, client):
    editor = _id(app, "editor@example.com")
    alice = _id(app, "alice@example.com")
    admin = _id(app, "admin@example.com")
    with session_scope(app) as s:
        s.add(Comment(content="c", post_slug="my-post", user_id=alice, status="APPROVED"))

    _login(client)
    assert client.delete(f"/api/admin/users/{admin}").status_code == 400
    r = client.delete(f"/api/admin/users/{alice}")
    assert r.status_code == 400
    assert r.json["error"] == "Cannot delete user with existing comments. Deactivate instead."

    r = client.delete(f"/api/admin/users/{editor}")
    assert r.status_code == 200
    with session_scope(app) as s:
        assert s.get(User, editor) is None
        log = s.scalars(select(AdminLog).where(AdminLog.action == "user_deleted")).one()
        assert "editor@example.com" in log.details


def test_logs_filtering(client):
    _login(client)
    client.get("/auth/logout")
    _login(client)

    r = client.get("/api/admin/logs?action=auth.logout")
    assert r.status_code == 200
    assert r.json["pagination"]["totalCount"] == 1
    assert r.json["data"][0]["action"] == "auth.logout"

    r = client.get("/api/admin/logs?target_type=user")
    assert r.json["pagination"]["totalCount"] >= 3


def test_trend_rounds_halves_up():
    assert _trend(3, 8) == 163
    assert _trend(2, 7) == 100
    assert _trend(0, 7) == -100
    assert _trend(5, 0) == 0
