"""Tests for site settings."""
import pytest
from sqlalchemy import select
from werkzeug.security import generate_password_hash

from app.blog import create_app
from app.blog.db import session_scope
from app.blog.models import AdminLog, Base, Role, User
from app.blog.modules.site_settings.models import SiteSetting
from app.blog.modules.site_settings.service import get_setting
from app.blog.validation import coerce_setting_value
from scripts.init_db import seed


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")

    app = create_app()
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        seed(s)
        for email, role in (("admin@example.com", "admin"), ("mod@example.com", "moderator")):
            u = User(email=email, password_hash=generate_password_hash("pw"), is_active=True)
            u.roles.append(s.scalars(select(Role).where(Role.key == role)).one())
            s.add(u)

    return app


@pytest.fixture()
def client(app):
    c = app.test_client()
    c.post("/auth/login", data={"email": "admin@example.com", "password": "pw"})
    return c


def test_coerce_setting_value():
    assert coerce_setting_value("12", "number") == 12
    assert coerce_setting_value("1.5", "number") == 1.5
    assert coerce_setting_value("true", "boolean") is True
    assert coerce_setting_value("0", "boolean") is False
    assert coerce_setting_value('{"a": [1]}', "json") == {"a": [1]}
    with pytest.raises(ValueError):
        coerce_setting_value("maybe", "boolean")


def test_settings_require_permission(app):
    c = app.test_client()
    assert c.get("/api/admin/settings").status_code == 401
    c.post("/auth/login", data={"email": "mod@example.com", "password": "pw"})
    assert c.get("/api/admin/settings").status_code == 403


def test_create_update_and_read(app, client):
    r = client.put("/api/admin/settings", json={"key": "posts_per_page", "value": 10, "type": "number", "category": "blog"})
    assert r.status_code == 201
    assert r.json["message"] == "Setting created"

    r = client.put("/api/admin/settings/posts_per_page", json={"value": "12", "type": "number", "category": "blog"})
    assert r.status_code == 200
    assert r.json["message"] == "Setting updated"

    r = client.get("/api/admin/settings/posts_per_page")
    assert r.status_code == 200
    assert r.json["data"]["value"] == 12

    r = client.get("/api/admin/settings")
    assert "blog" in r.json["data"]

    with session_scope(app) as s:
        actions = [a.action for a in s.scalars(select(AdminLog).where(AdminLog.target_type == "setting")).all()]
    assert sorted(actions) == ["setting_created", "setting_updated"]
    with session_scope(app) as s:
        assert get_setting(s, "posts_per_page") == 12
        assert get_setting(s, "missing", default="x") == "x"


def test_invalid_settings_rejected(client):
    r = client.put("/api/admin/settings", json={"key": "Bad Key", "value": "x"})
    assert r.status_code == 400
    assert "key" in r.json["fieldErrors"]

    r = client.put("/api/admin/settings", json={"key": "comments_enabled", "value": "maybe", "type": "boolean"})
    assert r.status_code == 400
    assert "value" in r.json["fieldErrors"]

    r = client.put("/api/admin/settings", json={"key": "x_y", "type": "string"})
    assert "value" in r.json["fieldErrors"]

    r = client.put("/api/admin/settings", json={"key": "k" * 129, "value": "x"})
    assert r.status_code == 400
    assert r.json["fieldErrors"]["key"] == ["Key must be no more than 128 characters"]

    r = client.put("/api/admin/settings", json={"key": "ok_key", "value": "x", "category": "c" * 65})
    assert r.status_code == 400
    assert "category" in r.json["fieldErrors"]


def test_delete_setting(app, client):
    client.put("/api/admin/settings", json={"key": "maintenance_mode", "value": False, "type": "boolean"})
    assert client.delete("/api/admin/settings/maintenance_mode").status_code == 200
    assert client.get("/api/admin/settings/maintenance_mode").status_code == 404
    assert client.delete("/api/admin/settings/maintenance_mode").status_code == 404
    with session_scope(app) as s:
        assert s.scalars(select(SiteSetting)).all() == []
