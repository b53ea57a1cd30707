"""Tests for security headers, CSRF, rate limiting and input sanitizing."""
import pytest
from flask import request

from app.blog import create_app
from app.blog.models import Base
from app.blog.rate_limit import SlidingWindowRateLimiter, client_ip, reset_all
from app.blog.security import build_csp
from app.blog.validation import (
    is_valid_post_slug,
    sanitize_comment,
    sanitize_content,
    validate_comment_payload,
    validate_file_upload,
    validate_registration_payload,
)


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def _make_app(tmp_path, monkeypatch, **env):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("CONTENT_DIR", str(tmp_path / "posts"))
    for k, v in env.items():
        monkeypatch.setenv(k, v)
    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])
    return app


@pytest.fixture()
def client(tmp_path, monkeypatch):
    return _make_app(tmp_path, monkeypatch).test_client()


# ---------- Headers ----------
def test_security_headers_present(client):
    r = client.get("/about")
    assert r.headers["X-Frame-Options"] == "DENY"
    assert r.headers["X-Content-Type-Options"] == "nosniff"
    assert r.headers["Referrer-Policy"] == "strict-origin-when-cross-origin"
    assert "camera=()" in r.headers["Permissions-Policy"]
    assert "frame-ancestors 'none'" in r.headers["Content-Security-Policy"]
    assert "Strict-Transport-Security" not in r.headers


def test_csp_development_relaxes_scripts():
    dev = build_csp(is_development=True, site_url="http://localhost:3000")
    prod = build_csp(is_development=False, site_url="https://erenailab.com")
    assert "'unsafe-eval'" in dev
    assert "'unsafe-eval'" not in prod
    assert "ws://localhost:*" in dev
    assert prod.endswith("upgrade-insecure-requests")
    assert "upgrade-insecure-requests" not in dev
    assert "https://erenailab.com" in prod


def test_csp_report_endpoint(client):
    r = client.post("/api/csp-report", json={"csp-report": {"violated-directive": "script-src"}})
    assert r.status_code == 200
    assert r.json == {"status": "received"}
    r = client.post("/api/csp-report", data="not json", content_type="application/csp-report")
    assert r.status_code == 400


# ---------- CSRF ----------
def test_csrf_enforced_when_enabled(tmp_path, monkeypatch):
    app = _make_app(tmp_path, monkeypatch, CSRF_ENABLED="true")
    c = app.test_client()

    r = c.post("/api/newsletter", json={"email": "reader@example.com"})
    assert r.status_code == 400
    assert r.json["error"] == "CSRF token missing or invalid."

    c.get("/about")
    with c.session_transaction() as sess:
        token = sess["csrf_token"]
    r = c.post("/api/newsletter", json={"email": "reader@example.com"}, headers={"X-CSRF-Token": token})
    assert r.status_code == 200


def test_csrf_skips_login_and_csp_reports(tmp_path, monkeypatch):
    app = _make_app(tmp_path, monkeypatch, CSRF_ENABLED="true")
    c = app.test_client()
    r = c.post("/auth/login", data={"email": "x@example.com", "password": "pw"})
    assert r.status_code == 302
    assert c.post("/api/csp-report", json={"csp-report": {}}).status_code == 200


# ---------- Rate limiting ----------
def test_sliding_window_limiter():
    clock = FakeClock()
    limiter = SlidingWindowRateLimiter(2, 60, clock=clock)
    assert limiter.hit("a").remaining == 1
    assert limiter.hit("a").remaining == 0
    blocked = limiter.hit("a")
    assert blocked.allowed is False
    assert blocked.retry_after_seconds(now=clock.now) == 60
    assert limiter.hit("b").allowed is True

    clock.now += 61
    assert limiter.hit("a").allowed is True


def test_limiter_clear_and_prune():
    clock = FakeClock()
    limiter = SlidingWindowRateLimiter(1, 10, clock=clock)
    limiter.hit("a")
    limiter.clear("a")
    assert limiter.hit("a").allowed is True
    clock.now += 11
    limiter.prune()
    assert limiter._hits == {}


def test_limiter_forgets_expired_clients():
    clock = FakeClock()
    limiter = SlidingWindowRateLimiter(5, 10, clock=clock)
    for n in range(1000):
        limiter.hit(f"client-{n}")
    assert len(limiter._hits) == 1000

    clock.now += 11
    limiter.hit("late-client")
    assert list(limiter._hits) == ["late-client"]


def test_client_ip_is_capped(tmp_path, monkeypatch):
    app = _make_app(tmp_path, monkeypatch)
    with app.test_request_context("/", headers={"X-Forwarded-For": "9" * 100 + ", 10.0.0.1"}):
        assert client_ip(request) == "9" * 64


def test_api_rate_limit_headers_and_429(client):
    for _ in range(30):
        r = client.post("/api/contact", json={})
        assert r.status_code == 400
    assert r.headers["X-RateLimit-Remaining"] == "0"
    r = client.post("/api/contact", json={})
    assert r.status_code == 429
    assert r.json["error"] == "Rate limit exceeded"
    assert int(r.headers["Retry-After"]) > 0


def test_global_rate_limit_on_pages(tmp_path, monkeypatch):
    app = _make_app(tmp_path, monkeypatch, RATE_LIMIT_MAX="3")
    c = app.test_client()
    for _ in range(3):
        assert c.get("/about").status_code == 200
    r = c.get("/about")
    assert r.status_code == 429
    assert "Retry-After" in r.headers
    # health checks are never limited
    assert c.get("/health").status_code == 200

    with app.app_context():
        reset_all()
    assert c.get("/about").status_code == 200


# ---------- Validation ----------
def test_sanitize_comment_strips_dangerous_markup():
    dirty = '<b onclick="x()">kalın</b> <script>alert(1)</script><a href="javascript:x">link</a> <i>ok'
    assert sanitize_comment(dirty) == "<b>kalın</b> link <i>ok</i>"


def test_sanitize_content_allows_safe_links():
    html = sanitize_content(
        '<a href="https://example.com" onmouseover="x">a</a><a href="javascript:alert(1)">b</a>',
        allowed_tags={"a"},
        allowed_attributes={"a": ("href",)},
    )
    assert html == '<a href="https://example.com">a</a><a>b</a>'
    assert sanitize_content("<p>x</p>", strip_tags=True) == "x"
    assert sanitize_content("a<script>alert(1)</script><style>p{}</style> b", strip_tags=True) == "a b"


def test_sanitize_escapes_text():
    assert sanitize_comment("1 < 2 & 3") == "1 &lt; 2 &amp; 3"


def test_post_slug_format():
    assert is_valid_post_slug("my-post-2")
    assert not is_valid_post_slug("My Post")
    assert not is_valid_post_slug("../etc")


def test_comment_payload_whitespace():
    _, errors = validate_comment_payload({"content": "   ", "postSlug": "a"})
    assert errors["content"] == ["Comment cannot be only whitespace"]


def test_registration_password_mismatch():
    _, errors = validate_registration_payload(
        {"email": "a@example.com", "password": "longpassword", "password_confirm": "different1"}
    )
    assert "password_confirm" in errors


def test_file_upload_rules():
    assert validate_file_upload("a.png", "image/png", 1024) is None
    assert "File size" in validate_file_upload("a.png", "image/png", 10 * 1024 * 1024)
    assert "File type" in validate_file_upload("a.exe", "application/x-msdownload", 10)
    assert "extension" in validate_file_upload("a.exe", "image/png", 10)
