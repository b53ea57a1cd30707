"""Tests for the contact form."""
import smtplib

import pytest

from app.blog import create_app
from app.blog.models import Base
from app.blog.modules.contact.service import (
    ContactDeliveryError,
    SmtpSettings,
    build_contact_message,
    send_contact_message,
)

VALID = {
    "name": "Ayşe Yılmaz",
    "email": "ayse@example.com",
    "subject": "İşbirliği önerisi",
    "message": "Merhaba, bir araştırma projesi hakkında konuşmak isterim.",
}


class FakeSMTP:
    sent = []

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        pass

    def login(self, user, password):
        self.user = user

    def send_message(self, msg):
        FakeSMTP.sent.append(msg)


class BrokenSMTP(FakeSMTP):
    def send_message(self, msg):
        raise smtplib.SMTPException("relay refused")


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("ADMIN_EMAIL", "owner@example.com")
    monkeypatch.delenv("SMTP_HOST", raising=False)

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def test_contact_without_smtp_still_succeeds(client):
    r = client.post("/api/contact", json=VALID)
    assert r.status_code == 200
    assert r.json["message"] == "Message sent successfully!"


def test_contact_validation(client):
    r = client.post("/api/contact", json={**VALID, "subject": "hi", "email": "nope"})
    assert r.status_code == 400
    assert r.json["error"] == "Invalid form data"
    assert set(r.json["details"]) == {"subject", "email"}


def test_contact_other_methods_not_allowed(client):
    for method in ("get", "put", "delete"):
        r = getattr(client, method)("/api/contact")
        assert r.status_code == 405
        assert r.json == {"error": "Method not allowed"}


def test_contact_sends_mail(app, client, monkeypatch):
    FakeSMTP.sent = []
    monkeypatch.setattr(smtplib, "SMTP", FakeSMTP)
    app.config["SMTP_HOST"] = "smtp.example.com"

    r = client.post("/api/contact", json=VALID)
    assert r.status_code == 200
    assert len(FakeSMTP.sent) == 1
    msg = FakeSMTP.sent[0]
    assert msg["To"] == "owner@example.com"
    assert msg["Reply-To"] == "ayse@example.com"
    assert msg["Subject"] == "Contact Form: İşbirliği önerisi"


def test_contact_delivery_failure(app, client, monkeypatch):
    monkeypatch.setattr(smtplib, "SMTP", BrokenSMTP)
    app.config["SMTP_HOST"] = "smtp.example.com"

    r = client.post("/api/contact", json=VALID)
    assert r.status_code == 500
    assert r.json["success"] is False


def test_smtp_settings_from_config():
    assert SmtpSettings.from_config({"SMTP_HOST": ""}) is None
    smtp = SmtpSettings.from_config({"SMTP_HOST": "mail", "SMTP_PORT": "2525", "ADMIN_EMAIL": "a@example.com"})
    assert smtp.port == 2525
    assert smtp.from_email == "a@example.com"


def test_build_contact_message_body():
    msg = build_contact_message(VALID, to="owner@example.com", from_email="")
    assert msg["From"] == "owner@example.com"
    assert "Ayşe Yılmaz" in msg.get_content()


def test_contact_subject_must_be_single_line(app, client, monkeypatch):
    FakeSMTP.sent = []
    monkeypatch.setattr(smtplib, "SMTP", FakeSMTP)
    app.config["SMTP_HOST"] = "smtp.example.com"

    r = client.post("/api/contact", json={**VALID, "subject": "Merhaba\nBcc: x@evil.example.com"})
    assert r.status_code == 400
    assert r.json["details"]["subject"] == ["Subject must be a single line"]
    assert FakeSMTP.sent == []


def test_unbuildable_message_is_a_delivery_error():
    smtp = SmtpSettings(host="mail", from_email="owner@example.com")
    with pytest.raises(ContactDeliveryError):
        send_contact_message({**VALID, "subject": "a\nb"}, to="owner@example.com", smtp=smtp)
