from __future__ import annotations

import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage

logger = logging.getLogger(__name__)


class ContactDeliveryError(RuntimeError):
    pass


@dataclass(frozen=True)
class SmtpSettings:
    host: str
    port: int = 587
    username: str = ""
    password: str = ""
    from_email: str = ""

    @classmethod
    def from_config(cls, config) -> "SmtpSettings | None":
        host = (config.get("SMTP_HOST") or "").strip()
        if not host:
            return None
        return cls(
            host=host,
            port=int(config.get("SMTP_PORT") or 587),
            username=config.get("SMTP_USER") or "",
            password=config.get("SMTP_PASSWORD") or "",
            from_email=config.get("FROM_EMAIL") or config.get("ADMIN_EMAIL") or "",
        )


def build_contact_message(data: dict, *, to: str, from_email: str) -> EmailMessage:
    msg = EmailMessage()
    msg["Subject"] = f"Contact Form: {data['subject']}"
    msg["From"] = from_email or to
    msg["To"] = to
    msg["Reply-To"] = data["email"]
    msg.set_content(
        "New contact form submission\n\n"
        f"Name: {data['name']}\n"
        f"Email: {data['email']}\n"
        f"Subject: {data['subject']}\n\n"
        f"{data['message']}\n"
    )
    return msg


def send_contact_message(data: dict, *, to: str, smtp: SmtpSettings | None) -> bool:
    """
    Mail a validated contact submission to the site owner.
    Returns False when SMTP is not configured (submission is only logged).
    """
    if smtp is None:
        logger.info("SMTP not configured; contact submission from %s logged only", data["email"])
        return False

    try:
        msg = build_contact_message(data, to=to, from_email=smtp.from_email)
    except ValueError as e:
        raise ContactDeliveryError(f"Cannot build contact email: {e}") from e
    try:
        with smtplib.SMTP(smtp.host, smtp.port, timeout=30) as server:
            if smtp.port != 25:
                server.starttls()
            if smtp.username and smtp.password:
                server.login(smtp.username, smtp.password)
            server.send_message(msg)
    except (smtplib.SMTPException, OSError) as e:
        raise ContactDeliveryError(f"SMTP error: {e}") from e
    logger.info("Contact email sent to %s (subject=%s)", to, data["subject"])
    return True
