from __future__ import annotations

import secrets
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select

from app.blog.api import iso
from app.blog.modules.newsletter.models import Newsletter

if TYPE_CHECKING:
    from sqlalchemy.orm import Session


class NewsletterError(Exception):
    def __init__(self, message: str, status: int = 400):
        super().__init__(message)
        self.message = message
        self.status = status


def _new_token() -> str:
    return secrets.token_hex(32)


def subscribe(s: "Session", *, email: str, source: str | None) -> tuple[Newsletter, str]:
    """
    Subscribe an address. Returns (row, user-facing message). Caller commits.

    There is no confirmation mail: new and reactivated subscriptions are confirmed at once.
    """
    row = s.scalars(select(Newsletter).where(Newsletter.email == email)).one_or_none()
    if row is not None:
        if row.unsubscribed:
            row.unsubscribed = False
            row.confirmed = True
            row.token = _new_token()
            if source:
                row.source = source
            return row, "Newsletter aboneliği başarılı!"
        if row.confirmed:
            raise NewsletterError("Bu e-posta adresi zaten kayıtlı", 400)
        return row, "Onay e-postası tekrar gönderildi"

    row = Newsletter(email=email, confirmed=True, token=_new_token(), source=source)
    s.add(row)
    s.flush()
    return row, "Newsletter aboneliği başarılı!"


def unsubscribe(s: "Session", *, email: str | None = None, token: str | None = None) -> Newsletter:
    if not email and not token:
        raise NewsletterError("E-posta adresi gerekli", 400)
    q = select(Newsletter)
    q = q.where(Newsletter.email == email.strip().lower()) if email else q.where(Newsletter.token == token)
    row = s.scalars(q).one_or_none()
    if row is None:
        raise NewsletterError("E-posta adresi bulunamadı", 404)
    row.unsubscribed = True
    return row


def active_subscriber_count(s: "Session") -> int:
    return s.scalar(
        select(func.count(Newsletter.id)).where(Newsletter.confirmed.is_(True), Newsletter.unsubscribed.is_(False))
    ) or 0


def subscriber_to_dict(row: Newsletter) -> dict[str, Any]:
    return {
        "id": row.id,
        "email": row.email,
        "confirmed": row.confirmed,
        "unsubscribed": row.unsubscribed,
        "source": row.source,
        "createdAt": iso(row.created_at),
    }
