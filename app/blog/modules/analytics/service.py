from __future__ import annotations

from typing import TYPE_CHECKING

from flask import Request
from sqlalchemy import func, select

from app.blog.modules.analytics.models import PageView
from app.blog.rate_limit import client_ip

if TYPE_CHECKING:
    from sqlalchemy.orm import Session


def record_page_view(s: "Session", slug: str, req: Request) -> PageView:
    """Caller commits."""
    row = PageView(
        slug=slug,
        ip_address=client_ip(req),
        user_agent=(req.headers.get("User-Agent") or "")[:255] or None,
        referer=(req.headers.get("Referer") or "")[:512] or None,
        country=(req.headers.get("CF-IPCountry") or "")[:8] or None,
    )
    s.add(row)
    return row


def total_page_views(s: "Session") -> int:
    return s.scalar(select(func.count(PageView.id))) or 0


def top_posts(s: "Session", limit: int = 5) -> list[dict]:
    n = func.count(PageView.id).label("views")
    rows = s.execute(select(PageView.slug, n).group_by(PageView.slug).order_by(n.desc(), PageView.slug).limit(limit)).all()
    return [{"slug": slug, "views": views} for slug, views in rows]
