from __future__ import annotations

from flask import Blueprint, current_app, request
from sqlalchemy import func, select

from app.blog.api import json_error, json_ok, page_args, pagination, read_json_body
from app.blog.db import db_session
from app.blog.modules.newsletter.models import Newsletter
from app.blog.modules.newsletter.service import (
    NewsletterError,
    active_subscriber_count,
    subscribe,
    subscriber_to_dict,
    unsubscribe,
)
from app.blog.rate_limit import rate_limited
from app.blog.rbac import api_require_permission
from app.blog.validation import validate_newsletter_payload

bp = Blueprint("newsletter", __name__)


@bp.post("/api/newsletter")
@rate_limited("api")
def newsletter_subscribe():
    body = read_json_body() or {}
    clean, errors = validate_newsletter_payload(body)
    if errors:
        return json_error("Geçersiz e-posta formatı", 400, fieldErrors=errors)

    s = db_session()
    try:
        row, message = subscribe(s, email=clean["email"], source=clean["source"])
    except NewsletterError as e:
        s.rollback()
        return json_error(e.message, e.status)
    s.commit()
    current_app.logger.info("Newsletter subscription (id=%s, source=%s)", row.id, row.source)
    return json_ok(message=message)


@bp.delete("/api/newsletter")
def newsletter_unsubscribe():
    email = (request.args.get("email") or "").strip()
    token = (request.args.get("token") or "").strip()
    s = db_session()
    try:
        row = unsubscribe(s, email=email or None, token=token or None)
    except NewsletterError as e:
        return json_error(e.message, e.status)
    s.commit()
    current_app.logger.info("Newsletter unsubscribe (id=%s)", row.id)
    return json_ok(message="Newsletter aboneliğinden çıkıldı")


@bp.get("/api/newsletter")
def newsletter_count():
    return json_ok(count=active_subscriber_count(db_session()))


@bp.get("/api/admin/newsletter")
@api_require_permission("newsletter.view")
def admin_newsletter_list():
    page, limit = page_args(default_limit=50, max_limit=200)
    s = db_session()
    total = s.scalar(select(func.count(Newsletter.id))) or 0
    rows = s.scalars(
        select(Newsletter).order_by(Newsletter.created_at.desc(), Newsletter.id.desc()).offset((page - 1) * limit).limit(limit)
    ).all()
    return json_ok(
        [subscriber_to_dict(r) for r in rows],
        pagination=pagination(page, limit, total),
        activeCount=active_subscriber_count(s),
    )
