from __future__ import annotations

from flask import Blueprint, abort, current_app, flash, g, redirect, render_template, request, url_for
from sqlalchemy import func, select

from app.blog.api import json_error, json_ok, page_args, pagination, read_json_body, validation_error
from app.blog.constants import COMMENT_STATUSES
from app.blog.db import db_session
from app.blog.models import User
from app.blog.modules.comments.models import Comment
from app.blog.modules.comments.service import (
    CommentError,
    admin_comment_to_dict,
    approved_comment_tree,
    comment_status_counts,
    comment_to_dict,
    create_comment,
    delete_comment,
    moderate_comment,
    toggle_like,
)
from app.blog.rate_limit import client_ip, rate_limited
from app.blog.rbac import api_login_required, api_require_permission, require_permission
from app.blog.validation import (
    is_valid_post_slug,
    validate_comment_payload,
    validate_like_payload,
    validate_moderation_payload,
)

bp = Blueprint("comments", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


# ---------- Public API ----------
@bp.get("/api/comments")
def comments_list():
    post_slug = (request.args.get("postSlug") or "").strip()
    if not post_slug:
        return json_error("Post slug is required", 400)
    if not is_valid_post_slug(post_slug):
        return json_error("Invalid post slug format", 400)

    tree = approved_comment_tree(db_session(), post_slug)
    return json_ok(tree)


@bp.post("/api/comments")
@rate_limited("api")
@api_login_required
def comments_create():
    body = read_json_body()
    if body is None:
        return json_error("Invalid JSON body", 400)
    clean, errors = validate_comment_payload(body)
    if errors:
        return validation_error(errors, error="Invalid input")

    s = db_session()
    u = _current_user()
    try:
        c = create_comment(
            s,
            user=u,
            content=clean["content"],
            post_slug=clean["post_slug"],
            parent_id=clean["parent_id"],
            ip_address=client_ip(request),
            user_agent=request.headers.get("User-Agent"),
        )
    except CommentError as e:
        s.rollback()
        return json_error(e.message, e.status)
    s.commit()

    current_app.logger.info("Comment created (id=%s, post=%s, user=%s)", c.id, c.post_slug, u.id)
    return json_ok(
        comment_to_dict(c),
        message="Comment submitted for moderation",
        status=201,
    )


@bp.post("/api/comments/<int:comment_id>/like")
@rate_limited("api")
@api_login_required
def comments_like(comment_id: int):
    body = read_json_body()
    if body is None:
        return json_error("Invalid JSON body", 400)
    clean, errors = validate_like_payload(body)
    if errors:
        return validation_error(errors, error="Invalid input")

    s = db_session()
    comment = s.get(Comment, comment_id)
    if not comment:
        return json_error("Comment not found", 404)

    user_like = toggle_like(s, user=_current_user(), comment=comment, like_type=clean["type"])
    s.commit()
    return json_ok(
        {
            "likeCount": comment.like_count,
            "dislikeCount": comment.dislike_count,
            "userLike": user_like,
        }
    )


# ---------- Moderation API ----------
@bp.get("/api/admin/comments")
@api_require_permission("comments.moderate")
def admin_comments_list():
    status = (request.args.get("status") or "PENDING").strip().upper()
    if status not in COMMENT_STATUSES:
        return json_error("Invalid status", 400)
    page, limit = page_args(default_limit=20, max_limit=100)

    s = db_session()
    total = s.scalar(select(func.count(Comment.id)).where(Comment.status == status)) or 0
    rows = s.scalars(
        select(Comment)
        .where(Comment.status == status)
        .order_by(Comment.created_at.desc(), Comment.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    ).all()

    return json_ok(
        [admin_comment_to_dict(c) for c in rows],
        pagination=pagination(page, limit, total),
        counts=comment_status_counts(s),
    )


@bp.put("/api/admin/comments/<int:comment_id>")
@api_require_permission("comments.moderate")
def admin_comments_moderate(comment_id: int):
    body = read_json_body()
    if body is None:
        return json_error("Invalid JSON body", 400)
    clean, errors = validate_moderation_payload(body)
    if errors:
        return validation_error(errors, error="Invalid input")

    s = db_session()
    comment = s.get(Comment, comment_id)
    if not comment:
        return json_error("Comment not found", 404)

    u = _current_user()
    moderate_comment(s, actor=u, comment=comment, status=clean["status"], reason=clean["reason"])
    s.commit()
    current_app.logger.info("Comment %s set to %s by user=%s", comment.id, comment.status, u.id)
    return json_ok(
        admin_comment_to_dict(comment),
        message=f"Comment {clean['status'].lower()} successfully",
    )


@bp.delete("/api/admin/comments/<int:comment_id>")
@api_require_permission("comments.delete")
def admin_comments_delete(comment_id: int):
    s = db_session()
    comment = s.get(Comment, comment_id)
    if not comment:
        return json_error("Comment not found", 404)

    u = _current_user()
    try:
        delete_comment(s, actor=u, comment=comment)
    except CommentError as e:
        s.rollback()
        return json_error(e.message, e.status)
    s.commit()
    current_app.logger.info("Comment %s deleted by user=%s", comment_id, u.id)
    return json_ok(message="Comment deleted successfully")


# ---------- Moderation queue (HTML) ----------
@bp.get("/admin/comments")
@require_permission("comments.moderate")
def admin_comments_page():
    status = (request.args.get("status") or "PENDING").strip().upper()
    if status not in COMMENT_STATUSES:
        abort(400)
    s = db_session()
    rows = s.scalars(
        select(Comment).where(Comment.status == status).order_by(Comment.created_at.desc()).limit(100)
    ).all()
    return render_template(
        "admin/comments.html",
        comments=rows,
        status=status,
        statuses=COMMENT_STATUSES,
        counts=comment_status_counts(s),
    )


@bp.post("/admin/comments/<int:comment_id>/moderate")
@require_permission("comments.moderate")
def admin_comments_moderate_form(comment_id: int):
    s = db_session()
    comment = s.get(Comment, comment_id)
    if not comment:
        abort(404)
    clean, errors = validate_moderation_payload(
        {"status": request.form.get("status"), "reason": request.form.get("reason")}
    )
    if errors:
        for msgs in errors.values():
            for m in msgs:
                flash(m, "danger")
    else:
        moderate_comment(s, actor=_current_user(), comment=comment, status=clean["status"], reason=clean["reason"])
        s.commit()
        flash(f"Comment {clean['status'].lower()} successfully.", "success")
    return redirect(url_for("comments.admin_comments_page", status=request.form.get("return_status") or "PENDING"))
