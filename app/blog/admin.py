from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import Any

from flask import Blueprint, current_app, g, render_template, request
from sqlalchemy import delete, func, or_, select
from sqlalchemy.orm import Session

from app.blog.api import iso, json_error, json_ok, page_args, pagination, read_json_body
from app.blog.audit import admin_log_to_dict, log_admin_action
from app.blog.constants import API_ROLES, COMMENT_STATUSES
from app.blog.db import db_session
from app.blog.models import AdminLog, Role, User
from app.blog.modules.analytics.service import top_posts, total_page_views
from app.blog.modules.comments.models import Comment, CommentLike
from app.blog.modules.comments.service import comment_status_counts
from app.blog.modules.newsletter.service import active_subscriber_count
from app.blog.modules.posts.content import get_all_posts
from app.blog.rbac import api_require_permission, primary_role, require_permission
from app.blog.utils import parse_positive_int, utcnow

bp = Blueprint("admin", __name__)
api_bp = Blueprint("admin_api", __name__)


# ---------- Stats ----------
def _period_starts(now: datetime) -> tuple[datetime, datetime, datetime]:
    start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
    # weeks start on Sunday
    start_of_week = start_of_day - timedelta(days=(start_of_day.weekday() + 1) % 7)
    start_of_month = start_of_day.replace(day=1)
    return start_of_day, start_of_week, start_of_month


def _trend(today: int, week: int) -> int:
    if week <= 0:
        return 0
    # halves round up
    return math.floor((today / (week / 7) - 1) * 100 + 0.5)


def _count_since(s: Session, column, since: datetime) -> int:
    return s.scalar(select(func.count()).where(column >= since)) or 0


def role_distribution(users: list[User]) -> dict[str, int]:
    dist = {r: 0 for r in API_ROLES}
    for u in users:
        dist[primary_role(u).upper()] += 1
    return dist


def build_admin_stats(s: Session) -> dict[str, Any]:
    users = s.scalars(select(User)).all()
    total_users = len(users)
    active_users = sum(1 for u in users if u.is_active)
    status_counts = comment_status_counts(s)
    pending = status_counts["PENDING"]
    spam = status_counts["SPAM"]

    day, week, month = _period_starts(utcnow())
    comments_today = _count_since(s, Comment.created_at, day)
    comments_week = _count_since(s, Comment.created_at, week)
    users_today = _count_since(s, User.created_at, day)
    users_week = _count_since(s, User.created_at, week)

    recent = s.scalars(select(AdminLog).order_by(AdminLog.created_at.desc(), AdminLog.id.desc()).limit(20)).all()

    return {
        "overview": {
            "totalUsers": total_users,
            "activeUsers": active_users,
            "inactiveUsers": total_users - active_users,
            "totalComments": sum(status_counts.values()),
            "pendingComments": pending,
            "approvedComments": status_counts["APPROVED"],
            "rejectedComments": status_counts["REJECTED"],
            "spamComments": spam,
            "totalPosts": len(get_all_posts()),
            "totalPageViews": total_page_views(s),
            "newsletterSubscribers": active_subscriber_count(s),
        },
        "trends": {
            "commentsToday": comments_today,
            "commentsThisWeek": comments_week,
            "commentsThisMonth": _count_since(s, Comment.created_at, month),
            "commentTrend": _trend(comments_today, comments_week),
            "usersToday": users_today,
            "usersThisWeek": users_week,
            "usersThisMonth": _count_since(s, User.created_at, month),
            "userTrend": _trend(users_today, users_week),
        },
        "distributions": {
            "commentsByStatus": {st: status_counts.get(st, 0) for st in COMMENT_STATUSES},
            "usersByRole": role_distribution(list(users)),
        },
        "topPosts": top_posts(s, 5),
        "recentActivity": [admin_log_to_dict(r) for r in recent],
        "alerts": {
            "highPendingComments": pending > 10,
            "newSpamComments": spam > 0,
            "inactiveAdmins": False,
        },
    }


@bp.get("/")
@require_permission("admin.view")
def index():
    return render_template("admin/index.html", stats=build_admin_stats(db_session()))


@api_bp.get("/stats")
@api_require_permission("admin.view")
def stats():
    return json_ok(build_admin_stats(db_session()))


# ---------- Users ----------
def user_to_dict(s: Session, u: User) -> dict[str, Any]:
    comment_count = s.scalar(select(func.count(Comment.id)).where(Comment.user_id == u.id)) or 0
    like_count = s.scalar(select(func.count(CommentLike.id)).where(CommentLike.user_id == u.id)) or 0
    return {
        "id": u.id,
        "name": u.name,
        "email": u.email,
        "image": u.image,
        "role": primary_role(u).upper(),
        "isActive": u.is_active,
        "bio": u.bio,
        "website": u.website,
        "twitter": u.twitter,
        "github": u.github,
        "linkedin": u.linkedin,
        "lastLoginAt": iso(u.last_login_at),
        "createdAt": iso(u.created_at),
        "updatedAt": iso(u.updated_at),
        "counts": {"comments": comment_count, "commentLikes": like_count},
    }


@api_bp.get("/users")
@api_require_permission("users.manage")
def users_list():
    s = db_session()
    role = (request.args.get("role") or "").strip().upper()
    is_active = (request.args.get("isActive") or "").strip().lower()
    search = (request.args.get("search") or "").strip()
    page, limit = page_args(default_limit=50, max_limit=100)

    if role and role not in API_ROLES:
        return json_error("Invalid role", 400)

    q = select(User)
    if is_active in ("true", "false"):
        q = q.where(User.is_active.is_(is_active == "true"))
    if search:
        like = f"%{search}%"
        q = q.where(or_(User.name.ilike(like), User.email.ilike(like)))
    users = list(s.scalars(q.order_by(User.created_at.desc(), User.id.desc())).all())
    # primary role is derived from role membership, so filter after loading
    if role:
        users = [u for u in users if primary_role(u).upper() == role]

    total = len(users)
    page_rows = users[(page - 1) * limit : page * limit]

    all_users = s.scalars(select(User)).all()
    active_count = sum(1 for u in all_users if u.is_active)
    return json_ok(
        {
            "users": [user_to_dict(s, u) for u in page_rows],
            "pagination": pagination(page, limit, total),
            "stats": {
                "totalUsers": len(all_users),
                "roleDistribution": role_distribution(list(all_users)),
                "activeUsers": active_count,
                "inactiveUsers": len(all_users) - active_count,
            },
        }
    )


@api_bp.get("/users/<int:user_id>")
@api_require_permission("users.manage")
def users_detail(user_id: int):
    s = db_session()
    u = s.get(User, user_id)
    if not u:
        return json_error("User not found", 404)
    comments = s.scalars(
        select(Comment).where(Comment.user_id == u.id).order_by(Comment.created_at.desc(), Comment.id.desc()).limit(10)
    ).all()
    d = user_to_dict(s, u)
    d["comments"] = [
        {
            "id": c.id,
            "content": c.content,
            "postSlug": c.post_slug,
            "status": c.status,
            "createdAt": iso(c.created_at),
            "counts": {"likes": len(c.likes), "replies": len(c.replies)},
        }
        for c in comments
    ]
    return json_ok(d)


def set_user_role(s: Session, user: User, role_key: str) -> None:
    role = s.scalars(select(Role).where(Role.key == role_key)).one_or_none()
    if role is None:
        role = Role(key=role_key, name=role_key.title())
        s.add(role)
    user.roles = [role]


@api_bp.put("/users/<int:user_id>")
@api_require_permission("users.manage")
def users_update(user_id: int):
    body = read_json_body()
    if body is None:
        return json_error("Invalid JSON body", 400)
    role = body.get("role")
    is_active = body.get("isActive")
    reason = body.get("reason")

    if role is not None and (not isinstance(role, str) or role.upper() not in API_ROLES):
        return json_error("Invalid role", 400)
    if is_active is not None and not isinstance(is_active, bool):
        return json_error("isActive must be a boolean", 400)
    new_role = role.upper() if role else None

    actor: User = g.current_user
    if user_id == actor.id:
        if is_active is False:
            return json_error("Cannot deactivate your own account", 400)
        if new_role and new_role != "ADMIN":
            return json_error("Cannot change your own admin role", 400)

    s = db_session()
    u = s.get(User, user_id)
    if not u:
        return json_error("User not found", 404)

    changes = []
    old_role = primary_role(u).upper()
    if new_role and new_role != old_role:
        set_user_role(s, u, new_role.lower())
        changes.append(f"role: {old_role} → {new_role}")
    if is_active is not None and is_active != u.is_active:
        changes.append(f"status: {'active' if u.is_active else 'inactive'} → {'active' if is_active else 'inactive'}")
        u.is_active = is_active

    if changes:
        log_admin_action(
            s,
            actor=actor,
            action="user_updated",
            target_type="user",
            target_id=u.id,
            details={"targetUserEmail": u.email, "changes": ", ".join(changes), "reason": reason or None},
        )
    s.commit()
    if changes:
        current_app.logger.info("User %s updated by user=%s: %s", u.id, actor.id, ", ".join(changes))
    return json_ok(user_to_dict(s, u), message="User updated successfully")


@api_bp.delete("/users/<int:user_id>")
@api_require_permission("users.manage")
def users_delete(user_id: int):
    actor: User = g.current_user
    if user_id == actor.id:
        return json_error("Cannot delete your own account", 400)

    s = db_session()
    u = s.get(User, user_id)
    if not u:
        return json_error("User not found", 404)

    comment_count = s.scalar(select(func.count(Comment.id)).where(Comment.user_id == u.id)) or 0
    if comment_count:
        return json_error("Cannot delete user with existing comments. Deactivate instead.", 400)

    details = {"deletedUserEmail": u.email, "deletedUserName": u.name, "deletedUserRole": primary_role(u).upper()}
    s.execute(delete(CommentLike).where(CommentLike.user_id == u.id))
    s.execute(delete(AdminLog).where(AdminLog.user_id == u.id))
    s.delete(u)
    log_admin_action(s, actor=actor, action="user_deleted", target_type="user", target_id=user_id, details=details)
    s.commit()
    current_app.logger.info("User %s deleted by user=%s", user_id, actor.id)
    return json_ok(message="User deleted successfully")


# ---------- Admin log ----------
@api_bp.get("/logs")
@api_require_permission("logs.view")
def logs_list():
    s = db_session()
    action = (request.args.get("action") or "").strip()
    target_type = (request.args.get("target_type") or request.args.get("targetType") or "").strip()
    page = parse_positive_int(request.args.get("page"), 1)
    limit = parse_positive_int(request.args.get("limit"), 50, maximum=200)

    q = select(AdminLog)
    count_q = select(func.count(AdminLog.id))
    if action:
        q = q.where(AdminLog.action == action)
        count_q = count_q.where(AdminLog.action == action)
    if target_type:
        q = q.where(AdminLog.target_type == target_type)
        count_q = count_q.where(AdminLog.target_type == target_type)

    total = s.scalar(count_q) or 0
    rows = s.scalars(q.order_by(AdminLog.created_at.desc(), AdminLog.id.desc()).offset((page - 1) * limit).limit(limit)).all()
    return json_ok([admin_log_to_dict(r) for r in rows], pagination=pagination(page, limit, total))

