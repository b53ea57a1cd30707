from __future__ import annotations

import uuid

from flask import Blueprint, current_app, flash, g, jsonify, redirect, render_template, request, session, url_for
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.security import check_password_hash, generate_password_hash

from app.blog.audit import log_admin_action
from app.blog.db import db_session
from app.blog.models import Role, User
from app.blog.rate_limit import check_rate_limit, client_ip, get_limiter
from app.blog.rbac import primary_role
from app.blog.utils import utcnow
from app.blog.validation import validate_registration_payload

bp = Blueprint("auth", __name__)


def load_current_user() -> None:
    """
    Loads g.current_user from the signed session cookie.
    Also assigns a simple per-request request_id (for admin log/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    if request.path.startswith(("/static/", "/health", "/healthz")):
        g.current_user = None
        return

    user_id = session.get("user_id")
    if not user_id:
        g.current_user = None
        return

    try:
        s = db_session()
        user = s.get(User, int(user_id))
        if not user or not user.is_active:
            session.pop("user_id", None)
            g.current_user = None
            return
        g.current_user = user
    except (SQLAlchemyError, ValueError, TypeError) as e:
        current_app.logger.error("load_current_user failed (clearing session): %s", e)
        session.pop("user_id", None)
        g.current_user = None


def _safe_next(nxt: str) -> str | None:
    # only local paths, to avoid open redirects
    if nxt.startswith("/") and not nxt.startswith("//"):
        return nxt
    return None


def session_user_to_dict(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "image": user.image,
        "role": primary_role(user).upper(),
    }


@bp.get("/login")
def login_get():
    nxt = (request.args.get("next") or "").strip()
    return render_template("auth/login.html", next=nxt)


@bp.post("/login")
def login_post():
    email = (request.form.get("email") or "").strip().lower()
    password = request.form.get("password") or ""
    nxt = (request.form.get("next") or "").strip()
    ip = client_ip(request)

    info = check_rate_limit("auth", ip)
    if not info.allowed:
        current_app.logger.warning("Login rate limit hit (ip=%s)", ip)
        flash("Too many login attempts. Please wait 15 minutes.", "danger")
        return render_template("auth/login.html", next=nxt), 429

    try:
        s = db_session()
        user = s.scalars(select(User).where(User.email == email)).one_or_none()
        if not user or not user.is_active or not check_password_hash(user.password_hash, password):
            log_admin_action(
                s,
                actor=None,
                action="auth.login_failed",
                target_type="user",
                target_id=email,
                details={"email": email, "reason": "Invalid credentials"},
            )
            s.commit()
            current_app.logger.info("Login failed (email=%s, ip=%s)", email, ip)
            flash("Invalid credentials.", "danger")
            return redirect(url_for("auth.login_get", next=nxt or None))

        session.clear()
        session["user_id"] = user.id
        user.last_login_at = utcnow()
        get_limiter("auth").clear(ip)
        log_admin_action(s, actor=user, action="auth.login", target_type="user", target_id=user.id)
        s.commit()
        return redirect(_safe_next(nxt) or url_for("posts.index"))
    except Exception:
        current_app.logger.exception("Login POST crashed (email=%s request_id=%s)", email, getattr(g, "request_id", None))
        raise


@bp.get("/register")
def register_get():
    return render_template("auth/register.html", form={})


@bp.post("/register")
def register_post():
    payload = {
        "email": request.form.get("email"),
        "name": request.form.get("name"),
        "password": request.form.get("password"),
        "password_confirm": request.form.get("password_confirm"),
    }
    ip = client_ip(request)
    if not check_rate_limit("auth", ip).allowed:
        flash("Too many attempts. Please wait 15 minutes.", "danger")
        return render_template("auth/register.html", form=payload), 429

    clean, errors = validate_registration_payload(payload)
    s = db_session()
    if not errors and s.scalars(select(User).where(User.email == clean["email"])).one_or_none():
        errors = {"email": ["An account with this email already exists."]}
    if errors:
        for msgs in errors.values():
            for m in msgs:
                flash(m, "danger")
        return render_template("auth/register.html", form=payload), 400

    user = User(
        email=clean["email"],
        name=clean["name"],
        password_hash=generate_password_hash(clean["password"]),
        is_active=True,
    )
    role = s.scalars(select(Role).where(Role.key == "user")).one_or_none()
    if role:
        user.roles.append(role)
    s.add(user)
    s.flush()
    log_admin_action(s, actor=user, action="auth.register", target_type="user", target_id=user.id)
    s.commit()

    session.clear()
    session["user_id"] = user.id
    current_app.logger.info("User registered (id=%s)", user.id)
    flash("Welcome! Your account has been created.", "success")
    return redirect(url_for("posts.index"))


@bp.get("/logout")
def logout():
    user = getattr(g, "current_user", None)
    if user:
        s = db_session()
        log_admin_action(s, actor=user, action="auth.logout", target_type="user", target_id=user.id)
        s.commit()
    session.pop("user_id", None)
    return redirect(url_for("posts.index"))


@bp.get("/session")
def session_info():
    user = getattr(g, "current_user", None)
    return jsonify({"user": session_user_to_dict(user) if user else None})
