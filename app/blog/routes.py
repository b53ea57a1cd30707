from __future__ import annotations

import mimetypes

from flask import Blueprint, abort, current_app, flash, g, jsonify, redirect, render_template, request, send_file, url_for
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.blog.audit import log_admin_action
from app.blog.db import db_session
from app.blog.rbac import login_required
from app.blog.storage import StorageError, build_avatar_key, storage_from_config
from app.blog.utils import utcnow
from app.blog.validation import validate_file_upload, validate_profile_payload

bp = Blueprint("routes", __name__)

APP_VERSION = "1.0.0"


@bp.get("/about")
def about():
    return render_template("public/about.html")


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON."""
    return {"ok": True}


@bp.get("/healthz")
def healthz():
    """
    Fast health check for load balancer probes. No DB access, minimal overhead.
    """
    return "ok", 200


@bp.get("/api/health")
def api_health():
    """Dependency health: database, auth configuration, api. 503 unless everything passes."""
    checks = {"database": False, "auth": False, "api": True}
    try:
        db_session().execute(text("SELECT 1"))
        checks["database"] = True
    except SQLAlchemyError as e:
        current_app.logger.error("Health check: database unavailable: %s", e)

    secret = str(current_app.config.get("SECRET_KEY") or "")
    checks["auth"] = bool(secret) and secret != "change-me"

    if all(checks.values()):
        status = "healthy"
    elif checks["database"]:
        status = "degraded"
    else:
        status = "unhealthy"

    body = {
        "status": status,
        "timestamp": utcnow().isoformat() + "Z",
        "version": APP_VERSION,
        "environment": current_app.config.get("ENV"),
        "checks": checks,
    }
    return jsonify(body), 200 if status == "healthy" else 503


@bp.post("/api/csp-report")
def csp_report():
    report = request.get_json(silent=True, force=True)
    if not isinstance(report, dict):
        return jsonify({"error": "Invalid report"}), 400
    current_app.logger.warning(
        "CSP violation (timestamp=%s, user_agent=%s, url=%s): %s",
        utcnow().isoformat(),
        request.headers.get("User-Agent"),
        request.url,
        report.get("csp-report", report),
    )
    return jsonify({"status": "received"}), 200


# ---------- Profile ----------
@bp.get("/profile")
@login_required
def profile_get():
    return render_template("profile/index.html", user=g.current_user, errors={})


@bp.post("/profile")
@login_required
def profile_post():
    user = g.current_user
    payload = {k: request.form.get(k) for k in ("name", "bio", "website", "twitter", "github", "linkedin")}
    clean, errors = validate_profile_payload(payload)
    if errors:
        flash("Please fix the highlighted fields.", "danger")
        return render_template("profile/index.html", user=user, errors=errors, form=payload), 400

    s = db_session()
    for field, value in clean.items():
        setattr(user, field, value)
    s.add(user)
    s.commit()
    flash("Profile updated.", "success")
    return redirect(url_for("routes.profile_get"))


@bp.post("/profile/avatar")
@login_required
def profile_avatar():
    user = g.current_user
    f = request.files.get("avatar")
    if not f or not f.filename:
        flash("Choose an image to upload.", "danger")
        return redirect(url_for("routes.profile_get"))

    data = f.read()
    error = validate_file_upload(f.filename, f.mimetype or "", len(data))
    if error:
        flash(error, "danger")
        return redirect(url_for("routes.profile_get"))

    key = build_avatar_key(user.id, f.filename)
    storage = storage_from_config(current_app.config)
    storage.put_bytes(key, data, content_type=f.mimetype)

    previous = user.image or ""
    s = db_session()
    user.image = f"/media/{key}"
    s.add(user)
    log_admin_action(s, actor=user, action="profile.avatar_uploaded", target_type="user", target_id=user.id, details={"key": key})
    s.commit()

    old_key = previous.removeprefix("/media/")
    if previous.startswith("/media/avatars/") and old_key != key:
        try:
            storage.delete(old_key)
        except (StorageError, OSError) as e:
            current_app.logger.warning("Old avatar not removed (key=%s): %s", old_key, e)
    flash("Avatar updated.", "success")
    return redirect(url_for("routes.profile_get"))


@bp.get("/media/<path:key>")
def media(key: str):
    if not key.startswith("avatars/"):
        abort(404)
    storage = storage_from_config(current_app.config)
    try:
        if not storage.exists(key):
            abort(404)
        fobj = storage.open(key)
    except StorageError:
        abort(404)
    mimetype = mimetypes.guess_type(key)[0] or "application/octet-stream"
    return send_file(fobj, mimetype=mimetype, max_age=3600)
