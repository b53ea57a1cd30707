import logging
import os
from datetime import timedelta

from dotenv import load_dotenv
from flask import Flask, g, render_template, request, session

from app.blog.config import load_config
from app.blog.db import init_db, teardown_db_session
from app.blog.rate_limit import check_rate_limit, client_ip, init_rate_limiters
from app.blog.routes import bp as routes_bp
from app.blog.auth import bp as auth_bp, load_current_user
from app.blog.admin import api_bp as admin_api_bp, bp as admin_bp
from app.blog.modules.posts.admin import bp as posts_bp
from app.blog.modules.comments.admin import bp as comments_bp
from app.blog.modules.newsletter.admin import bp as newsletter_bp
from app.blog.modules.site_settings.admin import bp as site_settings_bp
from app.blog.modules.contact.admin import bp as contact_bp
from app.blog.modules.translation.admin import bp as translation_bp

_SKIP_PREFIXES = ("/static/", "/health", "/healthz")


def _wants_json() -> bool:
    return request.path.startswith("/api/")


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__, template_folder="templates", static_folder="static")
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=8)
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True
    # Turkish content in API bodies stays readable
    app.json.ensure_ascii = False

    from app.blog.security import apply_security_headers, ensure_csrf_token, validate_csrf

    @app.context_processor
    def _inject_csrf() -> dict:
        return {"csrf_token": ensure_csrf_token()}

    @app.context_processor
    def _inject_site() -> dict:
        from app.blog.constants import CATEGORIES, NAVIGATION
        from app.blog.rbac import primary_role, user_has_permission

        def has_perm(key: str) -> bool:
            return user_has_permission(getattr(g, "current_user", None), key)

        return {
            "has_perm": has_perm,
            "primary_role": primary_role,
            "current_user": getattr(g, "current_user", None),
            "site_name": app.config["SITE_NAME"],
            "site_description": app.config["SITE_DESCRIPTION"],
            "navigation": NAVIGATION,
            "all_categories": CATEGORIES,
        }

    @app.template_filter("date_tr")
    def _date_tr_filter(value) -> str:
        from app.blog.utils import format_date_tr

        return format_date_tr(value)

    # Production guardrails (fail fast with clear logs)
    if app.config.get("IS_PRODUCTION"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")

    init_db(app)
    init_rate_limiters(app)

    def _dispose_engine_on_fork() -> None:
        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()
                    app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    if app.config.get("STORAGE_BACKEND") == "s3":
        missing_s3 = [k for k in ("S3_ENDPOINT", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY") if not app.config.get(k)]
        if missing_s3:
            app.logger.error("STORAGE CONFIG ERROR: Missing required S3 env vars: %s", ", ".join(missing_s3))

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(admin_bp, url_prefix="/admin")
    app.register_blueprint(admin_api_bp, url_prefix="/api/admin")
    app.register_blueprint(posts_bp)
    app.register_blueprint(comments_bp)
    app.register_blueprint(newsletter_bp)
    app.register_blueprint(site_settings_bp)
    app.register_blueprint(contact_bp)
    app.register_blueprint(translation_bp)

    def _load_user_wrapper():
        if request.path.startswith(_SKIP_PREFIXES):
            g.current_user = None
            return None
        return load_current_user()

    app.before_request(_load_user_wrapper)

    @app.before_request
    def _global_rate_limit():
        if request.path.startswith(_SKIP_PREFIXES) or _wants_json():
            return None
        info = check_rate_limit("global")
        if not info.allowed:
            app.logger.warning("Global rate limit exceeded (client=%s, path=%s)", client_ip(request), request.path)
            resp = app.make_response((render_template("errors/429.html", retry_after=info.retry_after_seconds()), 429))
            resp.headers.update(info.headers())
            resp.headers["Retry-After"] = str(info.retry_after_seconds())
            return resp
        return None

    @app.before_request
    def _csrf_guard():
        if request.path.startswith(_SKIP_PREFIXES):
            return None
        ensure_csrf_token()
        session.permanent = True
        if not app.config.get("CSRF_ENABLED"):
            return None
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            # Login/logout/register and browser CSP reports carry no token
            if (request.endpoint or "").startswith("auth.") or request.path == "/api/csp-report":
                return None
            if not validate_csrf(request):
                app.logger.warning("CSRF validation failed (path=%s, request_id=%s)", request.path, getattr(g, "request_id", None))
                if _wants_json():
                    return {"success": False, "error": "CSRF token missing or invalid."}, 400
                return render_template("errors/400.html", message="CSRF token missing or invalid."), 400
        return None

    @app.after_request
    def _security_headers(resp):
        return apply_security_headers(
            resp,
            is_production=bool(app.config.get("IS_PRODUCTION")),
            is_development=bool(app.config.get("IS_DEVELOPMENT")),
            site_url=app.config["SITE_URL"],
        )

    app.teardown_appcontext(teardown_db_session)

    @app.errorhandler(400)
    def _err_400(e):  # type: ignore[no-redef]
        if _wants_json():
            return {"success": False, "error": "Bad request"}, 400
        return render_template("errors/400.html", message=getattr(e, "description", None)), 400

    @app.errorhandler(403)
    def _err_403(e):  # type: ignore[no-redef]
        missing = getattr(g, "missing_permission", None)
        if missing:
            app.logger.warning("Forbidden: missing_permission=%s request_id=%s", missing, getattr(g, "request_id", None))
        if _wants_json():
            return {"success": False, "error": "Forbidden"}, 403
        return render_template("errors/403.html", missing_permission=missing), 403

    @app.errorhandler(404)
    def _err_404(e):  # type: ignore[no-redef]
        if _wants_json():
            return {"success": False, "error": "Not found"}, 404
        return render_template("errors/404.html"), 404

    @app.errorhandler(405)
    def _err_405(e):  # type: ignore[no-redef]
        if _wants_json():
            return {"success": False, "error": "Method not allowed"}, 405
        return e

    @app.errorhandler(413)
    def _err_413(e):  # type: ignore[no-redef]
        if _wants_json():
            return {"success": False, "error": "File too large"}, 413
        return render_template("errors/400.html", message="File too large. Maximum size is 8MB."), 413

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        # Ensure stack trace shows in the platform logs.
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        if _wants_json():
            return {"success": False, "error": "Internal server error", "message": "Something went wrong. Please try again later."}, 500
        return render_template("errors/500.html"), 500

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
