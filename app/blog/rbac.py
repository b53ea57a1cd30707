from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import abort, g, jsonify, redirect, request, url_for

from app.blog.constants import ROLE_RANK
from app.blog.models import User


def user_has_permission(user: User | None, permission_key: str) -> bool:
    if not user or not user.is_active:
        return False
    for role in user.roles:
        for perm in role.permissions:
            if perm.key == permission_key:
                return True
    return False


def primary_role(user: User | None) -> str:
    """Highest-ranked role key the user holds; users without roles are plain "user"."""
    if not user:
        return "user"
    held = {r.key for r in user.roles}
    for key in ROLE_RANK:
        if key in held:
            return key
    return "user"


def _current_active_user() -> User | None:
    user: User | None = getattr(g, "current_user", None)
    if not user or not user.is_active:
        return None
    return user


def require_permission(permission_key: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """HTML routes: anonymous users go to login, authenticated-but-unauthorized get 403."""

    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user = _current_active_user()
            if not user:
                nxt = request.full_path or request.path
                # Avoid trailing '?' from full_path when there is no query string.
                if nxt.endswith("?"):
                    nxt = nxt[:-1]
                return redirect(url_for("auth.login_get", next=nxt))
            if not user_has_permission(user, permission_key):
                g.missing_permission = permission_key
                abort(403)
            return fn(*args, **kwargs)

        return wrapped

    return decorator


def login_required(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        if not _current_active_user():
            return redirect(url_for("auth.login_get", next=request.path))
        return fn(*args, **kwargs)

    return wrapped


def api_login_required(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        if not _current_active_user():
            return jsonify({"success": False, "error": "Authentication required"}), 401
        return fn(*args, **kwargs)

    return wrapped


def api_require_permission(permission_key: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """JSON routes: 401 when anonymous, 403 when the permission is missing."""

    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user = _current_active_user()
            if not user:
                return jsonify({"success": False, "error": "Authentication required"}), 401
            if not user_has_permission(user, permission_key):
                g.missing_permission = permission_key
                return jsonify({"success": False, "error": "Admin access required"}), 403
            return fn(*args, **kwargs)

        return wrapped

    return decorator
