"""
JSON response helpers shared by the /api blueprints.

Every API body has the shape {"success": bool, "data"?, "error"?, "message"?}.
"""
from __future__ import annotations

import math
from typing import Any

from flask import jsonify, request

from app.blog.utils import parse_positive_int


def json_ok(data: Any = None, *, message: str | None = None, status: int = 200, **extra: Any):
    body: dict[str, Any] = {"success": True}
    if data is not None:
        body["data"] = data
    if message:
        body["message"] = message
    body.update(extra)
    return jsonify(body), status


def json_error(error: str, status: int, **extra: Any):
    body: dict[str, Any] = {"success": False, "error": error}
    body.update(extra)
    return jsonify(body), status


def validation_error(field_errors: dict[str, list[str]], error: str = "Validation failed"):
    return json_error(error, 400, fieldErrors=field_errors)


def read_json_body() -> dict[str, Any] | None:
    """Parsed JSON object body, or None when the body is missing/not an object."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return None
    return data


def page_args(default_limit: int = 20, max_limit: int = 100) -> tuple[int, int]:
    page = parse_positive_int(request.args.get("page"), 1)
    limit = parse_positive_int(request.args.get("limit"), default_limit, maximum=max_limit)
    return page, limit


def pagination(page: int, limit: int, total: int) -> dict[str, Any]:
    total_pages = math.ceil(total / limit) if limit else 0
    return {
        "currentPage": page,
        "totalPages": total_pages,
        "totalCount": total,
        "hasNextPage": page < total_pages,
        "hasPrevPage": page > 1,
    }


def iso(dt) -> str | None:
    return dt.isoformat() if dt is not None else None
