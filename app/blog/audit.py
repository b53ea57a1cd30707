import json
from typing import Any

from flask import g, has_request_context, request
from sqlalchemy.orm import Session

from app.blog.models import AdminLog, User
from app.blog.rate_limit import client_ip


def log_admin_action(
    s: Session,
    *,
    actor: User | None,
    action: str,
    target_type: str | None = None,
    target_id: str | int | None = None,
    details: dict[str, Any] | None = None,
    request_id: str | None = None,
) -> AdminLog:
    """
    Append-only admin log helper. Caller commits.
    """
    in_request = has_request_context()
    rid = request_id or (getattr(g, "request_id", None) if in_request else None)
    row = AdminLog(
        request_id=rid,
        user_id=actor.id if actor else None,
        user_email=actor.email if actor else None,
        action=action,
        target_type=target_type,
        target_id=str(target_id)[:128] if target_id is not None else None,
        details=json.dumps(details, sort_keys=True, ensure_ascii=False, default=str) if details else None,
        ip_address=client_ip(request) if in_request else None,
    )
    s.add(row)
    return row


def admin_log_to_dict(row: AdminLog) -> dict[str, Any]:
    details = None
    if row.details:
        try:
            details = json.loads(row.details)
        except ValueError:
            details = row.details
    who = None
    if row.user is not None:
        who = row.user.name or row.user.email
    return {
        "id": row.id,
        "action": row.action,
        "user": who or row.user_email,
        "targetType": row.target_type,
        "targetId": row.target_id,
        "details": details,
        "ipAddress": row.ip_address,
        "createdAt": row.created_at.isoformat() if row.created_at else None,
    }
