from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import select

from app.blog.api import iso
from app.blog.audit import log_admin_action
from app.blog.modules.site_settings.models import SiteSetting
from app.blog.validation import coerce_setting_value

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.blog.models import User


def typed_value(row: SiteSetting) -> Any:
    try:
        return coerce_setting_value(row.value, row.type)
    except ValueError:
        return row.value


def setting_to_dict(row: SiteSetting) -> dict[str, Any]:
    return {
        "key": row.key,
        "value": typed_value(row),
        "type": row.type,
        "category": row.category,
        "updatedAt": iso(row.updated_at),
    }


def settings_by_category(s: "Session") -> dict[str, list[dict[str, Any]]]:
    grouped: dict[str, list[dict[str, Any]]] = {}
    for row in s.scalars(select(SiteSetting).order_by(SiteSetting.category, SiteSetting.key)).all():
        grouped.setdefault(row.category, []).append(setting_to_dict(row))
    return grouped


def get_setting(s: "Session", key: str, default: Any = None) -> Any:
    row = s.scalars(select(SiteSetting).where(SiteSetting.key == key)).one_or_none()
    return typed_value(row) if row is not None else default


def upsert_setting(s: "Session", *, actor: "User", key: str, value: str, setting_type: str, category: str) -> tuple[SiteSetting, bool]:
    """Insert or update a setting. Returns (row, created). Caller commits."""
    row = s.scalars(select(SiteSetting).where(SiteSetting.key == key)).one_or_none()
    created = row is None
    old_value = None if created else row.value
    if created:
        row = SiteSetting(key=key, value=value, type=setting_type, category=category)
        s.add(row)
    else:
        row.value = value
        row.type = setting_type
        row.category = category
    s.flush()

    log_admin_action(
        s,
        actor=actor,
        action="setting_created" if created else "setting_updated",
        target_type="setting",
        target_id=key,
        details={"old": old_value, "new": value, "type": setting_type, "category": category},
    )
    return row, created


def delete_setting(s: "Session", *, actor: "User", row: SiteSetting) -> None:
    key = row.key
    details = {"value": row.value, "type": row.type, "category": row.category}
    s.delete(row)
    log_admin_action(s, actor=actor, action="setting_deleted", target_type="setting", target_id=key, details=details)
