from __future__ import annotations

from flask import Blueprint, g
from sqlalchemy import select

from app.blog.api import json_error, json_ok, read_json_body, validation_error
from app.blog.db import db_session
from app.blog.modules.site_settings.models import SiteSetting
from app.blog.modules.site_settings.service import (
    delete_setting,
    setting_to_dict,
    settings_by_category,
    upsert_setting,
)
from app.blog.rbac import api_require_permission
from app.blog.validation import validate_setting_payload

bp = Blueprint("site_settings", __name__)


@bp.get("/api/admin/settings")
@api_require_permission("settings.manage")
def settings_list():
    return json_ok(settings_by_category(db_session()))


@bp.get("/api/admin/settings/<key>")
@api_require_permission("settings.manage")
def settings_get(key: str):
    row = db_session().scalars(select(SiteSetting).where(SiteSetting.key == key)).one_or_none()
    if row is None:
        return json_error("Setting not found", 404)
    return json_ok(setting_to_dict(row))


def _upsert(payload: dict):
    clean, errors = validate_setting_payload(payload)
    if errors:
        return validation_error(errors)
    s = db_session()
    row, created = upsert_setting(
        s,
        actor=g.current_user,
        key=clean["key"],
        value=clean["value"],
        setting_type=clean["type"],
        category=clean["category"],
    )
    s.commit()
    return json_ok(
        setting_to_dict(row),
        message="Setting created" if created else "Setting updated",
        status=201 if created else 200,
    )


@bp.put("/api/admin/settings")
@api_require_permission("settings.manage")
def settings_upsert():
    body = read_json_body()
    if body is None:
        return json_error("Invalid JSON body", 400)
    return _upsert(body)


@bp.put("/api/admin/settings/<key>")
@api_require_permission("settings.manage")
def settings_upsert_key(key: str):
    body = read_json_body()
    if body is None:
        return json_error("Invalid JSON body", 400)
    return _upsert({**body, "key": key})


@bp.delete("/api/admin/settings/<key>")
@api_require_permission("settings.manage")
def settings_delete(key: str):
    s = db_session()
    row = s.scalars(select(SiteSetting).where(SiteSetting.key == key)).one_or_none()
    if row is None:
        return json_error("Setting not found", 404)
    delete_setting(s, actor=g.current_user, row=row)
    s.commit()
    return json_ok(message="Setting deleted")
