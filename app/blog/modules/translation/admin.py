from __future__ import annotations

from flask import Blueprint, current_app, request

from app.blog.api import json_error, json_ok
from app.blog.db import db_session
from app.blog.modules.posts.content import get_post_by_slug
from app.blog.modules.translation.client import translator_from_config
from app.blog.modules.translation.service import SUPPORTED_LANGUAGES, get_translated_post
from app.blog.rate_limit import rate_limited

bp = Blueprint("translation", __name__)


def get_translator():
    """Translator for this app; tests swap in a fake via app.extensions["translator"]."""
    ext = current_app.extensions
    if "translator" not in ext:
        ext["translator"] = translator_from_config(current_app.config)
    return ext["translator"]


@bp.get("/api/translate")
@rate_limited("api")
def translate_post():
    slug = (request.args.get("slug") or "").strip()
    lang = (request.args.get("lang") or "en").strip().lower()
    if not slug:
        return json_error("Slug is required", 400)
    if lang not in SUPPORTED_LANGUAGES:
        return json_error(f"Unsupported language. Supported: {', '.join(SUPPORTED_LANGUAGES)}", 400)

    post = get_post_by_slug(slug)
    if not post:
        return json_error("Post not found", 404)

    s = db_session()
    result = get_translated_post(s, post, lang, get_translator())
    if result is None:
        return json_error("Translation service is not configured", 503)
    s.commit()
    return json_ok(result)
