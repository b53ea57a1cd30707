"""
Request payload validation and comment sanitization.

Validators return ``(clean, field_errors)``: ``clean`` holds normalized values,
``field_errors`` maps a field name to its messages (empty when valid).
"""
from __future__ import annotations

import json
import os
import re
from html import escape
from html.parser import HTMLParser
from typing import Any
from urllib.parse import urlparse

from app.blog.constants import COMMENT_ALLOWED_TAGS, COMMENT_STATUSES, LIKE_TYPES

FieldErrors = dict[str, list[str]]

EMAIL_RE = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
SLUG_RE = re.compile(r"^[a-z0-9-]+$")
NAME_RE = re.compile("^[a-zA-Z\\s\u00C0-\u017F\u0400-\u04FF]+$")
TWITTER_RE = re.compile(r"^@?[a-zA-Z0-9_]{1,15}$")
GITHUB_RE = re.compile(r"^[a-zA-Z0-9-]{1,39}$")
LINKEDIN_RE = re.compile(r"^[a-zA-Z0-9-]{3,100}$")
SETTING_KEY_RE = re.compile(r"^[a-z_][a-z0-9_]*$")

SETTING_TYPES = ("string", "number", "boolean", "json")

DEFAULT_UPLOAD_MAX_BYTES = 5 * 1024 * 1024
DEFAULT_UPLOAD_TYPES = ("image/jpeg", "image/png", "image/webp")
DEFAULT_UPLOAD_EXTENSIONS = (".jpg", ".jpeg", ".png", ".webp")


def _add(errors: FieldErrors, field: str, message: str) -> None:
    errors.setdefault(field, []).append(message)


def _str(payload: dict, key: str) -> str:
    v = payload.get(key)
    if v is None:
        return ""
    return v if isinstance(v, str) else str(v)


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_RE.match(email or ""))


def is_valid_http_url(value: str) -> bool:
    try:
        parsed = urlparse(value)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def is_valid_post_slug(slug: str) -> bool:
    return bool(SLUG_RE.match(slug or ""))


# ---------- Comments ----------
def validate_comment_payload(payload: dict) -> tuple[dict[str, Any], FieldErrors]:
    errors: FieldErrors = {}
    content = _str(payload, "content")
    post_slug = _str(payload, "postSlug").strip()
    raw_parent = payload.get("parentId")

    if len(content) < 1:
        _add(errors, "content", "Comment cannot be empty")
    elif len(content) > 2000:
        _add(errors, "content", "Comment must be less than 2000 characters")
    elif not content.strip():
        _add(errors, "content", "Comment cannot be only whitespace")

    if not post_slug:
        _add(errors, "postSlug", "Post slug is required")
    elif not is_valid_post_slug(post_slug):
        _add(errors, "postSlug", "Invalid post slug format")

    parent_id: int | None = None
    if raw_parent not in (None, ""):
        try:
            parent_id = int(raw_parent)
            if parent_id < 1 or isinstance(raw_parent, bool):
                raise ValueError
        except (TypeError, ValueError):
            _add(errors, "parentId", "Invalid parent ID format")
            parent_id = None

    return {"content": content, "post_slug": post_slug, "parent_id": parent_id}, errors


def validate_like_payload(payload: dict) -> tuple[dict[str, Any], FieldErrors]:
    errors: FieldErrors = {}
    like_type = _str(payload, "type").strip().upper()
    if like_type not in LIKE_TYPES:
        _add(errors, "type", f"Invalid enum value. Expected {' | '.join(LIKE_TYPES)}")
    return {"type": like_type}, errors


def validate_moderation_payload(payload: dict) -> tuple[dict[str, Any], FieldErrors]:
    errors: FieldErrors = {}
    status = _str(payload, "status").strip().upper()
    reason = _str(payload, "reason").strip() or None
    if status not in COMMENT_STATUSES:
        _add(errors, "status", "Invalid status")
    if reason and len(reason) > 500:
        _add(errors, "reason", "Reason must be less than 500 characters")
    return {"status": status, "reason": reason}, errors


# ---------- Users ----------
def validate_profile_payload(payload: dict) -> tuple[dict[str, Any], FieldErrors]:
    errors: FieldErrors = {}
    name = _str(payload, "name").strip()
    bio = _str(payload, "bio").strip()
    website = _str(payload, "website").strip()
    twitter = _str(payload, "twitter").strip()
    github = _str(payload, "github").strip()
    linkedin = _str(payload, "linkedin").strip()

    if not name:
        _add(errors, "name", "Name is required")
    elif len(name) > 100:
        _add(errors, "name", "Name must be less than 100 characters")
    elif not NAME_RE.match(name):
        _add(errors, "name", "Name contains invalid characters")

    if len(bio) > 500:
        _add(errors, "bio", "Bio must be less than 500 characters")
    if website and not is_valid_http_url(website):
        _add(errors, "website", "Must be a valid URL")
    if twitter and not TWITTER_RE.match(twitter):
        _add(errors, "twitter", "Invalid Twitter username")
    if github and not GITHUB_RE.match(github):
        _add(errors, "github", "Invalid GitHub username")
    if linkedin and not LINKEDIN_RE.match(linkedin):
        _add(errors, "linkedin", "Invalid LinkedIn username")

    clean = {
        "name": name,
        "bio": bio or None,
        "website": website or None,
        "twitter": twitter.lstrip("@") or None,
        "github": github or None,
        "linkedin": linkedin or None,
    }
    return clean, errors


def validate_registration_payload(payload: dict) -> tuple[dict[str, Any], FieldErrors]:
    errors: FieldErrors = {}
    email = _str(payload, "email").strip().lower()
    name = _str(payload, "name").strip()
    password = _str(payload, "password")
    password_confirm = _str(payload, "password_confirm")

    if not email:
        _add(errors, "email", "Email is required.")
    elif not is_valid_email(email):
        _add(errors, "email", "Invalid email format.")
    if name and (len(name) > 100 or not NAME_RE.match(name)):
        _add(errors, "name", "Name contains invalid characters")
    if not password:
        _add(errors, "password", "Password is required.")
    elif len(password) < 8:
        _add(errors, "password", "Password must be at least 8 characters.")
    elif password != password_confirm:
        _add(errors, "password_confirm", "Passwords do not match.")
    return {"email": email, "name": name or None, "password": password}, errors


# ---------- Contact / newsletter ----------
def validate_contact_payload(payload: dict) -> tuple[dict[str, Any], FieldErrors]:
    errors: FieldErrors = {}
    name = _str(payload, "name").strip()
    email = _str(payload, "email").strip()
    subject = _str(payload, "subject").strip()
    message = _str(payload, "message").strip()

    if len(name) < 2:
        _add(errors, "name", "Name must be at least 2 characters")
    elif len(name) > 100:
        _add(errors, "name", "Name must be no more than 100 characters")
    if not is_valid_email(email):
        _add(errors, "email", "Invalid email address")
    elif len(email) > 255:
        _add(errors, "email", "Email must be no more than 255 characters")
    if len(subject) < 5:
        _add(errors, "subject", "Subject must be at least 5 characters")
    elif len(subject) > 200:
        _add(errors, "subject", "Subject must be no more than 200 characters")
    elif "\r" in subject or "\n" in subject:
        _add(errors, "subject", "Subject must be a single line")
    if len(message) < 10:
        _add(errors, "message", "Message must be at least 10 characters")
    elif len(message) > 2000:
        _add(errors, "message", "Message must be no more than 2000 characters")

    return {"name": name, "email": email, "subject": subject, "message": message}, errors


def validate_newsletter_payload(payload: dict) -> tuple[dict[str, Any], FieldErrors]:
    errors: FieldErrors = {}
    email = _str(payload, "email").strip().lower()
    source = _str(payload, "source").strip() or None
    if not is_valid_email(email):
        _add(errors, "email", "Geçerli bir e-posta adresi girin")
    elif len(email) > 255:
        _add(errors, "email", "Email must be less than 255 characters")
    if source and len(source) > 50:
        _add(errors, "source", "Source must be less than 50 characters")
    return {"email": email, "source": source}, errors


# ---------- Site settings ----------
def coerce_setting_value(value: str, setting_type: str) -> Any:
    """Typed view of a stored setting value. Raises ValueError when it does not parse."""
    if setting_type == "string":
        return value
    if setting_type == "number":
        n = float(value)
        return int(n) if n.is_integer() and re.fullmatch(r"[+-]?\d+", value.strip()) else n
    if setting_type == "boolean":
        v = value.strip().lower()
        if v in ("true", "1"):
            return True
        if v in ("false", "0"):
            return False
        raise ValueError(f"Not a boolean: {value!r}")
    if setting_type == "json":
        return json.loads(value)
    raise ValueError(f"Unknown setting type: {setting_type!r}")


def validate_setting_payload(payload: dict) -> tuple[dict[str, Any], FieldErrors]:
    errors: FieldErrors = {}
    key = _str(payload, "key").strip()
    setting_type = _str(payload, "type").strip() or "string"
    category = _str(payload, "category").strip() or "general"
    raw_value = payload.get("value")

    if not key:
        _add(errors, "key", "Key is required")
    elif not SETTING_KEY_RE.match(key):
        _add(errors, "key", "Key must be lowercase with underscores")
    elif len(key) > 128:
        _add(errors, "key", "Key must be no more than 128 characters")
    if not SETTING_KEY_RE.match(category):
        _add(errors, "category", "Category must be lowercase with underscores")
    elif len(category) > 64:
        _add(errors, "category", "Category must be no more than 64 characters")
    if setting_type not in SETTING_TYPES:
        _add(errors, "type", f"Type must be one of: {', '.join(SETTING_TYPES)}")

    if raw_value is None:
        _add(errors, "value", "Value is required")
        value = ""
    elif isinstance(raw_value, str):
        value = raw_value
    elif isinstance(raw_value, bool):
        value = "true" if raw_value else "false"
    elif isinstance(raw_value, (int, float)):
        value = str(raw_value)
    else:
        value = json.dumps(raw_value, ensure_ascii=False)

    if "value" not in errors and setting_type in SETTING_TYPES:
        try:
            coerce_setting_value(value, setting_type)
        except ValueError:
            _add(errors, "value", f"Value is not a valid {setting_type}")

    return {"key": key, "value": value, "type": setting_type, "category": category}, errors


# ---------- Uploads ----------
def validate_file_upload(
    filename: str,
    content_type: str,
    size_bytes: int,
    *,
    max_size: int = DEFAULT_UPLOAD_MAX_BYTES,
    allowed_types: tuple[str, ...] = DEFAULT_UPLOAD_TYPES,
    allowed_extensions: tuple[str, ...] = DEFAULT_UPLOAD_EXTENSIONS,
) -> str | None:
    """Returns an error message, or None when the file is acceptable."""
    if size_bytes > max_size:
        return f"File size must be less than {round(max_size / 1024 / 1024)}MB"
    if content_type not in allowed_types:
        return f"File type not allowed. Allowed types: {', '.join(allowed_types)}"
    ext = os.path.splitext(filename or "")[1].lower()
    if ext not in allowed_extensions:
        return f"File extension not allowed. Allowed extensions: {', '.join(allowed_extensions)}"
    return None


# ---------- Sanitization ----------
_DROP_WITH_CONTENT = frozenset({"script", "style", "iframe", "object", "embed", "template"})
_VOID_TAGS = frozenset({"br", "hr", "img"})


class _Sanitizer(HTMLParser):
    def __init__(self, allowed_tags: frozenset[str], allowed_attributes: dict[str, tuple[str, ...]]):
        super().__init__(convert_charrefs=True)
        self.allowed_tags = allowed_tags
        self.allowed_attributes = allowed_attributes
        self.out: list[str] = []
        self.open_tags: list[str] = []
        self.skip_depth = 0

    def _render_attrs(self, tag: str, attrs: list[tuple[str, str | None]]) -> str:
        allowed = self.allowed_attributes.get(tag, ())
        rendered = []
        for name, value in attrs:
            if name not in allowed or value is None:
                continue
            if name in ("href", "src") and not re.match(r"^(https?:|mailto:|/)", value.strip(), flags=re.IGNORECASE):
                continue
            rendered.append(f' {name}="{escape(value, quote=True)}"')
        return "".join(rendered)

    def handle_starttag(self, tag, attrs):
        if tag in _DROP_WITH_CONTENT:
            self.skip_depth += 1
            return
        if self.skip_depth or tag not in self.allowed_tags:
            return
        self.out.append(f"<{tag}{self._render_attrs(tag, attrs)}>")
        if tag not in _VOID_TAGS:
            self.open_tags.append(tag)

    def handle_startendtag(self, tag, attrs):
        if self.skip_depth or tag not in self.allowed_tags:
            return
        self.out.append(f"<{tag}{self._render_attrs(tag, attrs)}>")

    def handle_endtag(self, tag):
        if tag in _DROP_WITH_CONTENT:
            self.skip_depth = max(0, self.skip_depth - 1)
            return
        if self.skip_depth or tag not in self.allowed_tags or tag in _VOID_TAGS:
            return
        if tag in self.open_tags:
            # close anything left open inside this element first
            while self.open_tags:
                t = self.open_tags.pop()
                self.out.append(f"</{t}>")
                if t == tag:
                    break

    def handle_data(self, data):
        if not self.skip_depth:
            self.out.append(escape(data, quote=False))

    def result(self) -> str:
        self.close()
        while self.open_tags:
            self.out.append(f"</{self.open_tags.pop()}>")
        return "".join(self.out)


def sanitize_content(
    content: str,
    *,
    allowed_tags: frozenset[str] | set[str] | None = None,
    allowed_attributes: dict[str, tuple[str, ...]] | None = None,
    strip_tags: bool = False,
) -> str:
    if strip_tags:
        tags: frozenset[str] = frozenset()
    elif allowed_tags is not None:
        tags = frozenset(allowed_tags)
    else:
        tags = frozenset({"b", "i", "em", "strong", "u", "code", "pre", "br", "p"})
    attrs = allowed_attributes if allowed_attributes is not None else {"a": ("href",), "code": ("class",)}
    parser = _Sanitizer(tags, attrs)
    parser.feed(content or "")
    result = parser.result()
    return result.strip() if strip_tags else result


def sanitize_comment(content: str) -> str:
    return sanitize_content(content, allowed_tags=COMMENT_ALLOWED_TAGS, allowed_attributes={})
