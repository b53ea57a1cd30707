from __future__ import annotations

import os
from typing import TYPE_CHECKING, Any

from app.blog.utils import slugify, utcnow

if TYPE_CHECKING:
    from app.blog.models import User


class PostError(Exception):
    def __init__(self, message: str, status: int = 400):
        super().__init__(message)
        self.message = message
        self.status = status


def _q(value: str) -> str:
    # frontmatter values are single-line and the parser does not unescape
    return '"' + (value or "").replace('"', "'").replace("\n", " ") + '"'


def _split_tags(raw: Any) -> list[str]:
    if isinstance(raw, list):
        return [str(t).strip() for t in raw if str(t).strip()]
    return [t.strip() for t in str(raw or "").split(",") if t.strip()]


def render_mdx(*, title: str, description: str, date: str, author: str, category: str, tags: list[str], featured: bool, language: str, content: str) -> str:
    tag_list = ", ".join(_q(t) for t in tags)
    return (
        "---\n"
        f"title: {_q(title)}\n"
        f"description: {_q(description)}\n"
        f"date: {_q(date)}\n"
        f"author: {_q(author)}\n"
        f"category: {_q(category)}\n"
        f"tags: [{tag_list}]\n"
        f"featured: {'true' if featured else 'false'}\n"
        f"language: {_q(language)}\n"
        "---\n\n"
        f"{content}\n"
    )


def _text(payload: dict, key: str) -> str:
    value = payload.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise PostError(f"Field '{key}' must be a string", 400)
    return value.strip()


def create_post(payload: dict, author: "User", *, content_dir: str) -> dict[str, Any]:
    """
    Write `<slug>.mdx` (and `<slug>-en.mdx` when an English title and body are given).
    Raises PostError on missing fields or an existing slug.
    """
    title = _text(payload, "title")
    content = _text(payload, "content")
    excerpt = _text(payload, "excerpt")
    title_en = _text(payload, "title_en")
    content_en = _text(payload, "content_en")
    excerpt_en = _text(payload, "excerpt_en")
    if not title or not content:
        raise PostError("Title and content are required", 400)

    slug = slugify(title)
    if not slug:
        raise PostError("Title must contain at least one latin letter or digit", 400)

    tr_name = f"{slug}.mdx"
    tr_path = os.path.join(content_dir, tr_name)
    if os.path.exists(tr_path):
        raise PostError(f"A post with slug '{slug}' already exists", 409)

    author_name = _text(payload, "author")
    category = _text(payload, "category")

    now = utcnow().isoformat(timespec="milliseconds") + "Z"
    common = {
        "date": now,
        "author": author_name or author.name or "Admin",
        "category": category or "general",
        "tags": _split_tags(payload.get("tags")),
        "featured": payload.get("featured") in (True, "true", "on", "1"),
    }

    os.makedirs(content_dir, exist_ok=True)
    with open(tr_path, "x", encoding="utf-8") as f:
        f.write(
            render_mdx(
                title=title,
                description=excerpt,
                language="tr",
                content=content,
                **common,
            )
        )

    en_name = None
    if title_en and content_en:
        en_name = f"{slug}-en.mdx"
        with open(os.path.join(content_dir, en_name), "w", encoding="utf-8") as f:
            f.write(
                render_mdx(
                    title=title_en,
                    description=excerpt_en,
                    language="en",
                    content=content_en,
                    **common,
                )
            )

    return {
        "slug": slug,
        "title": title,
        "title_en": title_en or None,
        "files": {"tr": tr_name, "en": en_name},
    }
