"""
MDX post loading.

Posts live as `<slug>.mdx` files under CONTENT_DIR. Turkish is the source
language; `<slug>-en.mdx` files are hand-written English versions and are not
listed as posts of their own.
"""
from __future__ import annotations

import logging
import os
import re
from dataclasses import asdict, dataclass, field
from typing import Any

from flask import current_app

from app.blog.constants import CATEGORIES, DEFAULT_AUTHOR
from app.blog.utils import estimate_reading_time, extract_excerpt, parse_iso_datetime

logger = logging.getLogger(__name__)

_FRONTMATTER_RE = re.compile(r"^---\s*\n(.*?)\n---\s*\n(.*)$", re.DOTALL)


@dataclass
class Post:
    slug: str
    title: str
    description: str = ""
    date: str = ""
    author: str = DEFAULT_AUTHOR
    category: str = "uncategorized"
    tags: list[str] = field(default_factory=list)
    reading_time: int = 1
    content: str = ""
    excerpt: str = ""
    featured: bool = False
    language: str = "tr"

    @property
    def published_at(self):
        return parse_iso_datetime(self.date)

    def to_dict(self, *, include_content: bool = True) -> dict[str, Any]:
        d = asdict(self)
        d["readingTime"] = d.pop("reading_time")
        if not include_content:
            d.pop("content")
        return d


def _unquote(value: str) -> str:
    return re.sub(r"^[\"']|[\"']$", "", value.strip())


def parse_frontmatter(text: str) -> tuple[dict[str, Any], str]:
    """Split `---` frontmatter from the body. Files without frontmatter return ({}, text)."""
    m = _FRONTMATTER_RE.match(text or "")
    if not m:
        return {}, text or ""

    data: dict[str, Any] = {}
    for line in m.group(1).splitlines():
        key, sep, raw = line.partition(":")
        key = key.strip()
        if not sep or not key:
            continue
        value = _unquote(raw)
        if value.startswith("[") and value.endswith("]"):
            inner = value[1:-1].strip()
            data[key] = [_unquote(item) for item in inner.split(",")] if inner else []
        elif value == "true":
            data[key] = True
        elif value == "false":
            data[key] = False
        else:
            data[key] = value
    return data, m.group(2)


def _content_dir(content_dir: str | None) -> str:
    return content_dir or current_app.config["CONTENT_DIR"]


def post_from_text(slug: str, text: str) -> Post:
    data, body = parse_frontmatter(text)
    tags = data.get("tags") or []
    if isinstance(tags, str):
        tags = [t.strip() for t in tags.split(",") if t.strip()]
    description = str(data.get("description") or "")
    return Post(
        slug=slug,
        title=str(data.get("title") or ""),
        description=description,
        date=str(data.get("date") or ""),
        author=str(data.get("author") or DEFAULT_AUTHOR),
        category=str(data.get("category") or "uncategorized"),
        tags=list(tags),
        reading_time=estimate_reading_time(body),
        content=body,
        excerpt=description or extract_excerpt(body),
        featured=data.get("featured") is True,
        language="tr",
    )


def get_post_by_slug(slug: str, content_dir: str | None = None) -> Post | None:
    if not re.fullmatch(r"[a-z0-9-]+", slug or ""):
        return None
    path = os.path.join(_content_dir(content_dir), f"{slug}.mdx")
    if not os.path.isfile(path):
        return None
    try:
        with open(path, encoding="utf-8") as f:
            text = f.read()
    except (OSError, UnicodeDecodeError):
        logger.exception("Error reading post %s", path)
        return None
    return post_from_text(slug, text)


def get_all_posts(content_dir: str | None = None) -> list[Post]:
    """Turkish posts only, newest first."""
    root = _content_dir(content_dir)
    if not os.path.isdir(root):
        return []
    posts = []
    for name in sorted(os.listdir(root)):
        if not name.endswith(".mdx") or name.endswith("-en.mdx"):
            continue
        post = get_post_by_slug(name[: -len(".mdx")], root)
        if post:
            posts.append(post)
    posts.sort(key=lambda p: p.date, reverse=True)
    return posts


def get_posts_by_category(category: str, content_dir: str | None = None) -> list[Post]:
    return [p for p in get_all_posts(content_dir) if p.category == category]


def get_posts_by_tag(tag: str, content_dir: str | None = None) -> list[Post]:
    t = tag.lower()
    return [p for p in get_all_posts(content_dir) if t in (x.lower() for x in p.tags)]


def get_featured_posts(content_dir: str | None = None) -> list[Post]:
    return [p for p in get_all_posts(content_dir) if p.featured]


def get_recent_posts(limit: int = 5, content_dir: str | None = None) -> list[Post]:
    return get_all_posts(content_dir)[:limit]


def search_posts(query: str, content_dir: str | None = None) -> list[Post]:
    q = (query or "").strip().lower()
    if not q:
        return get_all_posts(content_dir)
    return [
        p
        for p in get_all_posts(content_dir)
        if q in p.title.lower()
        or q in p.description.lower()
        or q in p.content.lower()
        or any(q in t.lower() for t in p.tags)
    ]


def get_all_categories() -> list[str]:
    return [c["id"] for c in CATEGORIES]


def get_all_tags(content_dir: str | None = None) -> list[str]:
    tags: set[str] = set()
    for p in get_all_posts(content_dir):
        tags.update(p.tags)
    return sorted(tags)
