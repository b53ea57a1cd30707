from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlalchemy import select

from app.blog.modules.translation.client import TranslatorClient, TranslatorError
from app.blog.modules.translation.models import Translation
from app.blog.utils import utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.blog.modules.posts.content import Post

logger = logging.getLogger(__name__)

SOURCE_LANGUAGE = "tr"
SUPPORTED_LANGUAGES = ("tr", "en")

_HEADING_RE = re.compile(r"^#+\s")
_LINK_REF_RE = re.compile(r"^\[.*\]:")
_IMAGE_RE = re.compile(r"^!\[.*\]\(.*\)")


@dataclass(frozen=True)
class MarkdownPart:
    content: str
    translate: bool


def split_markdown_for_translation(content: str) -> list[MarkdownPart]:
    """
    Split markdown into chunks that go to the translator and chunks kept as-is.

    Code fences (and everything inside them), `---` separators, link references,
    images and table rows are kept. Headings are sent on their own; runs of prose
    are sent together.
    """
    parts: list[MarkdownPart] = []
    prose: list[str] = []
    in_fence = False

    def _flush() -> None:
        if prose:
            text = "".join(prose)
            parts.append(MarkdownPart(text, bool(text.strip())))
            prose.clear()

    for line in (content or "").splitlines(keepends=True):
        stripped = line.strip()
        if stripped.startswith("```"):
            _flush()
            parts.append(MarkdownPart(line, False))
            in_fence = not in_fence
            continue
        if in_fence:
            parts.append(MarkdownPart(line, False))
            continue
        if _HEADING_RE.match(line):
            _flush()
            parts.append(MarkdownPart(line, True))
            continue
        if stripped.startswith(("---", "|")) or _LINK_REF_RE.match(line) or _IMAGE_RE.match(line):
            _flush()
            parts.append(MarkdownPart(line, False))
            continue
        prose.append(line)
    _flush()
    return parts


def translate_markdown(client: TranslatorClient, content: str, to: str, from_: str | None = SOURCE_LANGUAGE) -> str:
    """Translate prose and headings only. On translator errors the original text is kept."""
    return translate_markdown_checked(client, content, to, from_)[0]


def translate_markdown_checked(
    client: TranslatorClient, content: str, to: str, from_: str | None = SOURCE_LANGUAGE
) -> tuple[str, bool]:
    """Like translate_markdown, but also reports whether every chunk was translated."""
    if not content.strip():
        return content, True
    complete = True
    out = []
    for part in split_markdown_for_translation(content):
        if not part.translate:
            out.append(part.content)
            continue
        # keep the trailing newline the translator tends to drop
        body = part.content.rstrip("\n")
        tail = part.content[len(body):]
        try:
            out.append(client.translate(body, to, from_) + tail)
        except TranslatorError as e:
            logger.warning("Translation failed; keeping original chunk (%s)", e)
            out.append(part.content)
            complete = False
    return "".join(out), complete


def get_cached_translation(s: "Session", slug: str, language: str) -> Translation | None:
    return s.scalars(
        select(Translation).where(Translation.content_slug == slug, Translation.language == language)
    ).one_or_none()


def translation_to_dict(post: "Post", row: Translation | None, language: str) -> dict:
    if row is None:
        return {
            "slug": post.slug,
            "language": language,
            "title": post.title,
            "description": post.description,
            "content": post.content,
            "cached": False,
        }
    return {
        "slug": post.slug,
        "language": row.language,
        "title": row.title,
        "description": row.abstract or "",
        "content": row.content,
        "cached": True,
        "cachedAt": row.cached_at.isoformat() if row.cached_at else None,
    }


def get_translated_post(s: "Session", post: "Post", language: str, client: TranslatorClient | None) -> dict | None:
    """
    Translated view of a post. Source-language requests return the post itself.
    Returns None when nothing is cached and no translator is configured. Caller commits.

    Only complete translations are cached. When any chunk falls back to the
    source text the result is served once with ``partial`` set and the next
    request tries again.
    """
    if language == SOURCE_LANGUAGE:
        return translation_to_dict(post, None, language)

    row = get_cached_translation(s, post.slug, language)
    if row is not None:
        return translation_to_dict(post, row, language)
    if client is None:
        return None

    failed: list[str] = []

    def _t(field: str, text: str) -> str:
        if not text.strip():
            return text
        try:
            return client.translate(text, language, SOURCE_LANGUAGE)
        except TranslatorError as e:
            logger.warning("Translation of %s failed for %s; keeping original (%s)", field, post.slug, e)
            failed.append(field)
            return text

    title = _t("title", post.title)
    description = _t("description", post.description)
    content, complete = translate_markdown_checked(client, post.content, language)
    if not complete:
        failed.append("content")

    if failed:
        return {
            "slug": post.slug,
            "language": language,
            "title": title,
            "description": description,
            "content": content,
            "cached": False,
            "partial": True,
        }

    row = Translation(
        content_slug=post.slug,
        language=language,
        title=title,
        abstract=description or None,
        content=content,
        cached_at=utcnow(),
    )
    s.add(row)
    s.flush()
    return translation_to_dict(post, row, language)
