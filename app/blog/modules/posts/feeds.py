from __future__ import annotations

from datetime import datetime, timezone
from email.utils import format_datetime
from html import escape
from urllib.parse import quote

from app.blog.constants import CATEGORY_NAMES
from app.blog.modules.posts.content import Post, get_all_categories
from app.blog.utils import utcnow

RSS_ITEM_LIMIT = 20


def _x(value: str) -> str:
    return escape(value or "", quote=True)


def _rfc822(dt: datetime | None) -> str:
    return format_datetime((dt or utcnow()).replace(tzinfo=timezone.utc), usegmt=True)


def category_name(category_id: str) -> str:
    return CATEGORY_NAMES.get(category_id, category_id)


def build_rss(posts: list[Post], *, site_url: str, site_name: str, admin_email: str) -> str:
    items = []
    for post in posts[:RSS_ITEM_LIMIT]:
        url = f"{site_url}/blog/{post.slug}"
        categories = "".join(
            f"\n      <category>{_x(c)}</category>" for c in [category_name(post.category), *post.tags]
        )
        items.append(
            "\n    <item>"
            f"\n      <title>{_x(post.title)}</title>"
            f"\n      <description>{_x(post.description)}</description>"
            f"\n      <link>{_x(url)}</link>"
            f'\n      <guid isPermaLink="true">{_x(url)}</guid>'
            f"\n      <pubDate>{_rfc822(post.published_at)}</pubDate>"
            f"\n      <author>{_x(admin_email)} ({_x(post.author)})</author>"
            f"{categories}"
            "\n    </item>"
        )

    return (
        '<?xml version="1.0" encoding="UTF-8" ?>\n'
        '<rss version="2.0" xmlns:atom="http://www.w3.org/2005/Atom">\n'
        "  <channel>\n"
        f"    <title>{_x(site_name)}</title>\n"
        "    <description>Yapay zeka araştırmaları, makine öğrenmesi ve akademik çalışmalar.</description>\n"
        f"    <link>{_x(site_url)}</link>\n"
        "    <language>tr-TR</language>\n"
        f"    <managingEditor>{_x(admin_email)} ({_x(site_name)})</managingEditor>\n"
        f"    <lastBuildDate>{_rfc822(None)}</lastBuildDate>\n"
        f'    <atom:link href="{_x(site_url)}/feed.xml" rel="self" type="application/rss+xml"/>\n'
        f"    <generator>{_x(site_name)}</generator>\n"
        "    <ttl>60</ttl>"
        f"{''.join(items)}\n"
        "  </channel>\n"
        "</rss>\n"
    )


def sitemap_entries(posts: list[Post], *, site_url: str) -> list[dict[str, str | float]]:
    today = utcnow().date().isoformat()
    entries: list[dict[str, str | float]] = [
        {"loc": site_url, "lastmod": today, "changefreq": "weekly", "priority": 1.0},
        {"loc": f"{site_url}/about", "lastmod": today, "changefreq": "monthly", "priority": 0.8},
        {"loc": f"{site_url}/contact", "lastmod": today, "changefreq": "monthly", "priority": 0.7},
        {"loc": f"{site_url}/categories", "lastmod": today, "changefreq": "weekly", "priority": 0.8},
        {"loc": f"{site_url}/blog", "lastmod": today, "changefreq": "daily", "priority": 0.9},
    ]
    for category_id in get_all_categories():
        entries.append({"loc": f"{site_url}/categories/{category_id}", "lastmod": today, "changefreq": "weekly", "priority": 0.7})

    tags: list[str] = []
    for post in posts:
        for tag in post.tags:
            if tag not in tags:
                tags.append(tag)
    for tag in tags:
        entries.append({"loc": f"{site_url}/tags/{quote(tag)}", "lastmod": today, "changefreq": "weekly", "priority": 0.6})

    for post in posts:
        published = post.published_at
        entries.append(
            {
                "loc": f"{site_url}/blog/{post.slug}",
                "lastmod": published.date().isoformat() if published else today,
                "changefreq": "monthly",
                "priority": 0.8,
            }
        )
    return entries


def build_sitemap(posts: list[Post], *, site_url: str) -> str:
    urls = "".join(
        "\n  <url>"
        f"\n    <loc>{_x(str(e['loc']))}</loc>"
        f"\n    <lastmod>{e['lastmod']}</lastmod>"
        f"\n    <changefreq>{e['changefreq']}</changefreq>"
        f"\n    <priority>{e['priority']}</priority>"
        "\n  </url>"
        for e in sitemap_entries(posts, site_url=site_url)
    )
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">'
        f"{urls}\n"
        "</urlset>\n"
    )
