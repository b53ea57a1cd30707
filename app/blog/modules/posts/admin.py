from __future__ import annotations

from flask import Blueprint, Response, abort, current_app, g, render_template, request

from app.blog.api import json_error, json_ok, read_json_body
from app.blog.constants import CATEGORIES, CATEGORY_NAMES
from app.blog.db import db_session
from app.blog.modules.analytics.service import record_page_view
from app.blog.modules.comments.service import approved_comment_tree
from app.blog.modules.posts.content import (
    get_all_posts,
    get_all_tags,
    get_featured_posts,
    get_post_by_slug,
    get_posts_by_category,
    get_posts_by_tag,
    get_recent_posts,
    search_posts,
)
from app.blog.modules.posts.feeds import build_rss, build_sitemap
from app.blog.modules.posts.service import PostError, create_post
from app.blog.rbac import api_require_permission
from app.blog.utils import generate_table_of_contents

bp = Blueprint("posts", __name__)


# ---------- Pages ----------
@bp.get("/")
def index():
    return render_template(
        "public/index.html",
        featured_posts=get_featured_posts()[:3],
        recent_posts=get_recent_posts(6),
        categories=CATEGORIES,
    )


@bp.get("/blog")
def blog_list():
    q = (request.args.get("q") or "").strip()
    posts = search_posts(q) if q else get_all_posts()
    return render_template("blog/list.html", posts=posts, q=q, categories=CATEGORIES)


@bp.get("/blog/<slug>")
def blog_detail(slug: str):
    post = get_post_by_slug(slug)
    if not post:
        abort(404)

    s = db_session()
    record_page_view(s, post.slug, request)
    s.commit()

    related = [p for p in get_posts_by_category(post.category) if p.slug != post.slug][:3]
    return render_template(
        "blog/detail.html",
        post=post,
        toc=generate_table_of_contents(post.content),
        comments=approved_comment_tree(s, post.slug),
        related_posts=related,
        category_name=CATEGORY_NAMES.get(post.category, post.category),
    )


@bp.get("/categories")
def categories_list():
    posts = get_all_posts()
    counts = {c["id"]: 0 for c in CATEGORIES}
    for p in posts:
        if p.category in counts:
            counts[p.category] += 1
    return render_template("blog/categories.html", categories=CATEGORIES, counts=counts)


@bp.get("/categories/<category_id>")
def category_detail(category_id: str):
    category = next((c for c in CATEGORIES if c["id"] == category_id), None)
    if category is None:
        abort(404)
    return render_template(
        "blog/category.html",
        category=category,
        posts=get_posts_by_category(category_id),
    )


@bp.get("/tags/<tag>")
def tag_detail(tag: str):
    posts = get_posts_by_tag(tag)
    if not posts:
        abort(404)
    return render_template("blog/tag.html", tag=tag, posts=posts)


# ---------- API ----------
@bp.get("/api/posts")
def api_posts_list():
    q = (request.args.get("q") or "").strip()
    category = (request.args.get("category") or "").strip()
    tag = (request.args.get("tag") or "").strip().lower()

    posts = search_posts(q) if q else get_all_posts()
    if category:
        posts = [p for p in posts if p.category == category]
    if tag:
        posts = [p for p in posts if tag in (t.lower() for t in p.tags)]
    return json_ok(
        [p.to_dict(include_content=False) for p in posts],
        count=len(posts),
        tags=get_all_tags(),
    )


@bp.get("/api/posts/<slug>")
def api_posts_detail(slug: str):
    post = get_post_by_slug(slug)
    if not post:
        return json_error("Post not found", 404)
    d = post.to_dict()
    d["toc"] = generate_table_of_contents(post.content)
    return json_ok(d)


@bp.post("/api/admin/posts")
@api_require_permission("posts.create")
def api_posts_create():
    body = read_json_body()
    if body is None:
        return json_error("Invalid JSON body", 400)
    try:
        result = create_post(body, g.current_user, content_dir=current_app.config["CONTENT_DIR"])
    except PostError as e:
        return json_error(e.message, e.status)
    current_app.logger.info("Post created (slug=%s, user=%s)", result["slug"], g.current_user.id)
    return json_ok(result, message="Post created successfully", status=201)


# ---------- Feeds ----------
@bp.get("/feed.xml")
def rss_feed():
    cfg = current_app.config
    xml = build_rss(
        get_all_posts(),
        site_url=cfg["SITE_URL"],
        site_name=cfg["SITE_NAME"],
        admin_email=cfg["ADMIN_EMAIL"],
    )
    return Response(
        xml,
        mimetype="application/xml",
        headers={"Cache-Control": "public, max-age=3600, s-maxage=3600"},
    )


@bp.get("/sitemap.xml")
def sitemap():
    xml = build_sitemap(get_all_posts(), site_url=current_app.config["SITE_URL"])
    return Response(xml, mimetype="application/xml")
