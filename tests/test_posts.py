"""Tests for MDX posts: loading, pages, JSON API, feeds and post creation."""
import pytest
from sqlalchemy import func, select
from werkzeug.security import generate_password_hash

from app.blog import create_app
from app.blog.db import session_scope
from app.blog.models import Base, Role, User
from app.blog.modules.analytics.models import PageView
from app.blog.modules.posts.content import (
    get_all_posts,
    get_all_tags,
    get_post_by_slug,
    get_posts_by_tag,
    parse_frontmatter,
    search_posts,
)
from app.blog.modules.posts.feeds import build_rss, sitemap_entries
from app.blog.utils import estimate_reading_time, extract_excerpt, generate_table_of_contents, slugify
from scripts.init_db import seed


def _mdx(title, date, category, tags, body, featured=False, description=""):
    tag_list = ", ".join(f'"{t}"' for t in tags)
    return (
        "---\n"
        f'title: "{title}"\n'
        f'description: "{description}"\n'
        f'date: "{date}"\n'
        f'category: "{category}"\n'
        f"tags: [{tag_list}]\n"
        f"featured: {'true' if featured else 'false'}\n"
        "---\n\n"
        f"{body}\n"
    )


@pytest.fixture()
def content_dir(tmp_path):
    d = tmp_path / "posts"
    d.mkdir()
    (d / "transformer-mimarisi.mdx").write_text(
        _mdx(
            "Transformer Mimarisi",
            "2024-03-12",
            "machine-learning",
            ["transformer", "NLP"],
            "# Giriş\n\nDikkat mekanizması.\n\n## Öz-dikkat\n\nDetaylar.",
            featured=True,
            description="Dikkat mekanizmasına giriş",
        ),
        encoding="utf-8",
    )
    (d / "transformer-mimarisi-en.mdx").write_text(
        _mdx("Transformer Architecture", "2024-03-12", "machine-learning", ["transformer"], "English body"),
        encoding="utf-8",
    )
    (d / "gradyan-inisi.mdx").write_text(
        _mdx("Gradyan İnişi", "2024-01-05", "theoretical-ai", ["optimizasyon"], "Öğrenme oranı & <yakınsama>"),
        encoding="utf-8",
    )
    (d / "notes.txt").write_text("not a post", encoding="utf-8")
    return d


@pytest.fixture()
def app(tmp_path, monkeypatch, content_dir):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("CONTENT_DIR", str(content_dir))
    monkeypatch.setenv("SITE_URL", "https://blog.example.com")

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])

    with session_scope(app) as s:
        seed(s)
        for email, role in (("editor@example.com", "editor"), ("alice@example.com", "user")):
            u = User(email=email, name="Eren", password_hash=generate_password_hash("pw"), is_active=True)
            u.roles.append(s.scalars(select(Role).where(Role.key == role)).one())
            s.add(u)

    return app


@pytest.fixture()
def client(app):
    return app.test_client()


# ---------- Content loading ----------
def test_parse_frontmatter():
    data, body = parse_frontmatter('---\ntitle: "A: B"\ntags: [x, "y"]\nfeatured: true\n---\nbody\n')
    assert data == {"title": "A: B", "tags": ["x", "y"], "featured": True}
    assert body == "body\n"
    assert parse_frontmatter("no frontmatter") == ({}, "no frontmatter")


def test_get_all_posts_sorted_and_skips_english(content_dir):
    posts = get_all_posts(str(content_dir))
    assert [p.slug for p in posts] == ["transformer-mimarisi", "gradyan-inisi"]
    assert posts[0].featured is True
    assert posts[0].excerpt == "Dikkat mekanizmasına giriş"
    assert posts[1].excerpt == "Öğrenme oranı & <yakınsama>"


def test_get_post_by_slug_rejects_traversal(content_dir):
    assert get_post_by_slug("../secrets", str(content_dir)) is None
    assert get_post_by_slug("missing", str(content_dir)) is None
    assert get_post_by_slug("gradyan-inisi", str(content_dir)).title == "Gradyan İnişi"


def test_tags_and_search(content_dir):
    assert get_all_tags(str(content_dir)) == ["NLP", "optimizasyon", "transformer"]
    assert [p.slug for p in get_posts_by_tag("nlp", str(content_dir))] == ["transformer-mimarisi"]
    assert [p.slug for p in search_posts("öğrenme", str(content_dir))] == ["gradyan-inisi"]
    assert len(search_posts("", str(content_dir))) == 2


def test_missing_content_dir(tmp_path):
    assert get_all_posts(str(tmp_path / "nope")) == []


def test_text_helpers():
    assert slugify("Neural  Networks -- 101!") == "neural-networks-101"
    assert estimate_reading_time("") == 1
    assert estimate_reading_time("word " * 401) == 3
    assert extract_excerpt("# Title\n" + "a " * 100).endswith("...")
    toc = generate_table_of_contents("# One\ntext\n## Two Words\n")
    assert toc == [{"level": 1, "text": "One", "id": "one"}, {"level": 2, "text": "Two Words", "id": "two-words"}]


# ---------- Pages ----------
def test_post_page_records_view(app, client):
    r = client.get("/blog/transformer-mimarisi")
    assert r.status_code == 200
    html = r.get_data(as_text=True)
    assert "Transformer Mimarisi" in html
    assert "Makine Öğrenmesi" in html
    assert "Öz-dikkat" in html

    client.get("/blog/transformer-mimarisi")
    with session_scope(app) as s:
        assert s.scalar(select(func.count(PageView.id)).where(PageView.slug == "transformer-mimarisi")) == 2


def test_post_body_is_escaped(client):
    html = client.get("/blog/gradyan-inisi").get_data(as_text=True)
    assert "&lt;yakınsama&gt;" in html


def test_missing_post_404(client):
    assert client.get("/blog/nope").status_code == 404


def test_listing_pages(client):
    assert "Gradyan İnişi" in client.get("/blog").get_data(as_text=True)
    r = client.get("/blog?q=transformer")
    assert "Gradyan İnişi" not in r.get_data(as_text=True)

    assert "Transformer Mimarisi" in client.get("/").get_data(as_text=True)
    assert client.get("/categories").status_code == 200
    assert "Gradyan İnişi" in client.get("/categories/theoretical-ai").get_data(as_text=True)
    assert client.get("/categories/unknown").status_code == 404
    assert client.get("/tags/transformer").status_code == 200
    assert client.get("/tags/none-such").status_code == 404


# ---------- JSON API ----------
def test_api_posts_list_and_filters(client):
    r = client.get("/api/posts")
    assert r.status_code == 200
    assert r.json["count"] == 2
    assert "content" not in r.json["data"][0]
    assert r.json["data"][0]["readingTime"] >= 1
    assert r.json["tags"] == ["NLP", "optimizasyon", "transformer"]

    assert client.get("/api/posts?category=theoretical-ai").json["count"] == 1
    assert client.get("/api/posts?tag=nlp").json["count"] == 1
    assert client.get("/api/posts?q=dikkat").json["count"] == 1


def test_api_post_detail(client):
    r = client.get("/api/posts/transformer-mimarisi")
    assert r.status_code == 200
    assert r.json["data"]["toc"][1]["text"] == "Öz-dikkat"
    assert "Dikkat mekanizması." in r.json["data"]["content"]
    assert client.get("/api/posts/nope").status_code == 404


# ---------- Feeds ----------
def test_rss_feed(client):
    r = client.get("/feed.xml")
    assert r.status_code == 200
    assert r.mimetype == "application/xml"
    assert "max-age=3600" in r.headers["Cache-Control"]
    body = r.get_data(as_text=True)
    assert "<link>https://blog.example.com/blog/transformer-mimarisi</link>" in body
    assert "<category>Makine Öğrenmesi</category>" in body
    assert "Tue, 12 Mar 2024 00:00:00 GMT" in body


def test_build_rss_escapes_and_limits(content_dir):
    posts = get_all_posts(str(content_dir)) * 15
    posts[0].title = "A & B <C>"
    xml = build_rss(posts, site_url="https://x.test", site_name="X", admin_email="a@x.test")
    assert xml.count("<item>") == 20
    assert "A &amp; B &lt;C&gt;" in xml


def test_sitemap(client, content_dir):
    body = client.get("/sitemap.xml").get_data(as_text=True)
    assert "<loc>https://blog.example.com/blog/gradyan-inisi</loc>" in body
    assert "<loc>https://blog.example.com/categories/machine-learning</loc>" in body

    entries = sitemap_entries(get_all_posts(str(content_dir)), site_url="https://x.test")
    post_entry = next(e for e in entries if e["loc"] == "https://x.test/blog/gradyan-inisi")
    assert post_entry["lastmod"] == "2024-01-05"
    assert entries[0]["priority"] == 1.0


# ---------- Creating posts ----------
def test_create_post_requires_permission(client):
    assert client.post("/api/admin/posts", json={"title": "X", "content": "Y"}).status_code == 401
    client.post("/auth/login", data={"email": "alice@example.com", "password": "pw"})
    assert client.post("/api/admin/posts", json={"title": "X", "content": "Y"}).status_code == 403


def test_create_post(client, content_dir):
    client.post("/auth/login", data={"email": "editor@example.com", "password": "pw"})
    payload = {
        "title": "Neural Networks 101",
        "content": "# Intro\n\nYapay sinir ağları.",
        "excerpt": 'Kısa "özet"',
        "category": "machine-learning",
        "tags": "nn, temel",
        "title_en": "Neural Networks 101",
        "content_en": "Neural networks.",
    }
    r = client.post("/api/admin/posts", json=payload)
    assert r.status_code == 201
    assert r.json["message"] == "Post created successfully"
    assert r.json["data"]["slug"] == "neural-networks-101"
    assert r.json["data"]["files"] == {"tr": "neural-networks-101.mdx", "en": "neural-networks-101-en.mdx"}
    assert (content_dir / "neural-networks-101-en.mdx").exists()

    post = get_post_by_slug("neural-networks-101", str(content_dir))
    assert post.author == "Eren"
    assert post.tags == ["nn", "temel"]
    assert post.description == "Kısa 'özet'"

    r = client.post("/api/admin/posts", json=payload)
    assert r.status_code == 409


def test_create_post_missing_fields(client):
    client.post("/auth/login", data={"email": "editor@example.com", "password": "pw"})
    r = client.post("/api/admin/posts", json={"title": "Only title"})
    assert r.status_code == 400
    assert r.json["error"] == "Title and content are required"


def test_create_post_rejects_non_text_fields(client, content_dir):
    client.post("/auth/login", data={"email": "editor@example.com", "password": "pw"})
    r = client.post("/api/admin/posts", json={"title": ["not", "text"], "content": "Body"})
    assert r.status_code == 400
    assert r.json["error"] == "Field 'title' must be a string"

    r = client.post("/api/admin/posts", json={"title": "Valid Title", "content": "Body", "title_en": 5})
    assert r.status_code == 400
    assert not (content_dir / "valid-title.mdx").exists()
