"""
Central constants for the blog application.
"""
from __future__ import annotations

# Comment moderation states
COMMENT_STATUSES = ("PENDING", "APPROVED", "REJECTED", "SPAM", "HIDDEN")
LIKE_TYPES = ("LIKE", "DISLIKE")

# Role keys, highest rank first (the first one a user holds is their primary role)
ROLE_RANK = ("admin", "moderator", "editor", "user")
ROLE_NAMES = {
    "admin": "Administrator",
    "moderator": "Moderator",
    "editor": "Editor",
    "user": "User",
}
API_ROLES = tuple(r.upper() for r in ROLE_RANK)

PERMISSIONS = {
    "admin.view": "Admin: view dashboard",
    "comments.moderate": "Comments: moderate",
    "comments.delete": "Comments: delete",
    "users.manage": "Users: manage",
    "posts.create": "Posts: create",
    "settings.manage": "Site settings: manage",
    "newsletter.view": "Newsletter: view subscribers",
    "logs.view": "Admin log: view",
}

ROLE_PERMISSIONS = {
    "admin": tuple(PERMISSIONS),
    "moderator": ("admin.view", "comments.moderate"),
    "editor": ("admin.view", "posts.create"),
    "user": (),
}

# Tags allowed in comment bodies after sanitization
COMMENT_ALLOWED_TAGS = frozenset({"b", "i", "em", "strong", "code", "br"})

# Per-user comment throttle (in addition to the per-IP API limiter)
COMMENTS_PER_HOUR = 10

# Blog categories (id -> Turkish display name, description)
CATEGORIES = (
    {
        "id": "theoretical-ai",
        "name": "Teorik AI",
        "description": "Yapay zekanın matematiksel temelleri ve algoritma teorisi",
    },
    {
        "id": "machine-learning",
        "name": "Makine Öğrenmesi",
        "description": "Derin öğrenme ve pratik ML uygulamaları",
    },
    {
        "id": "research-reviews",
        "name": "Araştırma İncelemeleri",
        "description": "Akademik makaleler ve araştırma trendleri",
    },
    {
        "id": "energy-sustainability",
        "name": "Enerji & Sürdürülebilirlik",
        "description": "Sürdürülebilir AI ve yeşil teknolojiler",
    },
    {
        "id": "implementation",
        "name": "Uygulama",
        "description": "Kod örnekleri ve pratik projeler",
    },
    {
        "id": "career-insights",
        "name": "Kariyer İpuçları",
        "description": "AI kariyeri ve profesyonel gelişim",
    },
)
CATEGORY_NAMES = {c["id"]: c["name"] for c in CATEGORIES}

NAVIGATION = (
    ("Ana Sayfa", "/"),
    ("Blog", "/blog"),
    ("Kategoriler", "/categories"),
    ("Hakkında", "/about"),
    ("İletişim", "/contact"),
)

DEFAULT_AUTHOR = "Eren Dikmen"
