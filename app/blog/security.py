import secrets

from flask import Request, Response, session


def ensure_csrf_token() -> str:
    """Ensure a CSRF token exists in the session and return it."""
    token = session.get("csrf_token")
    if not token:
        token = secrets.token_urlsafe(32)
        session["csrf_token"] = token
    return token


def validate_csrf(req: Request) -> bool:
    """Validate CSRF token from header, form, or JSON body."""
    token = req.headers.get("X-CSRF-Token") or req.form.get("csrf_token")

    # API-style requests may carry it in the JSON body
    if not token and req.is_json:
        json_data = req.get_json(silent=True)
        if isinstance(json_data, dict):
            token = json_data.get("csrf_token")

    expected = session.get("csrf_token")
    return bool(token and expected and secrets.compare_digest(str(token), str(expected)))


def build_csp(*, is_development: bool, site_url: str) -> str:
    policies: list[tuple[str, list[str]]] = [
        ("default-src", ["'self'"]),
        (
            "script-src",
            [
                "'self'",
                *(["'unsafe-eval'", "'unsafe-inline'"] if is_development else []),
                "https://www.googletagmanager.com",
                "https://www.google-analytics.com",
                "https://cdn.jsdelivr.net",
            ],
        ),
        ("style-src", ["'self'", "'unsafe-inline'", "https://fonts.googleapis.com"]),
        (
            "img-src",
            [
                "'self'",
                "data:",
                "blob:",
                "https://images.unsplash.com",
                "https://res.cloudinary.com",
                "https://www.gravatar.com",
                "https://github.com",
                "https://lh3.googleusercontent.com",
            ],
        ),
        ("font-src", ["'self'", "data:", "https://fonts.gstatic.com"]),
        (
            "connect-src",
            [
                "'self'",
                site_url,
                "https://www.google-analytics.com",
                "https://api.cognitive.microsofttranslator.com",
                *(["ws://localhost:*", "http://localhost:*"] if is_development else []),
            ],
        ),
        ("frame-src", ["'self'", "https://www.youtube.com", "https://www.youtube-nocookie.com"]),
        ("object-src", ["'none'"]),
        ("base-uri", ["'self'"]),
        ("form-action", ["'self'"]),
        ("frame-ancestors", ["'none'"]),
        # bare directive (no sources)
        ("upgrade-insecure-requests", [] if is_development else [""]),
    ]

    parts = []
    for directive, values in policies:
        values = [v for v in values if v is not None]
        if not values:
            continue
        if values == [""]:
            parts.append(directive)
        else:
            parts.append(f"{directive} {' '.join(v for v in values if v)}")
    return "; ".join(parts)


def apply_security_headers(resp: Response, *, is_production: bool, is_development: bool, site_url: str) -> Response:
    resp.headers["X-Frame-Options"] = "DENY"
    resp.headers["X-Content-Type-Options"] = "nosniff"
    resp.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    resp.headers["X-XSS-Protection"] = "1; mode=block"
    if is_production:
        resp.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains; preload"
    resp.headers["Content-Security-Policy"] = build_csp(is_development=is_development, site_url=site_url)
    resp.headers["Permissions-Policy"] = "camera=(), microphone=(), geolocation=(), payment=()"
    return resp
