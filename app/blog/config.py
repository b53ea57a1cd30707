import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str

    site_url: str
    site_name: str
    site_description: str
    admin_email: str
    content_dir: str
    media_root: str

    rate_limit_max: int
    rate_limit_window_minutes: int

    storage_backend: str
    s3_endpoint: str
    s3_region: str
    s3_bucket: str
    s3_access_key_id: str
    s3_secret_access_key: str

    smtp_host: str
    smtp_port: int
    smtp_user: str
    smtp_password: str
    from_email: str

    translator_key: str
    translator_endpoint: str
    translator_region: str

    csrf_enabled: bool


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer (got {raw!r}).")


def _getenv_bool(name: str, default: bool) -> bool:
    raw = _getenv(name).lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


def load_settings() -> Settings:
    env = _getenv("ENV", "development").lower()
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=env,
        database_url=_getenv("DATABASE_URL", "sqlite:///blog.db"),
        site_url=_getenv("SITE_URL", "http://localhost:3000").rstrip("/"),
        site_name=_getenv("SITE_NAME", "ErenAILab Blog"),
        site_description=_getenv("SITE_DESCRIPTION", "Academic AI Research Blog"),
        admin_email=_getenv("ADMIN_EMAIL", "contact@erenailab.com").lower(),
        content_dir=_getenv("CONTENT_DIR", os.path.join(os.getcwd(), "content", "posts")),
        media_root=_getenv("MEDIA_ROOT", os.path.join(os.getcwd(), "media")),
        rate_limit_max=_getenv_int("RATE_LIMIT_MAX", 100),
        rate_limit_window_minutes=_getenv_int("RATE_LIMIT_WINDOW", 15),
        storage_backend=_getenv("STORAGE_BACKEND", "local"),
        s3_endpoint=_getenv("S3_ENDPOINT", ""),
        s3_region=_getenv("S3_REGION", "nyc3"),
        s3_bucket=_getenv("S3_BUCKET", ""),
        s3_access_key_id=_getenv("S3_ACCESS_KEY_ID", ""),
        s3_secret_access_key=_getenv("S3_SECRET_ACCESS_KEY", ""),
        smtp_host=_getenv("SMTP_HOST", ""),
        smtp_port=_getenv_int("SMTP_PORT", 587),
        smtp_user=_getenv("SMTP_USER", ""),
        smtp_password=_getenv("SMTP_PASSWORD", ""),
        from_email=_getenv("FROM_EMAIL", ""),
        translator_key=_getenv("AZURE_TRANSLATOR_KEY", ""),
        translator_endpoint=_getenv("AZURE_TRANSLATOR_ENDPOINT", "https://api.cognitive.microsofttranslator.com"),
        translator_region=_getenv("AZURE_TRANSLATOR_REGION", "eastus"),
        # Test clients post without a token unless a test turns this back on.
        csrf_enabled=_getenv_bool("CSRF_ENABLED", env != "test"),
    )


def load_config() -> dict:
    s = load_settings()
    is_production = s.env in ("prod", "production")
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "IS_PRODUCTION": is_production,
        "IS_DEVELOPMENT": s.env == "development",
        "DATABASE_URL": s.database_url,
        "SITE_URL": s.site_url,
        "SITE_NAME": s.site_name,
        "SITE_DESCRIPTION": s.site_description,
        "ADMIN_EMAIL": s.admin_email,
        "CONTENT_DIR": s.content_dir,
        "MEDIA_ROOT": s.media_root,
        "RATE_LIMIT_MAX": s.rate_limit_max,
        "RATE_LIMIT_WINDOW_SECONDS": s.rate_limit_window_minutes * 60,
        "STORAGE_BACKEND": s.storage_backend,
        "S3_ENDPOINT": s.s3_endpoint,
        "S3_REGION": s.s3_region,
        "S3_BUCKET": s.s3_bucket,
        "S3_ACCESS_KEY_ID": s.s3_access_key_id,
        "S3_SECRET_ACCESS_KEY": s.s3_secret_access_key,
        "SMTP_HOST": s.smtp_host,
        "SMTP_PORT": s.smtp_port,
        "SMTP_USER": s.smtp_user,
        "SMTP_PASSWORD": s.smtp_password,
        "FROM_EMAIL": s.from_email or s.admin_email,
        "AZURE_TRANSLATOR_KEY": s.translator_key,
        "AZURE_TRANSLATOR_ENDPOINT": s.translator_endpoint,
        "AZURE_TRANSLATOR_REGION": s.translator_region,
        "CSRF_ENABLED": s.csrf_enabled,
        # security defaults
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": is_production,  # Require HTTPS in production
        # avatar uploads are small; 5MB per file is enforced in validation
        "MAX_CONTENT_LENGTH": 8 * 1024 * 1024,
    }
