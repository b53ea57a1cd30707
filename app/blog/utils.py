from __future__ import annotations

import math
import re
from datetime import date, datetime, timezone

TR_MONTHS = (
    "Ocak",
    "Şubat",
    "Mart",
    "Nisan",
    "Mayıs",
    "Haziran",
    "Temmuz",
    "Ağustos",
    "Eylül",
    "Ekim",
    "Kasım",
    "Aralık",
)

WORDS_PER_MINUTE = 200


def utcnow() -> datetime:
    """Naive UTC timestamp (columns are DateTime(timezone=False))."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: str | None) -> datetime | None:
    """Parse frontmatter dates ("2024-01-15" or full ISO with trailing Z)."""
    if not value:
        return None
    raw = value.strip()
    if not raw:
        return None
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(raw)
    except ValueError:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def format_date_tr(value: date | datetime | str | None) -> str:
    """15 Ocak 2024"""
    if value is None:
        return "—"
    if isinstance(value, str):
        parsed = parse_iso_datetime(value)
        if parsed is None:
            return value
        value = parsed
    return f"{value.day} {TR_MONTHS[value.month - 1]} {value.year}"


def estimate_reading_time(content: str) -> int:
    words = len((content or "").split())
    return max(1, math.ceil(words / WORDS_PER_MINUTE))


def slugify(text: str) -> str:
    """
    ASCII slug. Non [a-z0-9 -] characters are dropped, so Turkish letters
    vanish rather than being transliterated.
    """
    s = (text or "").lower()
    s = re.sub(r"[^a-z0-9 -]", "", s)
    s = re.sub(r"\s+", "-", s)
    s = re.sub(r"-+", "-", s)
    return s.strip("-")


def extract_excerpt(content: str, max_length: int = 150) -> str:
    plain = re.sub(r"[#*`\[\]]", "", content or "").strip()
    if len(plain) <= max_length:
        return plain
    cut = re.sub(r"\s+\S*$", "", plain[:max_length])
    return cut + "..."


def generate_table_of_contents(content: str) -> list[dict]:
    headings = []
    for m in re.finditer(r"^(#{1,6})\s+(.+)$", content or "", flags=re.MULTILINE):
        text = m.group(2).strip()
        headings.append({"level": len(m.group(1)), "text": text, "id": slugify(text)})
    return headings


def parse_positive_int(raw: str | None, default: int, *, maximum: int | None = None) -> int:
    try:
        n = int(raw) if raw not in (None, "") else default
    except (TypeError, ValueError):
        n = default
    if n < 1:
        n = default
    if maximum is not None and n > maximum:
        n = maximum
    return n
