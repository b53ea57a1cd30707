from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.blog.models import Base
from app.blog.utils import utcnow


class SiteSetting(Base):
    __tablename__ = "site_settings"
    __table_args__ = (Index("idx_site_settings_category", "category"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    key: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)  # stored as text, typed on read
    type: Mapped[str] = mapped_column(String(16), nullable=False, default="string")  # string, number, boolean, json
    category: Mapped[str] = mapped_column(String(64), nullable=False, default="general")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow, onupdate=utcnow)
