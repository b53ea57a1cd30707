"""initial blog schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-18 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _ts(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=False), nullable=nullable)


def upgrade() -> None:
    """Upgrade schema."""
    bind = op.get_bind()
    existing_tables = set(inspect(bind).get_table_names())

    if "users" not in existing_tables:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("email", sa.String(length=320), nullable=False, unique=True),
            sa.Column("name", sa.String(length=100), nullable=True),
            sa.Column("password_hash", sa.String(length=255), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("image", sa.String(length=512), nullable=True),
            sa.Column("bio", sa.String(length=500), nullable=True),
            sa.Column("website", sa.String(length=255), nullable=True),
            sa.Column("twitter", sa.String(length=16), nullable=True),
            sa.Column("github", sa.String(length=39), nullable=True),
            sa.Column("linkedin", sa.String(length=100), nullable=True),
            _ts("last_login_at", nullable=True),
            _ts("created_at"),
            _ts("updated_at"),
        )

    if "roles" not in existing_tables:
        op.create_table(
            "roles",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("key", sa.String(length=64), nullable=False, unique=True),
            sa.Column("name", sa.String(length=128), nullable=False),
            _ts("created_at"),
        )

    if "permissions" not in existing_tables:
        op.create_table(
            "permissions",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("key", sa.String(length=128), nullable=False, unique=True),
            sa.Column("name", sa.String(length=128), nullable=False),
            _ts("created_at"),
        )

    if "user_roles" not in existing_tables:
        op.create_table(
            "user_roles",
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
            sa.Column("role_id", sa.Integer(), sa.ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
        )

    if "role_permissions" not in existing_tables:
        op.create_table(
            "role_permissions",
            sa.Column("role_id", sa.Integer(), sa.ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
            sa.Column("permission_id", sa.Integer(), sa.ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
        )

    if "admin_logs" not in existing_tables:
        op.create_table(
            "admin_logs",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            _ts("created_at"),
            sa.Column("request_id", sa.String(length=64), nullable=True),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            sa.Column("user_email", sa.String(length=320), nullable=True),
            sa.Column("action", sa.String(length=128), nullable=False),
            sa.Column("target_type", sa.String(length=64), nullable=True),
            sa.Column("target_id", sa.String(length=128), nullable=True),
            sa.Column("details", sa.Text(), nullable=True),
            sa.Column("ip_address", sa.String(length=64), nullable=True),
        )
        op.create_index("idx_admin_logs_created_at", "admin_logs", ["created_at"])
        op.create_index("idx_admin_logs_action", "admin_logs", ["action"])

    if "comments" not in existing_tables:
        op.create_table(
            "comments",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("content", sa.Text(), nullable=False),
            sa.Column("post_slug", sa.String(length=255), nullable=False),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column("parent_id", sa.Integer(), sa.ForeignKey("comments.id", ondelete="CASCADE"), nullable=True),
            sa.Column("status", sa.String(length=16), nullable=False, server_default="PENDING"),
            sa.Column("ip_address", sa.String(length=64), nullable=True),
            sa.Column("user_agent", sa.String(length=255), nullable=True),
            _ts("created_at"),
            _ts("updated_at"),
        )
        op.create_index("idx_comments_post_slug", "comments", ["post_slug"])
        op.create_index("idx_comments_status", "comments", ["status"])
        op.create_index("idx_comments_user_id", "comments", ["user_id"])
        op.create_index("idx_comments_created_at", "comments", ["created_at"])

    if "comment_likes" not in existing_tables:
        op.create_table(
            "comment_likes",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column("comment_id", sa.Integer(), sa.ForeignKey("comments.id", ondelete="CASCADE"), nullable=False),
            sa.Column("type", sa.String(length=16), nullable=False),
            _ts("created_at"),
            sa.UniqueConstraint("user_id", "comment_id", name="uq_comment_likes_user_comment"),
        )
        op.create_index("idx_comment_likes_comment_id", "comment_likes", ["comment_id"])

    if "newsletter" not in existing_tables:
        op.create_table(
            "newsletter",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("email", sa.String(length=255), nullable=False, unique=True),
            sa.Column("confirmed", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("token", sa.String(length=64), nullable=True, unique=True),
            sa.Column("unsubscribed", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("source", sa.String(length=50), nullable=True),
            _ts("created_at"),
            _ts("updated_at"),
        )

    if "site_settings" not in existing_tables:
        op.create_table(
            "site_settings",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("key", sa.String(length=128), nullable=False, unique=True),
            sa.Column("value", sa.Text(), nullable=False),
            sa.Column("type", sa.String(length=16), nullable=False, server_default="string"),
            sa.Column("category", sa.String(length=64), nullable=False, server_default="general"),
            _ts("created_at"),
            _ts("updated_at"),
        )
        op.create_index("idx_site_settings_category", "site_settings", ["category"])

    if "page_views" not in existing_tables:
        op.create_table(
            "page_views",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("slug", sa.String(length=255), nullable=False),
            sa.Column("ip_address", sa.String(length=64), nullable=True),
            sa.Column("user_agent", sa.String(length=255), nullable=True),
            sa.Column("referer", sa.String(length=512), nullable=True),
            sa.Column("country", sa.String(length=8), nullable=True),
            _ts("created_at"),
        )
        op.create_index("idx_page_views_slug", "page_views", ["slug"])
        op.create_index("idx_page_views_created_at", "page_views", ["created_at"])

    if "translations" not in existing_tables:
        op.create_table(
            "translations",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("content_slug", sa.String(length=255), nullable=False),
            sa.Column("language", sa.String(length=8), nullable=False),
            sa.Column("title", sa.String(length=512), nullable=False),
            sa.Column("content", sa.Text(), nullable=False),
            sa.Column("abstract", sa.Text(), nullable=True),
            _ts("cached_at"),
            _ts("updated_at"),
            sa.UniqueConstraint("content_slug", "language", name="uq_translations_slug_language"),
        )


def downgrade() -> None:
    """Downgrade schema."""
    for table in (
        "translations",
        "page_views",
        "site_settings",
        "newsletter",
        "comment_likes",
        "comments",
        "admin_logs",
        "role_permissions",
        "user_roles",
        "permissions",
        "roles",
        "users",
    ):
        op.drop_table(table)
