"""Initial notice board schema.

Revision ID: a7c1e9d24b30
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "a7c1e9d24b30"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("username", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("role", sa.Enum("admin", "super_admin", name="user_role", native_enum=False), nullable=False, server_default="admin"),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("last_login_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("username"),
        sa.UniqueConstraint("email"),
    )

    op.create_table(
        "notices",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("image_url", sa.String(500), nullable=True),
        sa.Column("files", sa.JSON(), nullable=True),
        sa.Column("priority", sa.Enum("low", "medium", "high", name="notice_priority", native_enum=False), nullable=False, server_default="medium"),
        sa.Column("status", sa.Enum("draft", "published", name="notice_status", native_enum=False), nullable=False, server_default="draft"),
        sa.Column("slug", sa.String(600), nullable=False),
        sa.Column("created_by", sa.Integer(), nullable=False),
        sa.Column("published_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["created_by"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("slug"),
    )
    op.create_index("idx_notices_status_published", "notices", ["status", "published_at"])
    op.create_index("idx_notices_priority", "notices", ["priority"])
    op.create_index("idx_notices_created_by", "notices", ["created_by"])
    op.create_index("idx_notices_created_at", "notices", ["created_at"])

    op.create_table(
        "user_sessions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("token_hash", sa.String(64), nullable=False),
        sa.Column("ip_address", sa.String(45), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("last_activity", sa.DateTime(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index("idx_user_sessions_user_token", "user_sessions", ["user_id", "token_hash"])
    op.create_index("idx_user_sessions_user_active", "user_sessions", ["user_id", "is_active"])
    op.create_index("idx_user_sessions_expires_at", "user_sessions", ["expires_at"])

    op.create_table(
        "site_visits",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("notice_id", sa.Integer(), nullable=True),
        sa.Column("ip_address", sa.String(45), nullable=False),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("referer", sa.String(500), nullable=True),
        sa.Column("visit_date", sa.Date(), nullable=False),
        sa.Column("visit_time", sa.DateTime(), nullable=False),
        sa.Column("session_id", sa.String(100), nullable=True),
        sa.Column("country", sa.String(100), nullable=True),
        sa.Column("city", sa.String(100), nullable=True),
        sa.ForeignKeyConstraint(["notice_id"], ["notices.id"], ondelete="SET NULL"),
    )
    op.create_index("idx_site_visits_notice_date", "site_visits", ["notice_id", "visit_date"])
    op.create_index("idx_site_visits_visit_date", "site_visits", ["visit_date"])
    op.create_index("idx_site_visits_session_time", "site_visits", ["session_id", "visit_time"])
    op.create_index("idx_site_visits_ip_session", "site_visits", ["ip_address", "session_id"])

    op.create_table(
        "audit_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("request_id", sa.String(64), nullable=True),
        sa.Column("actor_user_id", sa.Integer(), nullable=True),
        sa.Column("actor_username", sa.String(100), nullable=True),
        sa.Column("action", sa.String(128), nullable=False),
        sa.Column("entity_type", sa.String(128), nullable=True),
        sa.Column("entity_id", sa.String(128), nullable=True),
        sa.Column("reason", sa.String(512), nullable=True),
        sa.Column("metadata_json", sa.Text(), nullable=True),
        sa.Column("client_ip", sa.String(45), nullable=True),
        sa.ForeignKeyConstraint(["actor_user_id"], ["users.id"], ondelete="SET NULL"),
    )
    op.create_index("idx_audit_events_action_created", "audit_events", ["action", "created_at"])


def downgrade() -> None:
    op.drop_index("idx_audit_events_action_created", table_name="audit_events")
    op.drop_table("audit_events")

    for name in ("idx_site_visits_ip_session", "idx_site_visits_session_time", "idx_site_visits_visit_date", "idx_site_visits_notice_date"):
        op.drop_index(name, table_name="site_visits")
    op.drop_table("site_visits")

    for name in ("idx_user_sessions_expires_at", "idx_user_sessions_user_active", "idx_user_sessions_user_token"):
        op.drop_index(name, table_name="user_sessions")
    op.drop_table("user_sessions")

    for name in ("idx_notices_created_at", "idx_notices_created_by", "idx_notices_priority", "idx_notices_status_published"):
        op.drop_index(name, table_name="notices")
    op.drop_table("notices")

    op.drop_table("users")
