"""Pulse notification schema.

Revision ID: 001_pulse_schema
Revises:
Create Date: 2026-10-17

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "001_pulse_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("community_id", sa.String(), nullable=True),
        sa.Column("full_name", sa.String(), nullable=True),
        sa.Column("display_name", sa.String(), nullable=True),
        sa.Column("username", sa.String(), nullable=True),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column("is_admin", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("role", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_community_id", "users", ["community_id"], unique=False)

    op.create_table(
        "user_profiles",
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("full_name", sa.String(), nullable=True),
        sa.Column("display_name", sa.String(), nullable=True),
        sa.Column("name", sa.String(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("user_id"),
    )

    op.create_table(
        "user_tokens",
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("tokens", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("preferences", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("user_id"),
    )

    op.create_table(
        "missing_tokens",
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("first_detected", sa.DateTime(), nullable=False),
        sa.Column("last_checked", sa.DateTime(), nullable=False),
        sa.Column("recovery_attempts", sa.Integer(), server_default="0", nullable=False),
        sa.PrimaryKeyConstraint("user_id"),
    )

    op.create_table(
        "notification_records",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("scope", sa.String(), nullable=False),
        sa.Column("scope_id", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("category", sa.String(), nullable=False),
        sa.Column("payload", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("source_key", sa.String(), nullable=True),
        sa.Column("created_by", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_notification_records_scope_id", "notification_records", ["scope_id"], unique=False)
    op.create_index("ix_notification_records_source_key", "notification_records", ["source_key"], unique=False)

    op.create_table(
        "notification_status",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("notification_id", sa.String(), nullable=False),
        sa.Column("community_id", sa.String(), nullable=True),
        sa.Column("read", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("notification_id", "user_id", name="uq_notification_status_recipient"),
    )
    op.create_index("ix_notification_status_notification_id", "notification_status", ["notification_id"], unique=False)
    op.create_index("ix_notification_status_created_at", "notification_status", ["created_at"], unique=False)
    op.create_index("ix_notification_status_user_created", "notification_status", ["user_id", "created_at"], unique=False)

    op.create_table(
        "notification_markers",
        sa.Column("key", sa.String(), nullable=False),
        sa.Column("state", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("key"),
    )

    op.create_table(
        "member_tracking",
        sa.Column("entity_key", sa.String(), nullable=False),
        sa.Column("processed", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("previous", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("snapshot", sa.String(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("entity_key"),
    )

    op.create_table(
        "failed_notifications",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("kind", sa.String(), nullable=False),
        sa.Column("watcher", sa.String(), nullable=False),
        sa.Column("entity_id", sa.String(), nullable=True),
        sa.Column("source_key", sa.String(), nullable=True),
        sa.Column("intent", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_failed_notifications_watcher", "failed_notifications", ["watcher"], unique=False)
    op.create_index("ix_failed_notifications_created_at", "failed_notifications", ["created_at"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_failed_notifications_created_at", table_name="failed_notifications")
    op.drop_index("ix_failed_notifications_watcher", table_name="failed_notifications")
    op.drop_table("failed_notifications")
    op.drop_table("member_tracking")
    op.drop_table("notification_markers")
    op.drop_index("ix_notification_status_user_created", table_name="notification_status")
    op.drop_index("ix_notification_status_created_at", table_name="notification_status")
    op.drop_index("ix_notification_status_notification_id", table_name="notification_status")
    op.drop_table("notification_status")
    op.drop_index("ix_notification_records_source_key", table_name="notification_records")
    op.drop_index("ix_notification_records_scope_id", table_name="notification_records")
    op.drop_table("notification_records")
    op.drop_table("missing_tokens")
    op.drop_table("user_tokens")
    op.drop_table("user_profiles")
    op.drop_index("ix_users_community_id", table_name="users")
    op.drop_table("users")
