"""Initial schema: accounts, groups, videos and sharing grants.

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19 12:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "0001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    ]


# ---------------------------------------------------------------------------
# UPGRADE
# ---------------------------------------------------------------------------


def upgrade() -> None:
    # organizations
    op.create_table(
        "organizations",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("org_code", sa.Text(), nullable=False),
        sa.Column("email", sa.Text(), nullable=False),
        sa.Column("password_hash", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("mobile", sa.Text(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_organizations_org_code", "organizations", ["org_code"], unique=True)
    op.create_index("ix_organizations_email", "organizations", ["email"], unique=True)
    op.create_index("ix_organizations_name", "organizations", ["name"])
    op.create_index("ix_organizations_created_at", "organizations", ["created_at"])

    # users
    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("username", sa.Text(), nullable=False),
        sa.Column("email", sa.Text(), nullable=False),
        sa.Column("password_hash", sa.Text(), nullable=False),
        sa.Column("mobile_number", sa.Text(), nullable=True),
        sa.Column(
            "organization_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("organizations.id"),
            nullable=True,
        ),
        *_timestamps(),
    )
    op.create_index("ix_users_username", "users", ["username"], unique=True)
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_organization_id", "users", ["organization_id"])
    op.create_index("ix_users_created_at", "users", ["created_at"])

    # groups
    op.create_table(
        "groups",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_by", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_groups_name", "groups", ["name"])
    op.create_index("ix_groups_created_by", "groups", ["created_by"])
    op.create_index("ix_groups_created_at", "groups", ["created_at"])

    # group_memberships: the single membership relation, read from both sides
    op.create_table(
        "group_memberships",
        sa.Column("group_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("groups.id"), primary_key=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), primary_key=True),
        sa.Column("added_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("ix_group_memberships_user_id", "group_memberships", ["user_id"])

    # videos
    op.create_table(
        "videos",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("filename", sa.Text(), nullable=False),
        sa.Column("file_path", sa.Text(), nullable=False),
        sa.Column("video_type", sa.Text(), nullable=False),
        sa.Column("file_size", sa.BigInteger(), nullable=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("tags", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("status", sa.Text(), nullable=False, server_default="processing"),
        sa.Column("owner_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("owner_kind", sa.Text(), nullable=False, server_default="user"),
        sa.Column("org_access_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("org_access_role", sa.Text(), nullable=False, server_default="viewer"),
        *_timestamps(),
        sa.CheckConstraint("status IN ('processing', 'safe', 'flagged')", name="ck_videos_status"),
        sa.CheckConstraint(
            "org_access_role IN ('viewer', 'editor', 'admin')", name="ck_videos_org_access_role"
        ),
    )
    op.create_index("ix_videos_name", "videos", ["name"])
    op.create_index("ix_videos_status", "videos", ["status"])
    op.create_index("ix_videos_owner_id", "videos", ["owner_id"])
    op.create_index("ix_videos_created_at", "videos", ["created_at"])

    # video_group_access: ordered (group, role) grants
    op.create_table(
        "video_group_access",
        sa.Column("video_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("videos.id"), primary_key=True),
        sa.Column("group_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("groups.id"), primary_key=True),
        sa.Column("role", sa.Text(), nullable=False, server_default="viewer"),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.CheckConstraint("role IN ('viewer', 'editor', 'admin')", name="ck_video_group_access_role"),
    )
    op.create_index("ix_video_group_access_group_id", "video_group_access", ["group_id"])


def downgrade() -> None:
    op.drop_table("video_group_access")
    op.drop_table("videos")
    op.drop_table("group_memberships")
    op.drop_table("groups")
    op.drop_table("users")
    op.drop_table("organizations")
