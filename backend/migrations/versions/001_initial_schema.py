"""Initial schema — all tables, enums, constraints, and indexes.

Revision: 001_initial_schema
Created:  2026-10-19

Creates the complete StudyHub study group schema: the Membership Store,
the Group Registry, and the collaborator tables the engine reads.

Append-only:
  This file must NEVER be edited after it has been applied to any database.
  If a schema change is required, create a NEW migration file.

Creation order:
  1. PostgreSQL enum types (must exist before tables that reference them)
  2. Tables in FK dependency order (users, communities → community_members
     → study_groups → memberships, pending members, activities)
  3. Indexes (including the partial unique indexes)

ON DELETE policies:
  study_groups.community_id          → CASCADE
  study_groups.creator_id            → RESTRICT  (creator cannot vanish under a live group)
  study_group_members.*              → CASCADE   (membership owned by group and user)
  study_group_pending_members.*      → CASCADE, reviewed_by → SET NULL
  group activities .group_id         → CASCADE, authorship → RESTRICT
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# ── Alembic revision identifiers ──────────────────────────────────────────
revision: str = "001_initial_schema"
down_revision: str | None = None      # first migration — no parent
branch_labels: tuple | None = None
depends_on: tuple | None = None


_ENUMS: dict[str, tuple[str, ...]] = {
    "group_privacy_enum":          ("public", "private", "invite_only"),
    "group_status_enum":           ("active", "paused", "completed", "archived"),
    "member_role_enum":            ("member", "co-leader", "leader", "moderator"),
    "member_status_enum":          ("active", "muted", "banned", "left"),
    "join_method_enum":            ("direct", "invite", "approval", "promoted"),
    "request_status_enum":         ("pending", "approved", "rejected"),
    "community_member_status_enum": ("active", "pending", "banned"),
    "task_status_enum":            ("pending", "in_progress", "completed", "archived"),
    "meeting_status_enum":         ("scheduled", "completed", "canceled"),
    "content_type_enum":           ("pdf", "video", "code", "link", "slide", "image"),
}


def _enum(name: str) -> postgresql.ENUM:
    """Column type for an enum created in Step 1."""
    return postgresql.ENUM(*_ENUMS[name], name=name, create_type=False)


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        server_default=sa.text("now()"),
        nullable=False,
    )


def upgrade() -> None:
    """
    Apply the full initial schema.

    Enum types are created via op.execute() so the exact SQL is explicit and
    reviewable; columns reference them with create_type=False.
    """

    # ── Step 1: PostgreSQL enum types ─────────────────────────────────────
    for name, values in _ENUMS.items():
        labels = ", ".join(f"'{v}'" for v in values)
        op.execute(f"CREATE TYPE {name} AS ENUM ({labels})")

    # ── Step 2: users ──────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("username", sa.String(50), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("avatar_url", sa.String(500), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
        sa.UniqueConstraint("username", name="uq_users_username"),
        sa.UniqueConstraint("email", name="uq_users_email"),
        sa.CheckConstraint("LENGTH(TRIM(username)) > 0", name="ck_users_username_nonempty"),
    )

    # ── Step 3: communities and their members ─────────────────────────────
    op.create_table(
        "communities",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("is_public", sa.Boolean(), server_default=sa.true(), nullable=False),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_communities"),
    )

    op.create_table(
        "community_members",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("community_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("status", _enum("community_member_status_enum"), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_community_members"),
        sa.ForeignKeyConstraint(
            ["community_id"], ["communities.id"],
            name="fk_community_members_community", ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["user_id"], ["users.id"],
            name="fk_community_members_user", ondelete="CASCADE",
        ),
        sa.UniqueConstraint("community_id", "user_id", name="uq_community_members_community_user"),
    )

    # ── Step 4: study_groups ──────────────────────────────────────────────
    # private / invite_only ⇒ invite_code NOT NULL and approval_required.
    op.create_table(
        "study_groups",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("community_id", sa.Integer(), nullable=False),
        sa.Column("creator_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("privacy", _enum("group_privacy_enum"), server_default="public", nullable=False),
        sa.Column("max_members", sa.Integer(), nullable=True),
        sa.Column("invite_code", sa.String(64), nullable=True),
        sa.Column("approval_required", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("status", _enum("group_status_enum"), server_default="active", nullable=False),
        sa.Column("tags", sa.JSON(), nullable=False),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_study_groups"),
        sa.ForeignKeyConstraint(
            ["community_id"], ["communities.id"],
            name="fk_study_groups_community", ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["creator_id"], ["users.id"],
            name="fk_study_groups_creator", ondelete="RESTRICT",
        ),
        sa.UniqueConstraint("invite_code", name="uq_study_groups_invite_code"),
        sa.CheckConstraint("LENGTH(TRIM(name)) > 0", name="ck_study_groups_name_nonempty"),
        sa.CheckConstraint(
            "max_members IS NULL OR max_members > 0",
            name="ck_study_groups_max_members_positive",
        ),
        sa.CheckConstraint(
            "privacy = 'public' OR (invite_code IS NOT NULL AND approval_required)",
            name="ck_study_groups_restricted_needs_invite_code",
        ),
    )

    # ── Step 5: study_group_members ───────────────────────────────────────
    op.create_table(
        "study_group_members",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("group_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("role", _enum("member_role_enum"), server_default="member", nullable=False),
        sa.Column("status", _enum("member_status_enum"), server_default="active", nullable=False),
        sa.Column("join_method", _enum("join_method_enum"), server_default="direct", nullable=False),
        sa.Column("contribution_score", sa.Integer(), server_default="0", nullable=False),
        sa.Column(
            "joined_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("last_active_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("achievements", sa.JSON(), nullable=False),
        sa.Column("invite_code_used", sa.String(64), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_study_group_members"),
        sa.ForeignKeyConstraint(
            ["group_id"], ["study_groups.id"],
            name="fk_study_group_members_group", ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["user_id"], ["users.id"],
            name="fk_study_group_members_user", ondelete="CASCADE",
        ),
        sa.UniqueConstraint("group_id", "user_id", name="uq_study_group_members_group_user"),
        sa.CheckConstraint(
            "contribution_score >= 0",
            name="ck_study_group_members_score_non_negative",
        ),
    )

    # ── Step 6: study_group_pending_members ───────────────────────────────
    op.create_table(
        "study_group_pending_members",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("group_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("status", _enum("request_status_enum"), server_default="pending", nullable=False),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column(
            "requested_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reviewed_by", sa.Integer(), nullable=True),
        sa.Column("response_message", sa.Text(), nullable=True),
        sa.Column("invite_code", sa.String(64), nullable=True),
        sa.Column("consumed_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_study_group_pending_members"),
        sa.ForeignKeyConstraint(
            ["group_id"], ["study_groups.id"],
            name="fk_pending_members_group", ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["user_id"], ["users.id"],
            name="fk_pending_members_user", ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["reviewed_by"], ["users.id"],
            name="fk_pending_members_reviewer", ondelete="SET NULL",
        ),
        sa.UniqueConstraint("invite_code", name="uq_pending_members_invite_code"),
    )

    # ── Step 7: group activities ──────────────────────────────────────────
    op.create_table(
        "group_tasks",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("group_id", sa.Integer(), nullable=False),
        sa.Column("creator_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("status", _enum("task_status_enum"), nullable=False),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_group_tasks"),
        sa.ForeignKeyConstraint(
            ["group_id"], ["study_groups.id"],
            name="fk_group_tasks_group", ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["creator_id"], ["users.id"],
            name="fk_group_tasks_creator", ondelete="RESTRICT",
        ),
    )

    op.create_table(
        "task_assignments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("task_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_task_assignments"),
        sa.ForeignKeyConstraint(
            ["task_id"], ["group_tasks.id"],
            name="fk_task_assignments_task", ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["user_id"], ["users.id"],
            name="fk_task_assignments_user", ondelete="CASCADE",
        ),
        sa.UniqueConstraint("task_id", "user_id", name="uq_task_assignments_task_user"),
    )

    op.create_table(
        "shared_contents",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("group_id", sa.Integer(), nullable=False),
        sa.Column("uploader_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("file_type", _enum("content_type_enum"), nullable=False),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_shared_contents"),
        sa.ForeignKeyConstraint(
            ["group_id"], ["study_groups.id"],
            name="fk_shared_contents_group", ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["uploader_id"], ["users.id"],
            name="fk_shared_contents_uploader", ondelete="RESTRICT",
        ),
    )

    op.create_table(
        "group_meetings",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("group_id", sa.Integer(), nullable=False),
        sa.Column("organizer_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("meeting_url", sa.String(500), nullable=True),
        sa.Column("status", _enum("meeting_status_enum"), nullable=False),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_group_meetings"),
        sa.ForeignKeyConstraint(
            ["group_id"], ["study_groups.id"],
            name="fk_group_meetings_group", ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["organizer_id"], ["users.id"],
            name="fk_group_meetings_organizer", ondelete="RESTRICT",
        ),
    )

    op.create_table(
        "discussion_topics",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("group_id", sa.Integer(), nullable=False),
        sa.Column("author_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(100), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("is_pinned", sa.Boolean(), server_default=sa.false(), nullable=False),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_discussion_topics"),
        sa.ForeignKeyConstraint(
            ["group_id"], ["study_groups.id"],
            name="fk_discussion_topics_group", ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["author_id"], ["users.id"],
            name="fk_discussion_topics_author", ondelete="RESTRICT",
        ),
    )

    # ── Step 8: notifications outbox ──────────────────────────────────────
    # group_id / user_id / actor_id are plain integers so the outbox
    # survives group deletion.
    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("event_type", sa.String(50), nullable=False),
        sa.Column("group_id", sa.Integer(), nullable=True),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("actor_id", sa.Integer(), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=False),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_notifications"),
    )

    # ── Step 9: Indexes ────────────────────────────────────────────────────
    op.create_index("ix_community_members_community_id", "community_members", ["community_id"])
    op.create_index("ix_community_members_user_id", "community_members", ["user_id"])
    op.create_index("ix_study_groups_community_id", "study_groups", ["community_id"])

    op.create_index("ix_study_group_members_group_id", "study_group_members", ["group_id"])
    op.create_index("ix_study_group_members_user_id", "study_group_members", ["user_id"])
    op.create_index("idx_study_group_members_role", "study_group_members", ["role"])
    op.create_index("idx_study_group_members_status", "study_group_members", ["status"])
    # At most one leader per group.
    op.create_index(
        "uq_study_group_members_one_leader",
        "study_group_members",
        ["group_id"],
        unique=True,
        postgresql_where=sa.text("role = 'leader'"),
    )

    op.create_index("ix_study_group_pending_members_group_id", "study_group_pending_members", ["group_id"])
    op.create_index("ix_study_group_pending_members_user_id", "study_group_pending_members", ["user_id"])
    op.create_index("idx_pending_members_status", "study_group_pending_members", ["status"])
    # At most one open request per (group, user).
    op.create_index(
        "uq_pending_members_open_request",
        "study_group_pending_members",
        ["group_id", "user_id"],
        unique=True,
        postgresql_where=sa.text("status = 'pending'"),
    )

    op.create_index("ix_group_tasks_group_id", "group_tasks", ["group_id"])
    op.create_index("ix_group_tasks_status", "group_tasks", ["status"])
    op.create_index("ix_task_assignments_task_id", "task_assignments", ["task_id"])
    op.create_index("ix_task_assignments_user_id", "task_assignments", ["user_id"])
    op.create_index("ix_shared_contents_group_id", "shared_contents", ["group_id"])
    op.create_index("ix_shared_contents_uploader_id", "shared_contents", ["uploader_id"])
    op.create_index("ix_group_meetings_group_id", "group_meetings", ["group_id"])
    op.create_index("ix_discussion_topics_group_id", "discussion_topics", ["group_id"])
    op.create_index("ix_notifications_event_type", "notifications", ["event_type"])
    op.create_index("ix_notifications_group_id", "notifications", ["group_id"])


def downgrade() -> None:
    """
    Drop all objects created in upgrade(), in reverse dependency order.

    Provided for local development reset. Corrective migrations are
    preferred over rollbacks in production.
    """

    # Indexes go with their tables; drop tables in reverse FK order.
    op.drop_table("notifications")
    op.drop_table("discussion_topics")
    op.drop_table("group_meetings")
    op.drop_table("shared_contents")
    op.drop_table("task_assignments")
    op.drop_table("group_tasks")
    op.drop_table("study_group_pending_members")
    op.drop_table("study_group_members")
    op.drop_table("study_groups")
    op.drop_table("community_members")
    op.drop_table("communities")
    op.drop_table("users")

    # Enum types last (tables that reference them must be gone first).
    for name in reversed(list(_ENUMS)):
        op.execute(f"DROP TYPE IF EXISTS {name}")
