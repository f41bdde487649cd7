"""Add meeting participants for group attendance analytics.

Revision: 002_add_meeting_participants
Created:  2026-10-19

One row per (meeting, user) who attended. get_group() averages these rows
over the group's completed meetings to report avg_attendance.

ON DELETE policies:
  meeting_participants.meeting_id → CASCADE (attendance belongs to the meeting)
  meeting_participants.user_id    → CASCADE

Append-only:
  This file must NEVER be edited after it has been applied to any database.
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision: str = "002_add_meeting_participants"
down_revision: str | None = "001_initial_schema"
branch_labels: tuple | None = None
depends_on: tuple | None = None


def upgrade() -> None:
    op.create_table(
        "meeting_participants",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("meeting_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_meeting_participants"),
        sa.ForeignKeyConstraint(
            ["meeting_id"], ["group_meetings.id"],
            name="fk_meeting_participants_meeting", ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["user_id"], ["users.id"],
            name="fk_meeting_participants_user", ondelete="CASCADE",
        ),
        sa.UniqueConstraint("meeting_id", "user_id", name="uq_meeting_participants_meeting_user"),
    )
    op.create_index(
        "ix_meeting_participants_meeting_id",
        "meeting_participants",
        ["meeting_id"],
    )


def downgrade() -> None:
    op.drop_index("ix_meeting_participants_meeting_id", table_name="meeting_participants")
    op.drop_table("meeting_participants")
