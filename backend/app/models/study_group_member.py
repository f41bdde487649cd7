"""
models/study_group_member.py — Membership rows of the Membership Store.

No business logic. No imports from services or routes.

Constraints:
  - UNIQUE(group_id, user_id): a user holds at most one membership row per
    group. Rejoining after leaving reuses the row.
  - Partial UNIQUE(group_id) WHERE role = 'leader': at most one leader per
    group, even under concurrent leadership transfers.
  - contribution_score >= 0.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.app.extensions import db
from backend.app.models.enums import JoinMethod, MemberRole, MemberStatus, enum_values


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StudyGroupMember(db.Model):
    __tablename__ = "study_group_members"

    __table_args__ = (
        UniqueConstraint("group_id", "user_id", name="uq_study_group_members_group_user"),
        CheckConstraint(
            "contribution_score >= 0",
            name="ck_study_group_members_score_non_negative",
        ),
        Index(
            "uq_study_group_members_one_leader",
            "group_id",
            unique=True,
            postgresql_where=text("role = 'leader'"),
            sqlite_where=text("role = 'leader'"),
        ),
        Index("idx_study_group_members_role", "role"),
        Index("idx_study_group_members_status", "status"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    group_id: Mapped[int] = mapped_column(
        ForeignKey("study_groups.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    role: Mapped[MemberRole] = mapped_column(
        Enum(MemberRole, name="member_role_enum", values_callable=enum_values),
        nullable=False,
        default=MemberRole.MEMBER,
        server_default=MemberRole.MEMBER.value,
    )

    status: Mapped[MemberStatus] = mapped_column(
        Enum(MemberStatus, name="member_status_enum", values_callable=enum_values),
        nullable=False,
        default=MemberStatus.ACTIVE,
        server_default=MemberStatus.ACTIVE.value,
    )

    join_method: Mapped[JoinMethod] = mapped_column(
        Enum(JoinMethod, name="join_method_enum", values_callable=enum_values),
        nullable=False,
        default=JoinMethod.DIRECT,
        server_default=JoinMethod.DIRECT.value,
    )

    contribution_score: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default="0",
    )

    # Python-side default keeps sub-second precision; leaderboard ties are
    # broken by joined_at.
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=func.now(),
    )

    last_active_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Newest first; e.g. ["helpful_reply:42", "RESOURCE_PROVIDER"].
    achievements: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    invite_code_used: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # ── Relationships ──────────────────────────────────────────────────────

    user: Mapped["User"] = relationship(  # noqa: F821
        "User",
        back_populates="study_group_memberships",
        foreign_keys=[user_id],
    )

    group: Mapped["StudyGroup"] = relationship(  # noqa: F821
        "StudyGroup",
        back_populates="memberships",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<StudyGroupMember id={self.id} "
            f"group_id={self.group_id} "
            f"user_id={self.user_id} "
            f"role={self.role} status={self.status}>"
        )
