"""
models/study_group.py — StudyGroup table definition (the Group Registry).

No business logic. No imports from services or routes.

Invariant kept by study_group_service.create_group():
  privacy in (private, invite_only)  =>  invite_code IS NOT NULL
                                         AND approval_required = TRUE
The CHECK constraint below is the last line of defence for the same rule.

Deleting a group deletes everything hanging off it (memberships, requests,
tasks, shared content, meetings, topics). The ORM cascades are the primary
mechanism; the FKs are ON DELETE CASCADE for direct SQL deletes.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    false,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.app.extensions import db
from backend.app.models.enums import GroupStatus, Privacy, enum_values


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StudyGroup(db.Model):
    __tablename__ = "study_groups"

    __table_args__ = (
        CheckConstraint(
            "LENGTH(TRIM(name)) > 0",
            name="ck_study_groups_name_nonempty",
        ),
        CheckConstraint(
            "max_members IS NULL OR max_members > 0",
            name="ck_study_groups_max_members_positive",
        ),
        CheckConstraint(
            "privacy = 'public' OR (invite_code IS NOT NULL AND approval_required)",
            name="ck_study_groups_restricted_needs_invite_code",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    community_id: Mapped[int] = mapped_column(
        ForeignKey("communities.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # ON DELETE RESTRICT — a creator cannot be deleted while their group exists.
    creator_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    privacy: Mapped[Privacy] = mapped_column(
        Enum(Privacy, name="group_privacy_enum", values_callable=enum_values),
        nullable=False,
        default=Privacy.PUBLIC,
        server_default=Privacy.PUBLIC.value,
    )

    # NULL = unbounded.
    max_members: Mapped[int | None] = mapped_column(Integer, nullable=True)

    invite_code: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
        unique=True,
    )

    approval_required: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=false(),
    )

    status: Mapped[GroupStatus] = mapped_column(
        Enum(GroupStatus, name="group_status_enum", values_callable=enum_values),
        nullable=False,
        default=GroupStatus.ACTIVE,
        server_default=GroupStatus.ACTIVE.value,
    )

    tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=func.now(),
    )

    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        onupdate=_utcnow,
    )

    # ── Relationships ──────────────────────────────────────────────────────

    creator: Mapped["User"] = relationship("User", foreign_keys=[creator_id])  # noqa: F821

    memberships: Mapped[list["StudyGroupMember"]] = relationship(  # noqa: F821
        "StudyGroupMember",
        back_populates="group",
        cascade="all, delete-orphan",
    )

    pending_requests: Mapped[list["StudyGroupPendingMember"]] = relationship(  # noqa: F821
        "StudyGroupPendingMember",
        back_populates="group",
        cascade="all, delete-orphan",
    )

    tasks: Mapped[list["GroupTask"]] = relationship(  # noqa: F821
        "GroupTask",
        cascade="all, delete-orphan",
    )

    shared_contents: Mapped[list["SharedContent"]] = relationship(  # noqa: F821
        "SharedContent",
        cascade="all, delete-orphan",
    )

    meetings: Mapped[list["GroupMeeting"]] = relationship(  # noqa: F821
        "GroupMeeting",
        cascade="all, delete-orphan",
    )

    topics: Mapped[list["DiscussionTopic"]] = relationship(  # noqa: F821
        "DiscussionTopic",
        cascade="all, delete-orphan",
    )

    @property
    def is_restricted(self) -> bool:
        """True for private and invite_only groups."""
        return self.privacy != Privacy.PUBLIC

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<StudyGroup id={self.id} name={self.name!r} "
            f"privacy={self.privacy} max_members={self.max_members}>"
        )
