"""
models/community.py — Community and CommunityMember tables.

Communities are an external collaborator: the membership engine only asks
whether a user is an active member before letting them create a study group.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum, ForeignKey, String, UniqueConstraint, func, true
from sqlalchemy.orm import Mapped, mapped_column

from backend.app.extensions import db
from backend.app.models.enums import CommunityMemberStatus, enum_values


class Community(db.Model):
    __tablename__ = "communities"

    id: Mapped[int] = mapped_column(primary_key=True)

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    is_public: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default=true(),
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Community id={self.id} name={self.name!r}>"


class CommunityMember(db.Model):
    __tablename__ = "community_members"

    __table_args__ = (
        UniqueConstraint("community_id", "user_id", name="uq_community_members_community_user"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    community_id: Mapped[int] = mapped_column(
        ForeignKey("communities.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    status: Mapped[CommunityMemberStatus] = mapped_column(
        Enum(
            CommunityMemberStatus,
            name="community_member_status_enum",
            values_callable=enum_values,
        ),
        nullable=False,
        default=CommunityMemberStatus.ACTIVE,
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<CommunityMember community_id={self.community_id} "
            f"user_id={self.user_id} status={self.status}>"
        )
