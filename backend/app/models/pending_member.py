"""
models/pending_member.py — Join requests and direct invites.

One table holds both kinds of record:
  - self-service join request:  status starts 'pending', invite_code NULL
  - direct invite:              status starts 'approved', invite_code set

Transitions pending → approved | rejected happen exactly once; terminal rows
are kept as an audit trail. An invite is single-use: consumed_at is set when
it is redeemed.

Partial UNIQUE(group_id, user_id) WHERE status = 'pending' guarantees at most
one open request per user and group.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import DateTime, Enum, ForeignKey, Index, String, Text, func, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.app.extensions import db
from backend.app.models.enums import RequestStatus, enum_values


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StudyGroupPendingMember(db.Model):
    __tablename__ = "study_group_pending_members"

    __table_args__ = (
        Index(
            "uq_pending_members_open_request",
            "group_id",
            "user_id",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
        Index("idx_pending_members_status", "status"),
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

    status: Mapped[RequestStatus] = mapped_column(
        Enum(RequestStatus, name="request_status_enum", values_callable=enum_values),
        nullable=False,
        default=RequestStatus.PENDING,
        server_default=RequestStatus.PENDING.value,
    )

    message: Mapped[str | None] = mapped_column(Text, nullable=True)

    requested_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=func.now(),
    )

    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    reviewed_by: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    response_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    invite_code: Mapped[str | None] = mapped_column(String(64), nullable=True, unique=True)

    consumed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # ── Relationships ──────────────────────────────────────────────────────

    group: Mapped["StudyGroup"] = relationship(  # noqa: F821
        "StudyGroup",
        back_populates="pending_requests",
    )

    @property
    def is_invite(self) -> bool:
        return self.invite_code is not None

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<StudyGroupPendingMember id={self.id} "
            f"group_id={self.group_id} user_id={self.user_id} "
            f"status={self.status} invite={self.is_invite}>"
        )
