"""
services/membership_repository.py — Membership Store and Group Registry reads.

The ONLY sanctioned way for services to look up groups, memberships, join
requests and invites. Queries that combine a membership with its user are
returned as populated value objects (MembershipWithUser,
PendingRequestWithUser) so callers never depend on lazy relationship loading.

Layer rules:
  - No Flask imports. Every function receives the SQLAlchemy session.
  - Read-only apart from touch_last_active(). Nothing here commits or flushes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from backend.app.errors import ErrorCode, NotFoundError
from backend.app.models.enums import (
    OCCUPYING_STATUSES,
    JoinMethod,
    MemberRole,
    MemberStatus,
    RequestStatus,
)
from backend.app.models.pending_member import StudyGroupPendingMember
from backend.app.models.study_group import StudyGroup
from backend.app.models.study_group_member import StudyGroupMember
from backend.app.models.user import User


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


# ── Value objects ──────────────────────────────────────────────────────────

@dataclass(frozen=True)
class MembershipWithUser:
    membership_id:      int
    group_id:           int
    user_id:            int
    username:           str
    avatar_url:         str | None
    role:               MemberRole
    status:             MemberStatus
    join_method:        JoinMethod
    contribution_score: int
    joined_at:          datetime | None
    last_active_at:     datetime | None
    achievements:       tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_rows(cls, membership: StudyGroupMember, user: User) -> MembershipWithUser:
        return cls(
            membership_id=membership.id,
            group_id=membership.group_id,
            user_id=membership.user_id,
            username=user.username,
            avatar_url=user.avatar_url,
            role=MemberRole(membership.role),
            status=MemberStatus(membership.status),
            join_method=JoinMethod(membership.join_method),
            contribution_score=membership.contribution_score or 0,
            joined_at=membership.joined_at,
            last_active_at=membership.last_active_at,
            achievements=tuple(membership.achievements or ()),
        )

    def to_dict(self) -> dict:
        return {
            "membership_id": self.membership_id,
            "group_id": self.group_id,
            "user_id": self.user_id,
            "username": self.username,
            "avatar_url": self.avatar_url,
            "role": self.role.value,
            "status": self.status.value,
            "join_method": self.join_method.value,
            "contribution_score": self.contribution_score,
            "joined_at": _iso(self.joined_at),
            "last_active_at": _iso(self.last_active_at),
        }


@dataclass(frozen=True)
class PendingRequestWithUser:
    request_id:   int
    group_id:     int
    user_id:      int
    username:     str
    avatar_url:   str | None
    email:        str
    message:      str | None
    requested_at: datetime | None

    def to_dict(self) -> dict:
        return {
            "request_id": self.request_id,
            "group_id": self.group_id,
            "user_id": self.user_id,
            "username": self.username,
            "avatar_url": self.avatar_url,
            "email": self.email,
            "message": self.message,
            "requested_at": _iso(self.requested_at),
        }


# ── Groups and users ───────────────────────────────────────────────────────

def get_group_or_404(group_id: int, session: Session) -> StudyGroup:
    """Returns the StudyGroup or raises GROUP_NOT_FOUND (404)."""
    group = session.get(StudyGroup, group_id)
    if group is None:
        raise NotFoundError(ErrorCode.GROUP_NOT_FOUND, f"Study group {group_id} does not exist.")
    return group


def get_user_or_404(user_id: int, session: Session) -> User:
    """Returns the User or raises USER_NOT_FOUND (404)."""
    user = session.get(User, user_id)
    if user is None:
        raise NotFoundError(ErrorCode.USER_NOT_FOUND, f"User {user_id} does not exist.")
    return user


# ── Memberships ────────────────────────────────────────────────────────────

def get_membership(group_id: int, user_id: int, session: Session) -> StudyGroupMember | None:
    """Returns the membership row in any status, or None."""
    return session.execute(
        select(StudyGroupMember).where(
            StudyGroupMember.group_id == group_id,
            StudyGroupMember.user_id == user_id,
        )
    ).scalar_one_or_none()


def get_current_membership(group_id: int, user_id: int, session: Session) -> StudyGroupMember | None:
    """Returns the membership only while it occupies a slot (active or muted)."""
    membership = get_membership(group_id, user_id, session)
    if membership is None or MemberStatus(membership.status) not in OCCUPYING_STATUSES:
        return None
    return membership


def get_current_membership_or_404(group_id: int, user_id: int, session: Session) -> StudyGroupMember:
    membership = get_current_membership(group_id, user_id, session)
    if membership is None:
        raise NotFoundError(
            ErrorCode.MEMBER_NOT_FOUND,
            f"User {user_id} is not a member of group {group_id}.",
        )
    return membership


def touch_last_active(membership: StudyGroupMember | None) -> None:
    """Stamps last_active_at on a membership the caller already loaded. None is ignored."""
    if membership is not None:
        membership.last_active_at = datetime.now(timezone.utc)


def get_membership_with_user(group_id: int, user_id: int, session: Session) -> MembershipWithUser | None:
    row = session.execute(
        select(StudyGroupMember, User)
        .join(User, User.id == StudyGroupMember.user_id)
        .where(
            StudyGroupMember.group_id == group_id,
            StudyGroupMember.user_id == user_id,
        )
    ).one_or_none()
    if row is None:
        return None
    membership, user = row
    return MembershipWithUser.from_rows(membership, user)


def list_members_with_users(
        group_id: int,
        session: Session,
        statuses: tuple[MemberStatus, ...] = OCCUPYING_STATUSES,
) -> list[MembershipWithUser]:
    """Members in `statuses`, oldest first."""
    stmt = (
        select(StudyGroupMember, User)
        .join(User, User.id == StudyGroupMember.user_id)
        .where(
            StudyGroupMember.group_id == group_id,
            StudyGroupMember.status.in_(statuses),
        )
        .order_by(StudyGroupMember.joined_at.asc(), StudyGroupMember.user_id.asc())
    )
    return [MembershipWithUser.from_rows(m, u) for m, u in session.execute(stmt).all()]


def list_leaderboard_rows(group_id: int, session: Session) -> list[MembershipWithUser]:
    """
    Active memberships ranked by contribution_score DESC. Ties go to the
    earlier joiner, then the lower user id, so the order is deterministic.
    """
    stmt = (
        select(StudyGroupMember, User)
        .join(User, User.id == StudyGroupMember.user_id)
        .where(
            StudyGroupMember.group_id == group_id,
            StudyGroupMember.status == MemberStatus.ACTIVE,
        )
        .order_by(
            StudyGroupMember.contribution_score.desc(),
            StudyGroupMember.joined_at.asc(),
            StudyGroupMember.user_id.asc(),
        )
    )
    return [MembershipWithUser.from_rows(m, u) for m, u in session.execute(stmt).all()]


def count_occupying_members(group_id: int, session: Session) -> int:
    return session.execute(
        select(func.count(StudyGroupMember.id)).where(
            StudyGroupMember.group_id == group_id,
            StudyGroupMember.status.in_(OCCUPYING_STATUSES),
        )
    ).scalar_one()


# ── Requests and invites ───────────────────────────────────────────────────

def get_request_or_404(request_id: int, session: Session) -> StudyGroupPendingMember:
    request = session.get(StudyGroupPendingMember, request_id)
    if request is None:
        raise NotFoundError(ErrorCode.REQUEST_NOT_FOUND, f"Join request {request_id} does not exist.")
    return request


def get_open_request(group_id: int, user_id: int, session: Session) -> StudyGroupPendingMember | None:
    """The pending request (self-service) for this user and group, if any."""
    return session.execute(
        select(StudyGroupPendingMember).where(
            StudyGroupPendingMember.group_id == group_id,
            StudyGroupPendingMember.user_id == user_id,
            StudyGroupPendingMember.status == RequestStatus.PENDING,
        )
    ).scalar_one_or_none()


def get_latest_reviewed_request(
        group_id: int,
        user_id: int,
        session: Session,
) -> StudyGroupPendingMember | None:
    """Most recently reviewed self-service request (invites excluded)."""
    return session.execute(
        select(StudyGroupPendingMember)
        .where(
            StudyGroupPendingMember.group_id == group_id,
            StudyGroupPendingMember.user_id == user_id,
            StudyGroupPendingMember.status.in_((RequestStatus.APPROVED, RequestStatus.REJECTED)),
            StudyGroupPendingMember.invite_code.is_(None),
        )
        .order_by(StudyGroupPendingMember.reviewed_at.desc(), StudyGroupPendingMember.id.desc())
        .limit(1)
    ).scalar_one_or_none()


def get_live_invite(group_id: int, user_id: int, session: Session) -> StudyGroupPendingMember | None:
    """An approved, not yet redeemed invite addressed to this user."""
    return session.execute(
        select(StudyGroupPendingMember)
        .where(
            StudyGroupPendingMember.group_id == group_id,
            StudyGroupPendingMember.user_id == user_id,
            StudyGroupPendingMember.status == RequestStatus.APPROVED,
            StudyGroupPendingMember.invite_code.is_not(None),
            StudyGroupPendingMember.consumed_at.is_(None),
        )
        .limit(1)
    ).scalar_one_or_none()


def find_live_invite_by_code(group_id: int, code: str, session: Session) -> StudyGroupPendingMember | None:
    """Invite in this group with this code that is approved and unconsumed."""
    return session.execute(
        select(StudyGroupPendingMember).where(
            StudyGroupPendingMember.group_id == group_id,
            StudyGroupPendingMember.invite_code == code,
            StudyGroupPendingMember.status == RequestStatus.APPROVED,
            StudyGroupPendingMember.consumed_at.is_(None),
        )
    ).scalar_one_or_none()


def list_pending_requests_with_users(group_id: int, session: Session) -> list[PendingRequestWithUser]:
    stmt = (
        select(StudyGroupPendingMember, User)
        .join(User, User.id == StudyGroupPendingMember.user_id)
        .where(
            StudyGroupPendingMember.group_id == group_id,
            StudyGroupPendingMember.status == RequestStatus.PENDING,
        )
        .order_by(StudyGroupPendingMember.requested_at.asc(), StudyGroupPendingMember.id.asc())
    )
    return [
        PendingRequestWithUser(
            request_id=r.id,
            group_id=r.group_id,
            user_id=u.id,
            username=u.username,
            avatar_url=u.avatar_url,
            email=u.email,
            message=r.message,
            requested_at=r.requested_at,
        )
        for r, u in session.execute(stmt).all()
    ]


def request_to_dict(request: StudyGroupPendingMember) -> dict:
    """Serialises a join request or invite row. The invite code is omitted."""
    return {
        "request_id": request.id,
        "group_id": request.group_id,
        "user_id": request.user_id,
        "status": RequestStatus(request.status).value,
        "is_invite": request.is_invite,
        "message": request.message,
        "requested_at": _iso(request.requested_at),
        "reviewed_at": _iso(request.reviewed_at),
        "reviewed_by": request.reviewed_by,
        "response_message": request.response_message,
    }
