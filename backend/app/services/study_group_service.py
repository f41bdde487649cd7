"""
services/study_group_service.py — Group Registry business logic.

Invariants enforced here:
  - private / invite_only groups get an invite_code and approval_required=True
    at creation; update_group() never relaxes either.
  - The creator is seeded as the group's single leader.
  - max_members can never be lowered below the current occupying count.

Authorization rules:
  - Creating a group:  active member of the community
  - Editing a group:   'edit_group' capability (leader, co-leader)
  - Deleting a group:  leader only, and only once every other member is gone

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import logging
import secrets
from collections import Counter
from datetime import datetime, timedelta, timezone

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from backend.app.errors import (
    BadRequestError,
    ConflictError,
    ErrorCode,
    ForbiddenError,
    LeadershipTransferRequiredError,
)
from backend.app.models.enums import (
    OCCUPYING_STATUSES,
    GroupStatus,
    JoinMethod,
    MeetingStatus,
    MemberRole,
    MemberStatus,
    Privacy,
    TaskStatus,
)
from backend.app.models.group_activity import GroupMeeting, GroupTask, MeetingParticipant, SharedContent
from backend.app.models.study_group import StudyGroup
from backend.app.models.study_group_member import StudyGroupMember
from backend.app.services.capacity_guard import lock_group
from backend.app.services.community_service import (
    get_community_or_404,
    is_active_community_member,
)
from backend.app.services.gamification_service import member_stats
from backend.app.services.membership_repository import (
    count_occupying_members,
    get_current_membership,
    get_group_or_404,
    get_membership_with_user,
    list_members_with_users,
    touch_last_active,
)
from backend.app.services.permissions import Capability, can, require_capability

logger = logging.getLogger(__name__)

DEFAULT_INVITE_CODE_BYTES = 8
ACTIVE_WINDOW = timedelta(days=30)

EDITABLE_FIELDS = (
    "name",
    "description",
    "max_members",
    "status",
    "tags",
    "approval_required",
)


# ── Private helpers ────────────────────────────────────────────────────────

def _new_invite_code(session: Session, nbytes: int = DEFAULT_INVITE_CODE_BYTES) -> str:
    """Random hex code not already used by another group."""
    while True:
        code = secrets.token_hex(nbytes)
        taken = session.execute(
            select(StudyGroup.id).where(StudyGroup.invite_code == code)
        ).first()
        if taken is None:
            return code


def _build_group_dict(
        group: StudyGroup,
        member_count: int,
        include_invite_code: bool = False,
) -> dict:
    """Serialises a StudyGroup to a plain dict."""
    data = {
        "id": group.id,
        "community_id": group.community_id,
        "creator_id": group.creator_id,
        "name": group.name,
        "description": group.description,
        "privacy": Privacy(group.privacy).value,
        "max_members": group.max_members,
        "approval_required": group.approval_required,
        "status": GroupStatus(group.status).value,
        "tags": list(group.tags or []),
        "member_count": member_count,
        "created_at": group.created_at.isoformat() if group.created_at else None,
        "updated_at": group.updated_at.isoformat() if group.updated_at else None,
    }
    if include_invite_code:
        data["invite_code"] = group.invite_code
    return data


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; every stored timestamp is UTC.
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def _count(stmt, session: Session) -> int:
    return session.execute(stmt).scalar_one()


def _average_attendance(group_id: int, session: Session) -> float:
    completed = _count(
        select(func.count(GroupMeeting.id)).where(
            GroupMeeting.group_id == group_id,
            GroupMeeting.status == MeetingStatus.COMPLETED,
        ),
        session,
    )
    if completed == 0:
        return 0
    attendees = _count(
        select(func.count(MeetingParticipant.id))
        .join(GroupMeeting, GroupMeeting.id == MeetingParticipant.meeting_id)
        .where(
            GroupMeeting.group_id == group_id,
            GroupMeeting.status == MeetingStatus.COMPLETED,
        ),
        session,
    )
    return round(attendees / completed, 2)


def _group_analytics(group_id: int, members: list, session: Session) -> dict:
    """
    Activity figures over the last ACTIVE_WINDOW:

      active_members   occupying members seen within the window
      engagement_rate  % of occupying members seen recently or with points > 0
      activity_data    active members per day of their last activity
      new_content      shared content created within the window
      completed_tasks, meeting_count, avg_attendance  all-time
    """
    since = datetime.now(timezone.utc) - ACTIVE_WINDOW

    recent_days = [
        _as_utc(m.last_active_at).date()
        for m in members
        if m.last_active_at is not None and _as_utc(m.last_active_at) >= since
    ]
    engaged = sum(
        1 for m in members
        if m.contribution_score > 0
        or (m.last_active_at is not None and _as_utc(m.last_active_at) >= since)
    )
    total = len(members)
    engagement_rate = (engaged * 100 + total // 2) // total if total else 0

    return {
        "meeting_count": _count(
            select(func.count(GroupMeeting.id)).where(GroupMeeting.group_id == group_id),
            session,
        ),
        "avg_attendance": _average_attendance(group_id, session),
        "active_members": len(recent_days),
        "engagement_rate": engagement_rate,
        "completed_tasks": _count(
            select(func.count(GroupTask.id)).where(
                GroupTask.group_id == group_id,
                GroupTask.status == TaskStatus.COMPLETED,
            ),
            session,
        ),
        "new_content": _count(
            select(func.count(SharedContent.id)).where(
                SharedContent.group_id == group_id,
                SharedContent.created_at >= since,
            ),
            session,
        ),
        "activity_data": [
            {"date": day.isoformat(), "active_users": count}
            for day, count in sorted(Counter(recent_days).items())
        ],
    }


# ── Public service functions ───────────────────────────────────────────────

def create_group(
        community_id: int,
        creator_id: int,
        name: str,
        session: Session,
        description: str | None = None,
        privacy: str = Privacy.PUBLIC.value,
        max_members: int | None = None,
        approval_required: bool = False,
        tags: list[str] | None = None,
        invite_code_bytes: int = DEFAULT_INVITE_CODE_BYTES,
) -> dict:
    """
    Creates a study group and seeds its creator as leader.

    Raises:
      NotFoundError(COMMUNITY_NOT_FOUND, 404)
      ForbiddenError(NOT_COMMUNITY_MEMBER, 403) — creator is not an active member
      BadRequestError(INVALID_PRIVACY, 400)

    Returns: group dict including invite_code (the creator is the leader).
    """
    get_community_or_404(community_id, session)

    if not is_active_community_member(community_id, creator_id, session):
        raise ForbiddenError(
            f"You must be an active member of community {community_id} to create a study group.",
            code=ErrorCode.NOT_COMMUNITY_MEMBER,
        )

    try:
        privacy = Privacy(privacy)
    except ValueError:
        raise BadRequestError(
            ErrorCode.INVALID_PRIVACY,
            f"'{privacy}' is not a valid privacy setting.",
            field="privacy",
        )

    invite_code = None
    if privacy != Privacy.PUBLIC:
        invite_code = _new_invite_code(session, invite_code_bytes)
        approval_required = True

    group = StudyGroup(
        community_id=community_id,
        creator_id=creator_id,
        name=name,
        description=description,
        privacy=privacy,
        max_members=max_members,
        invite_code=invite_code,
        approval_required=approval_required,
        status=GroupStatus.ACTIVE,
        tags=list(tags or []),
    )
    session.add(group)
    session.flush()  # populate group.id before seeding the leader

    session.add(StudyGroupMember(
        group_id=group.id,
        user_id=creator_id,
        role=MemberRole.LEADER,
        status=MemberStatus.ACTIVE,
        join_method=JoinMethod.DIRECT,
    ))
    session.flush()

    logger.info(
        "Study group %s created in community %s by user %s (privacy=%s)",
        group.id, community_id, creator_id, privacy.value,
    )
    return _build_group_dict(group, member_count=1, include_invite_code=True)


def get_group(group_id: int, caller_id: int, session: Session) -> dict:
    """
    Group details with the current member list, group analytics and the
    caller's own gamification stats (null for non-members).

    Public metadata and analytics are visible to everyone; invite_code only
    to members who hold the 'invite' capability. Viewing the group stamps the
    caller's last_active_at.
    """
    group = get_group_or_404(group_id, session)

    caller = get_current_membership(group_id, caller_id, session)
    touch_last_active(caller)
    session.flush()

    show_code = (
        caller is not None
        and MemberStatus(caller.status) == MemberStatus.ACTIVE
        and can(caller.role, Capability.INVITE)
    )

    members = list_members_with_users(group_id, session)
    data = _build_group_dict(group, member_count=len(members), include_invite_code=show_code)
    data["members"] = [m.to_dict() for m in members]
    data["stats"] = _group_analytics(group_id, members, session)
    data["gamification"] = member_stats(group_id, caller_id, session) if caller is not None else None
    return data


def list_community_groups(community_id: int, session: Session) -> list[dict]:
    """Groups in a community with their occupying member counts, oldest first."""
    get_community_or_404(community_id, session)

    counts = (
        select(
            StudyGroupMember.group_id,
            func.count(StudyGroupMember.id).label("member_count"),
        )
        .where(StudyGroupMember.status.in_(OCCUPYING_STATUSES))
        .group_by(StudyGroupMember.group_id)
        .subquery()
    )
    stmt = (
        select(StudyGroup, func.coalesce(counts.c.member_count, 0))
        .outerjoin(counts, counts.c.group_id == StudyGroup.id)
        .where(StudyGroup.community_id == community_id)
        .order_by(StudyGroup.created_at.asc(), StudyGroup.id.asc())
    )
    return [
        _build_group_dict(group, member_count=member_count)
        for group, member_count in session.execute(stmt).all()
    ]


def update_group(group_id: int, actor_id: int, changes: dict, session: Session) -> dict:
    """
    Applies a partial update.

    Raises:
      NotFoundError(GROUP_NOT_FOUND, 404)
      ForbiddenError(FORBIDDEN, 403)                  — lacks 'edit_group'
      BadRequestError(INVALID_FIELD, 400)             — approval_required on a restricted group
      ConflictError(CAPACITY_BELOW_MEMBER_COUNT, 409) — max_members < current members
    """
    group = lock_group(group_id, session)
    actor = get_current_membership(group_id, actor_id, session)
    require_capability(actor, Capability.EDIT_GROUP)

    if "approval_required" in changes and group.is_restricted:
        if not changes["approval_required"]:
            raise BadRequestError(
                ErrorCode.INVALID_FIELD,
                "Private and invite-only groups always require approval.",
                field="approval_required",
            )

    if changes.get("max_members") is not None:
        current = count_occupying_members(group_id, session)
        if changes["max_members"] < current:
            raise ConflictError(
                ErrorCode.CAPACITY_BELOW_MEMBER_COUNT,
                f"max_members cannot be lower than the current member count ({current}).",
            )

    for field_name in EDITABLE_FIELDS:
        if field_name in changes:
            setattr(group, field_name, changes[field_name])

    session.flush()

    logger.info("Study group %s updated by user %s: %s", group_id, actor_id, sorted(changes))
    return _build_group_dict(
        group,
        member_count=count_occupying_members(group_id, session),
        include_invite_code=can(actor.role, Capability.INVITE),
    )


def delete_group(group_id: int, actor_id: int, session: Session) -> None:
    """
    Deletes the group and everything hanging off it.

    Raises:
      ForbiddenError(FORBIDDEN, 403)                         — actor is not the leader
      LeadershipTransferRequiredError(LEADERSHIP_TRANSFER_REQUIRED, 409)
        — other members remain; remove them or transfer leadership first
    """
    group = lock_group(group_id, session)
    actor = get_current_membership(group_id, actor_id, session)
    require_capability(actor, Capability.DELETE_GROUP)

    if count_occupying_members(group_id, session) > 1:
        raise LeadershipTransferRequiredError(
            "The group still has other members. Transfer leadership or remove "
            "them before deleting the group."
        )

    session.delete(group)
    session.flush()

    logger.info("Study group %s deleted by user %s", group_id, actor_id)


def get_my_membership(group_id: int, user_id: int, session: Session) -> dict | None:
    """The caller's membership in the group (any status), or None."""
    get_group_or_404(group_id, session)
    membership = get_membership_with_user(group_id, user_id, session)
    return membership.to_dict() if membership is not None else None
