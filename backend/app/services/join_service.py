"""
services/join_service.py — Join Workflow Engine.

One entry point, join(), dispatched through _HANDLERS keyed by
(privacy, mode):

  privacy \\ mode   direct                      request                      redeem_invite
  public           join (or APPROVAL_REQUIRED  request if approval_required, redeem
                   when approval_required)     else INVALID_JOIN_MODE
  private          APPROVAL_REQUIRED           request                      redeem
  invite_only      APPROVAL_REQUIRED           request                      redeem

Common preconditions for every mode:
  - group exists and has status 'active'
  - user exists
  - user is not already an occupying member, and is not banned

admit_member() is the single place a membership row is inserted or
reactivated; request approval goes through it too. It always reserves a
capacity slot first.

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import enum
import logging
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backend.app.errors import (
    AlreadyMemberError,
    ApprovalRequiredError,
    DuplicateRequestError,
    ErrorCode,
    ForbiddenError,
    GroupNotActiveError,
    InvalidModeError,
    NotFoundError,
)
from backend.app.models.enums import (
    OCCUPYING_STATUSES,
    GroupStatus,
    JoinMethod,
    MemberRole,
    MemberStatus,
    Privacy,
    RequestStatus,
)
from backend.app.models.pending_member import StudyGroupPendingMember
from backend.app.models.study_group import StudyGroup
from backend.app.models.study_group_member import StudyGroupMember
from backend.app.services.capacity_guard import reserve_slot
from backend.app.services.membership_repository import (
    find_live_invite_by_code,
    get_group_or_404,
    get_membership,
    get_membership_with_user,
    get_open_request,
    get_user_or_404,
    request_to_dict,
)

logger = logging.getLogger(__name__)


class JoinMode(str, enum.Enum):
    DIRECT        = "direct"
    REQUEST       = "request"
    REDEEM_INVITE = "redeem_invite"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Membership insertion ───────────────────────────────────────────────────

def ensure_can_join(group_id: int, user_id: int, session: Session) -> StudyGroupMember | None:
    """
    Returns the user's previous membership row (status 'left') or None.

    Raises:
      AlreadyMemberError(ALREADY_MEMBER, 409) — active or muted member
      ForbiddenError(MEMBER_BANNED, 403)      — banned from this group
    """
    existing = get_membership(group_id, user_id, session)
    if existing is None:
        return None

    status = MemberStatus(existing.status)
    if status in OCCUPYING_STATUSES:
        raise AlreadyMemberError(group_id, user_id)
    if status == MemberStatus.BANNED:
        raise ForbiddenError(
            f"User {user_id} is banned from group {group_id}.",
            code=ErrorCode.MEMBER_BANNED,
        )
    return existing


def admit_member(
        group_id: int,
        user_id: int,
        join_method: JoinMethod,
        session: Session,
        invite_code_used: str | None = None,
) -> StudyGroupMember:
    """
    Inserts (or reactivates) an active 'member' row after reserving a slot.

    Raises:
      GroupFullError(GROUP_FULL, 409)
      AlreadyMemberError(ALREADY_MEMBER, 409) — including a concurrent insert
                                                caught by the unique constraint
      ForbiddenError(MEMBER_BANNED, 403)
    """
    previous = ensure_can_join(group_id, user_id, session)
    reserve_slot(group_id, session)

    if previous is not None:
        membership = previous
        membership.status = MemberStatus.ACTIVE
        membership.role = MemberRole.MEMBER
        membership.join_method = join_method
        membership.joined_at = _utcnow()
        membership.invite_code_used = invite_code_used
    else:
        membership = StudyGroupMember(
            group_id=group_id,
            user_id=user_id,
            role=MemberRole.MEMBER,
            status=MemberStatus.ACTIVE,
            join_method=join_method,
            invite_code_used=invite_code_used,
        )
        session.add(membership)

    try:
        session.flush()
    except IntegrityError:
        raise AlreadyMemberError(group_id, user_id)

    logger.info(
        "User %s joined group %s (join_method=%s)",
        user_id, group_id, JoinMethod(join_method).value,
    )
    return membership


# ── Mode handlers ──────────────────────────────────────────────────────────

def _joined(group_id: int, user_id: int, session: Session) -> dict:
    return {
        "status": "joined",
        "membership": get_membership_with_user(group_id, user_id, session).to_dict(),
    }


def _join_public(group: StudyGroup, user_id: int, session: Session, **_) -> dict:
    if group.approval_required:
        raise ApprovalRequiredError(group.id)
    admit_member(group.id, user_id, JoinMethod.DIRECT, session)
    return _joined(group.id, user_id, session)


def _refuse_direct(group: StudyGroup, user_id: int, session: Session, **_) -> dict:
    raise ApprovalRequiredError(group.id)


def _create_request(
        group: StudyGroup,
        user_id: int,
        session: Session,
        message: str | None = None,
        **_,
) -> dict:
    ensure_can_join(group.id, user_id, session)

    if get_open_request(group.id, user_id, session) is not None:
        raise DuplicateRequestError(group.id, user_id)

    request = StudyGroupPendingMember(
        group_id=group.id,
        user_id=user_id,
        status=RequestStatus.PENDING,
        message=message,
    )
    session.add(request)
    try:
        session.flush()
    except IntegrityError:
        raise DuplicateRequestError(group.id, user_id)

    logger.info("User %s requested to join group %s (request %s)", user_id, group.id, request.id)
    return {"status": "requested", "request": request_to_dict(request)}


def _request_public(group: StudyGroup, user_id: int, session: Session, **kwargs) -> dict:
    if not group.approval_required:
        raise InvalidModeError(
            f"Group {group.id} is open to everyone. Join it directly instead of requesting."
        )
    return _create_request(group, user_id, session, **kwargs)


def _redeem_invite(
        group: StudyGroup,
        user_id: int,
        session: Session,
        invite_code: str | None = None,
        **_,
) -> dict:
    invite = find_live_invite_by_code(group.id, invite_code, session) if invite_code else None
    if invite is None or invite.user_id != user_id:
        raise NotFoundError(
            ErrorCode.INVITE_NOT_FOUND,
            "This invite code is not valid for you in this group.",
        )

    admit_member(group.id, user_id, JoinMethod.INVITE, session, invite_code_used=invite_code)
    invite.consumed_at = _utcnow()
    session.flush()

    return _joined(group.id, user_id, session)


_HANDLERS = {
    (Privacy.PUBLIC,      JoinMode.DIRECT):        _join_public,
    (Privacy.PUBLIC,      JoinMode.REQUEST):       _request_public,
    (Privacy.PUBLIC,      JoinMode.REDEEM_INVITE): _redeem_invite,
    (Privacy.PRIVATE,     JoinMode.DIRECT):        _refuse_direct,
    (Privacy.PRIVATE,     JoinMode.REQUEST):       _create_request,
    (Privacy.PRIVATE,     JoinMode.REDEEM_INVITE): _redeem_invite,
    (Privacy.INVITE_ONLY, JoinMode.DIRECT):        _refuse_direct,
    (Privacy.INVITE_ONLY, JoinMode.REQUEST):       _create_request,
    (Privacy.INVITE_ONLY, JoinMode.REDEEM_INVITE): _redeem_invite,
}


# ── Public service function ────────────────────────────────────────────────

def join(
        group_id: int,
        user_id: int,
        mode: str,
        session: Session,
        message: str | None = None,
        invite_code: str | None = None,
) -> dict:
    """
    Moves user_id towards membership of group_id according to `mode`.

    Raises:
      InvalidModeError(INVALID_JOIN_MODE, 400)     — unknown mode, or request on an open group
      ApprovalRequiredError(APPROVAL_REQUIRED, 400)
      NotFoundError(GROUP_NOT_FOUND | USER_NOT_FOUND | INVITE_NOT_FOUND, 404)
      GroupNotActiveError(GROUP_NOT_ACTIVE, 409)
      AlreadyMemberError / DuplicateRequestError / GroupFullError (409)
      ForbiddenError(MEMBER_BANNED, 403)

    Returns:
      {"status": "joined",    "membership": {...}}  for direct and redeem_invite
      {"status": "requested", "request": {...}}     for request
    """
    try:
        mode = JoinMode(mode)
    except ValueError:
        raise InvalidModeError(f"'{mode}' is not a valid join mode.")

    group = get_group_or_404(group_id, session)
    if GroupStatus(group.status) != GroupStatus.ACTIVE:
        raise GroupNotActiveError(group_id, GroupStatus(group.status).value)

    get_user_or_404(user_id, session)

    handler = _HANDLERS[(Privacy(group.privacy), mode)]
    return handler(group, user_id, session, message=message, invite_code=invite_code)
