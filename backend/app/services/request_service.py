"""
services/request_service.py — Approval and invite workflow.

Request lifecycle (terminal states are kept as an audit trail):

  pending ──approve──▶ approved
     └─────reject───▶ rejected

  - approve on an approved request is a no-op that returns the request as is
    with transitioned=False, whether or not the user is still a member.
  - approve or reject on a rejected request, and reject on an approved one,
    raise RequestAlreadyReviewedError.
  - Approving a user who is already a member marks the request approved with
    an automatic note and creates nothing.

Invites are pre-approved rows carrying a unique invite_code. They are
redeemed through join_service (mode 'redeem_invite') exactly once.

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.errors import (
    AppError,
    DuplicateRequestError,
    ErrorCode,
    GroupNotActiveError,
    InvalidModeError,
    NotFoundError,
    RequestAlreadyReviewedError,
)
from backend.app.models.enums import GroupStatus, JoinMethod, Privacy, RequestStatus
from backend.app.models.pending_member import StudyGroupPendingMember
from backend.app.models.study_group import StudyGroup
from backend.app.models.user import User
from backend.app.services.join_service import admit_member, ensure_can_join
from backend.app.services.membership_repository import (
    find_live_invite_by_code,
    get_current_membership,
    get_group_or_404,
    get_latest_reviewed_request,
    get_live_invite,
    get_open_request,
    get_request_or_404,
    get_user_or_404,
    list_pending_requests_with_users,
    request_to_dict,
    touch_last_active,
)
from backend.app.services.permissions import Capability, require_capability

logger = logging.getLogger(__name__)

DEFAULT_INVITE_CODE_BYTES = 8
ALREADY_MEMBER_NOTE = "Approved automatically (user was already a member)."


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Private helpers ────────────────────────────────────────────────────────

def _require_reviewer(group_id: int, reviewer_id: int, session: Session) -> StudyGroup:
    group = get_group_or_404(group_id, session)
    reviewer = get_current_membership(group_id, reviewer_id, session)
    require_capability(reviewer, Capability.REVIEW_REQUESTS)
    touch_last_active(reviewer)
    return group


def _mark_reviewed(
        request: StudyGroupPendingMember,
        status: RequestStatus,
        reviewer_id: int,
        note: str | None,
) -> None:
    request.status = status
    request.reviewed_at = _utcnow()
    request.reviewed_by = reviewer_id
    request.response_message = note


def _approve(
        request: StudyGroupPendingMember,
        group: StudyGroup,
        reviewer_id: int,
        note: str | None,
        session: Session,
) -> dict:
    status = RequestStatus(request.status)

    if status == RequestStatus.APPROVED:
        already_member = get_current_membership(group.id, request.user_id, session) is not None
        return {
            "request": request_to_dict(request),
            "already_member": already_member,
            "transitioned": False,
        }

    if status == RequestStatus.REJECTED:
        raise RequestAlreadyReviewedError(request.id, status.value)

    if get_current_membership(group.id, request.user_id, session) is not None:
        _mark_reviewed(request, RequestStatus.APPROVED, reviewer_id, ALREADY_MEMBER_NOTE)
        session.flush()
        logger.info("Request %s auto-approved; user %s was already a member", request.id, request.user_id)
        return {"request": request_to_dict(request), "already_member": True, "transitioned": True}

    if GroupStatus(group.status) != GroupStatus.ACTIVE:
        raise GroupNotActiveError(group.id, GroupStatus(group.status).value)

    admit_member(group.id, request.user_id, JoinMethod.APPROVAL, session)
    _mark_reviewed(request, RequestStatus.APPROVED, reviewer_id, note)
    session.flush()

    logger.info("Request %s approved by user %s", request.id, reviewer_id)
    return {"request": request_to_dict(request), "already_member": False, "transitioned": True}


def _reject(
        request: StudyGroupPendingMember,
        reviewer_id: int,
        note: str | None,
        session: Session,
) -> dict:
    status = RequestStatus(request.status)
    if status != RequestStatus.PENDING:
        raise RequestAlreadyReviewedError(request.id, status.value)

    _mark_reviewed(request, RequestStatus.REJECTED, reviewer_id, note)
    session.flush()

    logger.info("Request %s rejected by user %s", request.id, reviewer_id)
    return {"request": request_to_dict(request)}


def _find_request_for_user(group_id: int, user_id: int, session: Session) -> StudyGroupPendingMember:
    """The open request, else the latest reviewed one so repeated calls stay well-defined."""
    request = get_open_request(group_id, user_id, session)
    if request is None:
        request = get_latest_reviewed_request(group_id, user_id, session)
    if request is None:
        raise NotFoundError(
            ErrorCode.REQUEST_NOT_FOUND,
            f"User {user_id} has no join request for group {group_id}.",
        )
    return request


def _new_invite_code(session: Session, nbytes: int) -> str:
    while True:
        code = secrets.token_hex(nbytes)
        taken = session.execute(
            select(StudyGroupPendingMember.id).where(StudyGroupPendingMember.invite_code == code)
        ).first()
        if taken is None:
            return code


# ── Public service functions ───────────────────────────────────────────────

def approve_request(
        request_id: int,
        reviewer_id: int,
        session: Session,
        note: str | None = None,
) -> dict:
    """
    Approves a pending request and admits the requester as a 'member'.

    Raises:
      NotFoundError(REQUEST_NOT_FOUND, 404)
      ForbiddenError(FORBIDDEN, 403)                       — lacks 'review_requests'
      RequestAlreadyReviewedError(REQUEST_ALREADY_REVIEWED, 409) — request was rejected
      GroupFullError(GROUP_FULL, 409)
      GroupNotActiveError(GROUP_NOT_ACTIVE, 409)

    Returns: {"request": {...}, "already_member": bool, "transitioned": bool}
      transitioned is False when the request had already been approved and
      this call changed nothing.
    """
    request = get_request_or_404(request_id, session)
    group = _require_reviewer(request.group_id, reviewer_id, session)
    return _approve(request, group, reviewer_id, note, session)


def reject_request(
        request_id: int,
        reviewer_id: int,
        session: Session,
        note: str | None = None,
) -> dict:
    """Rejects a pending request. Terminal requests raise RequestAlreadyReviewedError."""
    request = get_request_or_404(request_id, session)
    _require_reviewer(request.group_id, reviewer_id, session)
    return _reject(request, reviewer_id, note, session)


def approve_member(
        group_id: int,
        user_id: int,
        reviewer_id: int,
        session: Session,
        note: str | None = None,
) -> dict:
    """approve_request() addressed by (group, requester) instead of request id."""
    group = _require_reviewer(group_id, reviewer_id, session)
    request = _find_request_for_user(group_id, user_id, session)
    return _approve(request, group, reviewer_id, note, session)


def reject_member(
        group_id: int,
        user_id: int,
        reviewer_id: int,
        session: Session,
        note: str | None = None,
) -> dict:
    """reject_request() addressed by (group, requester) instead of request id."""
    _require_reviewer(group_id, reviewer_id, session)
    request = _find_request_for_user(group_id, user_id, session)
    return _reject(request, reviewer_id, note, session)


def list_pending_requests(group_id: int, reviewer_id: int, session: Session) -> list[dict]:
    """Open requests with requester identity, oldest first. Reviewers only."""
    _require_reviewer(group_id, reviewer_id, session)
    return [r.to_dict() for r in list_pending_requests_with_users(group_id, session)]


def invite_users(
        group_id: int,
        inviter_id: int,
        user_ids: list[int],
        session: Session,
        invite_code_bytes: int = DEFAULT_INVITE_CODE_BYTES,
) -> list[dict]:
    """
    Creates a pre-approved invite for each user.

    Group-level failures raise; per-user failures are reported in the result
    list and do not undo the invites that succeeded.

    Raises:
      NotFoundError(GROUP_NOT_FOUND, 404)
      InvalidModeError(INVALID_JOIN_MODE, 400) — group is public
      ForbiddenError(FORBIDDEN, 403)           — lacks 'invite'
      GroupNotActiveError(GROUP_NOT_ACTIVE, 409)

    Returns: one entry per distinct user id, in request order:
      {"user_id": 5, "invite_code": "..."} or
      {"user_id": 6, "error": {"code": "ALREADY_MEMBER", "message": "..."}}
    """
    group = get_group_or_404(group_id, session)
    if not group.is_restricted:
        raise InvalidModeError(
            f"Group {group_id} is public. Invites are only used by private and invite-only groups."
        )

    inviter = get_current_membership(group_id, inviter_id, session)
    require_capability(inviter, Capability.INVITE)
    touch_last_active(inviter)

    if GroupStatus(group.status) != GroupStatus.ACTIVE:
        raise GroupNotActiveError(group_id, GroupStatus(group.status).value)

    results = []
    for user_id in dict.fromkeys(user_ids):
        try:
            code = _invite_one(group_id, inviter_id, user_id, session, invite_code_bytes)
        except AppError as err:
            results.append({"user_id": user_id, "error": err.to_dict()["error"]})
        else:
            results.append({"user_id": user_id, "invite_code": code})

    logger.info(
        "User %s invited %d of %d users to group %s",
        inviter_id, sum(1 for r in results if "invite_code" in r), len(results), group_id,
    )
    return results


def _invite_one(
        group_id: int,
        inviter_id: int,
        user_id: int,
        session: Session,
        invite_code_bytes: int,
) -> str:
    get_user_or_404(user_id, session)

    ensure_can_join(group_id, user_id, session)

    if get_open_request(group_id, user_id, session) is not None:
        raise DuplicateRequestError(group_id, user_id)
    if get_live_invite(group_id, user_id, session) is not None:
        raise DuplicateRequestError(group_id, user_id)

    code = _new_invite_code(session, invite_code_bytes)
    now = _utcnow()
    session.add(StudyGroupPendingMember(
        group_id=group_id,
        user_id=user_id,
        status=RequestStatus.APPROVED,
        requested_at=now,
        reviewed_at=now,
        reviewed_by=inviter_id,
        invite_code=code,
    ))
    session.flush()
    return code


def verify_invite_code(group_id: int, code: str, session: Session) -> dict:
    """
    Read-only preview of a live invite: group metadata and who sent it.

    Raises:
      NotFoundError(INVITE_NOT_FOUND, 404) — unknown, consumed or foreign code
    """
    group = get_group_or_404(group_id, session)
    invite = find_live_invite_by_code(group_id, code, session)
    if invite is None:
        raise NotFoundError(ErrorCode.INVITE_NOT_FOUND, "Invite code is invalid or has already been used.")

    inviter = session.get(User, invite.reviewed_by) if invite.reviewed_by is not None else None
    return {
        "group_id": group.id,
        "group_name": group.name,
        "group_description": group.description,
        "privacy": Privacy(group.privacy).value,
        "invited_user_id": invite.user_id,
        "invited_by": (
            {"user_id": inviter.id, "username": inviter.username}
            if inviter is not None else None
        ),
        "created_at": invite.requested_at.isoformat() if invite.requested_at else None,
    }
