"""
services/member_service.py — Member management inside a study group.

Authority comes from permissions.py; this module adds the state rules:
  - A leader cannot be removed by anyone else (ForbiddenError).
  - A leader cannot remove themself or leave while others remain; they must
    transfer leadership first (LeadershipTransferRequiredError, 409).
  - transfer_leadership() demotes the old leader to co-leader BEFORE promoting
    the new one, so the one-leader unique index never sees two leaders.

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from backend.app.errors import (
    BadRequestError,
    ErrorCode,
    ForbiddenError,
    LeadershipTransferRequiredError,
)
from backend.app.models.enums import JoinMethod, MemberRole, MemberStatus
from backend.app.services.capacity_guard import lock_group
from backend.app.services.membership_repository import (
    get_current_membership,
    get_current_membership_or_404,
    get_group_or_404,
    get_membership_with_user,
    list_members_with_users,
)
from backend.app.services.permissions import (
    Capability,
    check_removal,
    check_role_change,
    require_capability,
)

logger = logging.getLogger(__name__)


def _require_member(group_id: int, user_id: int, session: Session):
    """Raises FORBIDDEN (403) if user_id is not a current member of group_id."""
    membership = get_current_membership(group_id, user_id, session)
    if membership is None:
        raise ForbiddenError(f"You are not a member of group {group_id}.")
    return membership


def _member_dict(group_id: int, user_id: int, session: Session) -> dict:
    return get_membership_with_user(group_id, user_id, session).to_dict()


# ── Public service functions ───────────────────────────────────────────────

def list_members(group_id: int, caller_id: int, session: Session) -> list[dict]:
    """Active and muted members with their user identity, oldest first. Members only."""
    get_group_or_404(group_id, session)
    _require_member(group_id, caller_id, session)
    return [m.to_dict() for m in list_members_with_users(group_id, session)]


def remove_member(group_id: int, actor_id: int, target_user_id: int, session: Session) -> None:
    """
    Deletes the target's membership row.

    Raises:
      NotFoundError(GROUP_NOT_FOUND | MEMBER_NOT_FOUND, 404)
      ForbiddenError(FORBIDDEN, 403)  — outside the actor's authority, or target is
                                        the leader and actor is someone else
      LeadershipTransferRequiredError(LEADERSHIP_TRANSFER_REQUIRED, 409)
                                      — the leader removing themself
    """
    lock_group(group_id, session)
    actor = _require_member(group_id, actor_id, session)
    target = get_current_membership_or_404(group_id, target_user_id, session)

    check_removal(actor, target)

    if MemberRole(target.role) == MemberRole.LEADER:
        raise LeadershipTransferRequiredError(
            "The leader must transfer leadership before leaving the group."
        )

    session.delete(target)
    session.flush()

    logger.info("User %s removed user %s from group %s", actor_id, target_user_id, group_id)


def change_role(
        group_id: int,
        actor_id: int,
        target_user_id: int,
        new_role: str,
        session: Session,
) -> dict:
    """
    Sets the target's role to member, co-leader or moderator. Leader only.

    Raises:
      BadRequestError(INVALID_ROLE, 400) — unknown role, or 'leader'
      ForbiddenError(FORBIDDEN, 403)
      NotFoundError(MEMBER_NOT_FOUND, 404)
    """
    try:
        new_role = MemberRole(new_role)
    except ValueError:
        raise BadRequestError(
            ErrorCode.INVALID_ROLE,
            f"'{new_role}' is not a valid role.",
            field="role",
        )

    get_group_or_404(group_id, session)
    actor = _require_member(group_id, actor_id, session)
    target = get_current_membership_or_404(group_id, target_user_id, session)

    check_role_change(actor, target, new_role)

    old_role = MemberRole(target.role)
    target.role = new_role
    if new_role != MemberRole.MEMBER and old_role == MemberRole.MEMBER:
        target.join_method = JoinMethod.PROMOTED
    session.flush()

    logger.info(
        "User %s changed role of user %s in group %s: %s -> %s",
        actor_id, target_user_id, group_id, old_role.value, new_role.value,
    )
    return _member_dict(group_id, target_user_id, session)


def leave_group(group_id: int, user_id: int, session: Session) -> None:
    """
    Marks the caller's membership 'left'. The row is kept so a later rejoin
    reuses it.

    Raises:
      NotFoundError(MEMBER_NOT_FOUND, 404)
      LeadershipTransferRequiredError(LEADERSHIP_TRANSFER_REQUIRED, 409)
        — the leader must hand over leadership first
    """
    lock_group(group_id, session)
    membership = get_current_membership_or_404(group_id, user_id, session)

    if MemberRole(membership.role) == MemberRole.LEADER:
        raise LeadershipTransferRequiredError(
            "The leader must transfer leadership before leaving the group."
        )

    membership.status = MemberStatus.LEFT
    membership.role = MemberRole.MEMBER
    session.flush()

    logger.info("User %s left group %s", user_id, group_id)


def transfer_leadership(
        group_id: int,
        from_leader_id: int,
        to_user_id: int,
        session: Session,
) -> dict:
    """
    Makes to_user_id the leader; the former leader becomes co-leader.

    Raises:
      ForbiddenError(FORBIDDEN, 403)        — actor is not the active leader
      BadRequestError(INVALID_FIELD, 400)   — transferring to oneself
      NotFoundError(MEMBER_NOT_FOUND, 404)  — target is not a current member
      ForbiddenError(FORBIDDEN, 403)        — target is muted

    Returns: {"leader": {...}, "previous_leader": {...}}
    """
    lock_group(group_id, session)
    actor = _require_member(group_id, from_leader_id, session)
    require_capability(actor, Capability.TRANSFER_LEADERSHIP)

    if to_user_id == from_leader_id:
        raise BadRequestError(
            ErrorCode.INVALID_FIELD,
            "You are already the leader of this group.",
            field="user_id",
        )

    target = get_current_membership_or_404(group_id, to_user_id, session)
    if MemberStatus(target.status) != MemberStatus.ACTIVE:
        raise ForbiddenError(
            f"User {to_user_id} is {MemberStatus(target.status).value} and cannot become leader."
        )

    actor.role = MemberRole.CO_LEADER
    session.flush()

    target.role = MemberRole.LEADER
    target.join_method = JoinMethod.PROMOTED
    session.flush()

    logger.info(
        "Leadership of group %s transferred from user %s to user %s",
        group_id, from_leader_id, to_user_id,
    )
    return {
        "leader": _member_dict(group_id, to_user_id, session),
        "previous_leader": _member_dict(group_id, from_leader_id, session),
    }
