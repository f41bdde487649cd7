"""
services/permissions.py — Role & Permission Authority.

Decides whether a member holding one role may perform a privileged action in
their study group. Pure functions over roles: no session, no Flask, no
queries. Callers load the acting membership first and pass it in.

Authority table:

  actor       remove                        change role   review/invite   meetings/topics/edit
  leader      co-leader, moderator, member  yes           yes             yes
  co-leader   moderator, member             no            yes             yes
  moderator   -                             no            yes             no
  member      -                             no            no              no

Hard rules layered on top of the table:
  - A leader is never removed by someone else.
  - A co-leader cannot remove another co-leader (the table already excludes it;
    the explicit check gives the precise message).
  - Only a leader changes roles, and the leader role itself moves only via
    member_service.transfer_leadership().
  - Any member may remove themselves (leaders must hand over leadership first,
    which member_service enforces).
  - Only members with status 'active' act; muted/banned/left members are
    refused every privileged capability.
"""

from __future__ import annotations

import enum

from backend.app.errors import BadRequestError, ErrorCode, ForbiddenError
from backend.app.models.enums import MemberRole, MemberStatus


class Capability(str, enum.Enum):
    REMOVE_MEMBER     = "remove_member"
    CHANGE_ROLE       = "change_role"
    REVIEW_REQUESTS   = "review_requests"
    INVITE            = "invite"
    SCHEDULE_MEETING  = "schedule_meeting"
    SET_TOPIC         = "set_topic"
    EDIT_GROUP        = "edit_group"
    DELETE_GROUP      = "delete_group"
    TRANSFER_LEADERSHIP = "transfer_leadership"


_CAPABILITIES: dict[MemberRole, frozenset[Capability]] = {
    MemberRole.LEADER: frozenset(Capability),
    MemberRole.CO_LEADER: frozenset({
        Capability.REMOVE_MEMBER,
        Capability.REVIEW_REQUESTS,
        Capability.INVITE,
        Capability.SCHEDULE_MEETING,
        Capability.SET_TOPIC,
        Capability.EDIT_GROUP,
    }),
    MemberRole.MODERATOR: frozenset({
        Capability.REVIEW_REQUESTS,
        Capability.INVITE,
    }),
    MemberRole.MEMBER: frozenset(),
}

_REMOVABLE_BY: dict[MemberRole, frozenset[MemberRole]] = {
    MemberRole.LEADER: frozenset({MemberRole.CO_LEADER, MemberRole.MODERATOR, MemberRole.MEMBER}),
    MemberRole.CO_LEADER: frozenset({MemberRole.MODERATOR, MemberRole.MEMBER}),
    MemberRole.MODERATOR: frozenset(),
    MemberRole.MEMBER: frozenset(),
}

# Roles a leader may hand out through change_role().
ASSIGNABLE_ROLES: frozenset[MemberRole] = frozenset({
    MemberRole.MEMBER,
    MemberRole.CO_LEADER,
    MemberRole.MODERATOR,
})


def can(role: MemberRole, capability: Capability) -> bool:
    return capability in _CAPABILITIES.get(MemberRole(role), frozenset())


def can_remove(actor_role: MemberRole, target_role: MemberRole) -> bool:
    return MemberRole(target_role) in _REMOVABLE_BY.get(MemberRole(actor_role), frozenset())


def require_capability(actor, capability: Capability) -> None:
    """
    Raises ForbiddenError unless `actor` (a membership row or value object with
    `role` and `status`) is active and its role grants `capability`.
    The message names the missing capability.
    """
    if actor is None:
        raise ForbiddenError(
            f"You are not a member of this group (missing capability '{capability.value}')."
        )
    if MemberStatus(actor.status) != MemberStatus.ACTIVE:
        raise ForbiddenError(
            f"Your membership is {MemberStatus(actor.status).value}; "
            f"missing capability '{capability.value}'."
        )
    if not can(actor.role, capability):
        raise ForbiddenError(
            f"Role '{MemberRole(actor.role).value}' lacks capability '{capability.value}'."
        )


def check_removal(actor, target) -> None:
    """
    Authority check for removing `target` from the group on behalf of `actor`.

    Self-removal is always within authority; whether a leader may actually go
    is a state question answered by member_service (leadership transfer).
    """
    if actor.user_id == target.user_id:
        return

    target_role = MemberRole(target.role)
    actor_role = MemberRole(actor.role)

    if target_role == MemberRole.LEADER:
        raise ForbiddenError(
            "A leader can only be removed by themselves, after transferring "
            f"leadership (missing capability '{Capability.REMOVE_MEMBER.value}' over leader)."
        )

    if actor_role == MemberRole.CO_LEADER and target_role == MemberRole.CO_LEADER:
        raise ForbiddenError(
            "Co-leaders cannot remove other co-leaders "
            f"(missing capability '{Capability.REMOVE_MEMBER.value}' over co-leader)."
        )

    require_capability(actor, Capability.REMOVE_MEMBER)

    if not can_remove(actor_role, target_role):
        raise ForbiddenError(
            f"Role '{actor_role.value}' cannot remove a '{target_role.value}' "
            f"(missing capability '{Capability.REMOVE_MEMBER.value}')."
        )


def check_role_change(actor, target, new_role: MemberRole) -> None:
    """
    Authority check for changing `target`'s role to `new_role`.

    Raises:
      BadRequestError(INVALID_ROLE) — new_role is 'leader' (use transfer_leadership)
      ForbiddenError                — actor is not the leader, or target is the leader
    """
    new_role = MemberRole(new_role)
    if new_role not in ASSIGNABLE_ROLES:
        raise BadRequestError(
            ErrorCode.INVALID_ROLE,
            "The leader role can only be assigned through a leadership transfer.",
            field="role",
        )

    require_capability(actor, Capability.CHANGE_ROLE)

    if MemberRole(target.role) == MemberRole.LEADER:
        raise ForbiddenError(
            "The leader's role cannot be changed directly; transfer leadership instead."
        )
