"""
services/capacity_guard.py — Serialises membership inserts against max_members.

Every path that inserts or reactivates a membership (direct join, invite
redemption, request approval) calls reserve_slot() first, inside the same
transaction that will insert the row. The group row is locked with
SELECT ... FOR UPDATE so two concurrent joins cannot both see the last slot;
the lock is held until the route commits or rolls back.

SQLite ignores FOR UPDATE. Tests that exercise the race run on PostgreSQL.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.errors import ErrorCode, GroupFullError, NotFoundError
from backend.app.models.study_group import StudyGroup
from backend.app.services.membership_repository import count_occupying_members


def lock_group(group_id: int, session: Session) -> StudyGroup:
    """
    Loads the group row with a write lock, or raises GROUP_NOT_FOUND (404).

    populate_existing overwrites the copy already in the identity map, so
    max_members is the value read under the lock.
    """
    group = session.execute(
        select(StudyGroup)
        .where(StudyGroup.id == group_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()

    if group is None:
        raise NotFoundError(ErrorCode.GROUP_NOT_FOUND, f"Study group {group_id} does not exist.")
    return group


def reserve_slot(group_id: int, session: Session) -> StudyGroup:
    """
    Locks the group and verifies one more occupying member fits.

    Raises:
      NotFoundError(GROUP_NOT_FOUND, 404)
      GroupFullError(GROUP_FULL, 409) — active + muted members >= max_members

    Returns: the locked StudyGroup.
    """
    group = lock_group(group_id, session)

    if group.max_members is None:
        return group

    occupied = count_occupying_members(group_id, session)
    if occupied >= group.max_members:
        raise GroupFullError(group_id, group.max_members)

    return group
