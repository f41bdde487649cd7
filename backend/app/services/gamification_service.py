"""
services/gamification_service.py — Contribution scores, levels and leaderboards.

Level math (score is a member's contribution_score, never negative):
  level                = score // 100 + 1
  level_progress       = score % 100
  next_level_threshold = level * 100

So 0 points is level 1 with 0 progress, 100 points is level 2 with 0 progress.

Points are earned through award_points(); the ledger below is the only place
point values are defined.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from backend.app.errors import BadRequestError, ErrorCode, ForbiddenError
from backend.app.models.enums import TaskStatus
from backend.app.models.group_activity import GroupTask, SharedContent, TaskAssignment
from backend.app.services.membership_repository import (
    get_current_membership,
    get_current_membership_or_404,
    get_group_or_404,
    get_membership_with_user,
    list_leaderboard_rows,
)

logger = logging.getLogger(__name__)

POINTS_PER_LEVEL = 100
RECENT_ACHIEVEMENTS = 3

POINTS_BY_ACTION: dict[str, int] = {
    "CREATE_TOPIC":   10,
    "POST_REPLY":     5,
    "COMPLETE_TASK":  15,
    "SHARE_CONTENT":  20,
    "RECEIVE_UPVOTE": 3,
}

# Highest threshold first; each badge is granted at most once.
ACHIEVEMENT_THRESHOLDS: tuple[tuple[int, str], ...] = (
    (100, "TOP_CONTRIBUTOR"),
    (50,  "RESOURCE_PROVIDER"),
)


# ── Level math ─────────────────────────────────────────────────────────────

def _check_score(score: int) -> None:
    if score < 0:
        raise BadRequestError(
            ErrorCode.INVALID_SCORE,
            f"Contribution score cannot be negative (got {score}).",
        )


def level_for(score: int) -> int:
    _check_score(score)
    return score // POINTS_PER_LEVEL + 1


def level_progress(score: int) -> int:
    _check_score(score)
    return score % POINTS_PER_LEVEL


def next_level_threshold(score: int) -> int:
    return level_for(score) * POINTS_PER_LEVEL


def level_summary(score: int) -> dict:
    return {
        "points": score,
        "level": level_for(score),
        "current_level_progress": level_progress(score),
        "next_level_threshold": next_level_threshold(score),
    }


# ── Reads ──────────────────────────────────────────────────────────────────

def _require_group_member(group_id: int, caller_id: int, session: Session) -> None:
    if get_current_membership(group_id, caller_id, session) is None:
        raise ForbiddenError(f"You are not a member of group {group_id}.")


def get_leaderboard(group_id: int, caller_id: int, session: Session) -> list[dict]:
    """
    Active members ranked by points. Ties are broken by joined_at then user_id,
    so equal scores always come back in the same order.

    Raises:
      NotFoundError(GROUP_NOT_FOUND, 404)
      ForbiddenError(FORBIDDEN, 403) — caller is not a member
    """
    get_group_or_404(group_id, session)
    _require_group_member(group_id, caller_id, session)

    return [
        {
            "rank": rank,
            "user_id": row.user_id,
            "username": row.username,
            "avatar_url": row.avatar_url,
            "role": row.role.value,
            "points": row.contribution_score,
            "level": level_for(row.contribution_score),
        }
        for rank, row in enumerate(list_leaderboard_rows(group_id, session), start=1)
    ]


def _count_completed_tasks(group_id: int, user_id: int, session: Session) -> int:
    return session.execute(
        select(func.count(TaskAssignment.id))
        .join(GroupTask, GroupTask.id == TaskAssignment.task_id)
        .where(
            GroupTask.group_id == group_id,
            GroupTask.status == TaskStatus.COMPLETED,
            TaskAssignment.user_id == user_id,
        )
    ).scalar_one()


def _count_shared_content(group_id: int, user_id: int, session: Session) -> int:
    return session.execute(
        select(func.count(SharedContent.id)).where(
            SharedContent.group_id == group_id,
            SharedContent.uploader_id == user_id,
        )
    ).scalar_one()


def get_member_stats(group_id: int, user_id: int, caller_id: int, session: Session) -> dict | None:
    """
    Level data plus activity counts for one member, as seen by `caller_id`.

    Raises:
      NotFoundError(GROUP_NOT_FOUND, 404)
      ForbiddenError(FORBIDDEN, 403) — caller is not a member

    Returns None when the user has no membership in the group; the route turns
    that into `data: null` with a NO_MEMBERSHIP_DATA warning.
    """
    get_group_or_404(group_id, session)
    _require_group_member(group_id, caller_id, session)
    return member_stats(group_id, user_id, session)


def member_stats(group_id: int, user_id: int, session: Session) -> dict | None:
    """get_member_stats() without the caller check, for callers that already made one."""
    member = get_membership_with_user(group_id, user_id, session)
    if member is None:
        return None

    # Both counts share the request session, so they run one after the other.
    completed_tasks = _count_completed_tasks(group_id, user_id, session)
    contributed_content = _count_shared_content(group_id, user_id, session)

    achievements = list(member.achievements)
    return {
        "user_id": member.user_id,
        "username": member.username,
        "avatar_url": member.avatar_url,
        **level_summary(member.contribution_score),
        "completed_tasks": completed_tasks,
        "contributed_content": contributed_content,
        "helpful_replies": sum(1 for a in achievements if "helpful_reply" in a),
        "recent_achievements": achievements[:RECENT_ACHIEVEMENTS],
    }


# ── Writes ─────────────────────────────────────────────────────────────────

def award_points(group_id: int, user_id: int, action: str, session: Session) -> dict:
    """
    Adds the points for `action` to the member's score and grants any
    achievement whose threshold has now been reached.

    Raises:
      BadRequestError(INVALID_FIELD, 400) — unknown action
      NotFoundError(MEMBER_NOT_FOUND, 404)

    Returns: {"points_awarded", "contribution_score", "new_achievements"}
    """
    points = POINTS_BY_ACTION.get(action)
    if points is None:
        raise BadRequestError(
            ErrorCode.INVALID_FIELD,
            f"Unknown contribution action '{action}'.",
            field="action",
        )

    membership = get_current_membership_or_404(group_id, user_id, session)
    membership.contribution_score = (membership.contribution_score or 0) + points

    achievements = list(membership.achievements or [])
    new_achievements = [
        badge
        for threshold, badge in ACHIEVEMENT_THRESHOLDS
        if membership.contribution_score >= threshold and badge not in achievements
    ]
    if new_achievements:
        # Newest first.
        membership.achievements = new_achievements + achievements

    session.flush()

    logger.info(
        "Awarded %d points to user %s in group %s for %s (score=%d)",
        points, user_id, group_id, action, membership.contribution_score,
    )
    return {
        "points_awarded": points,
        "contribution_score": membership.contribution_score,
        "new_achievements": new_achievements,
    }
