"""
services/activity_service.py — Meetings and discussion topics.

Both are privileged writes gated by the role table: scheduling a meeting
needs 'schedule_meeting', opening a topic needs 'set_topic' (leader and
co-leader). Reading the meeting list needs only membership.
Each call stamps the acting member's last_active_at.

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.errors import BadRequestError, ErrorCode, ForbiddenError
from backend.app.models.enums import MeetingStatus
from backend.app.models.group_activity import DiscussionTopic, GroupMeeting
from backend.app.services.gamification_service import award_points
from backend.app.services.membership_repository import (
    get_current_membership,
    get_group_or_404,
    touch_last_active,
)
from backend.app.services.permissions import Capability, require_capability

logger = logging.getLogger(__name__)


def _build_meeting_dict(meeting: GroupMeeting) -> dict:
    return {
        "id": meeting.id,
        "group_id": meeting.group_id,
        "organizer_id": meeting.organizer_id,
        "title": meeting.title,
        "description": meeting.description,
        "start_time": meeting.start_time.isoformat(),
        "end_time": meeting.end_time.isoformat() if meeting.end_time else None,
        "meeting_url": meeting.meeting_url,
        "status": MeetingStatus(meeting.status).value,
    }


def schedule_meeting(
        group_id: int,
        organizer_id: int,
        title: str,
        start_time: datetime,
        session: Session,
        end_time: datetime | None = None,
        description: str | None = None,
        meeting_url: str | None = None,
) -> dict:
    """
    Raises:
      ForbiddenError(FORBIDDEN, 403)                  — lacks 'schedule_meeting'
      BadRequestError(INVALID_MEETING_WINDOW, 400)    — end_time not after start_time
    """
    get_group_or_404(group_id, session)
    organizer = get_current_membership(group_id, organizer_id, session)
    require_capability(organizer, Capability.SCHEDULE_MEETING)
    touch_last_active(organizer)

    if end_time is not None and end_time <= start_time:
        raise BadRequestError(
            ErrorCode.INVALID_MEETING_WINDOW,
            "end_time must be after start_time.",
            field="end_time",
        )

    meeting = GroupMeeting(
        group_id=group_id,
        organizer_id=organizer_id,
        title=title,
        description=description,
        start_time=start_time,
        end_time=end_time,
        meeting_url=meeting_url,
        status=MeetingStatus.SCHEDULED,
    )
    session.add(meeting)
    session.flush()

    logger.info("Meeting %s scheduled in group %s by user %s", meeting.id, group_id, organizer_id)
    return _build_meeting_dict(meeting)


def list_meetings(group_id: int, caller_id: int, session: Session) -> list[dict]:
    """Meetings ordered by start_time. Members only."""
    get_group_or_404(group_id, session)
    caller = get_current_membership(group_id, caller_id, session)
    if caller is None:
        raise ForbiddenError(f"You are not a member of group {group_id}.")
    touch_last_active(caller)

    meetings = session.execute(
        select(GroupMeeting)
        .where(GroupMeeting.group_id == group_id)
        .order_by(GroupMeeting.start_time.asc(), GroupMeeting.id.asc())
    ).scalars().all()
    return [_build_meeting_dict(m) for m in meetings]


def create_topic(
        group_id: int,
        author_id: int,
        title: str,
        content: str,
        session: Session,
        is_pinned: bool = False,
) -> dict:
    """
    Opens a discussion topic and credits the author with CREATE_TOPIC points.

    Raises:
      ForbiddenError(FORBIDDEN, 403) — lacks 'set_topic'
    """
    get_group_or_404(group_id, session)
    author = get_current_membership(group_id, author_id, session)
    require_capability(author, Capability.SET_TOPIC)
    touch_last_active(author)

    topic = DiscussionTopic(
        group_id=group_id,
        author_id=author_id,
        title=title,
        content=content,
        is_pinned=is_pinned,
    )
    session.add(topic)
    session.flush()

    award = award_points(group_id, author_id, "CREATE_TOPIC", session)

    return {
        "id": topic.id,
        "group_id": topic.group_id,
        "author_id": topic.author_id,
        "title": topic.title,
        "content": topic.content,
        "is_pinned": topic.is_pinned,
        "created_at": topic.created_at.isoformat() if topic.created_at else None,
        "points_awarded": award["points_awarded"],
        "new_achievements": award["new_achievements"],
    }
