"""
services/notification_service.py — Best-effort membership event dispatch.

Routes call dispatch() AFTER committing the state transition. Each event is
written to the `notifications` outbox in its own commit; delivery happens
elsewhere. dispatch() never raises: a join that succeeded must not turn into
an error response because its notification could not be recorded.
"""

from __future__ import annotations

import logging

from flask import current_app
from sqlalchemy.orm import Session

from backend.app.models.notification import Notification

logger = logging.getLogger(__name__)


class NotificationEvent:
    MEMBER_JOINED        = "member_joined"
    JOIN_REQUESTED       = "join_requested"
    REQUEST_APPROVED     = "request_approved"
    REQUEST_REJECTED     = "request_rejected"
    MEMBER_INVITED       = "member_invited"
    MEMBER_REMOVED       = "member_removed"
    MEMBER_LEFT          = "member_left"
    ROLE_CHANGED         = "role_changed"
    LEADERSHIP_TRANSFERRED = "leadership_transferred"
    MEETING_SCHEDULED    = "meeting_scheduled"


def dispatch(
        event: str,
        session: Session,
        group_id: int | None = None,
        user_id: int | None = None,
        actor_id: int | None = None,
        **payload,
) -> None:
    """
    Records `event` in the outbox and commits it.

    Failures are logged with traceback and rolled back; the caller never sees
    them. Disabled entirely when NOTIFICATIONS_ENABLED is False.
    """
    if not current_app.config.get("NOTIFICATIONS_ENABLED", True):
        return

    try:
        session.add(Notification(
            event_type=event,
            group_id=group_id,
            user_id=user_id,
            actor_id=actor_id,
            payload=payload,
        ))
        session.commit()
    except Exception:
        logger.exception(
            "Failed to dispatch %s notification (group_id=%s user_id=%s)",
            event, group_id, user_id,
        )
        session.rollback()
