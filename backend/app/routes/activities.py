"""
routes/activities.py — Meeting and discussion topic handlers.

Endpoints (url_prefix=/api/v1/groups):
  GET  /:id/meetings   → 200  list meetings (members)
  POST /:id/meetings   → 201  schedule a meeting (schedule_meeting capability)
  POST /:id/topics     → 201  open a discussion topic (set_topic capability)
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from backend.app.extensions import db
from backend.app.middleware.auth_middleware import require_auth
from backend.app.schemas.activity_schema import CreateTopicSchema, ScheduleMeetingSchema
from backend.app.services import activity_service, notification_service
from backend.app.services.notification_service import NotificationEvent

activities_bp = Blueprint("activities", __name__)


@activities_bp.route("/<int:group_id>/meetings", methods=["GET"])
@require_auth
def list_meetings(group_id: int):
    result = activity_service.list_meetings(
        group_id=group_id,
        caller_id=g.user_id,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200


@activities_bp.route("/<int:group_id>/meetings", methods=["POST"])
@require_auth
def schedule_meeting(group_id: int):
    data = ScheduleMeetingSchema().load(request.get_json(force=True) or {})
    result = activity_service.schedule_meeting(
        group_id=group_id,
        organizer_id=g.user_id,
        session=db.session,
        **data,
    )
    db.session.commit()
    notification_service.dispatch(
        NotificationEvent.MEETING_SCHEDULED,
        db.session,
        group_id=group_id,
        actor_id=g.user_id,
        meeting_id=result["id"],
    )
    return jsonify({"data": result, "warnings": []}), 201


@activities_bp.route("/<int:group_id>/topics", methods=["POST"])
@require_auth
def create_topic(group_id: int):
    data = CreateTopicSchema().load(request.get_json(force=True) or {})
    result = activity_service.create_topic(
        group_id=group_id,
        author_id=g.user_id,
        session=db.session,
        **data,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 201
