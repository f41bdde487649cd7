"""
routes/gamification.py — Leaderboard and member stats handlers.

Endpoints (url_prefix=/api/v1/groups):
  GET /:id/leaderboard          → 200  ranked active members (members only)
  GET /:id/members/:uid/stats   → 200  level and activity counts, or null +
                                       NO_MEMBERSHIP_DATA warning (members only)
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify

from backend.app.errors import WarningCode
from backend.app.extensions import db
from backend.app.middleware.auth_middleware import require_auth
from backend.app.services import gamification_service

gamification_bp = Blueprint("gamification", __name__)


@gamification_bp.route("/<int:group_id>/leaderboard", methods=["GET"])
@require_auth
def get_leaderboard(group_id: int):
    result = gamification_service.get_leaderboard(
        group_id=group_id,
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@gamification_bp.route("/<int:group_id>/members/<int:target_uid>/stats", methods=["GET"])
@require_auth
def get_member_stats(group_id: int, target_uid: int):
    result = gamification_service.get_member_stats(
        group_id=group_id,
        user_id=target_uid,
        caller_id=g.user_id,
        session=db.session,
    )

    warnings = []
    if result is None:
        warnings.append({
            "code": WarningCode.NO_MEMBERSHIP_DATA,
            "message": f"User {target_uid} has no membership in group {group_id}.",
        })
    return jsonify({"data": result, "warnings": warnings}), 200
