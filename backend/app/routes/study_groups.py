"""
routes/study_groups.py — Group registry route handlers.

Layer rules:
  - Parse, validate, call ONE service, commit, return envelope.
  - No business logic. No DB queries. No bare SQL.

Endpoints (url_prefix=/api/v1):
  POST   /communities/:cid/groups   → 201  create group (caller becomes leader)
  GET    /communities/:cid/groups   → 200  list groups in a community
  GET    /groups/:id                → 200  group details, members, analytics, caller stats
  PATCH  /groups/:id                → 200  edit group (edit_group capability)
  DELETE /groups/:id                → 200  delete group (leader, sole member)
  GET    /groups/:id/membership     → 200  caller's own membership or null
"""

from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from backend.app.extensions import db
from backend.app.middleware.auth_middleware import require_auth
from backend.app.schemas.study_group_schema import CreateStudyGroupSchema, UpdateStudyGroupSchema
from backend.app.services import study_group_service

study_groups_bp = Blueprint("study_groups", __name__)


@study_groups_bp.route("/communities/<int:community_id>/groups", methods=["POST"])
@require_auth
def create_group(community_id: int):
    """POST /communities/:cid/groups — Create a study group. Caller becomes leader."""
    data = CreateStudyGroupSchema().load(request.get_json(force=True) or {})
    result = study_group_service.create_group(
        community_id=community_id,
        creator_id=g.user_id,
        session=db.session,
        invite_code_bytes=current_app.config["INVITE_CODE_BYTES"],
        **data,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 201


@study_groups_bp.route("/communities/<int:community_id>/groups", methods=["GET"])
@require_auth
def list_community_groups(community_id: int):
    result = study_group_service.list_community_groups(
        community_id=community_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@study_groups_bp.route("/groups/<int:group_id>", methods=["GET"])
@require_auth
def get_group(group_id: int):
    """GET /groups/:id — invite_code is included only for members who may invite."""
    result = study_group_service.get_group(
        group_id=group_id,
        caller_id=g.user_id,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200


@study_groups_bp.route("/groups/<int:group_id>", methods=["PATCH"])
@require_auth
def update_group(group_id: int):
    changes = UpdateStudyGroupSchema().load(request.get_json(force=True) or {})
    result = study_group_service.update_group(
        group_id=group_id,
        actor_id=g.user_id,
        changes=changes,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200


@study_groups_bp.route("/groups/<int:group_id>", methods=["DELETE"])
@require_auth
def delete_group(group_id: int):
    study_group_service.delete_group(
        group_id=group_id,
        actor_id=g.user_id,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": {"deleted": True, "group_id": group_id}, "warnings": []}), 200


@study_groups_bp.route("/groups/<int:group_id>/membership", methods=["GET"])
@require_auth
def get_my_membership(group_id: int):
    result = study_group_service.get_my_membership(
        group_id=group_id,
        user_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200
