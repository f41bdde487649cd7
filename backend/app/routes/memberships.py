"""
routes/memberships.py — Join, approval, invite and member management handlers.

Layer rules:
  - Parse, validate, call ONE service, commit, return envelope.
  - No business logic. No DB queries. No bare SQL.
  - Notifications are dispatched AFTER the commit and never affect the
    response.

Endpoints (url_prefix=/api/v1/groups):
  POST   /:id/join                        → 201  direct join, or redeem when invite_code is sent
  POST   /:id/join-request                → 201  open a join request
  GET    /:id/pending-members             → 200  open requests (reviewers)
  PATCH  /:id/members/:uid/approve        → 200  approve request (idempotent)
  PATCH  /:id/members/:uid/reject         → 200  reject request
  POST   /:id/invite                      → 201  invite users (private / invite_only)
  GET    /:id/invite/:code                → 200  preview an invite
  POST   /:id/invite/:code/redeem         → 201  redeem an invite
  GET    /:id/members                     → 200  member list (members)
  DELETE /:id/members/:uid                → 200  remove member (or self)
  PATCH  /:id/members/:uid/role           → 200  change role (leader)
  POST   /:id/leave                       → 200  leave group
  POST   /:id/transfer-leadership         → 200  hand leadership to another member
"""

from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from backend.app.errors import WarningCode
from backend.app.extensions import db
from backend.app.middleware.auth_middleware import require_auth
from backend.app.schemas.membership_schema import (
    ChangeRoleSchema,
    InviteUsersSchema,
    JoinRequestSchema,
    JoinSchema,
    ReviewSchema,
    TransferLeadershipSchema,
)
from backend.app.services import join_service, member_service, notification_service, request_service
from backend.app.services.join_service import JoinMode
from backend.app.services.notification_service import NotificationEvent

memberships_bp = Blueprint("memberships", __name__)


def _joined_response(group_id: int, result: dict):
    db.session.commit()
    notification_service.dispatch(
        NotificationEvent.MEMBER_JOINED,
        db.session,
        group_id=group_id,
        user_id=g.user_id,
        join_method=result["membership"]["join_method"],
    )
    return jsonify({"data": result, "warnings": []}), 201


# ── Joining ────────────────────────────────────────────────────────────────

@memberships_bp.route("/<int:group_id>/join", methods=["POST"])
@require_auth
def join_group(group_id: int):
    """POST /groups/:id/join — Public groups join directly; an invite_code redeems an invite."""
    data = JoinSchema().load(request.get_json(silent=True) or {})
    invite_code = data.get("invite_code")
    result = join_service.join(
        group_id=group_id,
        user_id=g.user_id,
        mode=JoinMode.REDEEM_INVITE if invite_code else JoinMode.DIRECT,
        invite_code=invite_code,
        session=db.session,
    )
    return _joined_response(group_id, result)


@memberships_bp.route("/<int:group_id>/join-request", methods=["POST"])
@require_auth
def request_to_join(group_id: int):
    data = JoinRequestSchema().load(request.get_json(silent=True) or {})
    result = join_service.join(
        group_id=group_id,
        user_id=g.user_id,
        mode=JoinMode.REQUEST,
        message=data.get("message"),
        session=db.session,
    )
    db.session.commit()
    notification_service.dispatch(
        NotificationEvent.JOIN_REQUESTED,
        db.session,
        group_id=group_id,
        user_id=g.user_id,
        request_id=result["request"]["request_id"],
    )
    return jsonify({"data": result, "warnings": []}), 201


@memberships_bp.route("/<int:group_id>/invite/<string:code>/redeem", methods=["POST"])
@require_auth
def redeem_invite(group_id: int, code: str):
    result = join_service.join(
        group_id=group_id,
        user_id=g.user_id,
        mode=JoinMode.REDEEM_INVITE,
        invite_code=code,
        session=db.session,
    )
    return _joined_response(group_id, result)


# ── Requests and invites ───────────────────────────────────────────────────

@memberships_bp.route("/<int:group_id>/pending-members", methods=["GET"])
@require_auth
def list_pending_members(group_id: int):
    result = request_service.list_pending_requests(
        group_id=group_id,
        reviewer_id=g.user_id,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200


@memberships_bp.route("/<int:group_id>/members/<int:target_uid>/approve", methods=["PATCH"])
@require_auth
def approve_member(group_id: int, target_uid: int):
    """PATCH /groups/:id/members/:uid/approve — Approving twice is a no-op."""
    data = ReviewSchema().load(request.get_json(silent=True) or {})
    result = request_service.approve_member(
        group_id=group_id,
        user_id=target_uid,
        reviewer_id=g.user_id,
        note=data.get("response_message"),
        session=db.session,
    )
    db.session.commit()

    warnings = []
    if result["already_member"]:
        warnings.append({
            "code": WarningCode.ALREADY_MEMBER,
            "message": f"User {target_uid} is already a member of group {group_id}.",
        })
    elif not result["transitioned"]:
        warnings.append({
            "code": WarningCode.REQUEST_ALREADY_APPROVED,
            "message": f"The request from user {target_uid} was already approved; nothing changed.",
        })
    else:
        notification_service.dispatch(
            NotificationEvent.REQUEST_APPROVED,
            db.session,
            group_id=group_id,
            user_id=target_uid,
            actor_id=g.user_id,
        )
    return jsonify({"data": result, "warnings": warnings}), 200


@memberships_bp.route("/<int:group_id>/members/<int:target_uid>/reject", methods=["PATCH"])
@require_auth
def reject_member(group_id: int, target_uid: int):
    data = ReviewSchema().load(request.get_json(silent=True) or {})
    result = request_service.reject_member(
        group_id=group_id,
        user_id=target_uid,
        reviewer_id=g.user_id,
        note=data.get("response_message"),
        session=db.session,
    )
    db.session.commit()
    notification_service.dispatch(
        NotificationEvent.REQUEST_REJECTED,
        db.session,
        group_id=group_id,
        user_id=target_uid,
        actor_id=g.user_id,
    )
    return jsonify({"data": result, "warnings": []}), 200


@memberships_bp.route("/<int:group_id>/invite", methods=["POST"])
@require_auth
def invite_users(group_id: int):
    """POST /groups/:id/invite — Per-user failures are reported inline, not as an error."""
    data = InviteUsersSchema().load(request.get_json(force=True) or {})
    results = request_service.invite_users(
        group_id=group_id,
        inviter_id=g.user_id,
        user_ids=data["user_ids"],
        session=db.session,
        invite_code_bytes=current_app.config["INVITE_CODE_BYTES"],
    )
    db.session.commit()
    for entry in results:
        if "invite_code" in entry:
            notification_service.dispatch(
                NotificationEvent.MEMBER_INVITED,
                db.session,
                group_id=group_id,
                user_id=entry["user_id"],
                actor_id=g.user_id,
                invite_code=entry["invite_code"],
            )
    return jsonify({"data": results, "warnings": []}), 201


@memberships_bp.route("/<int:group_id>/invite/<string:code>", methods=["GET"])
@require_auth
def verify_invite_code(group_id: int, code: str):
    result = request_service.verify_invite_code(
        group_id=group_id,
        code=code,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


# ── Member management ──────────────────────────────────────────────────────

@memberships_bp.route("/<int:group_id>/members", methods=["GET"])
@require_auth
def list_members(group_id: int):
    result = member_service.list_members(
        group_id=group_id,
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@memberships_bp.route("/<int:group_id>/members/<int:target_uid>", methods=["DELETE"])
@require_auth
def remove_member(group_id: int, target_uid: int):
    """DELETE /groups/:id/members/:uid — Leaders and co-leaders remove; anyone removes self."""
    member_service.remove_member(
        group_id=group_id,
        actor_id=g.user_id,
        target_user_id=target_uid,
        session=db.session,
    )
    db.session.commit()
    notification_service.dispatch(
        NotificationEvent.MEMBER_REMOVED,
        db.session,
        group_id=group_id,
        user_id=target_uid,
        actor_id=g.user_id,
    )
    return jsonify({
        "data": {
            "removed": True,
            "group_id": group_id,
            "user_id": target_uid,
        },
        "warnings": [],
    }), 200


@memberships_bp.route("/<int:group_id>/members/<int:target_uid>/role", methods=["PATCH"])
@require_auth
def change_role(group_id: int, target_uid: int):
    data = ChangeRoleSchema().load(request.get_json(force=True) or {})
    result = member_service.change_role(
        group_id=group_id,
        actor_id=g.user_id,
        target_user_id=target_uid,
        new_role=data["role"],
        session=db.session,
    )
    db.session.commit()
    notification_service.dispatch(
        NotificationEvent.ROLE_CHANGED,
        db.session,
        group_id=group_id,
        user_id=target_uid,
        actor_id=g.user_id,
        role=result["role"],
    )
    return jsonify({"data": result, "warnings": []}), 200


@memberships_bp.route("/<int:group_id>/leave", methods=["POST"])
@require_auth
def leave_group(group_id: int):
    member_service.leave_group(
        group_id=group_id,
        user_id=g.user_id,
        session=db.session,
    )
    db.session.commit()
    notification_service.dispatch(
        NotificationEvent.MEMBER_LEFT,
        db.session,
        group_id=group_id,
        user_id=g.user_id,
    )
    return jsonify({"data": {"left": True, "group_id": group_id}, "warnings": []}), 200


@memberships_bp.route("/<int:group_id>/transfer-leadership", methods=["POST"])
@require_auth
def transfer_leadership(group_id: int):
    data = TransferLeadershipSchema().load(request.get_json(force=True) or {})
    result = member_service.transfer_leadership(
        group_id=group_id,
        from_leader_id=g.user_id,
        to_user_id=data["user_id"],
        session=db.session,
    )
    db.session.commit()
    notification_service.dispatch(
        NotificationEvent.LEADERSHIP_TRANSFERRED,
        db.session,
        group_id=group_id,
        user_id=data["user_id"],
        actor_id=g.user_id,
    )
    return jsonify({"data": result, "warnings": []}), 200
