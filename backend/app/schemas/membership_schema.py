"""
schemas/membership_schema.py — Marshmallow schemas for join, review, invite
and member management endpoints.

Whether the user exists, is already a member, or may act is a DB concern and
is checked in the services.

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
"""

from __future__ import annotations

from marshmallow import Schema, fields, validate

from backend.app.errors import ErrorCode
from backend.app.models.enums import MemberRole

MAX_INVITES_PER_CALL = 50


def _user_id_field(**kwargs) -> fields.Int:
    return fields.Int(
        strict=True,  # reject floats like 1.0 — integers only
        validate=validate.Range(min=1, error="user_id must be a positive integer."),
        **kwargs,
    )


class JoinSchema(Schema):
    """POST /groups/:groupId/join — direct join, or invite redemption when invite_code is sent."""

    invite_code = fields.Str(
        allow_none=True,
        validate=validate.Length(min=1, max=64),
    )


class JoinRequestSchema(Schema):
    """POST /groups/:groupId/join-request"""

    message = fields.Str(allow_none=True, validate=validate.Length(max=500))


class ReviewSchema(Schema):
    """PATCH /groups/:groupId/members/:userId/approve|reject"""

    response_message = fields.Str(allow_none=True, validate=validate.Length(max=500))


class InviteUsersSchema(Schema):
    """POST /groups/:groupId/invite"""

    user_ids = fields.List(
        _user_id_field(),
        required=True,
        validate=validate.Length(
            min=1,
            max=MAX_INVITES_PER_CALL,
            error=f"user_ids must contain between 1 and {MAX_INVITES_PER_CALL} ids.",
        ),
    )


class ChangeRoleSchema(Schema):
    """
    PATCH /groups/:groupId/members/:userId/role

    'leader' passes the schema on purpose; the service answers it with
    INVALID_ROLE and a pointer to transfer-leadership.
    """

    role = fields.Str(
        required=True,
        validate=validate.OneOf([r.value for r in MemberRole], error=ErrorCode.INVALID_ROLE),
    )


class TransferLeadershipSchema(Schema):
    """POST /groups/:groupId/transfer-leadership"""

    user_id = _user_id_field(required=True)
