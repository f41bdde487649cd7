"""
schemas/study_group_schema.py — Marshmallow schemas for the group registry.

Validation responsibility:
  - This file: field types, string lengths, enum values, non-empty checks
    (including trim), and request shape rules.
  - services/study_group_service.py:
      - NOT_COMMUNITY_MEMBER (requires DB lookup)
      - CAPACITY_BELOW_MEMBER_COUNT (requires the current member count)
      - approval_required on restricted groups (requires the stored privacy)

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
           See extensions.py for the full explanation.
"""

from __future__ import annotations

from marshmallow import Schema, ValidationError, fields, validate, validates_schema

from backend.app.errors import ErrorCode
from backend.app.models.enums import GroupStatus, Privacy


def _validate_non_empty_after_trim(value: str) -> None:
    """
    Raises ValidationError if the string is blank or contains only whitespace.
    Mirrors the DB CHECK(LENGTH(TRIM(name)) > 0) constraint at the API layer.
    """
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")


def _name_field(required: bool) -> fields.Str:
    return fields.Str(
        required=required,
        validate=[
            validate.Length(
                min=1,
                max=100,
                error="Group name must be between 1 and 100 characters.",
            ),
            _validate_non_empty_after_trim,
        ],
    )


def _max_members_field() -> fields.Int:
    # null = unbounded
    return fields.Int(
        allow_none=True,
        strict=True,
        validate=validate.Range(min=1, error="max_members must be a positive integer."),
    )


def _tags_field() -> fields.List:
    return fields.List(
        fields.Str(validate=[validate.Length(min=1, max=50), _validate_non_empty_after_trim]),
        validate=validate.Length(max=20, error="A group can have at most 20 tags."),
    )


class CreateStudyGroupSchema(Schema):
    """
    POST /communities/:communityId/groups

    privacy defaults to 'public'. approval_required is only honoured for
    public groups; private and invite-only groups always require approval.
    """

    name = _name_field(required=True)
    description = fields.Str(allow_none=True, validate=validate.Length(max=2000))
    privacy = fields.Str(
        load_default=Privacy.PUBLIC.value,
        validate=validate.OneOf(
            [p.value for p in Privacy],
            error=ErrorCode.INVALID_PRIVACY,
        ),
    )
    max_members = _max_members_field()
    approval_required = fields.Bool(load_default=False)
    tags = _tags_field()


class UpdateStudyGroupSchema(Schema):
    """
    PATCH /groups/:groupId

    Every field is optional but at least one must be present. privacy is not
    editable: changing it would have to mint or drop invite codes.
    """

    name = _name_field(required=False)
    description = fields.Str(allow_none=True, validate=validate.Length(max=2000))
    max_members = _max_members_field()
    status = fields.Str(
        validate=validate.OneOf(
            [s.value for s in GroupStatus],
            error="status must be one of: active, paused, completed, archived.",
        ),
    )
    tags = _tags_field()
    approval_required = fields.Bool()

    @validates_schema
    def validate_not_empty(self, data: dict, **kwargs) -> None:
        if not data:
            raise ValidationError("Provide at least one field to update.")
