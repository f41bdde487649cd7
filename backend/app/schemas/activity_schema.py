"""
schemas/activity_schema.py — Marshmallow schemas for meetings and topics.

The end_time > start_time rule is checked in activity_service so the error
carries INVALID_MEETING_WINDOW.

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
"""

from __future__ import annotations

from marshmallow import Schema, ValidationError, fields, validate


def _validate_non_empty_after_trim(value: str) -> None:
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")


class ScheduleMeetingSchema(Schema):
    """POST /groups/:groupId/meetings"""

    title = fields.Str(
        required=True,
        validate=[validate.Length(min=1, max=200), _validate_non_empty_after_trim],
    )
    description = fields.Str(allow_none=True, validate=validate.Length(max=2000))
    start_time = fields.AwareDateTime(required=True)
    end_time = fields.AwareDateTime(allow_none=True)
    meeting_url = fields.Url(allow_none=True, validate=validate.Length(max=500))


class CreateTopicSchema(Schema):
    """POST /groups/:groupId/topics"""

    title = fields.Str(
        required=True,
        validate=[validate.Length(min=1, max=100), _validate_non_empty_after_trim],
    )
    content = fields.Str(
        required=True,
        validate=[validate.Length(min=1, max=10000), _validate_non_empty_after_trim],
    )
    is_pinned = fields.Bool(load_default=False)
