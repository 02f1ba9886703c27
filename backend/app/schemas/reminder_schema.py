"""
schemas/reminder_schema.py — Marshmallow schemas for reminder endpoints.

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
"""

from __future__ import annotations

from marshmallow import Schema, fields, validate

from backend.app.errors import ErrorCode
from backend.app.models.reminder_preference import ReminderFrequency, ReminderScope


class ReminderPreferenceSchema(Schema):
    """
    POST /reminders/preferences — upserts one preference per
    (caller, scope_type, scope_id).
    """

    scope_type = fields.Enum(
        ReminderScope,
        required=True,
        by_value=True,
        error_messages={"unknown": ErrorCode.INVALID_SCOPE_TYPE},
    )

    # groups.id for a group scope, the contact's users.id otherwise.
    scope_id = fields.Int(
        required=True,
        strict=True,
        validate=validate.Range(min=1, error="scope_id must be a positive integer."),
    )

    frequency = fields.Enum(
        ReminderFrequency,
        required=True,
        by_value=True,
        error_messages={"unknown": ErrorCode.INVALID_FREQUENCY},
    )


class GroupRemindSchema(Schema):
    """POST /groups/:id/remind — omit user_id to remind every member who owes."""

    user_id = fields.Int(
        load_default=None,
        allow_none=True,
        strict=True,
        validate=validate.Range(min=1, error="user_id must be a positive integer."),
    )


class RemindUserSchema(Schema):
    """POST /settlements/remind-user"""

    other_user_id = fields.Int(
        required=True,
        strict=True,
        validate=validate.Range(min=1, error="other_user_id must be a positive integer."),
    )
