"""
schemas/group_schema.py — Marshmallow schemas for group and membership endpoints.

Validation responsibility:
  - This file: field types, string lengths, non-empty checks (including trim).
  - services/group_service.py:
      - caller must be a member to read group data, admin to write it
      - USER_NOT_FOUND / ALREADY_MEMBER / GROUP_NOT_FOUND (DB lookups)

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
           See extensions.py for the full explanation.
"""

from __future__ import annotations

from marshmallow import Schema, ValidationError, fields, validate, validates_schema


def _validate_non_empty_after_trim(value: str) -> None:
    """
    validate.Length(min=1) alone accepts "   ". Mirrors the DB
    CHECK(LENGTH(TRIM(name)) > 0) constraint at the API layer.
    """
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")


class CreateGroupSchema(Schema):
    """POST /groups — the caller becomes the group's admin."""

    name = fields.Str(
        required=True,
        validate=[
            validate.Length(
                min=1,
                max=100,
                error="Group name must be between 1 and 100 characters.",
            ),
            _validate_non_empty_after_trim,
        ],
    )

    description = fields.Str(
        load_default="",
        validate=validate.Length(max=500, error="Description must be at most 500 characters."),
    )


class AddMemberSchema(Schema):
    """
    POST /groups/:id/members  (admin only)

    Identify the new member by user_id, or by email — an unknown email is
    created as a placeholder user so groups can be set up before everyone
    has signed in.
    """

    user_id = fields.Int(
        load_default=None,
        strict=True,  # reject floats like 1.0 — integers only
        validate=validate.Range(
            min=1,
            error="user_id must be a positive integer.",
        ),
    )

    email = fields.Email(
        load_default=None,
        validate=validate.Length(max=255),
    )

    name = fields.Str(
        load_default=None,
        validate=validate.Length(max=100),
    )

    @validates_schema
    def validate_identifier(self, data: dict, **kwargs) -> None:
        if data.get("user_id") is None and data.get("email") is None:
            raise ValidationError(
                "Missing data for required field: user_id or email.",
                "user_id",
            )
