"""
schemas/user_schema.py — Marshmallow schemas for user endpoints.

There is no registration: users are found or created from the identity
headers, or explicitly through POST /users/ensure.

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
"""

from __future__ import annotations

from marshmallow import Schema, fields, validate


class EnsureUserSchema(Schema):
    """POST /users/ensure"""

    email = fields.Email(
        required=True,
        validate=validate.Length(max=255),
    )

    name = fields.Str(
        load_default=None,
        allow_none=True,
        validate=validate.Length(max=100),
    )

    image_url = fields.Str(
        load_default=None,
        allow_none=True,
        validate=validate.Length(max=500),
    )


class UserSearchQuerySchema(Schema):
    """GET /users/search?q= — at least two characters."""

    q = fields.Str(
        required=True,
        validate=validate.Length(
            min=2,
            max=100,
            error="Search text must be between 2 and 100 characters.",
        ),
    )
