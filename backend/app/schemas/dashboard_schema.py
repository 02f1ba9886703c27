"""
schemas/dashboard_schema.py — Query-string schemas for dashboard endpoints.

Query values arrive as strings, so integer fields here are not strict.

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
"""

from __future__ import annotations

from marshmallow import Schema, ValidationError, fields, validate, validates_schema


class TotalSpentQuerySchema(Schema):
    """GET /dashboard/total-spent?year= — defaults to the current UTC year."""

    year = fields.Int(
        load_default=None,
        validate=validate.Range(min=1970, max=9999, error="year must be between 1970 and 9999."),
    )


class CategorySpendingQuerySchema(Schema):
    """GET /dashboard/category-spending?start=&end= — epoch ms, inclusive."""

    start = fields.Int(
        load_default=None,
        validate=validate.Range(min=0, error="start must be a non-negative epoch in milliseconds."),
    )

    end = fields.Int(
        load_default=None,
        validate=validate.Range(min=0, error="end must be a non-negative epoch in milliseconds."),
    )

    @validates_schema
    def validate_range(self, data: dict, **kwargs) -> None:
        start, end = data.get("start"), data.get("end")
        if start is not None and end is not None and start > end:
            raise ValidationError("start must not be after end.", "start")
