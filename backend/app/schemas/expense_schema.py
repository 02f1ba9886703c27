"""
schemas/expense_schema.py — Marshmallow schemas for expense endpoints.

Validation responsibility:
  - This file:
      - Field types, lengths, enum values, decimal precision
      - DUPLICATE_SPLIT_USER (400) — request shape rule
      - Non-empty-after-trim enforcement for description
  - services/expense_service.py:
      - SPLIT_SUM_MISMATCH    (422) — requires Decimal arithmetic
      - PAYER_NOT_MEMBER      (422) — requires DB membership lookup
      - SPLIT_USER_NOT_MEMBER (422) — requires DB membership lookup
      - FORBIDDEN / USER_NOT_FOUND  — requires DB lookup

The client computes split amounts for every split_type (equal, percentage,
exact); split_type is stored for display only.

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
           See extensions.py for the full explanation.
"""

from __future__ import annotations

from decimal import Decimal

from marshmallow import (
    Schema,
    ValidationError,
    fields,
    validate,
    validates_schema,
)

from backend.app.errors import ErrorCode
from backend.app.models.expense import SplitType


# ── Shared monetary validators ─────────────────────────────────────────────
#
# Input with more than 2 decimal places is REJECTED with
# INVALID_AMOUNT_PRECISION, never rounded or truncated.
#
#   Decimal("10.123").as_tuple().exponent == -3  → 3 dp → REJECT
#   Decimal("10.12").as_tuple().exponent  == -2  → 2 dp → accept
# ──────────────────────────────────────────────────────────────────────────

def _validate_precision(value: Decimal) -> None:
    if value.as_tuple().exponent < -2:
        raise ValidationError(ErrorCode.INVALID_AMOUNT_PRECISION)


def _validate_monetary_amount(value: Decimal) -> None:
    """Strictly positive, at most 2 decimal places."""
    if value <= Decimal("0"):
        raise ValidationError("Amount must be greater than zero.")
    _validate_precision(value)


def _validate_share_amount(value: Decimal) -> None:
    """A split share may be zero (a payer listed with nothing owed)."""
    if value < Decimal("0"):
        raise ValidationError("Split amount must not be negative.")
    _validate_precision(value)


def _validate_non_empty_after_trim(value: str) -> None:
    """
    validate.Length(min=1) alone accepts "   ". Mirrors the DB
    CHECK(LENGTH(TRIM(description)) > 0) constraint at the API layer.
    """
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")


# ── Sub-schema: one entry in the `splits` array ───────────────────────────

class SplitInputSchema(Schema):
    """
    One participant's share. Group membership of user_id is checked in
    expense_service.py, not here.
    """

    user_id = fields.Int(
        required=True,
        strict=True,   # reject floats like 1.0
        validate=validate.Range(min=1, error="user_id must be a positive integer."),
    )

    amount = fields.Decimal(
        required=True,
        validate=_validate_share_amount,
    )

    # True when the holder has already covered their share.
    paid = fields.Bool(load_default=False)


# ── Create expense ─────────────────────────────────────────────────────────

class CreateExpenseSchema(Schema):
    """
    POST /expenses

    group_id absent or null → a personal expense between contacts.
    paid_by_user_id absent → the caller paid (filled in by the route).
    """

    description = fields.Str(
        required=True,
        validate=[
            validate.Length(
                min=1,
                max=255,
                error="Description must be between 1 and 255 characters.",
            ),
            _validate_non_empty_after_trim,
        ],
    )

    amount = fields.Decimal(
        required=True,
        validate=_validate_monetary_amount,
    )

    paid_by_user_id = fields.Int(
        load_default=None,
        allow_none=True,
        strict=True,
        validate=validate.Range(min=1, error="paid_by_user_id must be a positive integer."),
    )

    group_id = fields.Int(
        load_default=None,
        allow_none=True,
        strict=True,
        validate=validate.Range(min=1, error="group_id must be a positive integer."),
    )

    # Free text; blank or absent becomes "Other" in the service.
    category = fields.Str(
        load_default=None,
        allow_none=True,
        validate=validate.Length(max=50, error="Category must be at most 50 characters."),
    )

    # Epoch milliseconds. Absent → the service uses the current time.
    date = fields.Int(
        load_default=None,
        allow_none=True,
        strict=True,
        validate=validate.Range(min=0, error="date must be a non-negative epoch in milliseconds."),
    )

    split_type = fields.Enum(
        SplitType,
        load_default=SplitType.EXACT,
        by_value=True,
        error_messages={"unknown": ErrorCode.INVALID_SPLIT_TYPE},
    )

    splits = fields.List(
        fields.Nested(SplitInputSchema),
        required=True,
        validate=validate.Length(min=1, error="At least one split is required."),
    )

    @validates_schema
    def validate_unique_split_users(self, data: dict, **kwargs) -> None:
        """
        DUPLICATE_SPLIT_USER (400): same user_id appears twice in splits.

        The sum check is NOT done here: it needs the tolerance rule that
        expense_service.py shares with the ledger.
        """
        splits = data.get("splits") or []
        user_ids = [s["user_id"] for s in splits]
        if len(user_ids) != len(set(user_ids)):
            raise ValidationError(
                {
                    "splits": [ErrorCode.DUPLICATE_SPLIT_USER],
                }
            )
