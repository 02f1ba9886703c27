"""
schemas/settlement_schema.py — Marshmallow schema for settlement endpoints.

Validation responsibility:
  - This file: field types, decimal precision, positive amount.
  - services/settlement_service.py:
      - SELF_SETTLEMENT (422)            — payer == receiver, after the
                                           payer default is resolved.
      - FORBIDDEN (403)                  — caller is neither party.
      - OVERPAYMENT warning (201)        — requires the current balance.
      - PAYER_NOT_MEMBER / RECIPIENT_NOT_MEMBER (422) for group settlements.
      - GROUP_NOT_FOUND / USER_NOT_FOUND (404).

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
           See extensions.py for the full explanation.
"""

from __future__ import annotations

from decimal import Decimal

from marshmallow import Schema, ValidationError, fields, validate

from backend.app.errors import ErrorCode


# Same rule as expense_schema.py. Kept local so each schema file stays
# self-contained.
def _validate_monetary_amount(value: Decimal) -> None:
    if value <= Decimal("0"):
        raise ValidationError("Amount must be greater than zero.")
    if value.as_tuple().exponent < -2:
        raise ValidationError(ErrorCode.INVALID_AMOUNT_PRECISION)


class CreateSettlementSchema(Schema):
    """
    POST /settlements

    paid_by_user_id defaults to the caller. The caller must be one of the two
    parties; a settlement is not gated on an existing debt (overpayment is a
    warning, not an error).
    """

    paid_by_user_id = fields.Int(
        load_default=None,
        allow_none=True,
        strict=True,
        validate=validate.Range(min=1, error="paid_by_user_id must be a positive integer."),
    )

    received_by_user_id = fields.Int(
        required=True,
        strict=True,   # reject floats like 1.0 — integers only
        validate=validate.Range(min=1, error="received_by_user_id must be a positive integer."),
    )

    amount = fields.Decimal(
        required=True,
        validate=_validate_monetary_amount,
    )

    note = fields.Str(
        load_default="",
        validate=validate.Length(max=255, error="Note must be at most 255 characters."),
    )

    # Absent or null → personal settlement.
    group_id = fields.Int(
        load_default=None,
        allow_none=True,
        strict=True,
        validate=validate.Range(min=1, error="group_id must be a positive integer."),
    )

    date = fields.Int(
        load_default=None,
        allow_none=True,
        strict=True,
        validate=validate.Range(min=0, error="date must be a non-negative epoch in milliseconds."),
    )


class BetweenUserQuerySchema(Schema):
    """GET /settlements/between-user?other_user_id="""

    other_user_id = fields.Int(
        required=True,
        validate=validate.Range(min=1, error="other_user_id must be a positive integer."),
    )


class SettlementDataQuerySchema(Schema):
    """
    GET /settlements/data?entity_type=user|group&entity_id=

    entity_type is checked in settlement_service.py so an unknown value gets
    INVALID_ENTITY_TYPE rather than a generic field error.
    """

    entity_type = fields.Str(required=True)

    entity_id = fields.Int(
        required=True,
        validate=validate.Range(min=1, error="entity_id must be a positive integer."),
    )
