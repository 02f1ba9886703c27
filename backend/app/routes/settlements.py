"""
routes/settlements.py — Settlement route handlers.

Layer rules:
  - Parse, validate, call ONE service, commit, return envelope.
  - No business logic. No DB queries. No bare SQL.

Special: create_settlement returns (settlement, warnings[]).
  If the amount exceeds the payer's current debt, warnings holds an
  OVERPAYMENT entry. The HTTP status is still 201.

Endpoints (base url_prefix=/api/v1/settlements):
  POST /settlements                              → 201  record a payment
  GET  /settlements/between-user?other_user_id=  → 200  personal history + balance
  GET  /settlements/data?entity_type=&entity_id= → 200  settle-up form data
  POST /settlements/remind-user                  → 200  email a contact what they owe
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request
from marshmallow import EXCLUDE

from backend.app.extensions import db
from backend.app.middleware.auth_middleware import require_user
from backend.app.schemas.reminder_schema import RemindUserSchema
from backend.app.schemas.settlement_schema import (
    BetweenUserQuerySchema,
    CreateSettlementSchema,
    SettlementDataQuerySchema,
)
from backend.app.services import settlement_service
from backend.app.services.notifications import get_notifier

settlements_bp = Blueprint("settlements", __name__)


@settlements_bp.route("/", methods=["POST"])
@require_user
def create_settlement():
    """
    POST /settlements — paid_by_user_id defaults to the caller; the caller
    must be the payer or the receiver.
    """
    data = CreateSettlementSchema().load(request.get_json(force=True) or {})
    settlement, warnings = settlement_service.create_settlement(
        caller_id=g.user_id,
        data=data,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": settlement, "warnings": warnings}), 201


@settlements_bp.route("/between-user", methods=["GET"])
@require_user
def between_user():
    params = BetweenUserQuerySchema().load(request.args, unknown=EXCLUDE)
    result, warnings = settlement_service.get_between_user(
        caller_id=g.user_id,
        other_user_id=params["other_user_id"],
        session=db.session,
    )
    return jsonify({"data": result, "warnings": warnings}), 200


@settlements_bp.route("/data", methods=["GET"])
@require_user
def settlement_data():
    params = SettlementDataQuerySchema().load(request.args, unknown=EXCLUDE)
    result = settlement_service.get_settlement_data(
        caller_id=g.user_id,
        entity_type=params["entity_type"],
        entity_id=params["entity_id"],
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@settlements_bp.route("/remind-user", methods=["POST"])
@require_user
def remind_user():
    data = RemindUserSchema().load(request.get_json(force=True) or {})
    result = settlement_service.remind_user(
        caller_id=g.user_id,
        other_user_id=data["other_user_id"],
        notifier=get_notifier(),
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200
