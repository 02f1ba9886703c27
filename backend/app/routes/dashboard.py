"""
routes/dashboard.py — Per-user balance and spending route handlers.

Layer rules:
  - Parse query params, call ONE service, return envelope.
  - No business logic. No DB queries. No bare SQL.

Endpoints (base url_prefix=/api/v1/dashboard):
  GET /dashboard/balances                      → 200  owed / owing, per counterparty
  GET /dashboard/groups                        → 200  caller's groups with their net
  GET /dashboard/total-spent?year=             → 200  own shares in one UTC year
  GET /dashboard/monthly-spending              → 200  trailing 12 months, oldest first
  GET /dashboard/category-spending?start=&end= → 200  own shares per category
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request
from marshmallow import EXCLUDE

from backend.app.extensions import db
from backend.app.middleware.auth_middleware import require_user
from backend.app.schemas.dashboard_schema import CategorySpendingQuerySchema, TotalSpentQuerySchema
from backend.app.services import balance_service, group_service, spending_service

dashboard_bp = Blueprint("dashboard", __name__)


@dashboard_bp.route("/balances", methods=["GET"])
@require_user
def get_balances():
    """
    GET /dashboard/balances

    you_are_owed == sum(owed_by.amount) and you_owe == sum(owes.amount)
    exactly; counterparties within a cent of zero are left out.
    """
    result, warnings = balance_service.get_dashboard_balances(
        user_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": warnings}), 200


@dashboard_bp.route("/groups", methods=["GET"])
@require_user
def get_groups():
    result = group_service.list_groups(user_id=g.user_id, session=db.session)
    return jsonify({"data": result, "warnings": []}), 200


@dashboard_bp.route("/total-spent", methods=["GET"])
@require_user
def get_total_spent():
    params = TotalSpentQuerySchema().load(request.args, unknown=EXCLUDE)
    result = spending_service.get_total_spent(
        user_id=g.user_id,
        session=db.session,
        year=params["year"],
    )
    return jsonify({"data": result, "warnings": []}), 200


@dashboard_bp.route("/monthly-spending", methods=["GET"])
@require_user
def get_monthly_spending():
    result, warnings = spending_service.get_monthly_spending(
        user_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": warnings}), 200


@dashboard_bp.route("/category-spending", methods=["GET"])
@require_user
def get_category_spending():
    params = CategorySpendingQuerySchema().load(request.args, unknown=EXCLUDE)
    result = spending_service.get_category_spending(
        user_id=g.user_id,
        session=db.session,
        start=params["start"],
        end=params["end"],
    )
    return jsonify({"data": result, "warnings": []}), 200
