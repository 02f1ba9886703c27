"""
routes/expenses.py — Expense route handlers.

Layer rules:
  - Parse, validate, call ONE service, commit, return envelope.
  - No business logic. No DB queries. No bare SQL.

Endpoints (base url_prefix=/api/v1/expenses):
  POST /expenses  → 201  create a personal or group expense
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from backend.app.extensions import db
from backend.app.middleware.auth_middleware import require_user
from backend.app.schemas.expense_schema import CreateExpenseSchema
from backend.app.services import expense_service
from backend.app.services.notifications import get_notifier

expenses_bp = Blueprint("expenses", __name__)


@expenses_bp.route("/", methods=["POST"])
@require_user
def create_expense():
    """
    POST /expenses

    Split holders who still owe their share are notified; a failed
    notification never fails the request.
    """
    data = CreateExpenseSchema().load(request.get_json(force=True) or {})
    result = expense_service.create_expense(
        caller_id=g.user_id,
        data=data,
        session=db.session,
        notifier=get_notifier(),
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 201
