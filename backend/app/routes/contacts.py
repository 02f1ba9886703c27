"""
routes/contacts.py — Contact list route handler.

Endpoints (base url_prefix=/api/v1/contacts):
  GET /contacts  → 200  people the caller shares personal expenses with,
                        plus the caller's groups
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify

from backend.app.extensions import db
from backend.app.middleware.auth_middleware import require_user
from backend.app.services import contact_service

contacts_bp = Blueprint("contacts", __name__)


@contacts_bp.route("/", methods=["GET"])
@require_user
def list_contacts():
    result = contact_service.list_contacts(user_id=g.user_id, session=db.session)
    return jsonify({"data": result, "warnings": []}), 200
