"""
routes/users.py — User route handlers.

Endpoints (base url_prefix=/api/v1/users):
  GET  /users/me         → 200  the identified caller
  GET  /users/search?q=  → 200  other users matching name/email
  POST /users/ensure     → 200  find-or-create a user by email
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request
from marshmallow import EXCLUDE

from backend.app.extensions import db
from backend.app.middleware.auth_middleware import require_user
from backend.app.schemas.user_schema import EnsureUserSchema, UserSearchQuerySchema
from backend.app.services import user_service

users_bp = Blueprint("users", __name__)


@users_bp.route("/me", methods=["GET"])
@require_user
def get_me():
    return jsonify({"data": user_service.serialize_user(g.user), "warnings": []}), 200


@users_bp.route("/search", methods=["GET"])
@require_user
def search_users():
    """GET /users/search?q= — at least two characters; excludes the caller."""
    params = UserSearchQuerySchema().load(request.args, unknown=EXCLUDE)
    result = user_service.search_users(
        query=params["q"],
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@users_bp.route("/ensure", methods=["POST"])
@require_user
def ensure_user():
    """POST /users/ensure — used when adding a contact who has never signed in."""
    data = EnsureUserSchema().load(request.get_json(force=True) or {})
    result = user_service.ensure_user(
        email=data["email"],
        name=data.get("name"),
        image_url=data.get("image_url"),
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200
