"""
routes/groups.py — Group and membership route handlers.

Layer rules:
  - Parse, validate, call ONE service, commit, return envelope.
  - No business logic. No DB queries. No bare SQL.

Endpoints (base url_prefix=/api/v1/groups):
  POST   /groups                 → 201  create group (caller becomes admin)
  GET    /groups                 → 200  list caller's groups
  POST   /groups/:id/members     → 201  add member (admin only)
  GET    /groups/:id/summary     → 200  members, expenses, settlements, balances
  POST   /groups/:id/remind      → 200  email members who owe the caller
  DELETE /groups/:id             → 200  delete group and its records (admin only)
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from backend.app.extensions import db
from backend.app.middleware.auth_middleware import require_user
from backend.app.schemas.group_schema import AddMemberSchema, CreateGroupSchema
from backend.app.schemas.reminder_schema import GroupRemindSchema
from backend.app.services import group_service
from backend.app.services.notifications import app_link, get_notifier

groups_bp = Blueprint("groups", __name__)


@groups_bp.route("/", methods=["POST"])
@require_user
def create_group():
    """POST /groups — Create a new group. Caller becomes admin and first member."""
    data = CreateGroupSchema().load(request.get_json(force=True) or {})
    result = group_service.create_group(
        name=data["name"],
        description=data["description"],
        creator_id=g.user_id,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 201


@groups_bp.route("/", methods=["GET"])
@require_user
def list_groups():
    """GET /groups — Groups the caller belongs to, with the caller's net in each."""
    result = group_service.list_groups(
        user_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@groups_bp.route("/<int:group_id>/members", methods=["POST"])
@require_user
def add_member(group_id: int):
    """POST /groups/:id/members — Add a user by id or email. Admin only."""
    data = AddMemberSchema().load(request.get_json(force=True) or {})
    result = group_service.add_member(
        group_id=group_id,
        caller_id=g.user_id,
        data=data,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 201


@groups_bp.route("/<int:group_id>/summary", methods=["GET"])
@require_user
def get_summary(group_id: int):
    """
    GET /groups/:id/summary

    warnings carries DATA_INCONSISTENCY when stored records had to be left
    out of the balance sheet.
    """
    result, warnings = group_service.get_group_summary(
        group_id=group_id,
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": warnings}), 200


@groups_bp.route("/<int:group_id>/remind", methods=["POST"])
@require_user
def remind(group_id: int):
    """POST /groups/:id/remind — body {user_id?}; omit to remind everyone who owes you."""
    data = GroupRemindSchema().load(request.get_json(silent=True) or {})
    result = group_service.remind_members(
        group_id=group_id,
        caller_id=g.user_id,
        target_user_id=data["user_id"],
        notifier=get_notifier(),
        session=db.session,
        base_link=app_link(f"/groups/{group_id}"),
    )
    return jsonify({"data": result, "warnings": []}), 200


@groups_bp.route("/<int:group_id>", methods=["DELETE"])
@require_user
def delete_group(group_id: int):
    """DELETE /groups/:id — Admin only. Expenses and settlements go with it."""
    group_service.delete_group(
        group_id=group_id,
        caller_id=g.user_id,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": {"id": group_id, "deleted": True}, "warnings": []}), 200
