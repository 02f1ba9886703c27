"""
routes/reminders.py — Reminder preference and scheduled-run handlers.

Endpoints (base url_prefix=/api/v1/reminders):
  POST /reminders/preferences  → 200  upsert caller's preference for a scope
  POST /reminders/run          → 200  send every due reminder (scheduler hook)
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from backend.app.extensions import db
from backend.app.middleware.auth_middleware import require_user
from backend.app.schemas.reminder_schema import ReminderPreferenceSchema
from backend.app.services import reminder_service
from backend.app.services.notifications import app_link, get_notifier

reminders_bp = Blueprint("reminders", __name__)


@reminders_bp.route("/preferences", methods=["POST"])
@require_user
def save_preference():
    data = ReminderPreferenceSchema().load(request.get_json(force=True) or {})
    result = reminder_service.save_preference(
        user_id=g.user_id,
        data=data,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200


@reminders_bp.route("/run", methods=["POST"])
def run_reminders():
    """
    POST /reminders/run — called by a daily scheduler, no user identity.
    Only what is due today is sent; calling it twice the same day sends
    nothing the second time.
    """
    result = reminder_service.run_due_reminders(
        notifier=get_notifier(),
        session=db.session,
        base_link_for_group=lambda group_id: app_link(f"/groups/{group_id}"),
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200
