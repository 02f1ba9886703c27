"""
services/reminder_service.py — Scheduled reminder preferences and the run
that sends them.

A preference says "remind the people who owe me in <group | contact>,
weekly or monthly". POST /reminders/run is meant to be hit once a day by an
external scheduler; it sends whatever is due and stamps last_sent_at.

Due rules (UTC):
  weekly   → today is Sunday and nothing was sent in the last 6 days
  monthly  → today is the 1st and nothing was sent this calendar month

Layer rules:
  - No Flask imports. The notifier is passed in.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.errors import AppError, ErrorCode
from backend.app.ledger import SETTLED_TOLERANCE
from backend.app.models.group import Group
from backend.app.models.user import User
from backend.app.models.reminder_preference import (
    ReminderFrequency,
    ReminderPreference,
    ReminderScope,
)
from backend.app.services import balance_service, group_service, user_service
from backend.app.services.notifications import Notifier
from backend.app.services.settlement_service import build_contact_reminder

logger = logging.getLogger(__name__)

WEEKLY_MIN_GAP = timedelta(days=6)
SUNDAY = 6  # datetime.weekday()


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def serialize_preference(pref: ReminderPreference) -> dict:
    return {
        "id": pref.id,
        "user_id": pref.user_id,
        "scope_type": pref.scope_type.value,
        "scope_id": pref.scope_id,
        "frequency": pref.frequency.value,
        "last_sent_at": pref.last_sent_at.isoformat() if pref.last_sent_at else None,
    }


def is_due(frequency: ReminderFrequency, last_sent_at: datetime | None, now: datetime) -> bool:
    now = _as_utc(now)
    last = _as_utc(last_sent_at) if last_sent_at is not None else None

    if frequency == ReminderFrequency.WEEKLY:
        return now.weekday() == SUNDAY and (last is None or now - last > WEEKLY_MIN_GAP)

    if frequency == ReminderFrequency.MONTHLY:
        return now.day == 1 and (
            last is None or (last.year, last.month) != (now.year, now.month)
        )

    return False


def save_preference(user_id: int, data: dict, session: Session) -> dict:
    """
    Upserts the caller's preference for one scope.

    The scope must exist, and for a group the caller must be a member.
    """
    scope_type: ReminderScope = data["scope_type"]
    scope_id: int = data["scope_id"]

    if scope_type == ReminderScope.GROUP:
        group_service.get_group_or_404(scope_id, session)
        group_service.require_member(scope_id, user_id, session)
    else:
        if scope_id == user_id:
            raise AppError(
                ErrorCode.INVALID_FIELD,
                "You cannot set a reminder for yourself.",
                400,
                field="scope_id",
            )
        user_service.get_user_or_404(scope_id, session)

    pref = session.execute(
        select(ReminderPreference).where(
            ReminderPreference.user_id == user_id,
            ReminderPreference.scope_type == scope_type,
            ReminderPreference.scope_id == scope_id,
        )
    ).scalar_one_or_none()

    if pref is None:
        pref = ReminderPreference(user_id=user_id, scope_type=scope_type, scope_id=scope_id)
        session.add(pref)

    pref.frequency = data["frequency"]
    session.flush()
    return serialize_preference(pref)


def _send_contact(pref: ReminderPreference, notifier: Notifier, session: Session) -> int:
    owner = pref.user
    other = session.get(User, pref.scope_id)
    if owner is None or other is None or not other.email:
        return 0

    owed = balance_service.pairwise_net(owner.id, other.id, session)
    if owed <= SETTLED_TOLERANCE:
        return 0

    notifier.notify(build_contact_reminder(owner, other, owed, kind="scheduled_reminder"))
    return 1


def _send_group(pref: ReminderPreference, notifier: Notifier, session: Session,
                base_link: str) -> int:
    owner = pref.user
    group = session.get(Group, pref.scope_id)
    if owner is None or group is None:
        return 0
    if group_service.get_membership(group.id, owner.id, session) is None:
        return 0

    sheet = balance_service.group_sheet(group.id, session)
    edges = sheet.edges_to(owner.id)
    users = balance_service.get_users_by_id([e.from_user_id for e in edges], session)

    sent = 0
    for edge in edges:
        debtor = users.get(edge.from_user_id)
        if debtor is None or not debtor.email:
            continue
        notifier.notify(group_service.build_group_reminder(
            group, owner, debtor, edge.amount, base_link, kind="scheduled_reminder",
        ))
        sent += 1
    return sent


def run_due_reminders(
        notifier: Notifier,
        session: Session,
        now: datetime | None = None,
        base_link_for_group=None,
) -> dict:
    """
    Sends every due reminder. A preference counts as handled (last_sent_at
    is stamped) only if at least one message went out for it.

    base_link_for_group, when given, maps a group id to a link for the email.

    Raises:
        AppError(NOTIFICATIONS_UNAVAILABLE, 503) — propagated from the notifier
        on the first failure. The route does not commit, so no preference is
        stamped and the next run retries all of them.
    """
    now = _as_utc(now or datetime.now(timezone.utc))
    prefs = session.execute(select(ReminderPreference).order_by(ReminderPreference.id)).scalars().all()

    checked = sent = 0
    for pref in prefs:
        if not is_due(pref.frequency, pref.last_sent_at, now):
            continue
        checked += 1

        if pref.scope_type == ReminderScope.CONTACT:
            count = _send_contact(pref, notifier, session)
        else:
            link = base_link_for_group(pref.scope_id) if base_link_for_group else ""
            count = _send_group(pref, notifier, session, link)

        if count:
            pref.last_sent_at = now
            session.flush()
            sent += count

    logger.info("reminder run: %s due preference(s), %s message(s) sent", checked, sent)
    return {"due": checked, "sent": sent}
