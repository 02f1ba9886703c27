"""
Unit tests for reminder_service due rules and the scheduled run.

2026-10-18 is a Sunday; 2026-11-01 is the first of a month (also a Sunday).
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from backend.app.errors import AppError, ErrorCode
from backend.app.models.reminder_preference import ReminderFrequency, ReminderScope
from backend.app.services import reminder_service

WEEKLY = ReminderFrequency.WEEKLY
MONTHLY = ReminderFrequency.MONTHLY

SUNDAY = datetime(2026, 10, 18, 9, 0, tzinfo=timezone.utc)
MONDAY = datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)
FIRST = datetime(2026, 11, 1, 9, 0, tzinfo=timezone.utc)
SECOND = datetime(2026, 11, 2, 9, 0, tzinfo=timezone.utc)


# ── is_due ─────────────────────────────────────────────────────────────────

@pytest.mark.parametrize(
    "frequency, last_sent_at, now, expected",
    [
        (WEEKLY, None, SUNDAY, True),
        (WEEKLY, None, MONDAY, False),
        (WEEKLY, SUNDAY - timedelta(days=7), SUNDAY, True),
        (WEEKLY, SUNDAY - timedelta(hours=3), SUNDAY, False),
        (WEEKLY, SUNDAY - timedelta(days=6), SUNDAY, False),
        (MONTHLY, None, FIRST, True),
        (MONTHLY, None, SECOND, False),
        (MONTHLY, datetime(2026, 10, 1, tzinfo=timezone.utc), FIRST, True),
        (MONTHLY, FIRST - timedelta(hours=10), FIRST, True),
        (MONTHLY, FIRST.replace(hour=1), FIRST, False),
    ],
)
def test_is_due(frequency, last_sent_at, now, expected):
    assert reminder_service.is_due(frequency, last_sent_at, now) is expected


def test_naive_last_sent_at_is_read_as_utc():
    naive = datetime(2026, 10, 17, 9, 0)

    assert reminder_service.is_due(WEEKLY, naive, SUNDAY) is False


# ── save_preference ────────────────────────────────────────────────────────

def test_contact_preference_for_yourself_is_rejected():
    data = {"scope_type": ReminderScope.CONTACT, "scope_id": 4, "frequency": WEEKLY}

    with pytest.raises(AppError) as exc_info:
        reminder_service.save_preference(4, data, MagicMock())

    assert exc_info.value.code == ErrorCode.INVALID_FIELD
    assert exc_info.value.field == "scope_id"


def test_existing_preference_is_updated_in_place():
    existing = SimpleNamespace(
        id=1, user_id=4, scope_type=ReminderScope.CONTACT, scope_id=5,
        frequency=WEEKLY, last_sent_at=None,
    )
    session = MagicMock()
    session.execute.return_value.scalar_one_or_none.return_value = existing
    data = {"scope_type": ReminderScope.CONTACT, "scope_id": 5, "frequency": MONTHLY}

    result = reminder_service.save_preference(4, data, session)

    session.add.assert_not_called()
    assert existing.frequency is MONTHLY
    assert result["frequency"] == "monthly"
    assert result["scope_type"] == "contact"


# ── run_due_reminders ──────────────────────────────────────────────────────

def _pref(pid, scope_type, frequency, last_sent_at=None):
    return SimpleNamespace(
        id=pid, scope_type=scope_type, scope_id=pid + 100,
        frequency=frequency, last_sent_at=last_sent_at,
    )


def test_run_sends_due_reminders_and_stamps_them():
    contact = _pref(1, ReminderScope.CONTACT, WEEKLY)
    group = _pref(2, ReminderScope.GROUP, WEEKLY)
    monthly = _pref(3, ReminderScope.CONTACT, MONTHLY)
    session = MagicMock()
    session.execute.return_value.scalars.return_value.all.return_value = [contact, group, monthly]

    with patch.object(reminder_service, "_send_contact", return_value=1) as send_contact, \
            patch.object(reminder_service, "_send_group", return_value=2) as send_group:
        result = reminder_service.run_due_reminders(
            MagicMock(), session, now=SUNDAY,
            base_link_for_group=lambda gid: f"https://app.example/groups/{gid}",
        )

    assert result == {"due": 2, "sent": 3}
    send_contact.assert_called_once()
    assert send_group.call_args.args[3] == "https://app.example/groups/102"
    assert contact.last_sent_at == SUNDAY
    assert group.last_sent_at == SUNDAY
    assert monthly.last_sent_at is None


def test_preference_with_nothing_to_send_is_not_stamped():
    contact = _pref(1, ReminderScope.CONTACT, WEEKLY)
    session = MagicMock()
    session.execute.return_value.scalars.return_value.all.return_value = [contact]

    with patch.object(reminder_service, "_send_contact", return_value=0):
        result = reminder_service.run_due_reminders(MagicMock(), session, now=SUNDAY)

    assert result == {"due": 1, "sent": 0}
    assert contact.last_sent_at is None
