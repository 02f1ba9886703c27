"""
Unit tests for expense_service: split-sum tolerance, participant checks and
split-holder notices.

DB-free: group/user lookups are patched, the session is a MagicMock.
"""

from __future__ import annotations

from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from backend.app.errors import AppError, ErrorCode
from backend.app.models.expense import SplitType
from backend.app.services import expense_service
from backend.app.services.notifications import LoggingNotifier

_PATCH_GET_USER    = "backend.app.services.user_service.get_user_or_404"
_PATCH_USERS_BY_ID = "backend.app.services.balance_service.get_users_by_id"
_PATCH_GROUP_404   = "backend.app.services.group_service.get_group_or_404"
_PATCH_REQUIRE     = "backend.app.services.group_service.require_member"
_PATCH_MEMBERSHIP  = "backend.app.services.group_service.get_membership"

USERS = {
    1: SimpleNamespace(id=1, name="Ada", email="ada@example.com"),
    2: SimpleNamespace(id=2, name="Ben", email="ben@example.com"),
    3: SimpleNamespace(id=3, name="Cat", email="cat@example.com"),
}


def _data(**overrides) -> dict:
    data = {
        "description": " Groceries ",
        "amount": Decimal("60.00"),
        "paid_by_user_id": None,
        "group_id": None,
        "category": None,
        "date": 1_760_000_000_000,
        "split_type": SplitType.EQUAL,
        "splits": [
            {"user_id": 1, "amount": Decimal("20.00"), "paid": False},
            {"user_id": 2, "amount": Decimal("20.00"), "paid": False},
            {"user_id": 3, "amount": Decimal("20.00"), "paid": True},
        ],
    }
    data.update(overrides)
    return data


# ── Split sum ──────────────────────────────────────────────────────────────

def test_split_sum_within_a_cent_passes():
    splits = [{"amount": Decimal("33.33")}, {"amount": Decimal("33.33")}, {"amount": Decimal("33.33")}]

    expense_service._validate_split_sum(splits, Decimal("100.00"))


def test_split_sum_mismatch():
    with pytest.raises(AppError) as exc_info:
        expense_service._validate_split_sum([{"amount": Decimal("40")}], Decimal("40.02"))

    err = exc_info.value
    assert err.code == ErrorCode.SPLIT_SUM_MISMATCH
    assert err.http_status == 422
    assert err.field == "splits"


# ── Participants ───────────────────────────────────────────────────────────

def test_personal_expense_caller_must_take_part():
    with pytest.raises(AppError) as exc_info:
        expense_service.create_expense(9, _data(paid_by_user_id=1), MagicMock())

    assert exc_info.value.code == ErrorCode.FORBIDDEN


def test_personal_expense_unknown_user():
    def lookup(uid, session):
        if uid == 3:
            raise AppError(ErrorCode.USER_NOT_FOUND, "missing", 404)
        return USERS[uid]

    with patch(_PATCH_GET_USER, side_effect=lookup):
        with pytest.raises(AppError) as exc_info:
            expense_service.create_expense(1, _data(), MagicMock())

    assert exc_info.value.code == ErrorCode.USER_NOT_FOUND


def test_group_expense_payer_must_be_member():
    with patch(_PATCH_GROUP_404), patch(_PATCH_REQUIRE), \
            patch(_PATCH_MEMBERSHIP, side_effect=lambda g, uid, s: None if uid == 2 else object()):
        with pytest.raises(AppError) as exc_info:
            expense_service.create_expense(1, _data(group_id=5, paid_by_user_id=2), MagicMock())

    assert exc_info.value.code == ErrorCode.PAYER_NOT_MEMBER


def test_group_expense_split_holder_must_be_member():
    with patch(_PATCH_GROUP_404), patch(_PATCH_REQUIRE), \
            patch(_PATCH_MEMBERSHIP, side_effect=lambda g, uid, s: None if uid == 3 else object()):
        with pytest.raises(AppError) as exc_info:
            expense_service.create_expense(1, _data(group_id=5), MagicMock())

    assert exc_info.value.code == ErrorCode.SPLIT_USER_NOT_MEMBER
    assert exc_info.value.http_status == 422


def test_group_checks_run_before_split_sum():
    with patch(_PATCH_GROUP_404), \
            patch(_PATCH_REQUIRE, side_effect=AppError(ErrorCode.FORBIDDEN, "no", 403)):
        with pytest.raises(AppError) as exc_info:
            expense_service.create_expense(1, _data(group_id=5, amount=Decimal("1")), MagicMock())

    assert exc_info.value.code == ErrorCode.FORBIDDEN


# ── Creation ───────────────────────────────────────────────────────────────

def test_create_personal_expense_serialises_and_defaults():
    session = MagicMock()

    with patch(_PATCH_GET_USER, side_effect=lambda uid, s: USERS[uid]):
        result = expense_service.create_expense(1, _data(), session)

    session.add.assert_called_once()
    session.flush.assert_called()
    assert result["description"] == "Groceries"
    assert result["category"] == "Other"
    assert result["paid_by_user_id"] == 1
    assert result["created_by_user_id"] == 1
    assert result["split_type"] == "equal"
    assert [s["paid"] for s in result["splits"]] == [False, False, True]


def test_unpaid_holders_are_notified():
    notifier = LoggingNotifier()

    with patch(_PATCH_GET_USER, side_effect=lambda uid, s: USERS[uid]), \
            patch(_PATCH_USERS_BY_ID, return_value=USERS):
        expense_service.create_expense(1, _data(category="Food"), MagicMock(), notifier=notifier)

    # User 1 is payer and caller, user 3's split is already paid.
    assert [e.recipient_email for e in notifier.sent] == ["ben@example.com"]
    assert notifier.sent[0].kind == "expense_created"
    assert "20.00" in notifier.sent[0].body


def test_notifier_failure_does_not_fail_the_expense():
    notifier = MagicMock()
    notifier.notify.side_effect = AppError(ErrorCode.NOTIFICATIONS_UNAVAILABLE, "down", 503)

    with patch(_PATCH_GET_USER, side_effect=lambda uid, s: USERS[uid]), \
            patch(_PATCH_USERS_BY_ID, return_value=USERS):
        result = expense_service.create_expense(1, _data(), MagicMock(), notifier=notifier)

    assert result["amount"] == Decimal("60.00")
    notifier.notify.assert_called_once()
