"""
tests/unit/test_aggregate_balance.py — aggregate_balance across every scope.

What this file proves:
  - Headline totals equal the sum of their rows exactly
  - Rows are netted per counterparty and sorted largest first
  - Personal and group debts with the same person are folded together
  - Near-zero counterparties are dropped
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from backend.app.errors import AppError, ErrorCode
from backend.app.ledger import (
    ExpenseRecord,
    SettlementRecord,
    SplitRecord,
    aggregate_balance,
)

D = Decimal
ME, ANA, BEN, CAL = 10, 11, 12, 13


def _expense(eid, payer, amount, *splits, group_id=None):
    return ExpenseRecord(
        id=eid,
        amount=D(amount),
        paid_by_user_id=payer,
        splits=tuple(SplitRecord(uid, D(amt), False) for uid, amt in splits),
        group_id=group_id,
    )


@pytest.fixture
def records():
    expenses = [
        # ANA owes ME 40 (personal) + 25 (group) = 65
        _expense(1, ME, "80", (ME, "40"), (ANA, "40")),
        _expense(2, ME, "75", (ME, "25"), (ANA, "25"), (BEN, "25"), group_id=5),
        # ME owes CAL 18.50
        _expense(3, CAL, "37", (ME, "18.50"), (CAL, "18.50")),
        # Unrelated to ME
        _expense(4, ANA, "20", (BEN, "20")),
    ]
    settlements = [
        SettlementRecord(1, D("5"), BEN, ME, group_id=5),
    ]
    return expenses, settlements


def test_rows_are_netted_and_sorted(records):
    result = aggregate_balance(ME, *records)

    assert [(r.user_id, r.amount) for r in result.owed_by] == [(ANA, D("65")), (BEN, D("20"))]
    assert [(r.user_id, r.amount) for r in result.owes] == [(CAL, D("18.50"))]


def test_headline_totals_match_rows(records):
    result = aggregate_balance(ME, *records)

    assert result.you_are_owed == sum(r.amount for r in result.owed_by)
    assert result.you_owe == sum(r.amount for r in result.owes)
    assert result.total_balance == result.you_are_owed - result.you_owe == D("66.50")


def test_opposite_debts_with_one_person_are_netted():
    expenses = [
        _expense(1, ME, "30", (ANA, "30")),
        _expense(2, ANA, "50", (ME, "50")),
    ]

    result = aggregate_balance(ME, expenses, [])

    assert result.owed_by == []
    assert [(r.user_id, r.amount) for r in result.owes] == [(ANA, D("20"))]


def test_settled_counterparty_is_dropped():
    expenses = [_expense(1, ME, "30", (ANA, "30"))]
    settlements = [SettlementRecord(1, D("29.995"), ANA, ME)]

    result = aggregate_balance(ME, expenses, settlements)

    assert result.owed_by == []
    assert result.you_are_owed == D("0")


def test_user_with_no_records_has_empty_balance():
    result = aggregate_balance(ME, [], [])

    assert result.to_dict() == {
        "you_owe": D("0"),
        "you_are_owed": D("0"),
        "total_balance": D("0"),
        "owes": [],
        "owed_by": [],
    }


def test_to_dict_rows(records):
    payload = aggregate_balance(ME, *records).to_dict()

    assert payload["owes"] == [{"user_id": CAL, "amount": D("18.50")}]
    assert payload["owed_by"][0] == {"user_id": ANA, "amount": D("65")}


def test_invalid_record_fails_fast():
    bad = ExpenseRecord(id=1, amount=D("-3"), paid_by_user_id=ME)

    with pytest.raises(AppError) as exc_info:
        aggregate_balance(ME, [bad], [])

    assert exc_info.value.code == ErrorCode.INVALID_FIELD
