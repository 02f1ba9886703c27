"""
ledger/pairwise.py — Net balance between exactly two users.

Personal (non-group) records only. Group debts are settled inside their
group and never leak into a contact balance.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable

from backend.app.errors import AppError, ErrorCode
from backend.app.ledger.accumulator import (
    PERSONAL,
    fold_pair,
    iter_obligations,
    snap_to_zero,
)
from backend.app.ledger.records import (
    ExpenseRecord,
    LedgerDiagnostics,
    SettlementRecord,
    UserId,
    validate_records,
)


def shared_expenses(
        expenses: Iterable[ExpenseRecord],
        user_a: UserId,
        user_b: UserId,
) -> list[ExpenseRecord]:
    """Personal expenses in which BOTH users are involved (payer or unpaid split)."""
    return [
        e for e in expenses
        if PERSONAL.admits(e) and e.involves(user_a) and e.involves(user_b)
    ]


def expense_history(
        expenses: Iterable[ExpenseRecord],
        user_a: UserId,
        user_b: UserId,
) -> list[ExpenseRecord]:
    """
    Personal expenses on which both users appear, as payer or split holder.

    Wider than shared_expenses: an expense stays in the history after a
    share in it is marked paid, even though it no longer moves the balance.
    """
    return [
        e for e in expenses
        if PERSONAL.admits(e) and e.appears(user_a) and e.appears(user_b)
    ]


def contact_ids(expenses: Iterable[ExpenseRecord], user_id: UserId) -> set[UserId]:
    """Everyone user_id shares a personal expense with."""
    contacts: set[UserId] = set()
    for expense in expenses:
        if PERSONAL.admits(expense) and expense.appears(user_id):
            contacts |= expense.participants()
    contacts.discard(user_id)
    return contacts


def settlements_between(
        settlements: Iterable[SettlementRecord],
        user_a: UserId,
        user_b: UserId,
) -> list[SettlementRecord]:
    """Personal settlements in either direction between the two users."""
    return [
        s for s in settlements
        if PERSONAL.admits(s) and s.is_between(user_a, user_b)
    ]


def net_balance(
        user_a: UserId,
        user_b: UserId,
        expenses: Iterable[ExpenseRecord],
        settlements: Iterable[SettlementRecord],
        diagnostics: LedgerDiagnostics | None = None,
) -> Decimal:
    """
    Signed net balance of user_a relative to user_b.

    Positive → user_b owes user_a. Negative → user_a owes user_b.
    Results with magnitude below PAIRWISE_SNAP_TOLERANCE (0.05) are exactly 0.

    The record lists may contain unrelated records; anything that is not a
    personal record shared by the two users contributes nothing.

    Raises:
        AppError(INVALID_FIELD, 400)  -- user_a == user_b, or a record is invalid.
        AppError(MISSING_FIELD, 400)  -- a user id or record field is missing.
    """
    if user_a is None or user_b is None:
        raise AppError(
            ErrorCode.MISSING_FIELD,
            "Both user ids are required for a pairwise balance.",
            400,
        )
    if user_a == user_b:
        raise AppError(
            ErrorCode.INVALID_FIELD,
            "A pairwise balance needs two different users.",
            400,
        )

    expenses = list(expenses)
    settlements = list(settlements)
    validate_records(expenses, settlements)

    obligations = iter_obligations(
        shared_expenses(expenses, user_a, user_b),
        settlements_between(settlements, user_a, user_b),
        scope=PERSONAL,
        diagnostics=diagnostics,
    )
    return snap_to_zero(fold_pair(obligations, user_a, user_b))
