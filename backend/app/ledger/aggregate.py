"""
ledger/aggregate.py — Per-user aggregate balance across every scope.

This is the dashboard view: one row per counterparty, personal and group
debts folded together. The headline totals are derived from the final rows,
so `you_owe == sum(owes)` and `you_are_owed == sum(owed_by)` hold exactly,
by construction.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable

from backend.app.ledger.accumulator import (
    ALL_SCOPES,
    SETTLED_TOLERANCE,
    ZERO,
    fold_counterparties,
    iter_obligations,
)
from backend.app.ledger.records import (
    ExpenseRecord,
    LedgerDiagnostics,
    SettlementRecord,
    UserId,
    validate_records,
)


@dataclass(frozen=True)
class CounterpartyBalance:
    user_id: UserId
    amount: Decimal           # always positive; direction is which list it is in

    def to_dict(self) -> dict:
        return {"user_id": self.user_id, "amount": self.amount}


@dataclass(frozen=True)
class AggregateBalance:
    you_owe: Decimal
    you_are_owed: Decimal
    total_balance: Decimal
    owes: list[CounterpartyBalance] = field(default_factory=list)
    owed_by: list[CounterpartyBalance] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "you_owe": self.you_owe,
            "you_are_owed": self.you_are_owed,
            "total_balance": self.total_balance,
            "owes": [row.to_dict() for row in self.owes],
            "owed_by": [row.to_dict() for row in self.owed_by],
        }


def aggregate_balance(
        user_id: UserId,
        expenses: Iterable[ExpenseRecord],
        settlements: Iterable[SettlementRecord],
        diagnostics: LedgerDiagnostics | None = None,
) -> AggregateBalance:
    """
    Computes what user_id owes and is owed, per counterparty.

    Records that do not involve user_id contribute nothing, so callers may
    pass a superset. Counterparties whose net magnitude is below
    SETTLED_TOLERANCE (0.01) are dropped.
    """
    expenses = list(expenses)
    settlements = list(settlements)
    validate_records(expenses, settlements)

    owed_to_you, you_owe = fold_counterparties(
        iter_obligations(expenses, settlements, scope=ALL_SCOPES, diagnostics=diagnostics),
        user_id,
    )

    owes: list[CounterpartyBalance] = []
    owed_by: list[CounterpartyBalance] = []

    # Preserve first-seen order so equal amounts sort stably.
    counterparties = list(dict.fromkeys([*owed_to_you, *you_owe]))
    for counterparty in counterparties:
        net = owed_to_you.get(counterparty, ZERO) - you_owe.get(counterparty, ZERO)
        if abs(net) < SETTLED_TOLERANCE:
            continue
        if net > 0:
            owed_by.append(CounterpartyBalance(counterparty, net))
        else:
            owes.append(CounterpartyBalance(counterparty, -net))

    owes.sort(key=lambda row: row.amount, reverse=True)
    owed_by.sort(key=lambda row: row.amount, reverse=True)

    total_owe = sum((row.amount for row in owes), ZERO)
    total_owed = sum((row.amount for row in owed_by), ZERO)

    return AggregateBalance(
        you_owe=total_owe,
        you_are_owed=total_owed,
        total_balance=total_owed - total_owe,
        owes=owes,
        owed_by=owed_by,
    )
