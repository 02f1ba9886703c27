"""
ledger — the pure balance engine.

No Flask, no SQLAlchemy, no I/O. Everything here takes typed records
(see records.py) and returns plain values or frozen dataclasses with a
to_dict() for serialisation. Services in app/services/ fetch the records
and call into this package; nothing else computes balances.
"""

from backend.app.ledger.accumulator import (
    ALL_SCOPES,
    PAIRWISE_SNAP_TOLERANCE,
    PERSONAL,
    SETTLED_TOLERANCE,
    Obligation,
    Scope,
    group_scope,
    iter_obligations,
)
from backend.app.ledger.aggregate import AggregateBalance, CounterpartyBalance, aggregate_balance
from backend.app.ledger.group_sheet import DebtEdge, GroupBalanceSheet, MemberNet, group_balance_sheet
from backend.app.ledger.pairwise import (
    contact_ids,
    expense_history,
    net_balance,
    settlements_between,
    shared_expenses,
)
from backend.app.ledger.records import (
    DEFAULT_CATEGORY,
    ExpenseRecord,
    LedgerDiagnostics,
    MemberRecord,
    SettlementRecord,
    SplitRecord,
    validate_records,
)
from backend.app.ledger.spending import (
    SpendingBucket,
    category_spending,
    monthly_spending,
    total_spent,
)

__all__ = [
    "ALL_SCOPES",
    "DEFAULT_CATEGORY",
    "PAIRWISE_SNAP_TOLERANCE",
    "PERSONAL",
    "SETTLED_TOLERANCE",
    "AggregateBalance",
    "CounterpartyBalance",
    "DebtEdge",
    "ExpenseRecord",
    "GroupBalanceSheet",
    "LedgerDiagnostics",
    "MemberNet",
    "MemberRecord",
    "Obligation",
    "Scope",
    "SettlementRecord",
    "SpendingBucket",
    "SplitRecord",
    "aggregate_balance",
    "category_spending",
    "contact_ids",
    "expense_history",
    "group_balance_sheet",
    "group_scope",
    "iter_obligations",
    "monthly_spending",
    "net_balance",
    "settlements_between",
    "shared_expenses",
    "total_spent",
    "validate_records",
]
