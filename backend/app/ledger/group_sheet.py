"""
ledger/group_sheet.py — Group balance sheet: per-member nets and who owes whom.

Two views of the same group ledger:

  members  One scalar per member (multilateral netting). Positive means the
           group owes the member; negative means the member owes the group.
           Every member appears, in member order, even at zero.
           sum(members) == 0 for any input (see fold_members).

  edges    Bilateral resolution. For every unordered pair of members the two
           directional debts are netted and a single edge is emitted when
           the remainder exceeds SETTLED_TOLERANCE. O(n²) over members;
           groups are tens of people, not thousands.

Only members take part. Splits and settlements naming a non-member are
skipped as data inconsistencies, which keeps the sheet zero-sum.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from itertools import combinations
from typing import Any, Iterable

from backend.app.errors import AppError, ErrorCode
from backend.app.ledger.accumulator import (
    SETTLED_TOLERANCE,
    ZERO,
    fold_directional,
    fold_members,
    group_scope,
    iter_obligations,
)
from backend.app.ledger.records import (
    ExpenseRecord,
    LedgerDiagnostics,
    MemberRecord,
    SettlementRecord,
    UserId,
    validate_records,
)


@dataclass(frozen=True)
class MemberNet:
    user_id: UserId
    net: Decimal

    def to_dict(self) -> dict:
        return {"user_id": self.user_id, "net": self.net}


@dataclass(frozen=True)
class DebtEdge:
    from_user_id: UserId      # debtor
    to_user_id: UserId        # creditor
    amount: Decimal

    def to_dict(self) -> dict:
        return {
            "from": self.from_user_id,
            "to": self.to_user_id,
            "amount": self.amount,
        }


@dataclass(frozen=True)
class GroupBalanceSheet:
    group_id: Any
    members: list[MemberNet] = field(default_factory=list)
    edges: list[DebtEdge] = field(default_factory=list)

    def net_for(self, user_id: UserId) -> Decimal:
        for row in self.members:
            if row.user_id == user_id:
                return row.net
        return ZERO

    def edges_to(self, user_id: UserId) -> list[DebtEdge]:
        """Edges where user_id is the creditor."""
        return [e for e in self.edges if e.to_user_id == user_id]

    def to_dict(self) -> dict:
        return {
            "group_id": self.group_id,
            "members": [row.to_dict() for row in self.members],
            "edges": [edge.to_dict() for edge in self.edges],
        }


def resolve_edges(
        member_ids: list[UserId],
        directional: dict[tuple[UserId, UserId], Decimal],
) -> list[DebtEdge]:
    """Nets each unordered member pair into at most one edge, largest first."""
    edges: list[DebtEdge] = []
    for first, second in combinations(member_ids, 2):
        # Positive net → first owes second.
        net = directional.get((first, second), ZERO) - directional.get((second, first), ZERO)
        if abs(net) <= SETTLED_TOLERANCE:
            continue
        if net > 0:
            edges.append(DebtEdge(first, second, net))
        else:
            edges.append(DebtEdge(second, first, -net))

    edges.sort(key=lambda edge: edge.amount, reverse=True)
    return edges


def group_balance_sheet(
        group_id: Any,
        members: Iterable[MemberRecord],
        expenses: Iterable[ExpenseRecord],
        settlements: Iterable[SettlementRecord],
        diagnostics: LedgerDiagnostics | None = None,
) -> GroupBalanceSheet:
    """
    Builds the balance sheet for one group.

    Records whose group_id is not this group are ignored, so callers may pass
    pre-scoped or unscoped lists.

    Raises:
        AppError(MISSING_FIELD, 400)  -- group_id is None, or a record field is missing.
        AppError(INVALID_FIELD, 400)  -- a record amount is invalid.
    """
    if group_id is None:
        raise AppError(
            ErrorCode.MISSING_FIELD,
            "A group balance sheet needs a group id.",
            400,
            field="group_id",
        )

    member_ids = list(dict.fromkeys(m.user_id for m in members))
    expenses = list(expenses)
    settlements = list(settlements)
    validate_records(expenses, settlements)

    known = frozenset(member_ids)
    scope = group_scope(group_id)

    # Materialised once so both folds see the same stream (and diagnostics
    # are recorded once, not twice).
    obligations = list(
        iter_obligations(
            expenses, settlements,
            scope=scope, known_users=known, diagnostics=diagnostics,
        )
    )

    per_member = fold_members(obligations)
    member_rows = [MemberNet(uid, per_member.get(uid, ZERO)) for uid in member_ids]

    return GroupBalanceSheet(
        group_id=group_id,
        members=member_rows,
        edges=resolve_edges(member_ids, fold_directional(obligations)),
    )
