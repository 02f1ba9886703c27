"""
ledger/accumulator.py — The one place the ledger's sign convention lives.

Every balance in the system is a fold over a stream of Obligations:

    Obligation(debtor, creditor, amount)  ==  "debtor owes creditor amount"

  - An expense yields one obligation per UNPAID split that does not belong
    to the payer: split holder owes payer the split amount.
  - A settlement yields one obligation with a NEGATIVE amount: the payer's
    debt to the receiver shrinks by the settlement amount.

The four computations (pairwise, aggregate, group sheet, spending) differ
only in which records they feed in and which fold they apply. None of them
re-derive signs on their own. If a sign looks wrong anywhere, fix it here.

Canonical convention (pairwise fold):
    net(A, B) > 0  →  B owes A
    net(A, B) < 0  →  A owes B
    settlement A → B increases net(A, B)

Data inconsistencies (split sum mismatch, duplicate split holder,
self-settlement, unknown participant) are skipped and reported through
LedgerDiagnostics, never raised.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Collection, Iterable, Iterator

from backend.app.ledger.records import (
    ExpenseRecord,
    LedgerDiagnostics,
    SettlementRecord,
    UserId,
)

logger = logging.getLogger(__name__)


# ── Tolerances ─────────────────────────────────────────────────────────────
# One constant per purpose. Do not inline other thresholds in callers.

ZERO = Decimal("0")

# A pairwise net smaller than this is floating/rounding dust → exactly zero.
PAIRWISE_SNAP_TOLERANCE = Decimal("0.05")

# Per-counterparty rows, group edges and the split-sum consistency check.
SETTLED_TOLERANCE = Decimal("0.01")


# ── Scope ──────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Scope:
    """Which records a computation may look at."""

    kind: str                 # "all" | "personal" | "group"
    group_id: Any = None

    def admits(self, record: ExpenseRecord | SettlementRecord) -> bool:
        if self.kind == "personal":
            return record.group_id is None
        if self.kind == "group":
            return record.group_id is not None and record.group_id == self.group_id
        return True


ALL_SCOPES = Scope("all")
PERSONAL   = Scope("personal")


def group_scope(group_id: Any) -> Scope:
    return Scope("group", group_id)


# ── Obligation stream ──────────────────────────────────────────────────────

@dataclass(frozen=True)
class Obligation:
    debtor: UserId
    creditor: UserId
    amount: Decimal           # negative for settlements
    source: str               # "expense" | "settlement"
    record_id: Any = None


def _skip(
        diagnostics: LedgerDiagnostics | None,
        kind: str,
        record_id: Any,
        reason: str,
        user_id: UserId | None = None,
) -> None:
    logger.warning(
        "Ledger skipped %s %r%s: %s",
        kind,
        record_id,
        f" (user {user_id!r})" if user_id is not None else "",
        reason,
    )
    if diagnostics is not None:
        diagnostics.record(kind, record_id, reason, user_id)


def _expense_inconsistency(expense: ExpenseRecord) -> str | None:
    """Returns why an expense cannot be trusted, or None if it is consistent."""
    holders = [s.user_id for s in expense.splits]
    if len(holders) != len(set(holders)):
        return "duplicate split holder"

    split_total = sum((s.amount for s in expense.splits), ZERO)
    if abs(split_total - expense.amount) > SETTLED_TOLERANCE:
        return f"splits sum to {split_total}, expense amount is {expense.amount}"

    return None


def expense_obligations(
        expense: ExpenseRecord,
        known_users: Collection[UserId] | None = None,
        diagnostics: LedgerDiagnostics | None = None,
) -> Iterator[Obligation]:
    """
    Yields "split holder owes payer" for each outstanding split.

    known_users, when given, is the closed set of legitimate participants
    (e.g. a group's members). A payer outside it voids the whole expense;
    a split holder outside it voids only that split.
    """
    reason = _expense_inconsistency(expense)
    if reason is not None:
        _skip(diagnostics, "expense", expense.id, reason)
        return

    payer = expense.paid_by_user_id
    if known_users is not None and payer not in known_users:
        _skip(diagnostics, "expense", expense.id, "payer is not a known participant", payer)
        return

    for split in expense.splits:
        if split.paid or split.user_id == payer:
            continue
        if known_users is not None and split.user_id not in known_users:
            _skip(
                diagnostics, "split", expense.id,
                "split holder is not a known participant", split.user_id,
            )
            continue
        yield Obligation(split.user_id, payer, split.amount, "expense", expense.id)


def settlement_obligation(
        settlement: SettlementRecord,
        known_users: Collection[UserId] | None = None,
        diagnostics: LedgerDiagnostics | None = None,
) -> Obligation | None:
    """Returns the (negative) obligation a settlement represents, or None if skipped."""
    payer, receiver = settlement.paid_by_user_id, settlement.received_by_user_id

    if payer == receiver:
        _skip(diagnostics, "settlement", settlement.id, "payer and receiver are the same user", payer)
        return None

    if known_users is not None:
        for party in (payer, receiver):
            if party not in known_users:
                _skip(
                    diagnostics, "settlement", settlement.id,
                    "party is not a known participant", party,
                )
                return None

    return Obligation(payer, receiver, -settlement.amount, "settlement", settlement.id)


def iter_obligations(
        expenses: Iterable[ExpenseRecord] = (),
        settlements: Iterable[SettlementRecord] = (),
        scope: Scope = ALL_SCOPES,
        known_users: Collection[UserId] | None = None,
        diagnostics: LedgerDiagnostics | None = None,
) -> Iterator[Obligation]:
    """The accumulator primitive: every record in scope, as obligations."""
    for expense in expenses:
        if scope.admits(expense):
            yield from expense_obligations(expense, known_users, diagnostics)

    for settlement in settlements:
        if not scope.admits(settlement):
            continue
        obligation = settlement_obligation(settlement, known_users, diagnostics)
        if obligation is not None:
            yield obligation


# ── Folds (output shapes) ──────────────────────────────────────────────────

def fold_pair(
        obligations: Iterable[Obligation],
        user_a: UserId,
        user_b: UserId,
) -> Decimal:
    """Scalar net(A, B). Obligations not between A and B are ignored."""
    net = ZERO
    for ob in obligations:
        if ob.creditor == user_a and ob.debtor == user_b:
            net += ob.amount
        elif ob.creditor == user_b and ob.debtor == user_a:
            net -= ob.amount
    return net


def fold_counterparties(
        obligations: Iterable[Obligation],
        user_id: UserId,
) -> tuple[dict[UserId, Decimal], dict[UserId, Decimal]]:
    """
    Per-counterparty buckets from user_id's point of view.

    Returns (owed_to_you, you_owe), both keyed by counterparty. A settlement
    the user paid lowers you_owe[receiver]; one they received lowers
    owed_to_you[payer]. Buckets may go negative; callers net them.
    """
    owed_to_you: dict[UserId, Decimal] = defaultdict(Decimal)
    you_owe: dict[UserId, Decimal] = defaultdict(Decimal)

    for ob in obligations:
        if ob.creditor == user_id:
            owed_to_you[ob.debtor] += ob.amount
        elif ob.debtor == user_id:
            you_owe[ob.creditor] += ob.amount

    return dict(owed_to_you), dict(you_owe)


def fold_members(obligations: Iterable[Obligation]) -> dict[UserId, Decimal]:
    """
    One scalar per participant: creditors up, debtors down.

    Because every obligation moves the same amount in both directions,
    sum(result.values()) == 0 for any input.
    """
    net: dict[UserId, Decimal] = defaultdict(Decimal)
    for ob in obligations:
        net[ob.creditor] += ob.amount
        net[ob.debtor]   -= ob.amount
    return dict(net)


def fold_directional(
        obligations: Iterable[Obligation],
) -> dict[tuple[UserId, UserId], Decimal]:
    """Directional map keyed by (debtor, creditor), before pairwise netting."""
    owed: dict[tuple[UserId, UserId], Decimal] = defaultdict(Decimal)
    for ob in obligations:
        owed[(ob.debtor, ob.creditor)] += ob.amount
    return dict(owed)


def snap_to_zero(value: Decimal, tolerance: Decimal = PAIRWISE_SNAP_TOLERANCE) -> Decimal:
    """Returns ZERO when |value| < tolerance, else value unchanged."""
    if abs(value) < tolerance:
        return ZERO
    return value
