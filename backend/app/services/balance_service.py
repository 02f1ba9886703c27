"""
services/balance_service.py — Fetch records, run the ledger, shape responses.

All balance arithmetic lives in app/ledger/. This module only:
  1. Queries the ORM rows a computation needs.
  2. Converts them to ledger records (to_expense_record, ...).
  3. Calls the ledger and turns the result into plain dicts.

Layer rules:
  - No Flask imports. Receives ids and a SQLAlchemy Session as arguments.
  - Returns plain Python dicts and lists; Decimals stay Decimals (the app's
    JSON provider renders them as strings).
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import or_, select
from sqlalchemy.orm import Session, selectinload

from backend.app.errors import WarningCode
from backend.app.ledger import (
    AggregateBalance,
    ExpenseRecord,
    GroupBalanceSheet,
    LedgerDiagnostics,
    MemberRecord,
    SettlementRecord,
    SplitRecord,
    aggregate_balance,
    group_balance_sheet,
    net_balance,
)
from backend.app.ledger.spending import to_epoch_ms
from backend.app.models.expense import Expense
from backend.app.models.membership import Membership
from backend.app.models.settlement import Settlement
from backend.app.models.split import Split
from backend.app.models.user import User


# ── ORM → ledger record converters ─────────────────────────────────────────

def to_expense_record(expense: Expense) -> ExpenseRecord:
    return ExpenseRecord(
        id=expense.id,
        amount=expense.amount,
        paid_by_user_id=expense.paid_by_user_id,
        splits=tuple(
            SplitRecord(user_id=s.user_id, amount=s.amount, paid=bool(s.paid))
            for s in expense.splits
        ),
        date=expense.date,
        description=expense.description,
        category=expense.category,
        group_id=expense.group_id,
        created_at=to_epoch_ms(expense.created_at) if expense.created_at else None,
    )


def to_settlement_record(settlement: Settlement) -> SettlementRecord:
    return SettlementRecord(
        id=settlement.id,
        amount=settlement.amount,
        paid_by_user_id=settlement.paid_by_user_id,
        received_by_user_id=settlement.received_by_user_id,
        date=settlement.date,
        note=settlement.note or "",
        group_id=settlement.group_id,
    )


def to_member_record(membership: Membership) -> MemberRecord:
    return MemberRecord(user_id=membership.user_id, role=membership.role.value)


# ── Data access helpers ────────────────────────────────────────────────────

def _expense_query():
    return select(Expense).options(selectinload(Expense.splits))


def get_group_expenses(group_id: int, session: Session) -> list[Expense]:
    stmt = (
        _expense_query()
        .where(Expense.group_id == group_id)
        .order_by(Expense.date.desc(), Expense.id.desc())
    )
    return list(session.execute(stmt).scalars().all())


def get_group_settlements(group_id: int, session: Session) -> list[Settlement]:
    stmt = (
        select(Settlement)
        .where(Settlement.group_id == group_id)
        .order_by(Settlement.date.desc(), Settlement.id.desc())
    )
    return list(session.execute(stmt).scalars().all())


def get_memberships(group_id: int, session: Session) -> list[Membership]:
    """Members in join order — the order the balance sheet lists them in."""
    stmt = (
        select(Membership)
        .where(Membership.group_id == group_id)
        .order_by(Membership.id.asc())
    )
    return list(session.execute(stmt).scalars().all())


def get_user_expenses(user_id: int, session: Session) -> list[Expense]:
    """Every expense, any scope, that user_id paid for or holds a split in."""
    holds_split = select(Split.expense_id).where(Split.user_id == user_id)
    stmt = (
        _expense_query()
        .where(
            or_(
                Expense.paid_by_user_id == user_id,
                Expense.id.in_(holds_split),
            )
        )
        .order_by(Expense.id.asc())
    )
    return list(session.execute(stmt).scalars().all())


def get_user_settlements(user_id: int, session: Session) -> list[Settlement]:
    stmt = (
        select(Settlement)
        .where(
            or_(
                Settlement.paid_by_user_id == user_id,
                Settlement.received_by_user_id == user_id,
            )
        )
        .order_by(Settlement.id.asc())
    )
    return list(session.execute(stmt).scalars().all())


def get_personal_expenses_between(user_a: int, user_b: int, session: Session) -> list[Expense]:
    """
    Personal expenses paid by either user. The ledger narrows these further to
    expenses that actually link the two.
    """
    stmt = (
        _expense_query()
        .where(
            Expense.group_id.is_(None),
            Expense.paid_by_user_id.in_((user_a, user_b)),
        )
        .order_by(Expense.date.desc(), Expense.id.desc())
    )
    return list(session.execute(stmt).scalars().all())


def get_personal_expenses_involving(user_ids, session: Session) -> list[Expense]:
    """
    Personal expenses that any of user_ids paid for or holds a split in,
    newest first. Paid splits count.
    """
    ids = tuple(user_ids)
    holds_split = select(Split.expense_id).where(Split.user_id.in_(ids))
    stmt = (
        _expense_query()
        .where(
            Expense.group_id.is_(None),
            or_(
                Expense.paid_by_user_id.in_(ids),
                Expense.id.in_(holds_split),
            ),
        )
        .order_by(Expense.date.desc(), Expense.id.desc())
    )
    return list(session.execute(stmt).scalars().all())


def get_personal_settlements_between(user_a: int, user_b: int, session: Session) -> list[Settlement]:
    stmt = (
        select(Settlement)
        .where(
            Settlement.group_id.is_(None),
            or_(
                (Settlement.paid_by_user_id == user_a) & (Settlement.received_by_user_id == user_b),
                (Settlement.paid_by_user_id == user_b) & (Settlement.received_by_user_id == user_a),
            ),
        )
        .order_by(Settlement.date.desc(), Settlement.id.desc())
    )
    return list(session.execute(stmt).scalars().all())


def get_users_by_id(user_ids, session: Session) -> dict[int, User]:
    ids = set(user_ids)
    if not ids:
        return {}
    users = session.execute(select(User).where(User.id.in_(ids))).scalars().all()
    return {u.id: u for u in users}


# ── Warnings ───────────────────────────────────────────────────────────────

def diagnostics_warnings(diagnostics: LedgerDiagnostics) -> list[dict]:
    """One DATA_INCONSISTENCY warning when the ledger skipped anything."""
    if diagnostics.clean:
        return []
    return [{
        "code": WarningCode.DATA_INCONSISTENCY,
        "message": (
            f"{diagnostics.skipped_count} inconsistent record(s) were left out "
            f"of this balance."
        ),
        "details": diagnostics.to_dict()["skipped"],
    }]


# ── Computations ───────────────────────────────────────────────────────────

def pairwise_net(
        user_id: int,
        other_user_id: int,
        session: Session,
        diagnostics: LedgerDiagnostics | None = None,
) -> Decimal:
    """
    Personal net balance of user_id against other_user_id.
    Positive → other_user_id owes user_id.

    Both users must already have been resolved by the caller.
    """
    expenses = get_personal_expenses_between(user_id, other_user_id, session)
    settlements = get_personal_settlements_between(user_id, other_user_id, session)
    return net_balance(
        user_id,
        other_user_id,
        [to_expense_record(e) for e in expenses],
        [to_settlement_record(s) for s in settlements],
        diagnostics=diagnostics,
    )


def user_aggregate(
        user_id: int,
        session: Session,
        diagnostics: LedgerDiagnostics | None = None,
) -> AggregateBalance:
    expenses = get_user_expenses(user_id, session)
    settlements = get_user_settlements(user_id, session)
    return aggregate_balance(
        user_id,
        [to_expense_record(e) for e in expenses],
        [to_settlement_record(s) for s in settlements],
        diagnostics=diagnostics,
    )


def group_sheet(
        group_id: int,
        session: Session,
        diagnostics: LedgerDiagnostics | None = None,
        memberships: list[Membership] | None = None,
        expenses: list[Expense] | None = None,
        settlements: list[Settlement] | None = None,
) -> GroupBalanceSheet:
    """
    Balance sheet for one group. Pre-fetched rows may be passed in so a
    caller that also lists them does not query twice.
    """
    if memberships is None:
        memberships = get_memberships(group_id, session)
    if expenses is None:
        expenses = get_group_expenses(group_id, session)
    if settlements is None:
        settlements = get_group_settlements(group_id, session)

    return group_balance_sheet(
        group_id,
        [to_member_record(m) for m in memberships],
        [to_expense_record(e) for e in expenses],
        [to_settlement_record(s) for s in settlements],
        diagnostics=diagnostics,
    )


# ── Response builders ──────────────────────────────────────────────────────

def get_dashboard_balances(user_id: int, session: Session) -> tuple[dict, list[dict]]:
    """
    GET /dashboard/balances

    Returns (payload, warnings). Each counterparty row carries the user's
    name and email alongside the ledger's user_id/amount.
    """
    diagnostics = LedgerDiagnostics()
    balance = user_aggregate(user_id, session, diagnostics)

    payload = balance.to_dict()
    users = get_users_by_id(
        [row["user_id"] for row in payload["owes"] + payload["owed_by"]],
        session,
    )
    for row in payload["owes"] + payload["owed_by"]:
        user = users.get(row["user_id"])
        row["name"] = user.name if user else None
        row["email"] = user.email if user else None

    return payload, diagnostics_warnings(diagnostics)
