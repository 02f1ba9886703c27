"""
services/expense_service.py — Expense business logic.

Rules enforced here:
  SPLIT_SUM_MISMATCH (422)     — |sum(splits.amount) - amount| > 0.01
  PAYER_NOT_MEMBER (422)       — group expense paid by a non-member
  SPLIT_USER_NOT_MEMBER (422)  — group expense split with a non-member
  FORBIDDEN (403)              — group: caller not a member;
                                 personal: caller neither payer nor split holder
  USER_NOT_FOUND (404)         — payer or split holder does not exist

Expenses are immutable once created. The split amounts are taken as sent:
the client derives them from split_type (equal / percentage / exact).

Layer rules:
  - No Flask imports. Receives plain ints and dicts; returns dicts or raises AppError.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy.orm import Session

from backend.app.errors import AppError, ErrorCode
from backend.app.ledger import DEFAULT_CATEGORY, SETTLED_TOLERANCE
from backend.app.ledger.spending import to_epoch_ms
from backend.app.models.expense import Expense
from backend.app.models.split import Split
from backend.app.models.user import User
from backend.app.services import balance_service, group_service, user_service
from backend.app.services.notifications import NotificationEvent, Notifier

logger = logging.getLogger(__name__)


# ── Private helpers ────────────────────────────────────────────────────────

def _validate_split_sum(splits: list[dict], expected_amount: Decimal) -> None:
    """
    Raises SPLIT_SUM_MISMATCH (422) when the shares miss the amount by more
    than a cent. Same tolerance the ledger uses to reject stored expenses.
    """
    total = sum((s["amount"] for s in splits), Decimal("0"))
    if abs(total - expected_amount) > SETTLED_TOLERANCE:
        raise AppError(
            ErrorCode.SPLIT_SUM_MISMATCH,
            f"Split amounts ({total}) do not equal expense amount ({expected_amount}).",
            422,
            field="splits",
        )


def _check_group_participants(group_id: int, payer_id: int, split_user_ids: list[int],
                              session: Session) -> None:
    if group_service.get_membership(group_id, payer_id, session) is None:
        raise AppError(
            ErrorCode.PAYER_NOT_MEMBER,
            f"User {payer_id} is not a member of group {group_id}.",
            422,
            field="paid_by_user_id",
        )
    for uid in split_user_ids:
        if group_service.get_membership(group_id, uid, session) is None:
            raise AppError(
                ErrorCode.SPLIT_USER_NOT_MEMBER,
                f"User {uid} is not a member of group {group_id}.",
                422,
                field="splits",
            )


def _check_personal_participants(caller_id: int, payer_id: int, split_user_ids: list[int],
                                 session: Session) -> None:
    if caller_id != payer_id and caller_id not in split_user_ids:
        raise AppError(
            ErrorCode.FORBIDDEN,
            "You can only record personal expenses you are part of.",
            403,
        )
    for uid in {payer_id, *split_user_ids}:
        user_service.get_user_or_404(uid, session)


def _build_expense_notice(expense: Expense, payer: User, holder: User, share: Decimal) -> NotificationEvent:
    where = f" in \"{expense.group.name}\"" if expense.group is not None else ""
    return NotificationEvent(
        kind="expense_created",
        recipient_email=holder.email,
        recipient_name=holder.name,
        subject=f"New expense{where}: {expense.description}",
        body=(
            f"Hi {holder.name or 'there'},\n\n"
            f"{payer.name or 'Someone'} added \"{expense.description}\" "
            f"({expense.amount}){where}.\n"
            f"Your share is {share}."
        ),
        context={"expense_id": expense.id, "amount": str(share)},
    )


def _notify_split_holders(expense: Expense, caller_id: int, notifier: Notifier,
                          session: Session) -> None:
    """
    Best effort: a notifier failure is logged and never undoes the expense.
    """
    holders = [
        s for s in expense.splits
        if not s.paid and s.user_id not in (expense.paid_by_user_id, caller_id)
    ]
    if not holders:
        return

    users = balance_service.get_users_by_id(
        [s.user_id for s in holders] + [expense.paid_by_user_id], session,
    )
    payer = users.get(expense.paid_by_user_id)
    for split in holders:
        holder = users.get(split.user_id)
        if holder is None or payer is None:
            continue
        try:
            notifier.notify(_build_expense_notice(expense, payer, holder, split.amount))
        except AppError as exc:
            logger.warning("expense %s notice to user %s not sent: %s",
                           expense.id, holder.id, exc.message)


# ── Public service functions ───────────────────────────────────────────────

def create_expense(
        caller_id: int,
        data: dict,
        session: Session,
        notifier: Notifier | None = None,
) -> dict:
    """
    Creates an expense with its splits.

    Args:
        caller_id: The identified user (flask.g.user_id, passed by the route).
        data:      Validated dict from CreateExpenseSchema.
        notifier:  When given, unpaid split holders other than the payer and
                   caller are told about the new expense.

    Returns: the serialised expense.
    """
    payer_id: int = data.get("paid_by_user_id") or caller_id
    splits: list[dict] = data["splits"]
    split_user_ids = [s["user_id"] for s in splits]
    group_id: int | None = data.get("group_id")

    if group_id is not None:
        group_service.get_group_or_404(group_id, session)
        group_service.require_member(group_id, caller_id, session)
        _check_group_participants(group_id, payer_id, split_user_ids, session)
    else:
        _check_personal_participants(caller_id, payer_id, split_user_ids, session)

    _validate_split_sum(splits, data["amount"])

    date = data.get("date")
    if date is None:
        date = to_epoch_ms(datetime.now(timezone.utc))

    expense = Expense(
        description=data["description"].strip(),
        amount=data["amount"],
        category=(data.get("category") or "").strip() or DEFAULT_CATEGORY,
        date=date,
        paid_by_user_id=payer_id,
        split_type=data["split_type"],
        group_id=group_id,
        created_by_user_id=caller_id,
    )
    expense.splits = [
        Split(user_id=s["user_id"], amount=s["amount"], paid=bool(s.get("paid", False)))
        for s in splits
    ]
    session.add(expense)
    session.flush()

    logger.info("expense %s (%s) created by user %s", expense.id, expense.amount, caller_id)

    if notifier is not None:
        _notify_split_holders(expense, caller_id, notifier, session)

    return group_service.serialize_expense(expense)
