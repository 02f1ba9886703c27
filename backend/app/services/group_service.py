"""
services/group_service.py — Group and membership business logic.

Authorization rules:
  - Reading a group (summary):       any member       (FORBIDDEN 403 otherwise)
  - Adding a member / deleting:      admin only
  - Reminding members:               any member

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Commits are the route's responsibility — only flush here.
  - Notifications go through the notifier argument; nothing here sends mail.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from backend.app.errors import AppError, ErrorCode
from backend.app.ledger import LedgerDiagnostics
from backend.app.models.group import Group
from backend.app.models.membership import MemberRole, Membership
from backend.app.models.user import User
from backend.app.services import balance_service, user_service
from backend.app.services.notifications import NotificationEvent, Notifier

logger = logging.getLogger(__name__)


# ── Private helpers ────────────────────────────────────────────────────────

def get_group_or_404(group_id: int, session: Session) -> Group:
    """Returns the Group or raises GROUP_NOT_FOUND (404)."""
    group = session.get(Group, group_id)
    if group is None:
        raise AppError(
            ErrorCode.GROUP_NOT_FOUND,
            f"Group {group_id} does not exist.",
            404,
        )
    return group


def get_membership(group_id: int, user_id: int, session: Session) -> Membership | None:
    return session.execute(
        select(Membership).where(
            Membership.group_id == group_id,
            Membership.user_id == user_id,
        )
    ).scalar_one_or_none()


def require_member(group_id: int, user_id: int, session: Session) -> Membership:
    """
    Raises FORBIDDEN (403) if user_id is not a member of group_id.
    Non-members receive 403, not 404.
    """
    membership = get_membership(group_id, user_id, session)
    if membership is None:
        raise AppError(
            ErrorCode.FORBIDDEN,
            f"You are not a member of group {group_id}.",
            403,
        )
    return membership


def _require_admin(group_id: int, user_id: int, action: str, session: Session) -> None:
    membership = require_member(group_id, user_id, session)
    if not membership.is_admin:
        raise AppError(
            ErrorCode.FORBIDDEN,
            f"Only a group admin may {action}.",
            403,
        )


def _serialize_member(membership: Membership) -> dict:
    user = membership.user
    return {
        "user_id": membership.user_id,
        "name": user.name if user else None,
        "email": user.email if user else None,
        "image_url": user.image_url if user else None,
        "role": membership.role.value,
    }


def _serialize_group(group: Group, memberships: list[Membership] | None = None) -> dict:
    payload = {
        "id": group.id,
        "name": group.name,
        "description": group.description,
        "created_by_user_id": group.created_by_user_id,
        "created_at": group.created_at.isoformat() if group.created_at else None,
    }
    if memberships is not None:
        payload["members"] = [_serialize_member(m) for m in memberships]
    return payload


def serialize_expense(expense) -> dict:
    return {
        "id": expense.id,
        "description": expense.description,
        "amount": expense.amount,
        "category": expense.category,
        "date": expense.date,
        "paid_by_user_id": expense.paid_by_user_id,
        "split_type": expense.split_type.value,
        "group_id": expense.group_id,
        "created_by_user_id": expense.created_by_user_id,
        "splits": [
            {"user_id": s.user_id, "amount": s.amount, "paid": bool(s.paid)}
            for s in expense.splits
        ],
    }


def serialize_settlement(settlement) -> dict:
    return {
        "id": settlement.id,
        "amount": settlement.amount,
        "note": settlement.note,
        "date": settlement.date,
        "paid_by_user_id": settlement.paid_by_user_id,
        "received_by_user_id": settlement.received_by_user_id,
        "group_id": settlement.group_id,
        "created_by_user_id": settlement.created_by_user_id,
    }


# ── Public service functions ───────────────────────────────────────────────

def create_group(name: str, description: str, creator_id: int, session: Session) -> dict:
    """
    Creates a new group. The creator becomes its admin and first member.
    """
    group = Group(name=name.strip(), description=(description or "").strip(),
                  created_by_user_id=creator_id)
    session.add(group)
    session.flush()  # populate group.id before creating membership

    membership = Membership(user_id=creator_id, group_id=group.id, role=MemberRole.ADMIN)
    session.add(membership)
    session.flush()

    logger.info("group %s created by user %s", group.id, creator_id)
    return _serialize_group(group, [membership])


def list_groups(user_id: int, session: Session) -> list[dict]:
    """
    Groups the user belongs to, oldest first, each with a member count and
    the caller's own net position in it.
    """
    stmt = (
        select(Group)
        .join(Membership, Group.id == Membership.group_id)
        .where(Membership.user_id == user_id)
        .order_by(Group.created_at.asc(), Group.id.asc())
    )
    groups = session.execute(stmt).scalars().all()

    result = []
    for group in groups:
        sheet = balance_service.group_sheet(group.id, session)
        payload = _serialize_group(group)
        payload["member_count"] = session.execute(
            select(func.count()).select_from(Membership).where(Membership.group_id == group.id)
        ).scalar_one()
        payload["your_balance"] = sheet.net_for(user_id)
        result.append(payload)
    return result


def add_member(
        group_id: int,
        caller_id: int,
        data: dict,
        session: Session,
) -> dict:
    """
    Adds a user to a group. Only an admin may call this.

    data comes from AddMemberSchema: user_id, or email (+ optional name) —
    an unknown email creates the user.

    Raises:
      AppError(GROUP_NOT_FOUND, 404)  — group does not exist
      AppError(FORBIDDEN, 403)        — caller is not an admin of the group
      AppError(USER_NOT_FOUND, 404)   — user_id does not exist
      AppError(ALREADY_MEMBER, 409)   — user is already in the group
    """
    get_group_or_404(group_id, session)
    _require_admin(group_id, caller_id, "add members", session)

    if data.get("user_id") is not None:
        target = user_service.get_user_or_404(data["user_id"], session)
    else:
        target, _ = user_service.get_or_create_user(data["email"], session, name=data.get("name"))

    if get_membership(group_id, target.id, session) is not None:
        raise AppError(
            ErrorCode.ALREADY_MEMBER,
            f"User {target.id} is already a member of group {group_id}.",
            409,
        )

    membership = Membership(user_id=target.id, group_id=group_id, role=MemberRole.MEMBER)
    session.add(membership)
    session.flush()

    return _serialize_member(membership)


def get_group_summary(group_id: int, caller_id: int, session: Session) -> tuple[dict, list[dict]]:
    """
    GET /groups/:id/summary — the group, its members, expenses, settlements
    and balance sheet in one payload.

    Returns (payload, warnings).
    """
    group = get_group_or_404(group_id, session)
    require_member(group_id, caller_id, session)

    memberships = balance_service.get_memberships(group_id, session)
    expenses = balance_service.get_group_expenses(group_id, session)
    settlements = balance_service.get_group_settlements(group_id, session)

    diagnostics = LedgerDiagnostics()
    sheet = balance_service.group_sheet(
        group_id, session, diagnostics,
        memberships=memberships, expenses=expenses, settlements=settlements,
    )

    payload = {
        "group": _serialize_group(group, memberships),
        "expenses": [serialize_expense(e) for e in expenses],
        "settlements": [serialize_settlement(s) for s in settlements],
        "balances": sheet.to_dict(),
    }
    return payload, balance_service.diagnostics_warnings(diagnostics)


def delete_group(group_id: int, caller_id: int, session: Session) -> None:
    """
    Deletes the group with its memberships, expenses and settlements.
    Admin only. Reminder preferences scoped to the group go too.
    """
    from backend.app.models.reminder_preference import ReminderPreference, ReminderScope

    group = get_group_or_404(group_id, session)
    _require_admin(group_id, caller_id, "delete the group", session)

    for pref in session.execute(
        select(ReminderPreference).where(
            ReminderPreference.scope_type == ReminderScope.GROUP,
            ReminderPreference.scope_id == group_id,
        )
    ).scalars():
        session.delete(pref)

    session.delete(group)
    session.flush()
    logger.info("group %s deleted by user %s", group_id, caller_id)


def remind_members(
        group_id: int,
        caller_id: int,
        target_user_id: int | None,
        notifier: Notifier,
        session: Session,
        base_link: str = "",
) -> dict:
    """
    POST /groups/:id/remind

    Emails every member who owes the caller inside this group (per the
    balance sheet's edges), or just target_user_id when given.

    Raises:
      AppError(FORBIDDEN, 403)                  — caller not a member
      AppError(USER_NOT_FOUND, 404)             — target is not a member
      AppError(NOTIFICATIONS_UNAVAILABLE, 503)  — the notifier cannot send
    """
    group = get_group_or_404(group_id, session)
    require_member(group_id, caller_id, session)

    if target_user_id is not None and get_membership(group_id, target_user_id, session) is None:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            f"User {target_user_id} is not a member of group {group_id}.",
            404,
            field="user_id",
        )

    sheet = balance_service.group_sheet(group_id, session)
    edges = [
        edge for edge in sheet.edges_to(caller_id)
        if target_user_id is None or edge.from_user_id == target_user_id
    ]

    caller = session.get(User, caller_id)
    users = balance_service.get_users_by_id([e.from_user_id for e in edges], session)

    reminded = []
    for edge in edges:
        debtor = users.get(edge.from_user_id)
        if debtor is None or not debtor.email:
            continue
        notifier.notify(build_group_reminder(group, caller, debtor, edge.amount, base_link))
        reminded.append({"user_id": debtor.id, "amount": edge.amount})

    return {"group_id": group_id, "reminded": reminded}


def build_group_reminder(group: Group, creditor: User, debtor: User, amount, base_link: str = "",
                         kind: str = "group_reminder") -> NotificationEvent:
    lines = [
        f"Hi {debtor.name or 'there'},",
        "",
        f"You owe {amount} to {creditor.name or 'a member'} in the group \"{group.name}\".",
        "Please settle up when you can.",
    ]
    if base_link:
        lines += ["", f"Review the group: {base_link}"]
    return NotificationEvent(
        kind=kind,
        recipient_email=debtor.email,
        recipient_name=debtor.name,
        subject=f"Reminder: you owe {amount} in \"{group.name}\"",
        body="\n".join(lines),
        context={"group_id": group.id, "creditor_id": creditor.id, "amount": str(amount)},
    )
