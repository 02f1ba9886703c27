"""
services/contact_service.py — The caller's contact list.

A contact is anyone the caller shares a personal (non-group) expense with,
as payer or split holder. Group co-members are not contacts; the caller's
groups are listed next to them instead.

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Read-only: nothing here writes.
"""

from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from backend.app.ledger import contact_ids
from backend.app.models.group import Group
from backend.app.models.membership import Membership
from backend.app.services import balance_service, user_service


def _group_rows(user_id: int, session: Session) -> list[dict]:
    member_count = (
        select(Membership.group_id, func.count(Membership.id).label("member_count"))
        .group_by(Membership.group_id)
        .subquery()
    )
    stmt = (
        select(Group, member_count.c.member_count)
        .join(Membership, Group.id == Membership.group_id)
        .join(member_count, Group.id == member_count.c.group_id)
        .where(Membership.user_id == user_id)
    )
    rows = [
        {
            "id": group.id,
            "name": group.name,
            "description": group.description,
            "member_count": count,
        }
        for group, count in session.execute(stmt).all()
    ]
    rows.sort(key=lambda row: (row["name"].casefold(), row["id"]))
    return rows


def list_contacts(user_id: int, session: Session) -> dict:
    """
    GET /contacts

    Returns:
        {"users": [...], "groups": [...]}, both sorted by name.
    """
    expenses = balance_service.get_personal_expenses_involving((user_id,), session)
    records = [balance_service.to_expense_record(e) for e in expenses]

    users = balance_service.get_users_by_id(contact_ids(records, user_id), session)
    contacts = sorted(users.values(), key=lambda u: ((u.name or "").casefold(), u.id))

    return {
        "users": [user_service.serialize_user(u) for u in contacts],
        "groups": _group_rows(user_id, session),
    }
