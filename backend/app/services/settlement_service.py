"""
services/settlement_service.py — Settlement business logic and personal
(contact-to-contact) views.

Rules enforced here:
  SELF_SETTLEMENT (422)        — payer == receiver
  FORBIDDEN (403)              — caller is neither payer nor receiver, or
                                 (group) caller is not a member
  PAYER_NOT_MEMBER (422)       — group settlement, payer not a member
  RECIPIENT_NOT_MEMBER (422)   — group settlement, receiver not a member
  OVERPAYMENT warning (201)    — amount exceeds the payer's current debt to
                                 the receiver; recorded anyway

Layer rules:
  - No Flask imports. Receives plain ints and dicts.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy.orm import Session

from backend.app.errors import AppError, ErrorCode, WarningCode
from backend.app.ledger import LedgerDiagnostics, SETTLED_TOLERANCE, expense_history
from backend.app.ledger.spending import to_epoch_ms
from backend.app.models.settlement import Settlement
from backend.app.models.user import User
from backend.app.services import balance_service, group_service, user_service
from backend.app.services.notifications import NotificationEvent, Notifier

logger = logging.getLogger(__name__)

ENTITY_USER  = "user"
ENTITY_GROUP = "group"


# ── Private helpers ────────────────────────────────────────────────────────

def _current_debt(payer_id: int, receiver_id: int, group_id: int | None,
                  session: Session) -> Decimal:
    """
    What payer_id currently owes receiver_id in the settlement's scope,
    never negative.
    """
    if group_id is None:
        # Positive → payer owes receiver.
        owed = balance_service.pairwise_net(receiver_id, payer_id, session)
        return max(owed, Decimal("0"))

    sheet = balance_service.group_sheet(group_id, session)
    for edge in sheet.edges_to(receiver_id):
        if edge.from_user_id == payer_id:
            return edge.amount
    return Decimal("0")


def _check_group_parties(group_id: int, caller_id: int, payer_id: int, receiver_id: int,
                         session: Session) -> None:
    group_service.get_group_or_404(group_id, session)
    group_service.require_member(group_id, caller_id, session)

    if group_service.get_membership(group_id, payer_id, session) is None:
        raise AppError(
            ErrorCode.PAYER_NOT_MEMBER,
            f"User {payer_id} is not a member of group {group_id}.",
            422,
            field="paid_by_user_id",
        )
    if group_service.get_membership(group_id, receiver_id, session) is None:
        raise AppError(
            ErrorCode.RECIPIENT_NOT_MEMBER,
            f"User {receiver_id} is not a member of group {group_id}.",
            422,
            field="received_by_user_id",
        )


# ── Public service functions ───────────────────────────────────────────────

def create_settlement(
        caller_id: int,
        data: dict,
        session: Session,
) -> tuple[dict, list[dict]]:
    """
    Records a payment from paid_by_user_id (default: the caller) to
    received_by_user_id.

    Args:
        caller_id: The identified user (flask.g.user_id).
        data:      Validated dict from CreateSettlementSchema.

    Returns:
        (settlement dict, warnings) — warnings holds an OVERPAYMENT entry
        when the amount exceeds what the payer owed.
    """
    payer_id: int = data.get("paid_by_user_id") or caller_id
    receiver_id: int = data["received_by_user_id"]
    amount: Decimal = data["amount"]
    group_id: int | None = data.get("group_id")

    if payer_id == receiver_id:
        raise AppError(
            ErrorCode.SELF_SETTLEMENT,
            "A settlement cannot be made to yourself.",
            422,
            field="received_by_user_id",
        )

    if caller_id not in (payer_id, receiver_id):
        raise AppError(
            ErrorCode.FORBIDDEN,
            "You can only record settlements you are a party to.",
            403,
        )

    user_service.get_user_or_404(payer_id, session)
    user_service.get_user_or_404(receiver_id, session)

    if group_id is not None:
        _check_group_parties(group_id, caller_id, payer_id, receiver_id, session)

    # Overpayment is allowed: pre-payment flips the balance direction.
    warnings: list[dict] = []
    current_debt = _current_debt(payer_id, receiver_id, group_id, session)
    if amount - current_debt > SETTLED_TOLERANCE:
        warnings.append({
            "code": WarningCode.OVERPAYMENT,
            "message": (
                f"Settlement of {amount} exceeds current outstanding debt of "
                f"{current_debt} from user {payer_id} to user {receiver_id}. "
                f"Recording anyway — pre-payment is valid."
            ),
        })

    date = data.get("date")
    if date is None:
        date = to_epoch_ms(datetime.now(timezone.utc))

    settlement = Settlement(
        group_id=group_id,
        paid_by_user_id=payer_id,
        received_by_user_id=receiver_id,
        created_by_user_id=caller_id,
        amount=amount,
        note=(data.get("note") or "").strip(),
        date=date,
    )
    session.add(settlement)
    session.flush()

    logger.info("settlement %s: user %s paid user %s %s",
                settlement.id, payer_id, receiver_id, amount)
    return group_service.serialize_settlement(settlement), warnings


def get_between_user(caller_id: int, other_user_id: int, session: Session) -> tuple[dict, list[dict]]:
    """
    GET /settlements/between-user

    Personal history with one contact: every personal expense both appear on
    (paid shares included), the settlements between them, and the net
    balance (positive → the contact owes the caller).
    """
    other = user_service.get_user_or_404(other_user_id, session)

    expenses = balance_service.get_personal_expenses_involving((caller_id, other_user_id), session)
    settlements = balance_service.get_personal_settlements_between(caller_id, other_user_id, session)

    records = [balance_service.to_expense_record(e) for e in expenses]
    linked_ids = {r.id for r in expense_history(records, caller_id, other_user_id)}

    diagnostics = LedgerDiagnostics()
    balance = balance_service.pairwise_net(caller_id, other_user_id, session, diagnostics)

    payload = {
        "other_user": user_service.serialize_user(other),
        "expenses": [group_service.serialize_expense(e) for e in expenses if e.id in linked_ids],
        "settlements": [group_service.serialize_settlement(s) for s in settlements],
        "balance": balance,
    }
    return payload, balance_service.diagnostics_warnings(diagnostics)


def get_settlement_data(caller_id: int, entity_type: str, entity_id: int,
                        session: Session) -> dict:
    """
    GET /settlements/data — what a settle-up form needs.

    entity_type "user": the counterpart and the personal net balance.
    entity_type "group": the group, its members, and the caller's debts and
    credits inside it.
    """
    if entity_type == ENTITY_USER:
        counterpart = user_service.get_user_or_404(entity_id, session)
        return {
            "type": ENTITY_USER,
            "counterpart": user_service.serialize_user(counterpart),
            "balance": balance_service.pairwise_net(caller_id, entity_id, session),
        }

    if entity_type == ENTITY_GROUP:
        summary, _ = group_service.get_group_summary(entity_id, caller_id, session)
        edges = summary["balances"]["edges"]
        return {
            "type": ENTITY_GROUP,
            "group": {k: v for k, v in summary["group"].items() if k != "members"},
            "members": summary["group"]["members"],
            "you_owe": [e for e in edges if e["from"] == caller_id],
            "owed_to_you": [e for e in edges if e["to"] == caller_id],
        }

    raise AppError(
        ErrorCode.INVALID_ENTITY_TYPE,
        "entity_type must be 'user' or 'group'.",
        400,
        field="entity_type",
    )


def build_contact_reminder(creditor: User, debtor: User, amount: Decimal,
                           kind: str = "contact_reminder") -> NotificationEvent:
    return NotificationEvent(
        kind=kind,
        recipient_email=debtor.email,
        recipient_name=debtor.name,
        subject=f"Reminder: you owe {amount} to {creditor.name or 'a contact'}",
        body=(
            f"Hi {debtor.name or 'there'},\n\n"
            f"You currently owe {amount} to {creditor.name or 'a contact'}.\n"
            f"Please settle this amount at your earliest convenience."
        ),
        context={"creditor_id": creditor.id, "amount": str(amount)},
    )


def remind_user(caller_id: int, other_user_id: int, notifier: Notifier,
                session: Session) -> dict:
    """
    POST /settlements/remind-user

    Emails the contact what they owe the caller personally. Nothing is sent
    when they owe nothing; the response says so.
    """
    other = user_service.get_user_or_404(other_user_id, session)
    caller = user_service.get_user_or_404(caller_id, session)

    owed = balance_service.pairwise_net(caller_id, other_user_id, session)
    if owed <= SETTLED_TOLERANCE:
        return {"sent": False, "amount": owed}

    notifier.notify(build_contact_reminder(caller, other, owed))
    return {"sent": True, "amount": owed}
