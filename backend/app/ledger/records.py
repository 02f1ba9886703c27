"""
ledger/records.py — Typed input records for the ledger engine.

The engine never reads ORM objects or request bodies. Callers convert
whatever they hold (SQLAlchemy rows, marshmallow-loaded dicts, fixtures)
into these frozen dataclasses first, and the engine validates the whole
batch before it accumulates anything.

Monetary amounts are Decimal. Floats are rejected as INVALID_FIELD: a float
has already lost precision by the time it reaches us, and mixing it into
Decimal arithmetic would raise anyway.

Dates are epoch milliseconds (int), matching what clients send.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Hashable, Iterable

from backend.app.errors import AppError, ErrorCode

UserId = Hashable

DEFAULT_CATEGORY = "Other"


# ── Records ────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class SplitRecord:
    """One participant's share of an expense."""

    user_id: UserId
    amount: Decimal
    paid: bool = False


@dataclass(frozen=True)
class ExpenseRecord:
    id: Any
    amount: Decimal
    paid_by_user_id: UserId
    splits: tuple[SplitRecord, ...] = ()
    date: int | None = None
    description: str = ""
    category: str | None = None
    group_id: Any = None
    created_at: int | None = None

    @property
    def is_personal(self) -> bool:
        return self.group_id is None

    def split_for(self, user_id: UserId) -> SplitRecord | None:
        """Returns user_id's split, or None if they hold no share."""
        for split in self.splits:
            if split.user_id == user_id:
                return split
        return None

    def involves(self, user_id: UserId) -> bool:
        """
        True if user_id is the payer or holds an UNPAID split.

        A user whose only link to the expense is a paid split has nothing
        outstanding on it, so they are not a party for balance purposes.
        """
        if self.paid_by_user_id == user_id:
            return True
        split = self.split_for(user_id)
        return split is not None and not split.paid

    def appears(self, user_id: UserId) -> bool:
        """True if user_id is the payer or holds any split, paid or not."""
        return self.paid_by_user_id == user_id or self.split_for(user_id) is not None

    def participants(self) -> set[UserId]:
        return {self.paid_by_user_id, *(s.user_id for s in self.splits)}


@dataclass(frozen=True)
class SettlementRecord:
    id: Any
    amount: Decimal
    paid_by_user_id: UserId
    received_by_user_id: UserId
    date: int | None = None
    note: str = ""
    group_id: Any = None

    @property
    def is_personal(self) -> bool:
        return self.group_id is None

    def is_between(self, user_a: UserId, user_b: UserId) -> bool:
        parties = (self.paid_by_user_id, self.received_by_user_id)
        return parties in ((user_a, user_b), (user_b, user_a))


@dataclass(frozen=True)
class MemberRecord:
    user_id: UserId
    role: str = "member"


# ── Diagnostics ────────────────────────────────────────────────────────────

@dataclass
class SkippedEntry:
    kind: str          # "expense" | "split" | "settlement"
    record_id: Any
    reason: str
    user_id: UserId | None = None


@dataclass
class LedgerDiagnostics:
    """
    Collects records the engine refused to fold into a balance.

    Pass one instance into any computation to observe data-inconsistency
    skips. The engine appends to it; it never raises for these.
    """

    skipped: list[SkippedEntry] = field(default_factory=list)

    def record(
            self,
            kind: str,
            record_id: Any,
            reason: str,
            user_id: UserId | None = None,
    ) -> None:
        self.skipped.append(SkippedEntry(kind, record_id, reason, user_id))

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)

    @property
    def clean(self) -> bool:
        return not self.skipped

    def to_dict(self) -> dict:
        return {
            "skipped_count": self.skipped_count,
            "skipped": [
                {
                    "kind": s.kind,
                    "record_id": s.record_id,
                    "reason": s.reason,
                    "user_id": s.user_id,
                }
                for s in self.skipped
            ],
        }


# ── Boundary validation (InvalidInput, fail fast) ─────────────────────────

def _invalid(field_name: str, message: str) -> AppError:
    return AppError(ErrorCode.INVALID_FIELD, message, 400, field=field_name)


def _missing(field_name: str, message: str) -> AppError:
    return AppError(ErrorCode.MISSING_FIELD, message, 400, field=field_name)


def _require_id(value: Any, field_name: str, owner: str) -> None:
    if value is None:
        raise _missing(field_name, f"{owner} is missing {field_name}.")


def _require_amount(
        value: Any,
        field_name: str,
        owner: str,
        allow_zero: bool = False,
) -> None:
    if value is None:
        raise _missing(field_name, f"{owner} is missing {field_name}.")

    # bool is an int subclass; float is rejected outright (see module doc).
    if isinstance(value, bool) or not isinstance(value, (Decimal, int)):
        raise _invalid(
            field_name,
            f"{owner} has a non-Decimal {field_name} ({type(value).__name__}).",
        )

    amount = Decimal(value)
    if not amount.is_finite():
        raise _invalid(field_name, f"{owner} has a non-finite {field_name}.")

    if amount < 0 or (amount == 0 and not allow_zero):
        raise _invalid(field_name, f"{owner} must have a positive {field_name}.")


def validate_expense(expense: ExpenseRecord) -> None:
    owner = f"Expense {expense.id!r}"
    _require_id(expense.paid_by_user_id, "paid_by_user_id", owner)
    _require_amount(expense.amount, "amount", owner)
    for split in expense.splits:
        _require_id(split.user_id, "splits.user_id", owner)
        _require_amount(split.amount, "splits.amount", owner, allow_zero=True)


def validate_settlement(settlement: SettlementRecord) -> None:
    owner = f"Settlement {settlement.id!r}"
    _require_id(settlement.paid_by_user_id, "paid_by_user_id", owner)
    _require_id(settlement.received_by_user_id, "received_by_user_id", owner)
    _require_amount(settlement.amount, "amount", owner)


def validate_records(
        expenses: Iterable[ExpenseRecord] = (),
        settlements: Iterable[SettlementRecord] = (),
) -> None:
    """
    Validates every record up front.

    Raises:
        AppError(MISSING_FIELD, 400)  -- a required identifier or amount is absent.
        AppError(INVALID_FIELD, 400)  -- an amount is non-numeric, a float,
                                         non-finite, or not positive.
    """
    for expense in expenses:
        validate_expense(expense)
    for settlement in settlements:
        validate_settlement(settlement)
