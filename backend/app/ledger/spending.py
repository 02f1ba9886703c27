"""
ledger/spending.py — How much a user spent, by category and by month.

"Spent" means the user's own share of an expense, paid or not: this answers
"what did I consume", not "what do I still owe". Settlements play no part.

Month keys are the epoch-millisecond timestamp of the first instant of the
month in UTC.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Iterable, Iterator

from backend.app.errors import AppError, ErrorCode
from backend.app.ledger.accumulator import ZERO
from backend.app.ledger.records import (
    DEFAULT_CATEGORY,
    ExpenseRecord,
    LedgerDiagnostics,
    UserId,
    validate_records,
)

TRAILING_MONTHS = 12

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_ONE_MS = timedelta(milliseconds=1)


@dataclass(frozen=True)
class SpendingBucket:
    key: Any
    amount: Decimal

    def to_dict(self) -> dict:
        return {"key": self.key, "amount": self.amount}


# ── Time helpers ───────────────────────────────────────────────────────────

def to_epoch_ms(moment: datetime) -> int:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return (moment - _EPOCH) // _ONE_MS


def from_epoch_ms(epoch_ms: int) -> datetime:
    return datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc)


def year_bounds_ms(year: int) -> tuple[int, int]:
    """First and last millisecond of a UTC calendar year, both inclusive."""
    first = datetime(year, 1, 1, tzinfo=timezone.utc)
    last = datetime(year, 12, 31, 23, 59, 59, 999000, tzinfo=timezone.utc)
    return to_epoch_ms(first), to_epoch_ms(last)


def _first_of_month(moment: datetime) -> datetime:
    return moment.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def _add_months(moment: datetime, months: int) -> datetime:
    """moment must already be on the first of a month."""
    index = moment.year * 12 + (moment.month - 1) + months
    return moment.replace(year=index // 12, month=index % 12 + 1)


def month_start_ms(epoch_ms: int) -> int:
    return to_epoch_ms(_first_of_month(from_epoch_ms(epoch_ms)))


def _now(now: datetime | None) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


def bucket_time(expense: ExpenseRecord) -> int | None:
    """The expense date, falling back to its creation time."""
    if expense.date is not None:
        return expense.date
    return expense.created_at


# ── Core ───────────────────────────────────────────────────────────────────

def _own_shares(
        user_id: UserId,
        expenses: Iterable[ExpenseRecord],
) -> Iterator[tuple[ExpenseRecord, Decimal]]:
    for expense in expenses:
        split = expense.split_for(user_id)
        if split is not None:
            yield expense, split.amount


def category_spending(
        user_id: UserId,
        expenses: Iterable[ExpenseRecord],
        start_ms: int | None = None,
        end_ms: int | None = None,
) -> list[SpendingBucket]:
    """
    Sums user_id's shares per category, largest first.

    start_ms / end_ms optionally bound the expense date (inclusive). An
    expense with no usable date is excluded only when a bound is given.
    """
    if start_ms is not None and end_ms is not None and start_ms > end_ms:
        raise AppError(
            ErrorCode.INVALID_FIELD,
            "The date range start must not be after its end.",
            400,
            field="start",
        )

    expenses = list(expenses)
    validate_records(expenses)

    totals: dict[str, Decimal] = {}
    for expense, share in _own_shares(user_id, expenses):
        if start_ms is not None or end_ms is not None:
            when = bucket_time(expense)
            if when is None:
                continue
            if start_ms is not None and when < start_ms:
                continue
            if end_ms is not None and when > end_ms:
                continue

        category = expense.category or DEFAULT_CATEGORY
        totals[category] = totals.get(category, ZERO) + share

    buckets = [SpendingBucket(k, v) for k, v in totals.items()]
    buckets.sort(key=lambda b: b.amount, reverse=True)
    return buckets


def monthly_spending(
        user_id: UserId,
        expenses: Iterable[ExpenseRecord],
        now: datetime | None = None,
        months: int = TRAILING_MONTHS,
        diagnostics: LedgerDiagnostics | None = None,
) -> list[SpendingBucket]:
    """
    Sums user_id's shares per calendar month over the trailing window that
    ends with the current month, oldest first. Months with no spending are
    omitted.
    """
    if months < 1:
        raise AppError(
            ErrorCode.INVALID_FIELD,
            "The month window must cover at least one month.",
            400,
            field="months",
        )

    expenses = list(expenses)
    validate_records(expenses)

    current_month = _first_of_month(_now(now))
    window_start = to_epoch_ms(_add_months(current_month, -(months - 1)))
    window_end = to_epoch_ms(_add_months(current_month, 1))   # exclusive

    totals: dict[int, Decimal] = {}
    for expense, share in _own_shares(user_id, expenses):
        when = bucket_time(expense)
        if when is None:
            if diagnostics is not None:
                diagnostics.record("expense", expense.id, "no date or creation time")
            continue
        if not window_start <= when < window_end:
            continue
        key = month_start_ms(when)
        totals[key] = totals.get(key, ZERO) + share

    return [SpendingBucket(k, totals[k]) for k in sorted(totals)]


def total_spent(
        user_id: UserId,
        expenses: Iterable[ExpenseRecord],
        year: int | None = None,
        now: datetime | None = None,
) -> Decimal:
    """Sum of user_id's shares for expenses dated within one calendar year (UTC)."""
    if year is None:
        year = _now(now).year

    start, end = year_bounds_ms(year)

    expenses = list(expenses)
    validate_records(expenses)

    total = ZERO
    for expense, share in _own_shares(user_id, expenses):
        when = bucket_time(expense)
        if when is not None and start <= when <= end:
            total += share
    return total
