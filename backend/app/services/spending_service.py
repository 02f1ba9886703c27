"""
services/spending_service.py — Dashboard spending figures.

Thin adapters over ledger/spending.py: fetch the user's expenses, convert,
call the ledger, return plain dicts.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy.orm import Session

from backend.app.ledger import LedgerDiagnostics, category_spending, monthly_spending, total_spent
from backend.app.services import balance_service


def _user_records(user_id: int, session: Session):
    return [
        balance_service.to_expense_record(e)
        for e in balance_service.get_user_expenses(user_id, session)
    ]


def get_total_spent(user_id: int, session: Session, year: int | None = None,
                    now: datetime | None = None) -> dict:
    records = _user_records(user_id, session)
    if year is None:
        year = (now or datetime.now(timezone.utc)).year
    return {"year": year, "total": total_spent(user_id, records, year=year, now=now)}


def get_monthly_spending(user_id: int, session: Session,
                         now: datetime | None = None) -> tuple[list[dict], list[dict]]:
    """Trailing 12 months, oldest first. Returns (buckets, warnings)."""
    diagnostics = LedgerDiagnostics()
    buckets = monthly_spending(user_id, _user_records(user_id, session),
                               now=now, diagnostics=diagnostics)
    rows = [{"month": b.key, "total": b.amount} for b in buckets]
    return rows, balance_service.diagnostics_warnings(diagnostics)


def get_category_spending(user_id: int, session: Session,
                          start: int | None = None, end: int | None = None) -> list[dict]:
    buckets = category_spending(user_id, _user_records(user_id, session),
                                start_ms=start, end_ms=end)
    return [{"category": b.key, "total": b.amount} for b in buckets]
