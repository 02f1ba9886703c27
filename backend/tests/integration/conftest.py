"""
tests/integration/conftest.py — Fixtures and helpers for all integration tests.

Design:
  - The app is created once per session using create_app("testing"), which
    points at an in-memory SQLite database (TEST_DATABASE_URL overrides it,
    e.g. to run the same suite against PostgreSQL).
  - All tables are created once via db.create_all() at session start.
  - Between tests, all rows are deleted in FK-safe order (reverse of the
    metadata's dependency sort) so tests are isolated.
  - The notifier is the in-memory LoggingNotifier; its outbox is cleared
    between tests and exposed through the `outbox` fixture.

Helper functions (not fixtures) are provided for common operations:
  - headers(email, name)      → identity headers for a request
  - ensure(client, email)     → user dict (find-or-create)
  - make_group(client, ...)   → group dict
  - add_member(...)           → HTTP response
  - make_expense(...)         → HTTP response
  - make_settlement(...)      → HTTP response

These are plain functions (not pytest fixtures) so they can be called with
arbitrary arguments in any test without fixture parameterization overhead.
"""

from __future__ import annotations

import pytest

from backend.app import create_app
from backend.app.extensions import db as _db


# ═══════════════════════════════════════════════════════════════════════════
# Session-scoped app fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(scope="session")
def app():
    """
    Creates the Flask application in 'testing' mode once for the entire test session.
    """
    flask_app = create_app("testing")

    with flask_app.app_context():
        _db.create_all()

    yield flask_app

    with flask_app.app_context():
        _db.drop_all()


# ═══════════════════════════════════════════════════════════════════════════
# Function-scoped test isolation
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(autouse=True)
def clean_tables(app):
    """
    Deletes all rows between tests in FK-safe order and empties the outbox.
    """
    yield  # run the test

    with app.app_context():
        _db.session.rollback()  # discard any uncommitted state from a failed test
        for table in reversed(_db.metadata.sorted_tables):
            _db.session.execute(table.delete())
        _db.session.commit()

    app.extensions["notifier"].clear()


# ═══════════════════════════════════════════════════════════════════════════
# Client fixtures
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def client(app):
    """Flask test client. Each test gets a fresh client (function-scoped)."""
    return app.test_client()


@pytest.fixture
def outbox(app):
    """Events the LoggingNotifier received during the test."""
    return app.extensions["notifier"].sent


# ═══════════════════════════════════════════════════════════════════════════
# Shared helper functions (not fixtures)
# ═══════════════════════════════════════════════════════════════════════════

def headers(email: str, name: str | None = None) -> dict:
    """Identity headers, as the fronting auth layer would send them."""
    result = {"X-User-Email": email}
    if name is not None:
        result["X-User-Name"] = name
    return result


def ensure(client, email: str, name: str | None = None) -> dict:
    """
    Finds or creates the user behind email and returns their user dict.
    """
    resp = client.get("/api/v1/users/me", headers=headers(email, name))
    assert resp.status_code == 200, f"ensure failed: {resp.get_json()}"
    return resp.get_json()["data"]


def make_group(client, email: str, name: str = "Test Group") -> dict:
    """
    Creates a group and returns the group data dict.
    The caller becomes the group admin and first member.
    """
    resp = client.post(
        "/api/v1/groups/",
        json={"name": name},
        headers=headers(email),
    )
    assert resp.status_code == 201, f"make_group failed: {resp.get_json()}"
    return resp.get_json()["data"]


def add_member(client, email: str, group_id: int, user_id: int):
    """Adds a user to a group (admin identity required). Returns the HTTP response."""
    return client.post(
        f"/api/v1/groups/{group_id}/members",
        json={"user_id": user_id},
        headers=headers(email),
    )


def make_expense(
    client,
    email: str,
    amount: str,
    splits: list[dict],
    group_id: int | None = None,
    paid_by_user_id: int | None = None,
    description: str = "Test expense",
    category: str | None = None,
    date: int | None = None,
):
    """
    Creates an expense. splits: [{"user_id": ..., "amount": "...", "paid": bool?}].
    Returns the HTTP response.
    """
    payload = {
        "description": description,
        "amount": amount,
        "splits": splits,
    }
    if group_id is not None:
        payload["group_id"] = group_id
    if paid_by_user_id is not None:
        payload["paid_by_user_id"] = paid_by_user_id
    if category is not None:
        payload["category"] = category
    if date is not None:
        payload["date"] = date
    return client.post("/api/v1/expenses/", json=payload, headers=headers(email))


def make_settlement(
    client,
    email: str,
    received_by_user_id: int,
    amount: str,
    group_id: int | None = None,
    paid_by_user_id: int | None = None,
):
    """Records a settlement. Returns the HTTP response."""
    payload = {"received_by_user_id": received_by_user_id, "amount": amount}
    if group_id is not None:
        payload["group_id"] = group_id
    if paid_by_user_id is not None:
        payload["paid_by_user_id"] = paid_by_user_id
    return client.post("/api/v1/settlements/", json=payload, headers=headers(email))
