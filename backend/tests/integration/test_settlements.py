"""
tests/integration/test_settlements.py — Integration tests for settlement endpoints.

Endpoints covered:
  POST /settlements                   → 201 / 403 / 422
  GET  /settlements/between-user      → 200 / 404
  GET  /settlements/data              → 200 / 400
  POST /settlements/remind-user       → 200

Rules verified:
  OVERPAYMENT warning (201)  — settlement > current debt is still recorded
  SELF_SETTLEMENT (422)      — payer cannot equal receiver
  FORBIDDEN (403)            — caller must be one of the parties
  Personal balances ignore group records entirely
"""

from __future__ import annotations

from decimal import Decimal

from .conftest import add_member, ensure, headers, make_expense, make_group, make_settlement

ADA = "ada@example.com"
BEN = "ben@example.com"
CAT = "cat@example.com"


def _dinner(client):
    """Ada pays 100 for dinner with Ben, split equally. Ben owes Ada 50."""
    ada, ben = ensure(client, ADA, "Ada"), ensure(client, BEN, "Ben")
    resp = make_expense(client, ADA, "100.00", [
        {"user_id": ada["id"], "amount": "50.00", "paid": True},
        {"user_id": ben["id"], "amount": "50.00"},
    ], description="Dinner")
    assert resp.status_code == 201, resp.get_json()
    return ada, ben


def _between(client, email, other_id):
    resp = client.get(f"/api/v1/settlements/between-user?other_user_id={other_id}", headers=headers(email))
    assert resp.status_code == 200, resp.get_json()
    return resp.get_json()


# ═══════════════════════════════════════════════════════════════════════════
# Create
# ═══════════════════════════════════════════════════════════════════════════

def test_settle_up_brings_balance_to_zero(client):
    ada, ben = _dinner(client)
    assert Decimal(_between(client, ADA, ben["id"])["data"]["balance"]) == Decimal("50")

    resp = make_settlement(client, BEN, ada["id"], "50.00")

    assert resp.status_code == 201
    body = resp.get_json()
    assert body["warnings"] == []
    assert body["data"]["paid_by_user_id"] == ben["id"]
    assert body["data"]["received_by_user_id"] == ada["id"]
    assert Decimal(_between(client, ADA, ben["id"])["data"]["balance"]) == 0
    assert Decimal(_between(client, BEN, ada["id"])["data"]["balance"]) == 0


def test_overpayment_is_recorded_with_warning(client):
    ada, ben = _dinner(client)

    resp = make_settlement(client, BEN, ada["id"], "80.00")

    assert resp.status_code == 201
    assert [w["code"] for w in resp.get_json()["warnings"]] == ["OVERPAYMENT"]
    # Ada now owes Ben the 30 overpaid.
    assert Decimal(_between(client, ADA, ben["id"])["data"]["balance"]) == Decimal("-30")


def test_receiver_can_record_a_payment(client):
    ada, ben = _dinner(client)

    resp = make_settlement(client, ADA, ada["id"], "20.00", paid_by_user_id=ben["id"])

    assert resp.status_code == 201
    assert resp.get_json()["data"]["created_by_user_id"] == ada["id"]


def test_self_settlement(client):
    ada = ensure(client, ADA)

    resp = make_settlement(client, ADA, ada["id"], "10.00")

    assert resp.status_code == 422
    assert resp.get_json()["error"]["code"] == "SELF_SETTLEMENT"


def test_third_party_cannot_record(client):
    ada, ben = _dinner(client)

    resp = make_settlement(client, CAT, ada["id"], "10.00", paid_by_user_id=ben["id"])

    assert resp.status_code == 403


def test_unknown_receiver(client):
    ensure(client, ADA)

    resp = make_settlement(client, ADA, 999_999, "10.00")

    assert resp.status_code == 404
    assert resp.get_json()["error"]["code"] == "USER_NOT_FOUND"


def test_zero_amount_rejected(client):
    ada, ben = _dinner(client)

    resp = make_settlement(client, BEN, ada["id"], "0")

    assert resp.status_code == 400
    assert resp.get_json()["error"]["field"] == "amount"


def test_group_settlement_with_outsider(client):
    ada, ben = _dinner(client)
    group = make_group(client, ADA)

    resp = make_settlement(client, ADA, ben["id"], "5.00", group_id=group["id"])

    assert resp.status_code == 422
    assert resp.get_json()["error"]["code"] == "RECIPIENT_NOT_MEMBER"


# ═══════════════════════════════════════════════════════════════════════════
# Between-user history
# ═══════════════════════════════════════════════════════════════════════════

def test_between_user_lists_only_linking_records(client):
    ada, ben = _dinner(client)
    cat = ensure(client, CAT)
    # Ada and Cat only: must not show up in Ada ↔ Ben.
    make_expense(client, ADA, "40.00", [
        {"user_id": ada["id"], "amount": "20.00"},
        {"user_id": cat["id"], "amount": "20.00"},
    ])
    # Group records never count toward a personal balance.
    group = make_group(client, ADA)
    add_member(client, ADA, group["id"], ben["id"])
    make_expense(client, ADA, "60.00", [
        {"user_id": ada["id"], "amount": "30.00"},
        {"user_id": ben["id"], "amount": "30.00"},
    ], group_id=group["id"])
    make_settlement(client, BEN, ada["id"], "10.00")

    body = _between(client, ADA, ben["id"])

    data = body["data"]
    assert data["other_user"]["email"] == BEN
    assert [e["description"] for e in data["expenses"]] == ["Dinner"]
    assert len(data["settlements"]) == 1
    assert Decimal(data["balance"]) == Decimal("40")


def test_between_user_history_keeps_settled_shares(client):
    ada, ben = ensure(client, ADA, "Ada"), ensure(client, BEN, "Ben")
    cat = ensure(client, CAT, "Cat")
    # Ben's share was paid outside the app: no debt, still shared history.
    make_expense(client, ADA, "30.00", [
        {"user_id": ada["id"], "amount": "15.00"},
        {"user_id": ben["id"], "amount": "15.00", "paid": True},
    ], description="Museum")
    # Cat paid for both of them.
    make_expense(client, CAT, "24.00", [
        {"user_id": ada["id"], "amount": "8.00"},
        {"user_id": ben["id"], "amount": "8.00"},
        {"user_id": cat["id"], "amount": "8.00"},
    ], description="Taxi")

    data = _between(client, ADA, ben["id"])["data"]

    assert sorted(e["description"] for e in data["expenses"]) == ["Museum", "Taxi"]
    assert Decimal(data["balance"]) == 0


def test_between_user_is_antisymmetric(client):
    ada, ben = _dinner(client)
    make_expense(client, BEN, "24.00", [{"user_id": ada["id"], "amount": "24.00"}])

    forward = Decimal(_between(client, ADA, ben["id"])["data"]["balance"])
    backward = Decimal(_between(client, BEN, ada["id"])["data"]["balance"])

    assert forward == Decimal("26")
    assert backward == -forward


def test_between_unknown_user(client):
    ensure(client, ADA)

    resp = client.get("/api/v1/settlements/between-user?other_user_id=999999", headers=headers(ADA))

    assert resp.status_code == 404


# ═══════════════════════════════════════════════════════════════════════════
# Settle-up form data
# ═══════════════════════════════════════════════════════════════════════════

def test_settlement_data_for_user(client):
    ada, ben = _dinner(client)

    resp = client.get(
        f"/api/v1/settlements/data?entity_type=user&entity_id={ada['id']}",
        headers=headers(BEN),
    )

    assert resp.status_code == 200
    data = resp.get_json()["data"]
    assert data["counterpart"]["id"] == ada["id"]
    assert Decimal(data["balance"]) == Decimal("-50")


def test_settlement_data_for_group(client):
    ada, ben = ensure(client, ADA), ensure(client, BEN)
    group = make_group(client, ADA, "Flat")
    add_member(client, ADA, group["id"], ben["id"])
    make_expense(client, ADA, "40.00", [
        {"user_id": ada["id"], "amount": "20.00"},
        {"user_id": ben["id"], "amount": "20.00"},
    ], group_id=group["id"])

    resp = client.get(
        f"/api/v1/settlements/data?entity_type=group&entity_id={group['id']}",
        headers=headers(BEN),
    )

    assert resp.status_code == 200
    data = resp.get_json()["data"]
    assert data["group"]["name"] == "Flat"
    assert len(data["members"]) == 2
    assert [(e["to"], Decimal(e["amount"])) for e in data["you_owe"]] == [(ada["id"], Decimal("20"))]
    assert data["owed_to_you"] == []


def test_settlement_data_bad_entity_type(client):
    ensure(client, ADA)

    resp = client.get("/api/v1/settlements/data?entity_type=team&entity_id=1", headers=headers(ADA))

    assert resp.status_code == 400
    assert resp.get_json()["error"]["code"] == "INVALID_ENTITY_TYPE"


# ═══════════════════════════════════════════════════════════════════════════
# Contact reminder
# ═══════════════════════════════════════════════════════════════════════════

def test_remind_user_emails_debtor(client, outbox):
    ada, ben = _dinner(client)
    outbox.clear()

    resp = client.post(
        "/api/v1/settlements/remind-user",
        json={"other_user_id": ben["id"]},
        headers=headers(ADA),
    )

    assert resp.status_code == 200
    assert resp.get_json()["data"]["sent"] is True
    assert [e.recipient_email for e in outbox] == [BEN]
    assert outbox[0].kind == "contact_reminder"


def test_remind_user_when_nothing_is_owed(client, outbox):
    ada, ben = _dinner(client)
    outbox.clear()

    resp = client.post(
        "/api/v1/settlements/remind-user",
        json={"other_user_id": ada["id"]},
        headers=headers(BEN),
    )

    assert resp.status_code == 200
    assert resp.get_json()["data"]["sent"] is False
    assert not outbox
