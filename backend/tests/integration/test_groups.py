"""
tests/integration/test_groups.py — Group, membership, summary and reminder endpoints.

Endpoints covered:
  POST   /groups                → 201
  GET    /groups                → 200
  POST   /groups/:id/members    → 201 / 403 / 404 / 409
  GET    /groups/:id/summary    → 200 / 403 / 404
  POST   /groups/:id/remind     → 200
  DELETE /groups/:id            → 200 / 403

The balance sheet in the summary is the ledger's group view: every member's
net (summing to zero) plus pairwise "who owes whom" edges.
"""

from __future__ import annotations

from decimal import Decimal

from .conftest import add_member, ensure, headers, make_expense, make_group, make_settlement

ADA = "ada@example.com"
BEN = "ben@example.com"
CAT = "cat@example.com"


def _trip(client):
    """Ada (admin), Ben and Cat in one group."""
    ada = ensure(client, ADA, "Ada")
    ben = ensure(client, BEN, "Ben")
    cat = ensure(client, CAT, "Cat")
    group = make_group(client, ADA, "Lisbon")
    assert add_member(client, ADA, group["id"], ben["id"]).status_code == 201
    assert add_member(client, ADA, group["id"], cat["id"]).status_code == 201
    return ada, ben, cat, group


def _dinner(client, ada, ben, cat, group):
    """Ada pays 90, split three ways; her own share is marked paid."""
    resp = make_expense(client, ADA, "90.00", [
        {"user_id": ada["id"], "amount": "30.00", "paid": True},
        {"user_id": ben["id"], "amount": "30.00"},
        {"user_id": cat["id"], "amount": "30.00"},
    ], group_id=group["id"])
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()["data"]


def _summary(client, group, email=ADA):
    resp = client.get(f"/api/v1/groups/{group['id']}/summary", headers=headers(email))
    assert resp.status_code == 200, resp.get_json()
    return resp.get_json()


# ═══════════════════════════════════════════════════════════════════════════
# Create / list
# ═══════════════════════════════════════════════════════════════════════════

def test_create_group_makes_caller_admin(client):
    group = make_group(client, ADA, "Flat")

    assert group["name"] == "Flat"
    assert [(m["email"], m["role"]) for m in group["members"]] == [(ADA, "admin")]


def test_create_group_blank_name(client):
    resp = client.post("/api/v1/groups/", json={"name": "   "}, headers=headers(ADA))

    assert resp.status_code == 400
    assert resp.get_json()["error"]["field"] == "name"


def test_list_groups_includes_own_net(client):
    ada, ben, cat, group = _trip(client)
    _dinner(client, ada, ben, cat, group)
    make_group(client, BEN, "Ben's other group")

    resp = client.get("/api/v1/groups/", headers=headers(ADA))

    assert resp.status_code == 200
    rows = resp.get_json()["data"]
    assert len(rows) == 1
    assert rows[0]["member_count"] == 3
    assert Decimal(rows[0]["your_balance"]) == Decimal("60")


# ═══════════════════════════════════════════════════════════════════════════
# Membership
# ═══════════════════════════════════════════════════════════════════════════

def test_add_member_by_email_creates_placeholder_user(client):
    ensure(client, ADA)
    group = make_group(client, ADA)

    resp = client.post(
        f"/api/v1/groups/{group['id']}/members",
        json={"email": "dee@example.com", "name": "Dee"},
        headers=headers(ADA),
    )

    assert resp.status_code == 201
    assert resp.get_json()["data"]["name"] == "Dee"
    assert resp.get_json()["data"]["role"] == "member"


def test_add_member_twice_conflicts(client):
    _, ben, _, group = _trip(client)

    resp = add_member(client, ADA, group["id"], ben["id"])

    assert resp.status_code == 409
    assert resp.get_json()["error"]["code"] == "ALREADY_MEMBER"


def test_only_admin_adds_members(client):
    _, _, _, group = _trip(client)
    dee = ensure(client, "dee@example.com")

    resp = add_member(client, BEN, group["id"], dee["id"])

    assert resp.status_code == 403
    assert resp.get_json()["error"]["code"] == "FORBIDDEN"


def test_add_unknown_user_id(client):
    ensure(client, ADA)
    group = make_group(client, ADA)

    resp = add_member(client, ADA, group["id"], 999_999)

    assert resp.status_code == 404
    assert resp.get_json()["error"]["code"] == "USER_NOT_FOUND"


def test_add_member_needs_identifier(client):
    group = make_group(client, ADA)

    resp = client.post(f"/api/v1/groups/{group['id']}/members", json={}, headers=headers(ADA))

    assert resp.status_code == 400
    assert resp.get_json()["error"]["code"] == "MISSING_FIELD"
    assert resp.get_json()["error"]["field"] == "user_id"


# ═══════════════════════════════════════════════════════════════════════════
# Summary / balance sheet
# ═══════════════════════════════════════════════════════════════════════════

def test_summary_balance_sheet(client):
    ada, ben, cat, group = _trip(client)
    _dinner(client, ada, ben, cat, group)

    body = _summary(client, group)

    balances = body["data"]["balances"]
    nets = {row["user_id"]: Decimal(row["net"]) for row in balances["members"]}
    assert nets == {ada["id"]: Decimal("60"), ben["id"]: Decimal("-30"), cat["id"]: Decimal("-30")}
    assert sum(nets.values()) == 0
    edges = {(e["from"], e["to"]): Decimal(e["amount"]) for e in balances["edges"]}
    assert edges == {(ben["id"], ada["id"]): Decimal("30"), (cat["id"], ada["id"]): Decimal("30")}
    assert len(body["data"]["expenses"]) == 1
    assert body["warnings"] == []


def test_summary_after_settlement(client):
    ada, ben, cat, group = _trip(client)
    _dinner(client, ada, ben, cat, group)
    resp = make_settlement(client, BEN, ada["id"], "30.00", group_id=group["id"])
    assert resp.status_code == 201

    balances = _summary(client, group)["data"]["balances"]

    nets = {row["user_id"]: Decimal(row["net"]) for row in balances["members"]}
    assert nets[ben["id"]] == 0
    assert nets[ada["id"]] == Decimal("30")
    assert [(e["from"], e["to"]) for e in balances["edges"]] == [(cat["id"], ada["id"])]


def test_summary_forbidden_for_non_member(client):
    _, _, _, group = _trip(client)

    resp = client.get(f"/api/v1/groups/{group['id']}/summary", headers=headers("eve@example.com"))

    assert resp.status_code == 403


def test_summary_unknown_group(client):
    resp = client.get("/api/v1/groups/424242/summary", headers=headers(ADA))

    assert resp.status_code == 404
    assert resp.get_json()["error"]["code"] == "GROUP_NOT_FOUND"


# ═══════════════════════════════════════════════════════════════════════════
# Reminders
# ═══════════════════════════════════════════════════════════════════════════

def test_remind_everyone_who_owes_the_caller(client, outbox):
    ada, ben, cat, group = _trip(client)
    _dinner(client, ada, ben, cat, group)

    resp = client.post(f"/api/v1/groups/{group['id']}/remind", headers=headers(ADA))

    assert resp.status_code == 200
    reminded = resp.get_json()["data"]["reminded"]
    assert {r["user_id"] for r in reminded} == {ben["id"], cat["id"]}
    assert sorted(e.recipient_email for e in outbox) == [BEN, CAT]
    assert all(e.kind == "group_reminder" for e in outbox)


def test_remind_one_member(client, outbox):
    ada, ben, cat, group = _trip(client)
    _dinner(client, ada, ben, cat, group)

    resp = client.post(
        f"/api/v1/groups/{group['id']}/remind",
        json={"user_id": cat["id"]},
        headers=headers(ADA),
    )

    assert resp.status_code == 200
    assert [e.recipient_email for e in outbox] == [CAT]


def test_remind_sends_nothing_when_nobody_owes_caller(client, outbox):
    ada, ben, cat, group = _trip(client)
    _dinner(client, ada, ben, cat, group)

    resp = client.post(f"/api/v1/groups/{group['id']}/remind", headers=headers(BEN))

    assert resp.status_code == 200
    assert resp.get_json()["data"]["reminded"] == []
    assert not outbox


# ═══════════════════════════════════════════════════════════════════════════
# Delete
# ═══════════════════════════════════════════════════════════════════════════

def test_delete_group_removes_it(client):
    ada, ben, cat, group = _trip(client)
    _dinner(client, ada, ben, cat, group)

    resp = client.delete(f"/api/v1/groups/{group['id']}", headers=headers(ADA))

    assert resp.status_code == 200
    assert resp.get_json()["data"] == {"id": group["id"], "deleted": True}
    assert client.get(f"/api/v1/groups/{group['id']}/summary", headers=headers(ADA)).status_code == 404


def test_delete_group_admin_only(client):
    _, _, _, group = _trip(client)

    resp = client.delete(f"/api/v1/groups/{group['id']}", headers=headers(BEN))

    assert resp.status_code == 403
