"""
tests/integration/test_balances.py — Integration tests for GET /groups/:id/balances.

What this file proves:
  - Balances are recomputed from the active event on every request
  - Every member is listed, at zero when no event is open
  - sum(paid) == sum(owed) across the whole summary
  - Legacy even-split entries stored by a wholesale event replace are
    balanced like normalised ones, and settle per debtor
"""

from __future__ import annotations

from decimal import Decimal

from .conftest import headers, make_expense, register, setup_trio


def _balances(client, group_id, username="alice"):
    resp = client.get(f"/api/v1/groups/{group_id}/balances", headers=headers(username))
    assert resp.status_code == 200, resp.get_json()
    return resp.get_json()["data"]


def _assert_conserved(members: dict) -> None:
    paid = sum(Decimal(m["paid"]) for m in members.values())
    owed = sum(Decimal(m["owed"]) for m in members.values())
    assert paid == owed


def test_no_event_everyone_at_zero(client):
    group_id = setup_trio(client, with_event=False)
    data = _balances(client, group_id)
    assert set(data["members"]) == {"alice", "bob", "carol"}
    assert all(m["paid"] == "0.00" and m["owed"] == "0.00" for m in data["members"].values())
    assert data["me"]["debts"] == [] and data["me"]["credits"] == []


def test_dinner_then_snacks(client):
    group_id = setup_trio(client)
    make_expense(client, "alice", group_id, payer="alice", amount="90.00", split_between=["bob", "carol"], item_name="Dinner")
    make_expense(client, "carol", group_id, payer="carol", amount="10.00", debtor="alice", item_name="Snacks")

    data = _balances(client, group_id, "alice")
    members = data["members"]

    assert members["alice"]["paid"] == "90.00"
    assert members["alice"]["owed"] == "10.00"
    assert members["alice"]["owes_to"] == {"carol": "10.00"}
    assert members["bob"]["owes_to"] == {"alice": "45.00"}
    assert members["carol"]["is_owed_by"]["alice"]["total"] == "10.00"
    assert [i["item_name"] for i in members["carol"]["is_owed_by"]["alice"]["items"]] == ["Snacks"]
    _assert_conserved(members)

    me = data["me"]
    assert me["username"] == "alice"
    assert me["total_owed"] == "10.00"
    assert me["total_owed_to_me"] == "90.00"
    assert me["debts"] == [{"to": "carol", "amount": "10.00"}]
    assert {c["from"] for c in me["credits"]} == {"bob", "carol"}


def test_balances_are_not_netted(client):
    group_id = setup_trio(client)
    make_expense(client, "alice", group_id, payer="alice", amount="5.00", debtor="bob")
    make_expense(client, "alice", group_id, payer="bob", amount="2.00", debtor="alice")

    members = _balances(client, group_id)["members"]
    assert members["bob"]["owes_to"] == {"alice": "5.00"}
    assert members["alice"]["owes_to"] == {"bob": "2.00"}


def test_former_member_entries_are_skipped(client):
    group_id = setup_trio(client)
    make_expense(client, "alice", group_id, payer="alice", amount="7.00", debtor="carol")
    make_expense(client, "alice", group_id, payer="alice", amount="3.00", debtor="bob")
    client.delete(f"/api/v1/groups/{group_id}/members/carol", headers=headers("carol"))

    members = _balances(client, group_id)["members"]
    assert set(members) == {"alice", "bob"}
    assert members["alice"]["paid"] == "3.00"
    _assert_conserved(members)


def test_non_member_403(client):
    group_id = setup_trio(client)
    register(client, "mallory")
    resp = client.get(f"/api/v1/groups/{group_id}/balances", headers=headers("mallory"))
    assert resp.status_code == 403


def test_legacy_even_split_balances_and_settles_per_debtor(client):
    group_id = setup_trio(client)
    event_id = client.get(
        f"/api/v1/groups/{group_id}/event", headers=headers("alice")
    ).get_json()["data"]["id"]

    resp = client.put(
        f"/api/v1/groups/{group_id}/event",
        json={
            "id": event_id,
            "title": "Dinner",
            "expenses": [{
                "id": "legacy",
                "item_name": "Pizza",
                "amount": "10.00",
                "payer": "alice",
                "split_between": ["alice", "bob", "carol"],
            }],
        },
        headers=headers("alice"),
    )
    assert resp.status_code == 200

    members = _balances(client, group_id)["members"]
    # remainder cent stays with the payer, whose own share is a self-loop
    assert members["bob"]["owes_to"] == {"alice": "3.33"}
    assert members["carol"]["owes_to"] == {"alice": "3.33"}
    assert members["alice"]["paid"] == "6.66"
    _assert_conserved(members)

    settled = client.post(
        f"/api/v1/groups/{group_id}/settlements",
        json={"to": "alice"},
        headers=headers("bob"),
    ).get_json()["data"]
    assert settled["settled_expense_ids"] == ["legacy"]
    assert settled["amount"] == "3.33"

    expenses = client.get(
        f"/api/v1/groups/{group_id}/event", headers=headers("carol")
    ).get_json()["data"]["expenses"]
    assert [(e["id"], e["debtor"], e["amount"]) for e in expenses] == [("legacy:carol", "carol", "3.33")]

    members = _balances(client, group_id)["members"]
    assert members["bob"]["owes_to"] == {}
    assert members["carol"]["owes_to"] == {"alice": "3.33"}
