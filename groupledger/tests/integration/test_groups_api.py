"""
tests/integration/test_groups_api.py — Integration tests for group and member endpoints.

Endpoints covered:
  POST   /groups                    → 201 / 400
  GET    /groups/:id                → 200 / 404
  POST   /groups/:id/members        → 201 / 409
  DELETE /groups/:id/members/:mid   → 200 / 404 / 409
  GET    /users/:mid/summary        → 200

Properties verified:
  - A new group starts with every member at "0.00"
  - The X-Member-Id caller is added as admin
  - A member with a non-zero balance cannot be removed
  - A settled member still named by an expense or payment cannot be removed
  - Unknown routes keep their 404 status inside the error envelope
"""

from __future__ import annotations

from groupledger.tests.integration.helpers import (
    caller,
    get_balances,
    make_expense,
    make_group,
    make_settlement,
)


# ═══════════════════════════════════════════════════════════════════════════
# Create / get
# ═══════════════════════════════════════════════════════════════════════════

class TestCreateGroup:

    def test_create_group_returns_zero_balances(self, client):
        group = make_group(client)

        assert group["balances"] == {"alice": "0.00", "bob": "0.00", "carol": "0.00"}
        assert group["summary"]["memberCount"] == 3
        assert group["summary"]["totalExpenses"] == "0.00"
        assert group["currency"] == "USD"

    def test_caller_becomes_admin(self, client):
        group = make_group(client, members=("bob",), created_by="alice")

        assert group["createdBy"] == "alice"
        assert group["members"]["alice"]["role"] == "admin"
        assert group["members"]["bob"]["role"] == "member"

    def test_currency_normalised(self, client):
        group = make_group(client, currency="eur")
        assert group["currency"] == "EUR"

    def test_missing_name_is_400(self, client):
        resp = client.post("/api/v1/groups/", json={"members": []})

        assert resp.status_code == 400
        error = resp.get_json()["error"]
        assert error["code"] == "MISSING_FIELD"
        assert error["field"] == "name"

    def test_duplicate_members_is_409(self, client):
        resp = client.post("/api/v1/groups/", json={
            "name": "Trip", "members": [{"id": "a"}, {"id": "a"}],
        })

        assert resp.status_code == 409
        assert resp.get_json()["error"]["code"] == "ALREADY_MEMBER"

    def test_oversized_member_header_is_400(self, client):
        resp = client.post("/api/v1/groups/", json={"name": "Trip"}, headers=caller("x" * 129))
        assert resp.status_code == 400
        assert resp.get_json()["error"]["field"] == "X-Member-Id"


class TestGetGroup:

    def test_get_group(self, client):
        group = make_group(client)

        resp = client.get(f"/api/v1/groups/{group['id']}")

        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["id"] == group["id"]
        assert set(data["members"]) == {"alice", "bob", "carol"}

    def test_unknown_group_is_404(self, client):
        resp = client.get("/api/v1/groups/does-not-exist")

        assert resp.status_code == 404
        assert resp.get_json()["error"]["code"] == "GROUP_NOT_FOUND"

    def test_unknown_route_keeps_404(self, client):
        resp = client.get("/api/v1/nowhere")

        assert resp.status_code == 404
        assert "error" in resp.get_json()


# ═══════════════════════════════════════════════════════════════════════════
# Membership
# ═══════════════════════════════════════════════════════════════════════════

class TestMembership:

    def test_add_member(self, client):
        group = make_group(client)

        resp = client.post(f"/api/v1/groups/{group['id']}/members", json={"id": "dave", "name": "Dave"})

        assert resp.status_code == 201
        data = resp.get_json()["data"]
        assert data["balances"]["dave"] == "0.00"
        assert data["members"]["dave"]["name"] == "Dave"
        assert data["summary"]["memberCount"] == 4

    def test_add_existing_member_is_409(self, client):
        group = make_group(client)

        resp = client.post(f"/api/v1/groups/{group['id']}/members", json={"id": "bob"})

        assert resp.status_code == 409
        assert resp.get_json()["error"]["code"] == "ALREADY_MEMBER"

    def test_remove_member_with_balance_is_409(self, client):
        group = make_group(client)
        make_expense(client, group["id"], "30.00", {"alice": "30.00"}, ["alice", "bob", "carol"])

        resp = client.delete(f"/api/v1/groups/{group['id']}/members/bob")

        assert resp.status_code == 409
        assert resp.get_json()["error"]["code"] == "MEMBER_HAS_BALANCE"

    def test_remove_settled_member(self, client):
        group = make_group(client)

        resp = client.delete(f"/api/v1/groups/{group['id']}/members/carol")

        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert "carol" not in data["balances"]
        assert "carol" not in data["members"]

    def test_remove_member_with_history_is_409(self, client):
        group = make_group(client, members=("alice", "bob"))
        expense = make_expense(
            client, group["id"], "100.00", {"alice": "100.00"}, ["alice", "bob"],
        ).get_json()["data"]["expense"]
        make_settlement(client, group["id"], "bob", "alice", "50.00")

        resp = client.delete(f"/api/v1/groups/{group['id']}/members/bob")

        assert resp.status_code == 409
        assert resp.get_json()["error"]["code"] == "MEMBER_HAS_HISTORY"

        client.delete(f"/api/v1/groups/{group['id']}/expenses/{expense['id']}")
        assert get_balances(client, group["id"])["balanceMap"] == {
            "alice": "-50.00",
            "bob": "50.00",
        }

    def test_remove_unknown_member_is_404(self, client):
        group = make_group(client)

        resp = client.delete(f"/api/v1/groups/{group['id']}/members/zed")

        assert resp.status_code == 404
        assert resp.get_json()["error"]["code"] == "MEMBER_NOT_FOUND"


# ═══════════════════════════════════════════════════════════════════════════
# Member summaries
# ═══════════════════════════════════════════════════════════════════════════

class TestUserSummary:

    def test_summary_baseline_is_zero(self, client):
        resp = client.get("/api/v1/users/nobody/summary")

        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["memberId"] == "nobody"
        assert data["totalBalance"] == "0.00"
        assert data["lastUpdated"] is None

    def test_summary_across_groups(self, client):
        trip = make_group(client, members=("alice", "bob"))
        flat = make_group(client, members=("alice", "carol"))
        make_expense(client, trip["id"], "10.00", {"bob": "10.00"}, ["alice", "bob"])
        make_expense(client, flat["id"], "4.00", {"alice": "4.00"}, ["alice", "carol"])

        data = client.get("/api/v1/users/alice/summary").get_json()["data"]

        assert data["totalAmountOwed"] == "7.00"
        assert data["totalAmountReceivable"] == "4.00"
        assert data["totalBalance"] == "-3.00"
