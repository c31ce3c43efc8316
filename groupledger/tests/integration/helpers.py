"""
tests/integration/helpers.py — Shared helper functions for integration tests.

These are plain functions (not pytest fixtures) so they can be called with
arbitrary arguments in any test without fixture parameterization overhead.

  - caller(member_id)         → {"X-Member-Id": member_id}
  - make_group(client, ...)   → group data dict
  - make_expense(...)         → HTTP response
  - make_settlement(...)      → HTTP response
  - get_balances(...)         → balances data dict
"""

from __future__ import annotations


def caller(member_id: str) -> dict:
    """Header identifying the calling member."""
    return {"X-Member-Id": member_id}


def make_group(
    client,
    members=("alice", "bob", "carol"),
    name: str = "Test Group",
    currency: str | None = None,
    created_by: str | None = None,
) -> dict:
    """Creates a group and returns the response data dict."""
    payload: dict = {"name": name, "members": [{"id": m} for m in members]}
    if currency is not None:
        payload["currency"] = currency
    headers = caller(created_by) if created_by else {}

    resp = client.post("/api/v1/groups/", json=payload, headers=headers)
    assert resp.status_code == 201, f"make_group failed: {resp.get_json()}"
    return resp.get_json()["data"]


def make_expense(
    client,
    group_id: str,
    amount: str,
    payers: dict,
    participants: list[str],
    split_method: str = "equal",
    split_details: dict | None = None,
    description: str = "Test Expense",
    **extra,
):
    """
    Creates an expense and returns the HTTP response.
    For split_method='equal', leave split_details as None.
    """
    payload: dict = {
        "description":  description,
        "amount":       amount,
        "payers":       payers,
        "participants": participants,
        "splitMethod":  split_method,
        **extra,
    }
    if split_details is not None:
        payload["splitDetails"] = split_details

    return client.post(f"/api/v1/groups/{group_id}/expenses", json=payload)


def make_settlement(client, group_id: str, from_id: str, to_id: str, amount: str, **extra):
    """Records a payment and returns the HTTP response."""
    return client.post(
        f"/api/v1/groups/{group_id}/settlements",
        json={"from": from_id, "to": to_id, "amount": amount, **extra},
    )


def get_balances(client, group_id: str) -> dict:
    """Returns the data dict of GET /groups/:id/balances."""
    resp = client.get(f"/api/v1/groups/{group_id}/balances")
    assert resp.status_code == 200, f"get_balances failed: {resp.get_json()}"
    return resp.get_json()["data"]
