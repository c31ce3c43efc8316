"""
routes/balances.py — Balance route handlers.

Layer rules:
  - Call ONE service, return envelope.
  - Integrity problems (balances not summing to zero, unmatched residuals)
    come back as warnings alongside a 200, never as an error.

Endpoints (base url_prefix=/api/v1/groups):
  GET /groups/:id/balances   → 200  balances + suggested payment plan
"""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify

from groupledger.app.extensions import get_ledger
from groupledger.app.money import format_cents, format_cents_map
from groupledger.app.routes.serializers import serialize_group_summary, serialize_plan
from groupledger.app.services.settlement_planner import build_balance_report

balances_bp = Blueprint("balances", __name__)


@balances_bp.route("/<group_id>/balances", methods=["GET"])
def get_balances(group_id: str):
    """
    GET /groups/:id/balances

    Returns every member's signed balance (positive = the group owes them),
    the greedy settlement plan, and balanceSum, which is "0.00" for a
    consistent ledger.
    """
    report = build_balance_report(
        get_ledger(),
        group_id,
        epsilon=current_app.config.get("SETTLEMENT_EPSILON_CENTS", 1),
    )
    members = report["members"]
    return jsonify({
        "data": {
            "groupId":    report["groupId"],
            "balances": [
                {
                    "memberId": member_id,
                    "name":     members.get(member_id, {}).get("name", member_id),
                    "balance":  format_cents(amount),
                }
                for member_id, amount in sorted(report["balances"].items())
            ],
            "balanceMap":   format_cents_map(report["balances"]),
            "plan":         serialize_plan(report["plan"]),
            "balanceSum":   format_cents(report["balanceSum"]),
            "groupSummary": serialize_group_summary(report["groupSummary"]),
        },
        "warnings": report["warnings"],
    }), 200
