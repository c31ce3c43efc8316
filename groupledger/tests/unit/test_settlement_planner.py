"""
tests/unit/test_settlement_planner.py — Unit tests for the greedy settlement planner.

What this file proves:
  - Two-person debt → single payment
  - Largest debtor pays largest creditor first; ties break on member id
  - N members → at most N-1 payments
  - Applying the plan zeroes every balance (no money invented or lost)
  - Balances within epsilon count as settled
  - A one-cent remainder left by an earlier match is still paid
  - The same snapshot always yields the same plan, whatever the dict order
  - A snapshot that does not sum to zero is planned as given and reported
    through BALANCE_SUM_NONZERO / UNMATCHED_RESIDUAL warnings, never raised

Unit test constraints:
  - plan_settlements and check_integrity take a plain {member_id: cents} dict.
  - build_balance_report is exercised against a MemoryStore-backed ledger.
"""

from __future__ import annotations

from collections import defaultdict

import pytest

from groupledger.app.errors import AppError, ErrorCode, WarningCode
from groupledger.app.services import group_service
from groupledger.app.services.balance_ledger import BalanceLedger
from groupledger.app.services.settlement_planner import (
    build_balance_report,
    check_integrity,
    plan_settlements,
)
from groupledger.app.store.memory import MemoryStore


# ── Helpers ────────────────────────────────────────────────────────────────

def _verify_plan_settles(balances: dict[str, int], plan: list[dict]) -> None:
    """Applies the plan to the balances; every member must end at zero."""
    net = defaultdict(int, balances)
    for payment in plan:
        assert payment["amount"] > 0
        net[payment["from"]] += payment["amount"]
        net[payment["to"]] -= payment["amount"]
    for member_id, remaining in net.items():
        assert remaining == 0, f"{member_id} left with {remaining}"


# ── plan_settlements ───────────────────────────────────────────────────────

def test_empty_and_all_zero_give_empty_plan():
    assert plan_settlements({}) == []
    assert plan_settlements({"A": 0, "B": 0, "C": 0}) == []


def test_two_person_debt_single_payment():
    assert plan_settlements({"A": -2500, "B": 2500}) == [
        {"from": "A", "to": "B", "amount": 2500},
    ]


def test_largest_creditor_paid_first():
    plan = plan_settlements({"A": -5000, "B": 3000, "C": 2000})
    assert plan == [
        {"from": "A", "to": "B", "amount": 3000},
        {"from": "A", "to": "C", "amount": 2000},
    ]


def test_ties_break_on_member_id():
    plan = plan_settlements({"B": -100, "A": -100, "C": 200})
    assert plan == [
        {"from": "A", "to": "C", "amount": 100},
        {"from": "B", "to": "C", "amount": 100},
    ]


def test_four_members_at_most_three_payments():
    balances = {"A": -3000, "B": -2000, "C": 1500, "D": 3500}
    plan = plan_settlements(balances)

    assert plan == [
        {"from": "A", "to": "D", "amount": 3000},
        {"from": "B", "to": "D", "amount": 500},
        {"from": "B", "to": "C", "amount": 1500},
    ]
    assert len(plan) <= len(balances) - 1
    _verify_plan_settles(balances, plan)


def test_large_group_plan_settles_everyone():
    balances = {"A": -1234, "B": -1, "C": -4321, "D": 2000, "E": 3555, "F": 1}
    plan = plan_settlements(balances, epsilon=0)

    assert len(plan) <= len(balances) - 1
    _verify_plan_settles(balances, plan)


def test_plan_is_deterministic_across_dict_order():
    first = plan_settlements({"A": -300, "B": 100, "C": 100, "D": 100})
    second = plan_settlements({"D": 100, "C": 100, "B": 100, "A": -300})
    assert first == second


def test_within_epsilon_counts_as_settled():
    assert plan_settlements({"A": -1, "B": 1}, epsilon=1) == []
    assert plan_settlements({"A": -1, "B": 1}, epsilon=0) == [
        {"from": "A", "to": "B", "amount": 1},
    ]


def test_final_cent_after_partial_match_is_paid():
    balances = {"A": -151, "B": -50, "C": 150, "D": 51}

    plan = plan_settlements(balances)

    assert plan == [
        {"from": "A", "to": "C", "amount": 150},
        {"from": "A", "to": "D", "amount": 1},
        {"from": "B", "to": "D", "amount": 50},
    ]
    _verify_plan_settles(balances, plan)
    assert check_integrity(balances) == []


def test_unmatched_cent_is_reported():
    warnings = check_integrity({"A": -151, "C": 150})

    assert [w["code"] for w in warnings] == [WarningCode.UNMATCHED_RESIDUAL]
    assert warnings[0]["context"] == {"memberId": "A", "amount": "-0.01"}


# ── check_integrity ────────────────────────────────────────────────────────

def test_consistent_snapshot_has_no_warnings():
    assert check_integrity({"A": -5000, "B": 3000, "C": 2000}) == []


def test_nonzero_sum_reports_warnings_without_raising():
    warnings = check_integrity({"A": -100, "B": 50})
    codes = [w["code"] for w in warnings]

    assert codes == [WarningCode.BALANCE_SUM_NONZERO, WarningCode.UNMATCHED_RESIDUAL]
    assert warnings[0]["context"] == {"balanceSum": "-0.50"}
    assert warnings[1]["context"] == {"memberId": "A", "amount": "-0.50"}


def test_nonzero_sum_is_still_planned_as_given():
    plan = plan_settlements({"A": -100, "B": 50})
    assert plan == [{"from": "A", "to": "B", "amount": 50}]


# ── build_balance_report ───────────────────────────────────────────────────

def test_report_from_ledger_snapshot():
    ledger = BalanceLedger(MemoryStore())
    group = group_service.create_group(ledger, {"name": "Flat", "members": ["A", "B", "C"]})
    ledger.apply_expense(group["id"], {"A": 9000}, {"A": 3000, "B": 3000, "C": 3000})

    report = build_balance_report(ledger, group["id"])

    assert report["balances"] == {"A": 6000, "B": -3000, "C": -3000}
    assert report["plan"] == [
        {"from": "B", "to": "A", "amount": 3000},
        {"from": "C", "to": "A", "amount": 3000},
    ]
    assert report["balanceSum"] == 0
    assert report["warnings"] == []
    assert report["groupSummary"]["expenseCount"] == 1
    assert set(report["members"]) == {"A", "B", "C"}


def test_report_on_corrupted_balances_warns():
    ledger = BalanceLedger(MemoryStore())
    group = group_service.create_group(ledger, {"name": "Flat", "members": ["A", "B"]})
    ledger.store.atomic_multi_update({ledger.paths.group_balances(group["id"]): {"A": 100, "B": 0}})

    report = build_balance_report(ledger, group["id"])

    assert report["balanceSum"] == 100
    assert report["plan"] == []
    assert {w["code"] for w in report["warnings"]} == {
        WarningCode.BALANCE_SUM_NONZERO,
        WarningCode.UNMATCHED_RESIDUAL,
    }


def test_report_unknown_group():
    ledger = BalanceLedger(MemoryStore())

    with pytest.raises(AppError) as exc_info:
        build_balance_report(ledger, "missing")
    assert exc_info.value.code == ErrorCode.GROUP_NOT_FOUND
