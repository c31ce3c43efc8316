"""
services/settlement_planner.py — Suggested payments that zero out a group.

Greedy minimum cash flow:
  1. Debtors are members with balance < -epsilon, creditors balance > +epsilon.
  2. Both lists are sorted by absolute amount descending, ties by member id
     ascending, so the same snapshot always yields the same plan.
  3. The largest debtor pays the largest creditor min(debt, credit); a party
     whose remainder drops below epsilon (or to zero) is settled and skipped.
     A remainder of exactly epsilon is still a real debt and keeps matching.
  4. Stop when either list is exhausted.

At most N-1 payments for N members. Not globally minimal for every input, but
minimal for the common two- and three-party cases.

The planner never repairs bad input. A snapshot whose balances do not sum to
zero is planned as given; the leftover party is reported by check_integrity()
as a warning, never raised.

Layer rules:
  - plan_settlements() and check_integrity() are pure functions.
  - build_balance_report() reads one snapshot through the ledger and nothing else.
"""

from __future__ import annotations

import logging

from groupledger.app.errors import WarningCode, make_warning
from groupledger.app.money import format_cents, sum_cents

logger = logging.getLogger(__name__)

DEFAULT_EPSILON_CENTS = 1


# ── Core algorithm ─────────────────────────────────────────────────────────

def _greedy_match(balances: dict, epsilon: int) -> tuple[list[dict], dict[str, int]]:
    """Returns (plan, residuals) where residuals are unmatched signed amounts."""
    epsilon = max(0, epsilon)
    settled_below = max(1, epsilon)
    creditors = sorted(
        [(str(mid), amt) for mid, amt in balances.items() if amt > epsilon],
        key=lambda x: (-x[1], x[0]),
    )
    debtors = sorted(
        [(str(mid), -amt) for mid, amt in balances.items() if amt < -epsilon],
        key=lambda x: (-x[1], x[0]),
    )

    plan: list[dict] = []
    i = j = 0

    while i < len(debtors) and j < len(creditors):
        did, debt = debtors[i]
        cid, credit = creditors[j]

        transfer = min(debt, credit)
        plan.append({"from": did, "to": cid, "amount": transfer})

        debtors[i] = (did, debt - transfer)
        creditors[j] = (cid, credit - transfer)

        if debtors[i][1] < settled_below:
            i += 1
        if creditors[j][1] < settled_below:
            j += 1

    residuals = {}
    for did, debt in debtors[i:]:
        if debt > 0:
            residuals[did] = -debt
    for cid, credit in creditors[j:]:
        if credit > 0:
            residuals[cid] = credit
    return plan, residuals


def plan_settlements(balances: dict, epsilon: int = DEFAULT_EPSILON_CENTS) -> list[dict]:
    """
    Computes the payment plan for a balances snapshot.

    Args:
        balances: {member_id: signed cents}.
        epsilon:  Balances within this many cents of zero are left out of the
                  plan; a matched party is settled once its remainder is
                  below it.

    Returns:
        Ordered list of {"from": id, "to": id, "amount": cents}. Empty when
        everyone is already settled.
    """
    plan, _ = _greedy_match(balances, epsilon)
    return plan


def check_integrity(balances: dict, epsilon: int = DEFAULT_EPSILON_CENTS) -> list[dict]:
    """
    Diagnostics for a balances snapshot. Never raises.

    BALANCE_SUM_NONZERO when the balances do not net to zero, and
    UNMATCHED_RESIDUAL for every party the plan would leave unsettled.
    """
    warnings = []

    total = sum_cents(balances.values())
    if abs(total) > epsilon:
        warnings.append(make_warning(
            WarningCode.BALANCE_SUM_NONZERO,
            f"Group balances sum to {format_cents(total)} instead of 0.00.",
            balanceSum=format_cents(total),
        ))

    _, residuals = _greedy_match(balances, epsilon)
    for member_id, amount in residuals.items():
        warnings.append(make_warning(
            WarningCode.UNMATCHED_RESIDUAL,
            f"Member {member_id} is left with {format_cents(amount)} and no counterparty.",
            memberId=member_id,
            amount=format_cents(amount),
        ))

    return warnings


# ── Report ─────────────────────────────────────────────────────────────────

def build_balance_report(ledger, group_id, epsilon: int = DEFAULT_EPSILON_CENTS) -> dict:
    """
    Balances, plan and diagnostics for one group, from a single snapshot.

    Raises:
        AppError(GROUP_NOT_FOUND, 404) -- group does not exist.
    """
    group, balances, group_summary = ledger.read_group_state(group_id)

    plan = plan_settlements(balances, epsilon)
    warnings = check_integrity(balances, epsilon)
    for warning in warnings:
        logger.warning("group %s integrity: %s", group_id, warning["message"])

    return {
        "groupId":      str(group_id),
        "members":      group.get("members", {}),
        "balances":     balances,
        "plan":         plan,
        "balanceSum":   sum_cents(balances.values()),
        "groupSummary": group_summary,
        "warnings":     warnings,
    }
