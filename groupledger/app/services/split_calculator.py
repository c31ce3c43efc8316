"""
services/split_calculator.py — Turns an expense total into per-member obligations.

Every policy returns obligations in integer cents that sum EXACTLY to the
expense amount, except `exact`, which records the caller's figures as given.

Round-up-then-correct:
  - equal / percentage / shares compute each raw share with ceil(), so the raw
    total can only overshoot the amount, never undershoot it.
  - The overshoot ("overage") is then removed walking the remainder
    distribution order: participants who also paid, largest payment first
    (ties keep input order), then everyone else in input order.
  - No participant is taken below zero; the walk moves on instead.

    100 cents, equal, [A, B, C], A paid 100  ->  {A: 32, B: 34, C: 34}

Layer rules:
  - No Flask imports and no store access. Pure functions over plain values.
  - Raises AppError(INVALID_SPLIT, 422) before anything is written.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

from groupledger.app.errors import AppError, ErrorCode, WarningCode, make_warning
from groupledger.app.money import (
    HUNDRED,
    ceil_div,
    format_cents,
    mul_ceil,
    sum_cents,
    to_cents,
    to_decimal,
)

logger = logging.getLogger(__name__)


class SplitMethod(str, Enum):
    EQUAL      = "equal"
    PERCENTAGE = "percentage"
    SHARES     = "shares"
    EXACT      = "exact"


@dataclass
class SplitResult:
    obligations: dict[str, int]
    meta: dict = field(default_factory=dict)
    warnings: list[dict] = field(default_factory=list)


# ── Private helpers ────────────────────────────────────────────────────────

def _invalid(message: str, field_name: str | None = None) -> AppError:
    return AppError(ErrorCode.INVALID_SPLIT, message, 422, field=field_name)


def _parse_method(method) -> SplitMethod:
    if isinstance(method, SplitMethod):
        return method
    try:
        return SplitMethod(str(method).lower())
    except ValueError:
        valid = ", ".join(m.value for m in SplitMethod)
        raise AppError(
            ErrorCode.INVALID_SPLIT_METHOD,
            f"'{method}' is not a valid split method. Must be one of: {valid}.",
            400,
            field="splitMethod",
        )


def _validate_inputs(
        amount: int,
        participants: list[str],
        payers: dict[str, int],
        members,
) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise _invalid(f"Amount must be a positive number of cents, got {amount!r}.", "amount")

    if not participants:
        raise _invalid("At least one participant is required.", "participants")

    if len(set(participants)) != len(participants):
        raise _invalid("Participants must not contain duplicates.", "participants")

    for member_id, paid in payers.items():
        if isinstance(paid, bool) or not isinstance(paid, int) or paid <= 0:
            raise _invalid(
                f"Payer {member_id} must have paid a positive amount, got {paid!r}.",
                "payers",
            )

    if members is not None:
        member_set = {str(m) for m in members}
        for member_id in participants:
            if member_id not in member_set:
                raise _invalid(f"Participant {member_id} is not a group member.", "participants")
        for member_id in payers:
            if member_id not in member_set:
                raise _invalid(f"Payer {member_id} is not a group member.", "payers")


def _param_value(params: dict, member_id: str, key: str):
    """
    Reads one participant's policy parameter.

    Accepts either {member_id: value} or {member_id: {key: value}}.
    """
    if member_id not in params:
        raise _invalid(f"Missing {key} for participant {member_id}.", "splitDetails")
    raw = params[member_id]
    if isinstance(raw, dict):
        if key not in raw:
            raise _invalid(f"Missing {key} for participant {member_id}.", "splitDetails")
        raw = raw[key]
    try:
        return to_decimal(raw, field="splitDetails")
    except AppError:
        raise _invalid(f"Invalid {key} {raw!r} for participant {member_id}.", "splitDetails")


def _check_no_extra_params(params: dict, participants: list[str]) -> None:
    extra = sorted(set(params) - set(participants))
    if extra:
        raise _invalid(
            f"Split details name non-participants: {', '.join(extra)}.",
            "splitDetails",
        )


def remainder_distribution_order(participants: list[str], payers: dict[str, int]) -> list[str]:
    """
    Order in which participants absorb rounding overage.

    Participants who paid come first, by amount paid descending; ties keep
    input order (sorted() is stable). Non-payers follow in input order.
    """
    paying = [m for m in participants if payers.get(m, 0) > 0]
    paying = sorted(paying, key=lambda m: -payers[m])
    rest = [m for m in participants if payers.get(m, 0) <= 0]
    return paying + rest


def _absorb_overage(raw: dict[str, int], amount: int, order: list[str]) -> int:
    """
    Subtracts sum(raw) - amount from participants in `order`, in place.

    Returns the overage that was removed.
    """
    overage = sum_cents(raw.values()) - amount
    remaining = overage
    for member_id in order:
        if remaining <= 0:
            break
        take = min(remaining, raw[member_id])
        raw[member_id] -= take
        remaining -= take

    if remaining != 0:
        raise AppError(
            ErrorCode.INTERNAL_ERROR,
            f"Could not absorb rounding overage of {overage} cents. "
            f"This is a bug — please report it.",
            500,
        )
    return overage


def _equal(amount: int, participants: list[str]) -> tuple[dict[str, int], dict]:
    base = ceil_div(amount, len(participants))
    return {m: base for m in participants}, {}


def _percentage(amount: int, participants: list[str], params: dict) -> tuple[dict[str, int], dict]:
    percentages = {m: _param_value(params, m, "percentage") for m in participants}
    for member_id, pct in percentages.items():
        if pct <= 0:
            raise _invalid(f"Percentage for {member_id} must be positive.", "splitDetails")

    total = sum(percentages.values(), Decimal("0"))
    if total != HUNDRED:
        raise _invalid(f"Percentages must total 100, got {total}.", "splitDetails")

    raw = {m: mul_ceil(amount, pct, HUNDRED) for m, pct in percentages.items()}
    split_meta = {m: {"percentage": str(pct)} for m, pct in percentages.items()}
    return raw, split_meta


def _shares(amount: int, participants: list[str], params: dict) -> tuple[dict[str, int], dict]:
    shares = {m: _param_value(params, m, "shares") for m in participants}
    for member_id, share in shares.items():
        if share <= 0:
            raise _invalid(f"Shares for {member_id} must be positive.", "splitDetails")

    total = sum(shares.values(), Decimal("0"))
    raw = {m: mul_ceil(amount, share, total) for m, share in shares.items()}
    split_meta = {m: {"shares": str(share)} for m, share in shares.items()}
    return raw, split_meta


def _exact(amount: int, participants: list[str], params: dict) -> tuple[dict[str, int], dict, list]:
    obligations = {}
    for member_id in participants:
        value = _param_value(params, member_id, "amount")
        if value < 0:
            raise _invalid(f"Amount for {member_id} must not be negative.", "splitDetails")
        obligations[member_id] = to_cents(value)

    split_meta = {m: {"amount": format_cents(c)} for m, c in obligations.items()}

    warnings = []
    total = sum_cents(obligations.values())
    if total != amount:
        warnings.append(make_warning(
            WarningCode.EXACT_SPLIT_MISMATCH,
            f"Exact split amounts total {format_cents(total)} but the expense "
            f"amount is {format_cents(amount)}. Recorded as given.",
            expected=format_cents(amount),
            actual=format_cents(total),
        ))
    return obligations, split_meta, warnings


# ── Public functions ───────────────────────────────────────────────────────

def compute_split(
        amount: int,
        participants: list,
        payers: dict | None,
        method,
        params: dict | None = None,
        members=None,
) -> SplitResult:
    """
    Computes per-participant obligations for one expense.

    Args:
        amount:       Expense total in cents. Must be positive.
        participants: Ordered member ids sharing the expense. No duplicates.
        payers:       {member_id: cents paid}. Drives the remainder order.
        method:       SplitMethod or its string value.
        params:       Policy parameters keyed by member id:
                        percentage -> {id: pct} or {id: {"percentage": pct}}
                        shares     -> {id: n}   or {id: {"shares": n}}
                        exact      -> {id: major-unit amount} or {id: {"amount": ...}}
        members:      Optional collection of valid member ids.

    Returns:
        SplitResult with obligations, meta (splitMeta, overage, remainderOrder)
        and any non-fatal warnings.
    """
    method = _parse_method(method)
    participants = [str(m) for m in participants]
    payers = {str(m): paid for m, paid in (payers or {}).items()}
    params = {str(m): value for m, value in (params or {}).items()}

    _validate_inputs(amount, participants, payers, members)

    order = remainder_distribution_order(participants, payers)
    warnings: list[dict] = []
    overage = 0

    if method == SplitMethod.EXACT:
        _check_no_extra_params(params, participants)
        obligations, split_meta, warnings = _exact(amount, participants, params)
    else:
        if method == SplitMethod.EQUAL:
            obligations, split_meta = _equal(amount, participants)
        elif method == SplitMethod.PERCENTAGE:
            _check_no_extra_params(params, participants)
            obligations, split_meta = _percentage(amount, participants, params)
        else:
            _check_no_extra_params(params, participants)
            obligations, split_meta = _shares(amount, participants, params)

        overage = _absorb_overage(obligations, amount, order)

        # Sanity check: this must always hold. A failure here is a programming error.
        computed = sum_cents(obligations.values())
        if computed != amount:
            raise AppError(
                ErrorCode.INTERNAL_ERROR,
                f"{method.value} split produced sum {computed} for amount {amount}. "
                f"This is a bug — please report it.",
                500,
            )

    logger.debug(
        "split %s of %d cents across %d participants (overage %d)",
        method.value, amount, len(participants), overage,
    )

    return SplitResult(
        obligations=obligations,
        meta={
            "splitMethod": method.value,
            "splitMeta": split_meta,
            "overage": overage,
            "remainderOrder": order,
        },
        warnings=warnings,
    )
