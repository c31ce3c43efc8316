"""
services/expense_service.py — Expense business logic.

Every operation is one BalanceLedger transaction, so the expense record, the
expense index, the balances and the member summaries change together or not
at all.

  record  compute_split() on the new input, apply, write the record.
  delete  reverse using the STORED payers and splitResult (never recomputed),
          then remove the record.
  edit    reverse(stored) + apply(new) + record write, as one mutation.
          The split is only recomputed when a split-affecting field changes.

Validation order:
  - Membership and split rules are checked inside the transaction, against
    the group record read in the same attempt, before anything is written.
  - Payer amounts need not add up to the expense amount. A mismatch is
    recorded as given and reported as a PAYER_SUM_MISMATCH warning.

Layer rules:
  - No Flask imports. Receives the ledger and plain dicts (amounts in cents).
  - Returns plain dicts and LedgerResult objects or raises AppError.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date as date_cls, datetime, timezone
from decimal import Decimal

from groupledger.app.errors import AppError, ErrorCode, WarningCode, make_warning
from groupledger.app.money import format_cents, sum_cents
from groupledger.app.services.balance_ledger import (
    BalanceLedger,
    LedgerMutation,
    LedgerResult,
    expense_mutation,
    payer_amounts,
)
from groupledger.app.services.currency_service import (
    create_exchange_rate_record,
    normalize_currency,
)
from groupledger.app.services.split_calculator import compute_split

logger = logging.getLogger(__name__)

CATEGORIES = ("food", "transport", "accommodation", "entertainment", "shopping", "other")
DEFAULT_CATEGORY = "other"

# Changing any of these on edit re-runs the split calculator.
SPLIT_FIELDS = ("amount", "payers", "participants", "splitMethod", "splitDetails")


# ── Private helpers ────────────────────────────────────────────────────────

def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


def _expense_not_found(group_id, expense_id) -> AppError:
    return AppError(
        ErrorCode.EXPENSE_NOT_FOUND,
        f"Expense {expense_id} does not exist in group {group_id}.",
        404,
    )


def _validate_category(category) -> str:
    if category is None:
        return DEFAULT_CATEGORY
    if category not in CATEGORIES:
        raise AppError(
            ErrorCode.INVALID_CATEGORY,
            f"'{category}' is not a valid category. Must be one of: {', '.join(CATEGORIES)}.",
            400,
            field="category",
        )
    return category


def _json_safe(value):
    """Decimals become strings so split details survive any JSON store."""
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, dict):
        return {str(k): _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    return value


def _payer_warnings(payers: dict[str, int], amount: int) -> list[dict]:
    paid_total = sum_cents(payers.values())
    if paid_total == amount:
        return []
    return [make_warning(
        WarningCode.PAYER_SUM_MISMATCH,
        f"Payers paid {format_cents(paid_total)} in total but the expense amount "
        f"is {format_cents(amount)}. Recorded as given.",
        expected=format_cents(amount),
        actual=format_cents(paid_total),
    )]


def _build_record(fields: dict, group: dict, members: dict) -> tuple[dict, list[dict]]:
    """
    Computes the split for `fields` and returns (record, warnings).

    `fields` carries every expense field; the record keeps ids and timestamps
    that are already present.
    """
    amount = fields["amount"]
    payers = payer_amounts(fields.get("payers"))
    if not payers:
        raise AppError(
            ErrorCode.INVALID_SPLIT,
            "At least one payer is required.",
            422,
            field="payers",
        )

    split = compute_split(
        amount,
        fields.get("participants") or [],
        payers,
        fields.get("splitMethod", "equal"),
        fields.get("splitDetails"),
        members=members,
    )

    exchange_rate = fields.get("exchangeRate")
    if exchange_rate:
        exchange_rate = create_exchange_rate_record(
            exchange_rate.get("fromCurrency"),
            exchange_rate.get("toCurrency"),
            exchange_rate.get("rate"),
            exchange_rate.get("source", "custom"),
            exchange_rate.get("date"),
        )

    record = {
        "id":           fields["id"],
        "groupId":      fields["groupId"],
        "description":  fields["description"],
        "amount":       amount,
        "category":     _validate_category(fields.get("category")),
        "currency":     normalize_currency(fields.get("currency") or group.get("currency", "USD")),
        "payers":       {m: {"amount": c} for m, c in payers.items()},
        "participants": [str(m) for m in fields["participants"]],
        "splitMethod":  split.meta["splitMethod"],
        "splitDetails": _json_safe(fields.get("splitDetails") or {}),
        "splitMeta":    split.meta["splitMeta"],
        "splitResult":  split.obligations,
        "date":         fields.get("date") or date_cls.today().isoformat(),
        "location":     fields.get("location"),
        "exchangeRate": exchange_rate or None,
        "createdBy":    fields.get("createdBy"),
        "createdAt":    fields.get("createdAt") or _utcnow(),
    }
    if fields.get("updatedAt"):
        record["updatedAt"] = fields["updatedAt"]

    warnings = list(split.warnings) + _payer_warnings(payers, amount)
    return record, warnings


def _read_expense(txn, group_id: str, expense_id: str) -> dict:
    record = txn.get(txn.paths.expense(group_id, expense_id))
    if record is None:
        raise _expense_not_found(group_id, expense_id)
    return record


def _reverse_stored(record: dict) -> LedgerMutation:
    return expense_mutation(record["payers"], record["splitResult"], -1, record["amount"])


# ── Public service functions ───────────────────────────────────────────────

def record_expense(
        ledger: BalanceLedger,
        group_id,
        data: dict,
        created_by=None,
) -> LedgerResult:
    """
    Records a new expense and applies it to the group's balances.

    Args:
        ledger:     The BalanceLedger wired to the host's store.
        group_id:   Group the expense belongs to.
        data:       Validated dict (amounts in cents) from CreateExpenseSchema.
        created_by: Opaque id of whoever recorded it.

    Returns:
        LedgerResult whose payload is the stored expense record.
    """
    group_id = str(group_id)
    expense_id = uuid.uuid4().hex
    fields = dict(data)
    fields.update({
        "id":        expense_id,
        "groupId":   group_id,
        "createdBy": str(created_by) if created_by is not None else None,
        "createdAt": _utcnow(),
    })

    def build(txn) -> LedgerMutation:
        group = txn.group
        record, warnings = _build_record(fields, group, group.get("members", {}))

        expense_path = txn.paths.expense(group_id, expense_id)
        index_path = txn.paths.expense_index(group_id)
        txn.expect_absent(expense_path)
        index = txn.get(index_path) or []

        mutation = expense_mutation(record["payers"], record["splitResult"], 1, record["amount"])
        mutation.writes[expense_path] = record
        mutation.writes[index_path] = index + [expense_id]
        mutation.warnings.extend(warnings)
        mutation.payload = record
        return mutation

    result = ledger.transact(group_id, build)
    logger.info("expense %s recorded in group %s", expense_id, group_id)
    return result


def delete_expense(ledger: BalanceLedger, group_id, expense_id) -> LedgerResult:
    """
    Reverses a stored expense exactly and removes it.

    Raises:
        AppError(GROUP_NOT_FOUND, 404)   -- group does not exist.
        AppError(EXPENSE_NOT_FOUND, 404) -- expense does not exist.
    """
    group_id, expense_id = str(group_id), str(expense_id)

    def build(txn) -> LedgerMutation:
        record = _read_expense(txn, group_id, expense_id)
        index_path = txn.paths.expense_index(group_id)
        index = txn.get(index_path) or []

        mutation = _reverse_stored(record)
        mutation.writes[txn.paths.expense(group_id, expense_id)] = None
        mutation.writes[index_path] = [e for e in index if e != expense_id]
        mutation.payload = record
        return mutation

    result = ledger.transact(group_id, build)
    logger.info("expense %s deleted from group %s", expense_id, group_id)
    return result


def edit_expense(ledger: BalanceLedger, group_id, expense_id, data: dict) -> LedgerResult:
    """
    Updates an expense.

    Descriptive fields (description, category, date, location, currency,
    exchangeRate) are replaced in place. If any of amount, payers,
    participants, splitMethod or splitDetails is present, the stored split is
    reversed and the new one applied in the same commit.

    id, createdBy and createdAt are preserved; updatedAt is set.
    """
    group_id, expense_id = str(group_id), str(expense_id)

    def build(txn) -> LedgerMutation:
        group = txn.group
        old = _read_expense(txn, group_id, expense_id)

        fields = dict(old)
        fields.update(data)
        if "splitMethod" in data and "splitDetails" not in data:
            # Old details belong to the old method.
            fields["splitDetails"] = None
        fields["updatedAt"] = _utcnow()

        recompute = any(key in data for key in SPLIT_FIELDS)
        if recompute:
            record, warnings = _build_record(fields, group, group.get("members", {}))
            mutation = _reverse_stored(old)
            mutation.extend(expense_mutation(
                record["payers"], record["splitResult"], 1, record["amount"],
            ))
            mutation.warnings.extend(warnings)
        else:
            record = dict(old)
            for key in ("description", "date", "location"):
                if key in data:
                    record[key] = data[key]
            if "category" in data:
                record["category"] = _validate_category(data["category"])
            if "currency" in data:
                record["currency"] = normalize_currency(data["currency"])
            if "exchangeRate" in data:
                rate = data["exchangeRate"]
                record["exchangeRate"] = create_exchange_rate_record(
                    rate.get("fromCurrency"),
                    rate.get("toCurrency"),
                    rate.get("rate"),
                    rate.get("source", "custom"),
                    rate.get("date"),
                ) if rate else None
            record["updatedAt"] = fields["updatedAt"]
            mutation = LedgerMutation()

        mutation.writes[txn.paths.expense(group_id, expense_id)] = record
        mutation.payload = record
        return mutation

    result = ledger.transact(group_id, build)
    logger.info("expense %s edited in group %s", expense_id, group_id)
    return result


def get_expense(ledger: BalanceLedger, group_id, expense_id) -> dict:
    """Returns one stored expense record."""
    ledger.get_group(group_id)
    record = ledger.store.get(ledger.paths.expense(group_id, expense_id))
    if record is None:
        raise _expense_not_found(group_id, expense_id)
    return record


def list_expenses(ledger: BalanceLedger, group_id) -> list[dict]:
    """Returns all expenses of a group, newest first."""
    ledger.get_group(group_id)
    index = ledger.store.get(ledger.paths.expense_index(group_id)) or []
    paths = [ledger.paths.expense(group_id, e) for e in index]
    records = [entry.value for entry in ledger.store.get_many(paths).values() if entry.value]
    return sorted(records, key=lambda r: (r.get("date") or "", r["createdAt"]), reverse=True)
