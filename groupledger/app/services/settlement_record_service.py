"""
services/settlement_record_service.py — Manually recorded payments.

A settlement record attests that `from` paid `to` in the real world. Each
record change moves balance between the two members through the ledger:

  create  apply(new) + record write + index append
  update  reverse(STORED record) + apply(new) + record write
  delete  reverse(STORED record) + record removal + index removal

All three are a single BalanceLedger transaction. The reversal always uses the
stored record, never values supplied by the caller.

Rules:
  - amount must be positive cents.
  - from and to must be different members of the group.
  - method defaults to "cash"; date defaults to today.

Layer rules:
  - No Flask imports. Receives the ledger and plain dicts (amounts in cents).
"""

from __future__ import annotations

import logging
import uuid
from datetime import date as date_cls, datetime, timezone

from groupledger.app.errors import AppError, ErrorCode
from groupledger.app.services.balance_ledger import (
    BalanceLedger,
    LedgerMutation,
    LedgerResult,
    settlement_mutation,
)

logger = logging.getLogger(__name__)

DEFAULT_METHOD = "cash"


# ── Private helpers ────────────────────────────────────────────────────────

def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


def _record_not_found(group_id, record_id) -> AppError:
    return AppError(
        ErrorCode.RECORD_NOT_FOUND,
        f"Settlement record {record_id} does not exist in group {group_id}.",
        404,
    )


def _validate_endpoints(from_id: str, to_id: str, members: dict) -> None:
    if from_id == to_id:
        raise AppError(
            ErrorCode.INVALID_SETTLEMENT,
            "A settlement cannot be made to yourself.",
            422,
            field="to",
        )
    for field_name, member_id in (("from", from_id), ("to", to_id)):
        if member_id not in members:
            raise AppError(
                ErrorCode.INVALID_SETTLEMENT,
                f"Member {member_id} is not part of this group.",
                422,
                field=field_name,
            )


def _validate_amount(amount) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise AppError(
            ErrorCode.INVALID_SETTLEMENT,
            f"Settlement amount must be positive, got {amount!r}.",
            422,
            field="amount",
        )


def _read_record(txn, group_id: str, record_id: str) -> dict:
    record = txn.get(txn.paths.settlement_record(group_id, record_id))
    if record is None:
        raise _record_not_found(group_id, record_id)
    return record


def _reverse_stored(record: dict) -> LedgerMutation:
    return settlement_mutation(record["from"], record["to"], record["amount"], -1)


# ── Public service functions ───────────────────────────────────────────────

def create_settlement_record(
        ledger: BalanceLedger,
        group_id,
        data: dict,
        recorded_by=None,
) -> LedgerResult:
    """
    Records a payment and applies it to the group's balances.

    Args:
        data: Validated dict from CreateSettlementRecordSchema.
              Keys: from, to, amount (cents), method?, remarks?, date?

    Returns:
        LedgerResult whose payload is the stored record.
    """
    group_id = str(group_id)
    record_id = uuid.uuid4().hex
    record = {
        "id":         record_id,
        "groupId":    group_id,
        "from":       str(data["from"]),
        "to":         str(data["to"]),
        "amount":     data["amount"],
        "method":     data.get("method") or DEFAULT_METHOD,
        "remarks":    data.get("remarks") or "",
        "date":       data.get("date") or date_cls.today().isoformat(),
        "recordedBy": str(recorded_by) if recorded_by is not None else None,
        "recordedAt": _utcnow(),
    }
    _validate_amount(record["amount"])

    def build(txn) -> LedgerMutation:
        _validate_endpoints(record["from"], record["to"], txn.group.get("members", {}))

        record_path = txn.paths.settlement_record(group_id, record_id)
        index_path = txn.paths.settlement_index(group_id)
        txn.expect_absent(record_path)
        index = txn.get(index_path) or []

        mutation = settlement_mutation(record["from"], record["to"], record["amount"], 1)
        mutation.writes[record_path] = record
        mutation.writes[index_path] = index + [record_id]
        mutation.payload = record
        return mutation

    result = ledger.transact(group_id, build)
    logger.info(
        "settlement %s recorded in group %s: %s -> %s",
        record_id, group_id, record["from"], record["to"],
    )
    return result


def update_settlement_record(
        ledger: BalanceLedger,
        group_id,
        record_id,
        data: dict,
) -> LedgerResult:
    """
    Replaces a record's fields; balance moves by the difference, atomically.

    recordedBy and recordedAt are preserved; updatedAt is set.
    """
    group_id, record_id = str(group_id), str(record_id)

    def build(txn) -> LedgerMutation:
        old = _read_record(txn, group_id, record_id)

        new = dict(old)
        for key in ("from", "to"):
            if key in data:
                new[key] = str(data[key])
        for key in ("amount", "method", "remarks", "date"):
            if key in data:
                new[key] = data[key]
        new["updatedAt"] = _utcnow()

        _validate_amount(new["amount"])
        _validate_endpoints(new["from"], new["to"], txn.group.get("members", {}))

        mutation = _reverse_stored(old)
        mutation.extend(settlement_mutation(new["from"], new["to"], new["amount"], 1))
        mutation.writes[txn.paths.settlement_record(group_id, record_id)] = new
        mutation.payload = new
        return mutation

    result = ledger.transact(group_id, build)
    logger.info("settlement %s updated in group %s", record_id, group_id)
    return result


def delete_settlement_record(ledger: BalanceLedger, group_id, record_id) -> LedgerResult:
    """
    Reverses a stored record and removes it.

    Raises:
        AppError(GROUP_NOT_FOUND, 404)  -- group does not exist.
        AppError(RECORD_NOT_FOUND, 404) -- record does not exist.
    """
    group_id, record_id = str(group_id), str(record_id)

    def build(txn) -> LedgerMutation:
        record = _read_record(txn, group_id, record_id)
        index_path = txn.paths.settlement_index(group_id)
        index = txn.get(index_path) or []

        mutation = _reverse_stored(record)
        mutation.writes[txn.paths.settlement_record(group_id, record_id)] = None
        mutation.writes[index_path] = [r for r in index if r != record_id]
        mutation.payload = record
        return mutation

    result = ledger.transact(group_id, build)
    logger.info("settlement %s deleted from group %s", record_id, group_id)
    return result


def get_settlement_record(ledger: BalanceLedger, group_id, record_id) -> dict:
    ledger.get_group(group_id)
    record = ledger.store.get(ledger.paths.settlement_record(group_id, record_id))
    if record is None:
        raise _record_not_found(group_id, record_id)
    return record


def list_settlement_records(ledger: BalanceLedger, group_id) -> list[dict]:
    """Returns all records of a group ordered by recordedAt, oldest first."""
    ledger.get_group(group_id)
    index = ledger.store.get(ledger.paths.settlement_index(group_id)) or []
    paths = [ledger.paths.settlement_record(group_id, r) for r in index]
    records = [entry.value for entry in ledger.store.get_many(paths).values() if entry.value]
    return sorted(records, key=lambda r: r["recordedAt"])
