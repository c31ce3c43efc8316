"""
services/group_service.py — Groups and the member list the ledger validates against.

A group record lives at groups/{id} with its members keyed by opaque member id.
Creating a group also initializes its balances (zero per member) and its
summary in the same atomic write. Membership changes go through the ledger so
that the member list, the balances entry and memberCount move together.

Rules:
  - A member can only be removed while their balance is exactly zero
    (MEMBER_HAS_BALANCE, 409). Otherwise the group would stop summing to zero.
  - A member can only be removed while no expense or settlement record in the
    group names them (MEMBER_HAS_HISTORY, 409). Deleting such a record later
    would reverse it onto someone who is no longer in the group.
  - Adding an existing member is ALREADY_MEMBER (409).

Layer rules:
  - No Flask imports. Receives the ledger and plain values.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone

from groupledger.app.errors import AppError, ErrorCode
from groupledger.app.money import format_cents
from groupledger.app.services.balance_ledger import (
    BalanceLedger,
    LedgerMutation,
    LedgerResult,
    empty_group_summary,
)
from groupledger.app.services.currency_service import normalize_currency
from groupledger.app.store.base import VersionConflict

logger = logging.getLogger(__name__)

ROLE_ADMIN = "admin"
ROLE_MEMBER = "member"


# ── Private helpers ────────────────────────────────────────────────────────

def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


def _member_entry(member: dict, role: str, joined_at: str) -> dict:
    return {
        "name":     member.get("name") or str(member["id"]),
        "role":     member.get("role") or role,
        "joinedAt": joined_at,
    }


def _normalize_members(members) -> list[dict]:
    """Accepts member ids or {"id", "name"?, "role"?} dicts."""
    result = []
    for member in members or []:
        if isinstance(member, dict):
            result.append({**member, "id": str(member["id"])})
        else:
            result.append({"id": str(member)})
    return result


def _expense_mentions(record: dict, member_id: str) -> bool:
    return (
        member_id in record.get("payers", {})
        or member_id in record.get("participants", [])
        or member_id in record.get("splitResult", {})
    )


def _find_history(txn, group_id: str, member_id: str) -> str | None:
    """
    Id of the first expense or settlement record naming the member, or None.

    Reads through the transaction so a record added concurrently invalidates
    the removal.
    """
    paths = txn.paths
    expense_ids = txn.get(paths.expense_index(group_id)) or []
    expenses = txn.get_many(paths.expense(group_id, e) for e in expense_ids)
    for expense_id in expense_ids:
        record = expenses[paths.expense(group_id, expense_id)]
        if record and _expense_mentions(record, member_id):
            return expense_id

    record_ids = txn.get(paths.settlement_index(group_id)) or []
    records = txn.get_many(paths.settlement_record(group_id, r) for r in record_ids)
    for record_id in record_ids:
        record = records[paths.settlement_record(group_id, record_id)]
        if record and member_id in (record.get("from"), record.get("to")):
            return record_id

    return None


# ── Public service functions ───────────────────────────────────────────────

def create_group(ledger: BalanceLedger, data: dict, created_by=None) -> dict:
    """
    Creates a group, its zero balances and its summary in one write.

    Args:
        data: Validated dict from CreateGroupSchema.
              Keys: name, currency?, members (ids or {"id", "name"} dicts).
        created_by: Opaque id of the creator. Added as admin if not listed.

    Returns:
        The group view (see get_group).
    """
    group_id = uuid.uuid4().hex
    now = _utcnow()

    members = _normalize_members(data.get("members"))
    ids = [m["id"] for m in members]
    if len(set(ids)) != len(ids):
        raise AppError(
            ErrorCode.ALREADY_MEMBER,
            "The member list contains duplicates.",
            409,
            field="members",
        )
    if created_by is not None and str(created_by) not in ids:
        members.insert(0, {"id": str(created_by), "role": ROLE_ADMIN})

    creator = str(created_by) if created_by is not None else None
    group = {
        "id":        group_id,
        "name":      data["name"],
        "currency":  normalize_currency(data.get("currency") or "USD"),
        "createdAt": now,
        "createdBy": creator,
        "members": {
            m["id"]: _member_entry(m, ROLE_ADMIN if m["id"] == creator else ROLE_MEMBER, now)
            for m in members
        },
    }
    balances = {member_id: 0 for member_id in group["members"]}
    summary = empty_group_summary()
    summary["memberCount"] = len(balances)

    paths = ledger.paths
    updates = {
        paths.group(group_id):          group,
        paths.group_balances(group_id): balances,
        paths.group_summary(group_id):  summary,
    }
    try:
        ledger.store.atomic_multi_update(updates, {path: 0 for path in updates})
    except VersionConflict:
        # Only reachable if two creates drew the same uuid.
        raise AppError(
            ErrorCode.CONCURRENT_MODIFICATION,
            f"Group {group_id} already exists.",
            409,
        )

    logger.info("group %s created with %d members", group_id, len(balances))
    return {**group, "balances": balances, "summary": summary}


def get_group(ledger: BalanceLedger, group_id) -> dict:
    """Group record plus its current balances and summary."""
    group, balances, summary = ledger.read_group_state(group_id)
    return {**group, "balances": balances, "summary": summary}


def add_member(ledger: BalanceLedger, group_id, member: dict) -> LedgerResult:
    """
    Adds a member with a zero balance.

    Raises:
        AppError(GROUP_NOT_FOUND, 404) -- group does not exist.
        AppError(ALREADY_MEMBER, 409)  -- id is already in the group.
    """
    member = _normalize_members([member])[0]
    member_id = member["id"]

    def build(txn) -> LedgerMutation:
        group = txn.group
        if member_id in group.get("members", {}):
            raise AppError(
                ErrorCode.ALREADY_MEMBER,
                f"Member {member_id} is already in group {group_id}.",
                409,
                field="id",
            )
        group.setdefault("members", {})[member_id] = _member_entry(member, ROLE_MEMBER, _utcnow())

        mutation = LedgerMutation(member_count_delta=1)
        mutation.add_balance(member_id, 0)
        mutation.writes[txn.paths.group(group_id)] = group
        mutation.payload = group
        return mutation

    result = ledger.transact(group_id, build)
    logger.info("member %s added to group %s", member_id, group_id)
    return result


def remove_member(ledger: BalanceLedger, group_id, member_id) -> LedgerResult:
    """
    Removes a member whose balance is zero.

    Raises:
        AppError(MEMBER_NOT_FOUND, 404)   -- not a member of the group.
        AppError(MEMBER_HAS_BALANCE, 409) -- balance is not zero.
        AppError(MEMBER_HAS_HISTORY, 409) -- an expense or settlement record
                                             still names the member.
    """
    member_id = str(member_id)

    def build(txn) -> LedgerMutation:
        group = txn.group
        if member_id not in group.get("members", {}):
            raise AppError(
                ErrorCode.MEMBER_NOT_FOUND,
                f"Member {member_id} is not in group {group_id}.",
                404,
            )

        balances = txn.get(txn.paths.group_balances(group_id)) or {}
        balance = balances.get(member_id, 0)
        if balance != 0:
            raise AppError(
                ErrorCode.MEMBER_HAS_BALANCE,
                f"Member {member_id} still has a balance of {format_cents(balance)} "
                f"and cannot be removed.",
                409,
            )

        history_id = _find_history(txn, group_id, member_id)
        if history_id is not None:
            raise AppError(
                ErrorCode.MEMBER_HAS_HISTORY,
                f"Member {member_id} appears in record {history_id} and cannot be "
                f"removed until it is deleted.",
                409,
            )

        del group["members"][member_id]
        mutation = LedgerMutation(member_count_delta=-1, dropped_members=[member_id])
        mutation.writes[txn.paths.group(group_id)] = group
        mutation.payload = group
        return mutation

    result = ledger.transact(group_id, build)
    logger.info("member %s removed from group %s", member_id, group_id)
    return result


def get_user_summary(ledger: BalanceLedger, member_id) -> dict:
    """Cross-group summary for a member; zero baseline if nothing recorded yet."""
    return ledger.get_user_summary(member_id)
