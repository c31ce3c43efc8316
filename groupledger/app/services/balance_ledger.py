"""
services/balance_ledger.py — Per-group balances and per-member summaries.

Sign convention:
  balance > 0  the group owes this member (net receivable)
  balance < 0  this member owes the group (net payable)

Event arithmetic (all integer cents, never rounded here):

  expense     payer p:        balance[p] += paid[p]        receivable[p] += paid[p]
              participant m:  balance[m] -= obligation[m]  owed[m]       += obligation[m]
  settlement  from f:         balance[f] += amount         owed[f]       -= amount
              to t:           balance[t] -= amount         receivable[t] -= amount

Reversal negates every delta, so apply followed by reverse restores the exact
prior values. Summaries are never clamped at zero for the same reason.

Commit protocol:
  - Every operation is a LedgerMutation built inside BalanceLedger.transact().
  - transact() reads the group record, balances, group summary and touched user
    summaries through a LedgerTransaction, which remembers the version of
    everything it read.
  - The write is one atomic_multi_update guarded by those versions. On
    VersionConflict the whole attempt (reads and builder) runs again, up to
    max_retries times, then CONCURRENT_MODIFICATION (409) is raised.
  - No lock is held across store calls.

When user summaries live in a separate store, the group write commits first
(the ledger is the source of truth) and the summary write follows with its own
retry loop. If that fails the result is a partial success: the caller gets
summaries_committed=False and a SUMMARY_UPDATE_FAILED warning.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

from groupledger.app.errors import (
    AppError,
    ErrorCode,
    StoreUnavailable,
    WarningCode,
    make_warning,
)
from groupledger.app.money import sum_cents
from groupledger.app.store.base import KeyValueStore, VersionConflict
from groupledger.app.store.paths import PathLayout

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 5


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


def payer_amounts(payers: dict) -> dict[str, int]:
    """
    Normalizes payers to {member_id: cents}.

    Accepts both {id: cents} and the stored form {id: {"amount": cents}}.
    """
    result = {}
    for member_id, paid in (payers or {}).items():
        if isinstance(paid, dict):
            paid = paid.get("amount")
        result[str(member_id)] = paid
    return result


def empty_user_summary() -> dict:
    return {
        "totalAmountOwed":       0,
        "totalAmountReceivable": 0,
        "totalBalance":          0,
        "lastUpdated":           None,
    }


def empty_group_summary() -> dict:
    return {
        "totalExpenses":    0,
        "expenseCount":     0,
        "memberCount":      0,
        "lastExpenseAt":    None,
        "lastSettlementAt": None,
    }


# ── Mutations ──────────────────────────────────────────────────────────────

@dataclass
class LedgerMutation:
    """
    Signed deltas plus record writes, committed together by BalanceLedger.

    balance_deltas is a list so that reversal replays members in the same
    order. A (member_id, 0) entry creates a zero balance for a new member.
    """

    balance_deltas: list[tuple[str, int]] = field(default_factory=list)
    owed_deltas: dict[str, int] = field(default_factory=dict)
    receivable_deltas: dict[str, int] = field(default_factory=dict)
    dropped_members: list[str] = field(default_factory=list)

    total_expenses_delta: int = 0
    expense_count_delta: int = 0
    member_count_delta: int = 0
    expense_touched: bool = False
    settlement_touched: bool = False

    writes: dict[str, Any] = field(default_factory=dict)
    warnings: list[dict] = field(default_factory=list)
    payload: Any = None

    def add_balance(self, member_id, delta: int) -> None:
        self.balance_deltas.append((str(member_id), delta))

    def add_owed(self, member_id, delta: int) -> None:
        key = str(member_id)
        self.owed_deltas[key] = self.owed_deltas.get(key, 0) + delta

    def add_receivable(self, member_id, delta: int) -> None:
        key = str(member_id)
        self.receivable_deltas[key] = self.receivable_deltas.get(key, 0) + delta

    def touched_members(self) -> list[str]:
        seen = dict.fromkeys(list(self.owed_deltas) + list(self.receivable_deltas))
        return list(seen)

    def extend(self, other: "LedgerMutation") -> "LedgerMutation":
        """Appends another mutation's deltas and writes to this one."""
        self.balance_deltas.extend(other.balance_deltas)
        for member_id, delta in other.owed_deltas.items():
            self.add_owed(member_id, delta)
        for member_id, delta in other.receivable_deltas.items():
            self.add_receivable(member_id, delta)
        self.dropped_members.extend(other.dropped_members)
        self.total_expenses_delta += other.total_expenses_delta
        self.expense_count_delta += other.expense_count_delta
        self.member_count_delta += other.member_count_delta
        self.expense_touched = self.expense_touched or other.expense_touched
        self.settlement_touched = self.settlement_touched or other.settlement_touched
        self.writes.update(other.writes)
        self.warnings.extend(other.warnings)
        if other.payload is not None:
            self.payload = other.payload
        return self


def expense_mutation(
        payers: dict,
        obligations: dict[str, int],
        sign: int = 1,
        amount: int | None = None,
) -> LedgerMutation:
    """
    Deltas for applying (sign=1) or reversing (sign=-1) one expense.

    `amount` feeds the group's totalExpenses; it defaults to the obligation sum.
    """
    paid = payer_amounts(payers)
    _check_cents(paid, "payers")
    _check_cents(obligations, "obligations")

    mutation = LedgerMutation(expense_touched=True)
    for member_id, cents in paid.items():
        mutation.add_balance(member_id, sign * cents)
        mutation.add_receivable(member_id, sign * cents)
    for member_id, cents in obligations.items():
        mutation.add_balance(member_id, -sign * cents)
        mutation.add_owed(member_id, sign * cents)

    if amount is None:
        amount = sum_cents(obligations.values())
    mutation.total_expenses_delta = sign * amount
    mutation.expense_count_delta = sign
    return mutation


def settlement_mutation(from_id, to_id, amount: int, sign: int = 1) -> LedgerMutation:
    """Deltas for applying (sign=1) or reversing (sign=-1) one settlement."""
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise AppError(
            ErrorCode.INVALID_SETTLEMENT,
            f"Settlement amount must be a positive number of cents, got {amount!r}.",
            422,
            field="amount",
        )
    if str(from_id) == str(to_id):
        raise AppError(
            ErrorCode.INVALID_SETTLEMENT,
            "A member cannot settle with themselves.",
            422,
            field="to",
        )

    mutation = LedgerMutation(settlement_touched=True)
    mutation.add_balance(from_id, sign * amount)
    mutation.add_owed(from_id, -sign * amount)
    mutation.add_balance(to_id, -sign * amount)
    mutation.add_receivable(to_id, -sign * amount)
    return mutation


def _check_cents(amounts: dict, field_name: str) -> None:
    for member_id, cents in amounts.items():
        if isinstance(cents, bool) or not isinstance(cents, int):
            raise AppError(
                ErrorCode.INVALID_AMOUNT,
                f"{field_name} for {member_id} must be integer cents, got {cents!r}.",
                400,
                field=field_name,
            )


# ── Transaction & result ───────────────────────────────────────────────────

class LedgerTransaction:
    """
    Read side of one commit attempt.

    Remembers the version of every path read (first read wins) so the final
    write can be guarded against anything that changed in between.
    """

    def __init__(self, store: KeyValueStore, paths: PathLayout, group_id: str) -> None:
        self.store = store
        self.paths = paths
        self.group_id = group_id
        self.versions: dict[str, int] = {}
        self._values: dict[str, Any] = {}

    def get_many(self, paths) -> dict[str, Any]:
        paths = list(paths)
        missing = [p for p in paths if p not in self._values]
        if missing:
            for path, entry in self.store.get_many(missing).items():
                self._values[path] = entry.value
                self.versions[path] = entry.version
        return {p: copy.deepcopy(self._values[p]) for p in paths}

    def get(self, path: str) -> Any:
        return self.get_many([path])[path]

    def expect_absent(self, path: str) -> None:
        """Requires `path` to still be absent when the write lands."""
        self._values[path] = None
        self.versions[path] = 0

    @property
    def group(self) -> dict:
        return self.get(self.paths.group(self.group_id))


@dataclass
class LedgerResult:
    balances: dict[str, int]
    summaries: dict[str, dict]
    group_summary: dict
    warnings: list[dict] = field(default_factory=list)
    summaries_committed: bool = True
    payload: Any = None

    @property
    def partial(self) -> bool:
        return not self.summaries_committed


# ── BalanceLedger ──────────────────────────────────────────────────────────

class BalanceLedger:

    def __init__(
            self,
            store: KeyValueStore,
            paths: PathLayout | None = None,
            max_retries: int = DEFAULT_MAX_RETRIES,
            summary_store: KeyValueStore | None = None,
            clock: Callable[[], str] = _utcnow,
    ) -> None:
        self.store = store
        self.paths = paths or PathLayout()
        self.max_retries = max(1, max_retries)
        self.summary_store = summary_store if summary_store is not store else None
        self.clock = clock

    # ── Public operations ──────────────────────────────────────────────────

    def apply_expense(self, group_id, payers: dict, obligations: dict[str, int]) -> LedgerResult:
        return self.transact(group_id, lambda txn: expense_mutation(payers, obligations, 1))

    def reverse_expense(self, group_id, payers: dict, obligations: dict[str, int]) -> LedgerResult:
        return self.transact(group_id, lambda txn: expense_mutation(payers, obligations, -1))

    def apply_settlement(self, group_id, from_id, to_id, amount: int) -> LedgerResult:
        return self.transact(group_id, lambda txn: settlement_mutation(from_id, to_id, amount, 1))

    def reverse_settlement(self, group_id, from_id, to_id, amount: int) -> LedgerResult:
        return self.transact(group_id, lambda txn: settlement_mutation(from_id, to_id, amount, -1))

    def get_group(self, group_id) -> dict:
        """Returns the group record or raises GROUP_NOT_FOUND (404)."""
        group = self.store.get(self.paths.group(group_id))
        if group is None:
            raise _group_not_found(group_id)
        return group

    def get_balances(self, group_id) -> dict[str, int]:
        """Current balances snapshot; raises GROUP_NOT_FOUND if the group is absent."""
        return self.read_group_state(group_id)[1]

    def get_group_summary(self, group_id) -> dict:
        summary = self.store.get(self.paths.group_summary(group_id))
        return summary or empty_group_summary()

    def read_group_state(self, group_id) -> tuple[dict, dict[str, int], dict]:
        """(group, balances, group_summary) read as one snapshot."""
        group_path = self.paths.group(group_id)
        balances_path = self.paths.group_balances(group_id)
        meta_path = self.paths.group_summary(group_id)
        snapshot = self.store.get_many([group_path, balances_path, meta_path])
        if snapshot[group_path].value is None:
            raise _group_not_found(group_id)
        group_summary = empty_group_summary()
        group_summary.update(snapshot[meta_path].value or {})
        return (
            snapshot[group_path].value,
            snapshot[balances_path].value or {},
            group_summary,
        )

    def get_user_summary(self, member_id) -> dict:
        store = self.summary_store or self.store
        summary = store.get(self.paths.user_summary(member_id))
        return summary or empty_user_summary()

    # ── Commit ─────────────────────────────────────────────────────────────

    def transact(
            self,
            group_id,
            build: Callable[[LedgerTransaction], LedgerMutation],
    ) -> LedgerResult:
        """
        Runs `build` and commits its mutation atomically, retrying on conflict.

        `build` may read through the transaction and may raise AppError; it is
        called again from scratch on every attempt, so it must not have side
        effects outside the mutation it returns.
        """
        group_id = str(group_id)

        for attempt in range(1, self.max_retries + 1):
            txn = LedgerTransaction(self.store, self.paths, group_id)
            group_path = self.paths.group(group_id)
            balances_path = self.paths.group_balances(group_id)
            meta_path = self.paths.group_summary(group_id)

            snapshot = txn.get_many([group_path, balances_path, meta_path])
            if snapshot[group_path] is None:
                raise _group_not_found(group_id)

            mutation = build(txn)
            now = self.clock()

            balances = self._apply_balances(snapshot[balances_path] or {}, mutation)
            group_summary = self._apply_group_summary(snapshot[meta_path], mutation, now)

            updates: dict[str, Any] = dict(mutation.writes)
            updates[balances_path] = balances
            updates[meta_path] = group_summary

            summaries: dict[str, dict] = {}
            if self.summary_store is None:
                summaries = self._apply_summaries(txn, mutation, now)
                for member_id, summary in summaries.items():
                    updates[self.paths.user_summary(member_id)] = summary

            try:
                self.store.atomic_multi_update(updates, txn.versions)
            except VersionConflict as exc:
                logger.warning(
                    "ledger write for group %s conflicted on %s (attempt %d/%d)",
                    group_id, ", ".join(exc.paths), attempt, self.max_retries,
                )
                continue

            logger.debug(
                "group %s committed: deltas=%s owed=%s receivable=%s",
                group_id, mutation.balance_deltas,
                mutation.owed_deltas, mutation.receivable_deltas,
            )

            result = LedgerResult(
                balances=balances,
                summaries=summaries,
                group_summary=group_summary,
                warnings=list(mutation.warnings),
                payload=mutation.payload,
            )
            if self.summary_store is not None:
                self._commit_separate_summaries(group_id, mutation, now, result)
            return result

        logger.error(
            "ledger write for group %s gave up after %d attempts",
            group_id, self.max_retries,
        )
        raise AppError(
            ErrorCode.CONCURRENT_MODIFICATION,
            f"Group {group_id} was modified concurrently. Please retry.",
            409,
        )

    # ── Private helpers ────────────────────────────────────────────────────

    def _apply_balances(self, balances: dict, mutation: LedgerMutation) -> dict[str, int]:
        result = dict(balances)
        for member_id, delta in mutation.balance_deltas:
            result[member_id] = result.get(member_id, 0) + delta
        for member_id in mutation.dropped_members:
            result.pop(member_id, None)
        return result

    def _apply_group_summary(self, current: dict | None, mutation: LedgerMutation, now: str) -> dict:
        summary = empty_group_summary()
        summary.update(current or {})
        summary["totalExpenses"] += mutation.total_expenses_delta
        summary["expenseCount"] += mutation.expense_count_delta
        summary["memberCount"] += mutation.member_count_delta
        if mutation.expense_touched:
            summary["lastExpenseAt"] = now
        if mutation.settlement_touched:
            summary["lastSettlementAt"] = now
        return summary

    def _apply_summaries(self, reader, mutation: LedgerMutation, now: str) -> dict[str, dict]:
        members = mutation.touched_members()
        if not members:
            return {}
        paths = {m: self.paths.user_summary(m) for m in members}
        current = reader.get_many(paths.values())

        result = {}
        for member_id, path in paths.items():
            summary = empty_user_summary()
            summary.update(current[path] or {})
            summary["totalAmountOwed"] += mutation.owed_deltas.get(member_id, 0)
            summary["totalAmountReceivable"] += mutation.receivable_deltas.get(member_id, 0)
            summary["totalBalance"] = summary["totalAmountReceivable"] - summary["totalAmountOwed"]
            summary["lastUpdated"] = now
            result[member_id] = summary
        return result

    def _commit_separate_summaries(
            self,
            group_id: str,
            mutation: LedgerMutation,
            now: str,
            result: LedgerResult,
    ) -> None:
        if not mutation.touched_members():
            return

        for attempt in range(1, self.max_retries + 1):
            reader = LedgerTransaction(self.summary_store, self.paths, group_id)
            try:
                summaries = self._apply_summaries(reader, mutation, now)
                updates = {self.paths.user_summary(m): s for m, s in summaries.items()}
                self.summary_store.atomic_multi_update(updates, reader.versions)
            except VersionConflict:
                logger.warning(
                    "summary write for group %s conflicted (attempt %d/%d)",
                    group_id, attempt, self.max_retries,
                )
                continue
            except StoreUnavailable as exc:
                logger.error("summary store unavailable for group %s: %s", group_id, exc.message)
                break
            result.summaries = summaries
            return

        logger.error(
            "group %s balances committed but member summaries were not updated for %s",
            group_id, ", ".join(mutation.touched_members()),
        )
        result.summaries_committed = False
        result.warnings.append(make_warning(
            WarningCode.SUMMARY_UPDATE_FAILED,
            "Balances were saved but member summaries could not be updated.",
            members=mutation.touched_members(),
        ))


def _group_not_found(group_id) -> AppError:
    return AppError(
        ErrorCode.GROUP_NOT_FOUND,
        f"Group {group_id} does not exist.",
        404,
    )
