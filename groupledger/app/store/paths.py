"""
store/paths.py — Store path conventions.

The layout is owned by the host: the engine never builds a path string itself,
it always asks a PathLayout. The default layout mirrors a document tree:

    groups/{group_id}                              group record + members
    groups/{group_id}/summary/balances             {member_id: cents}
    groups/{group_id}/summary/meta                 totals, counters, timestamps
    groups/{group_id}/expenses/{expense_id}        expense record
    groups/{group_id}/expenseIds                   ordered expense id index
    groups/{group_id}/settlementRecords/{rid}      settlement record
    groups/{group_id}/settlementRecordIds          ordered record id index
    userSummaries/{member_id}                      cross-group member summary
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class PathLayout:
    prefix: str = ""

    group_template: str = "groups/{group_id}"
    balances_template: str = "groups/{group_id}/summary/balances"
    group_summary_template: str = "groups/{group_id}/summary/meta"
    expense_template: str = "groups/{group_id}/expenses/{expense_id}"
    expense_index_template: str = "groups/{group_id}/expenseIds"
    settlement_record_template: str = "groups/{group_id}/settlementRecords/{record_id}"
    settlement_index_template: str = "groups/{group_id}/settlementRecordIds"
    user_summary_template: str = "userSummaries/{member_id}"

    @classmethod
    def from_config(cls, config) -> "PathLayout":
        return cls(prefix=config.get("LEDGER_PATH_PREFIX", "") or "")

    def _path(self, template: str, **ids) -> str:
        path = template.format(**{key: str(value) for key, value in ids.items()})
        if self.prefix:
            return f"{self.prefix.rstrip('/')}/{path}"
        return path

    def group(self, group_id) -> str:
        return self._path(self.group_template, group_id=group_id)

    def group_balances(self, group_id) -> str:
        return self._path(self.balances_template, group_id=group_id)

    def group_summary(self, group_id) -> str:
        return self._path(self.group_summary_template, group_id=group_id)

    def expense(self, group_id, expense_id) -> str:
        return self._path(self.expense_template, group_id=group_id, expense_id=expense_id)

    def expense_index(self, group_id) -> str:
        return self._path(self.expense_index_template, group_id=group_id)

    def settlement_record(self, group_id, record_id) -> str:
        return self._path(
            self.settlement_record_template,
            group_id=group_id,
            record_id=record_id,
        )

    def settlement_index(self, group_id) -> str:
        return self._path(self.settlement_index_template, group_id=group_id)

    def user_summary(self, member_id) -> str:
        return self._path(self.user_summary_template, member_id=member_id)
